"""Course Log instructor console (Streamlit)."""

from __future__ import annotations

from datetime import date
from typing import Any

import streamlit as st

from config import (
    LOG_ITEM_KINDS,
    PAGE_ICON,
    PAGE_TITLE,
    SIDEBAR_HEADER,
    THEME_BG_PAGE,
    THEME_CARD_BG,
    THEME_CARD_SHADOW,
    THEME_PRIMARY,
    THEME_PRIMARY_HOVER,
    THEME_SIDEBAR_BG,
    THEME_TEXT,
)
from i18n import kind_label, tr
from migrations.migrate import MigrationError, MigrationInProgressError, migrate_to_latest
from services import auth_service
from services.calendar_service import build_calendar
from services.course_log_service import (
    CourseLogValidationError,
    create_course,
    create_exam,
    create_log_item,
    create_problem,
    create_semester,
    delete_log_item,
    filter_study_problems,
    list_courses,
    list_exams,
    list_log_items,
    list_semesters,
    update_course_settings,
)
from services.public_view_service import translate_course
from services.title_transliterator import transliterate
from services.translation_service import cached_translation_map

_MIGRATIONS_DONE = False


def _lang() -> str:
    return st.session_state.get("lang", "zh")


def _t(key: str, **kwargs: object) -> str:
    return tr(_lang(), key, **kwargs)


def _ensure_migrations() -> None:
    global _MIGRATIONS_DONE
    if _MIGRATIONS_DONE:
        return
    try:
        migrate_to_latest()
    except (MigrationError, MigrationInProgressError) as e:
        st.error(str(e))
        st.stop()
    _MIGRATIONS_DONE = True


def _inject_css() -> None:
    st.markdown(
        f"""
        <style>
        .stApp {{ background: {THEME_BG_PAGE}; color: {THEME_TEXT}; }}
        section[data-testid="stSidebar"] {{ background: {THEME_SIDEBAR_BG}; }}
        section[data-testid="stSidebar"] * {{ color: #FFFFFF; }}
        .stButton > button {{ background: {THEME_PRIMARY}; color: #000; border: none; }}
        .stButton > button:hover {{ background: {THEME_PRIMARY_HOVER}; }}
        .cl-card {{ background: {THEME_CARD_BG}; box-shadow: {THEME_CARD_SHADOW};
                    border-radius: 8px; padding: 0.5rem 0.75rem; margin-bottom: 0.4rem; }}
        .cl-week {{ font-weight: 700; border-left: 4px solid {THEME_PRIMARY}; padding-left: 0.5rem; }}
        </style>
        """,
        unsafe_allow_html=True,
    )


# ---------- Auth ----------

def _render_auth_gate() -> bool:
    if st.session_state.get("user"):
        return True
    first_run = not auth_service.has_users()
    st.subheader(_t("register_title") if first_run else _t("login_title"))
    with st.form("auth_form"):
        username = st.text_input(_t("username"))
        password = st.text_input(_t("password"), type="password")
        submitted = st.form_submit_button(_t("register_button") if first_run else _t("login_button"))
    if not submitted:
        return False
    if first_run:
        try:
            st.session_state["user"] = auth_service.register_user(username, password)
        except auth_service.AuthError as e:
            st.error(str(e))
            return False
    else:
        user = auth_service.authenticate(username, password)
        if user is None:
            st.error(_t("login_failed"))
            return False
        st.session_state["user"] = user
    st.rerun()
    return True


# ---------- Sidebar ----------

def _render_sidebar() -> dict[str, Any] | None:
    with st.sidebar:
        st.markdown(f"### {SIDEBAR_HEADER}")
        st.radio("Language / 语言", ["zh", "en"], key="lang", horizontal=True)

        semesters = list_semesters()
        with st.expander(_t("add_semester")):
            name = st.text_input(_t("new_semester"), key="new_semester_name")
            if st.button(_t("add_semester"), key="add_semester_btn"):
                try:
                    create_semester(name)
                    st.rerun()
                except CourseLogValidationError as e:
                    st.error(str(e))
        if not semesters:
            return None
        semester = st.selectbox(_t("semester"), semesters, format_func=lambda s: s["name"])

        courses = list_courses(semester["id"])
        with st.expander(_t("add_course")):
            code = st.text_input(_t("new_course_code"), key="new_course_code")
            title = st.text_input(_t("new_course_title"), key="new_course_title")
            if st.button(_t("add_course"), key="add_course_btn"):
                try:
                    create_course(semester["id"], code, title)
                    st.rerun()
                except CourseLogValidationError as e:
                    st.error(str(e))
        course = None
        if courses:
            course = st.selectbox(_t("course"), courses, format_func=lambda c: f"{c['code']} {c['title']}")

        if st.button(_t("logout_button")):
            st.session_state.pop("user", None)
            st.rerun()
    return course


# ---------- Tabs ----------

def _render_log_tab(course: dict[str, Any]) -> None:
    with st.form("new_log_item", clear_on_submit=True):
        kind = st.selectbox(_t("kind"), LOG_ITEM_KINDS, format_func=lambda k: kind_label(_lang(), k))
        title = st.text_input(_t("title"))
        description = st.text_area(_t("description"))
        link = st.text_input(_t("link"))
        no_date = st.checkbox(_t("no_date"))
        item_date = st.date_input(_t("date"), value=date.today())
        if st.form_submit_button(_t("add_log_item")):
            try:
                create_log_item(
                    course["id"],
                    kind,
                    title,
                    description=description,
                    link=link,
                    date=None if no_date else item_date.isoformat(),
                )
                st.success(_t("saved"))
            except CourseLogValidationError as e:
                st.error(str(e))

    items = list_log_items(course["id"])
    if not items:
        st.info(_t("log_empty"))
        return
    for item in items:
        cols = st.columns([1, 2, 3, 1])
        cols[0].write(item["date"] or "—")
        cols[1].write(f"**{kind_label(_lang(), item['kind'])}** · {item['title']}")
        cols[2].caption(f"{transliterate(item['kind'], item['title'])} — {item['description'] or ''}")
        if cols[3].button(_t("delete"), key=f"del_log_{item['id']}"):
            delete_log_item(item["id"])
            st.rerun()


def _render_problems_tab(course: dict[str, Any]) -> None:
    items = list_log_items(course["id"])
    exams = list_exams(course["id"])
    owners: list[tuple[str, int, str]] = [("log", i["id"], f"{i['kind']} · {i['title']}") for i in items]
    owners += [("exam", e["id"], f"Exam · {e['title']}") for e in exams]
    if owners:
        with st.form("new_problem", clear_on_submit=True):
            owner = st.selectbox(_t("attach_to"), owners, format_func=lambda o: o[2])
            screenshot = st.file_uploader(_t("screenshot"), type=["png", "jpg", "jpeg"])
            notes = st.text_area(_t("notes"))
            categories = st.text_input(_t("categories"))
            solution_link = st.text_input(_t("solution_link"))
            is_incorrect = st.checkbox(_t("incorrect"))
            if st.form_submit_button(_t("add_problem")):
                owner_kw = {"log_item_id": owner[1]} if owner[0] == "log" else {"exam_id": owner[1]}
                try:
                    create_problem(
                        screenshot.getvalue() if screenshot else b"",
                        notes=notes,
                        categories=categories,
                        solution_link=solution_link,
                        is_incorrect=is_incorrect,
                        **owner_kw,
                    )
                    st.success(_t("saved"))
                except CourseLogValidationError as e:
                    st.error(str(e))

    only_incorrect = st.toggle(_t("only_incorrect"))
    for problem in filter_study_problems(course["id"], incorrect_only=only_incorrect):
        with st.container():
            st.markdown(f"**{problem['source_kind']} · {problem['source_title']}**")
            if problem.get("category_names"):
                st.caption(problem["category_names"])
            if problem.get("notes"):
                st.write(problem["notes"])


def _render_exams_tab(course: dict[str, Any]) -> None:
    with st.form("new_exam", clear_on_submit=True):
        title = st.text_input(_t("exam_title"))
        semester = st.text_input(_t("exam_semester"))
        if st.form_submit_button(_t("add_exam")):
            try:
                create_exam(course["id"], title, semester)
                st.success(_t("saved"))
            except CourseLogValidationError as e:
                st.error(str(e))
    for exam in list_exams(course["id"]):
        st.write(f"**{exam['title']}** {exam.get('semester') or ''}")


def _render_settings_tab(course: dict[str, Any]) -> None:
    with st.form("course_settings"):
        is_published = st.checkbox(_t("published"), value=course["is_published"])
        slug = st.text_input(_t("public_slug"), value=course.get("public_slug") or "")
        show_links = st.checkbox(_t("show_lecture_links"), value=course["show_lecture_links"])
        if st.form_submit_button(_t("save_settings")):
            try:
                update_course_settings(course["id"], is_published, slug, show_links)
                st.success(_t("saved"))
            except CourseLogValidationError as e:
                st.error(str(e))

    if st.button(_t("translate_course")):
        with st.spinner(_t("translate_course")):
            count = translate_course(course["id"])
        st.success(_t("translated_count", count=count) if count else _t("nothing_to_translate"))


def _render_preview_tab(course: dict[str, Any]) -> None:
    preview_lang = st.radio(_t("preview_lang"), ["en", "zh"], horizontal=True, key="preview_lang")
    items = list_log_items(course["id"], newest_first=False)
    english = preview_lang == "en"
    translations = cached_translation_map(i.get("description") or "" for i in items) if english else {}
    weeks, unscheduled, active_kinds = build_calendar(
        items,
        show_lecture_links=course["show_lecture_links"],
        cached_translations=translations,
        use_transliteration=english,
    )
    if not weeks and not unscheduled:
        st.info(tr(preview_lang, "calendar_empty"))
        return
    for week in weeks:
        st.markdown(
            f"<div class='cl-week'>{tr(preview_lang, 'week', number=week.week_number)} "
            f"· {week.start_date} – {week.end_date}</div>",
            unsafe_allow_html=True,
        )
        cols = st.columns(max(1, len(active_kinds)))
        for col, (kind, kind_items) in zip(cols, week.items_by_kind):
            col.caption(kind_label(preview_lang, kind))
            for item in kind_items:
                label = f"[{item.title}]({item.link})" if item.link else item.title
                col.markdown(label)
                if item.description:
                    col.caption(item.description)
    if unscheduled:
        st.markdown(f"#### {tr(preview_lang, 'unscheduled')}")
        for item in unscheduled:
            st.markdown(f"- {kind_label(preview_lang, item.kind)} · {item.title}")


def main() -> None:
    st.set_page_config(page_title=PAGE_TITLE, page_icon=PAGE_ICON, layout="wide")
    _ensure_migrations()
    _inject_css()
    if not _render_auth_gate():
        return
    course = _render_sidebar()
    if course is None:
        st.info(_t("no_course"))
        return

    st.title(f"{course['code']} · {course['title']}")
    log_tab, problems_tab, exams_tab, settings_tab, preview_tab = st.tabs(
        [_t("tab_log"), _t("tab_problems"), _t("tab_exams"), _t("tab_settings"), _t("tab_preview")]
    )
    with log_tab:
        _render_log_tab(course)
    with problems_tab:
        _render_problems_tab(course)
    with exams_tab:
        _render_exams_tab(course)
    with settings_tab:
        _render_settings_tab(course)
    with preview_tab:
        _render_preview_tab(course)


if __name__ == "__main__":
    main()
