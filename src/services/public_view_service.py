"""Read-only public pages of a published course, in English or the original Chinese."""

from __future__ import annotations

import logging
from typing import Any

from config import FIRST_PARTY_LINK_DOMAIN
from services.calendar_service import build_calendar
from services.course_log_service import (
    get_course,
    get_published_course,
    list_categories,
    list_course_problems,
    list_exams,
    list_log_items,
)
from services.title_transliterator import transliterate
from services.translation_service import cached_translation_map, translate_batch
from utils.metrics import timed

LOGGER = logging.getLogger("courselog.public")

LANG_EN = "en"
LANG_ZH = "zh"


def _base_path(course: dict[str, Any], lang: str) -> str:
    base = f"/p/{course.get('public_slug') or ''}"
    return f"{base}/zh" if lang == LANG_ZH else base


def _split_names(raw: str | None) -> list[str]:
    return [name.strip() for name in (raw or "").split(",") if name.strip()]


def get_public_calendar(slug: str, lang: str = LANG_EN) -> dict[str, Any] | None:
    """
    Calendar page data for a published course.

    English uses the transliterator for titles and cached translations for
    descriptions; Chinese shows everything as entered.

    Returns:
        Dict with course, weeks, unscheduled, active_kinds, lang and
        base_path, or None if *slug* is not published.
    """
    course = get_published_course(slug)
    if course is None:
        return None
    with timed("public_calendar", course["id"], lang=lang) as meta:
        items = list_log_items(course["id"], newest_first=False)
        translations: dict[str, str] = {}
        if lang != LANG_ZH:
            translations = cached_translation_map(i.get("description") or "" for i in items)
        weeks, unscheduled, active_kinds = build_calendar(
            items,
            show_lecture_links=course["show_lecture_links"],
            cached_translations=translations,
            use_transliteration=lang != LANG_ZH,
        )
        meta["weeks"] = len(weeks)
    return {
        "course": course,
        "weeks": weeks,
        "unscheduled": unscheduled,
        "active_kinds": active_kinds,
        "lang": LANG_ZH if lang == LANG_ZH else LANG_EN,
        "base_path": _base_path(course, lang),
    }


def _public_solution_link(link: str | None) -> str | None:
    if link and FIRST_PARTY_LINK_DOMAIN in link:
        return link
    return None


def _display_source_title(problem: dict[str, Any], t_map: dict[str, str]) -> str:
    source_title = problem.get("source_title") or ""
    if not source_title:
        return ""
    translated = transliterate(problem.get("source_kind") or "", source_title)
    if translated == source_title:
        return t_map.get(source_title, source_title)
    return translated


def get_public_problems(slug: str, lang: str = LANG_EN) -> dict[str, Any] | None:
    """
    Problem-bank page data for a published course.

    Returns:
        Dict with course, problems, all_categories (sorted display names),
        lang and base_path, or None if *slug* is not published.
    """
    course = get_published_course(slug)
    if course is None:
        return None
    translate = lang != LANG_ZH
    with timed("public_problems", course["id"], lang=lang) as meta:
        raw_problems = list_course_problems(course["id"])
        t_map: dict[str, str] = {}
        if translate:
            texts: list[str] = []
            for p in raw_problems:
                texts.append(p.get("notes") or "")
                texts.extend(_split_names(p.get("category_names")))
                texts.append(p.get("source_title") or "")
            t_map = cached_translation_map(texts)

        all_categories: set[str] = set()
        problems: list[dict[str, Any]] = []
        for p in raw_problems:
            notes = p.get("notes") or None
            if notes and translate:
                notes = t_map.get(notes, notes)
            category_names = None
            if p.get("category_names") is not None:
                names = [t_map.get(n, n) if translate else n for n in _split_names(p["category_names"])]
                all_categories.update(names)
                category_names = ",".join(names)
            problems.append(
                {
                    "id": p["id"],
                    "image_url": p.get("image_url"),
                    "notes": notes,
                    "category_names": category_names,
                    "source_kind": p.get("source_kind") or "",
                    "source_title": _display_source_title(p, t_map) if translate else p.get("source_title") or "",
                    "solution_link": _public_solution_link(p.get("solution_link")),
                }
            )
        meta["problems"] = len(problems)
    return {
        "course": course,
        "problems": problems,
        "all_categories": sorted(all_categories),
        "lang": LANG_EN if translate else LANG_ZH,
        "base_path": _base_path(course, lang),
    }


def collect_course_texts(course_id: int) -> list[str]:
    """Every course text that needs the LLM: descriptions, categories, notes, exam and free-form titles."""
    texts: list[str] = []
    for item in list_log_items(course_id):
        if item.get("description"):
            texts.append(item["description"])
        if transliterate(item["kind"], item["title"]) == item["title"]:
            texts.append(item["title"])
    texts.extend(c["name"] for c in list_categories(course_id))
    texts.extend(p["notes"] for p in list_course_problems(course_id) if p.get("notes"))
    texts.extend(e["title"] for e in list_exams(course_id))
    return texts


def translate_course(course_id: int, api_key: str | None = None) -> int:
    """
    Fill the translation cache for a course.

    Returns:
        Number of texts processed (0 when there is nothing to translate).

    Raises:
        ValueError: If the course does not exist.
    """
    course = get_course(course_id)
    if course is None:
        raise ValueError("Course not found.")
    texts = collect_course_texts(course_id)
    if not texts:
        return 0
    context = f"{course['code']} {course['title']}"
    LOGGER.info("translate_course(course=%s, texts=%s)", course_id, len(texts))
    return len(translate_batch(texts, context, api_key=api_key))
