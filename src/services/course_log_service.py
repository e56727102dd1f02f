"""Course log persistence services backed by SQLite."""

from __future__ import annotations

import re
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from config import LOG_ITEM_KINDS, UPLOADS_DIR
from migrations.migrate import DB_PATH
from utils.file_utils import save_screenshot

VALID_KINDS = set(LOG_ITEM_KINDS)
EXAM_SOURCE = "Exam"
SCREENSHOT_DESCRIPTION = "Screenshot Problem"
_CATEGORY_SPLIT = re.compile(r"[,、]")
_SLUG_PATTERN = re.compile(r"[a-z0-9][a-z0-9_-]*")

_PROBLEM_SELECT = """
    SELECT
        p.id, p.log_item_id, p.exam_id, p.description, p.notes, p.image_url,
        p.solution_link, p.is_incorrect,
        GROUP_CONCAT(c.name) AS category_names,
        COALESCE(l.kind, 'Exam') AS source_kind,
        COALESCE(l.title, e.title, '') AS source_title
    FROM problems p
    LEFT JOIN log_items l ON p.log_item_id = l.id
    LEFT JOIN exams e ON p.exam_id = e.id
    LEFT JOIN problem_categories pc ON p.id = pc.problem_id
    LEFT JOIN categories c ON pc.category_id = c.id
"""


class CourseLogValidationError(ValueError):
    """Raised when course log payload validation fails."""


def _now_iso() -> str:
    return datetime.utcnow().replace(microsecond=0).isoformat()


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def _row_to_dict(row: sqlite3.Row | None) -> dict[str, Any] | None:
    if row is None:
        return None
    return {k: row[k] for k in row.keys()}


def _blank_to_none(value: str | None) -> str | None:
    clean = (value or "").strip()
    return clean or None


def _required(value: str | None, label: str, max_len: int) -> str:
    clean = (value or "").strip()
    if not clean:
        raise CourseLogValidationError(f"{label} is required.")
    if len(clean) > max_len:
        raise CourseLogValidationError(f"{label} must be <= {max_len} characters.")
    return clean


def _normalize_kind(kind: str) -> str:
    clean = (kind or "").strip()
    if clean not in VALID_KINDS:
        raise CourseLogValidationError(f"Unknown log item kind '{clean}'.")
    return clean


def _normalize_date(raw: str | None) -> str | None:
    clean = _blank_to_none(raw)
    if clean is None:
        return None
    try:
        datetime.strptime(clean, "%Y-%m-%d")
    except ValueError as e:
        raise CourseLogValidationError("Date must be YYYY-MM-DD.") from e
    return clean


def _normalize_slug(slug: str | None) -> str | None:
    clean = _blank_to_none(slug)
    if clean is None:
        return None
    clean = clean.lower()
    if len(clean) > 64 or not _SLUG_PATTERN.fullmatch(clean):
        raise CourseLogValidationError("Public slug only allows a-z, 0-9, underscore, hyphen.")
    return clean


def split_category_names(raw: str | None) -> list[str]:
    """Split "a, b、c" into unique names, keeping first-seen order."""
    names = (part.strip() for part in _CATEGORY_SPLIT.split(raw or ""))
    return list(dict.fromkeys(n for n in names if n))


# ---------- Semesters ----------

def create_semester(name: str) -> dict[str, Any]:
    clean = _required(name, "Semester name", 80)
    with _connect() as conn:
        cur = conn.execute(
            "INSERT INTO semesters(name, created_at) VALUES (?, ?)",
            (clean, _now_iso()),
        )
        semester_id = int(cur.lastrowid)
    return get_semester(semester_id) or {}


def get_semester(semester_id: int) -> dict[str, Any] | None:
    with _connect() as conn:
        row = conn.execute(
            "SELECT id, name, created_at FROM semesters WHERE id=?",
            (int(semester_id),),
        ).fetchone()
    return _row_to_dict(row)


def list_semesters() -> list[dict[str, Any]]:
    with _connect() as conn:
        rows = conn.execute(
            "SELECT id, name, created_at FROM semesters ORDER BY created_at DESC, id DESC"
        ).fetchall()
    return [_row_to_dict(r) or {} for r in rows]


# ---------- Courses ----------

_COURSE_COLUMNS = "id, semester_id, code, title, is_published, public_slug, show_lecture_links"


def _course_from_row(row: sqlite3.Row | None) -> dict[str, Any] | None:
    course = _row_to_dict(row)
    if course is not None:
        course["is_published"] = bool(course["is_published"])
        course["show_lecture_links"] = bool(course["show_lecture_links"])
    return course


def create_course(semester_id: int, code: str, title: str) -> dict[str, Any]:
    if get_semester(semester_id) is None:
        raise CourseLogValidationError("Semester not found.")
    clean_code = re.sub(r"\s+", " ", _required(code, "Course code", 32))
    clean_title = _required(title, "Course title", 120)
    with _connect() as conn:
        cur = conn.execute(
            "INSERT INTO courses(semester_id, code, title) VALUES (?, ?, ?)",
            (int(semester_id), clean_code, clean_title),
        )
        course_id = int(cur.lastrowid)
    return get_course(course_id) or {}


def get_course(course_id: int) -> dict[str, Any] | None:
    with _connect() as conn:
        row = conn.execute(
            f"SELECT {_COURSE_COLUMNS} FROM courses WHERE id=?",
            (int(course_id),),
        ).fetchone()
    return _course_from_row(row)


def list_courses(semester_id: int) -> list[dict[str, Any]]:
    with _connect() as conn:
        rows = conn.execute(
            f"SELECT {_COURSE_COLUMNS} FROM courses WHERE semester_id=? ORDER BY code COLLATE NOCASE ASC",
            (int(semester_id),),
        ).fetchall()
    return [_course_from_row(r) or {} for r in rows]


def update_course_settings(
    course_id: int,
    is_published: bool,
    public_slug: str | None,
    show_lecture_links: bool,
) -> dict[str, Any]:
    """Save publishing settings. A blank slug is stored as NULL."""
    if get_course(course_id) is None:
        raise CourseLogValidationError("Course not found.")
    slug = _normalize_slug(public_slug)
    if is_published and slug is None:
        raise CourseLogValidationError("A public slug is required to publish a course.")
    try:
        with _connect() as conn:
            conn.execute(
                "UPDATE courses SET is_published=?, public_slug=?, show_lecture_links=? WHERE id=?",
                (int(bool(is_published)), slug, int(bool(show_lecture_links)), int(course_id)),
            )
    except sqlite3.IntegrityError as e:
        raise CourseLogValidationError(f"Public slug '{slug}' is already in use.") from e
    return get_course(course_id) or {}


def get_published_course(slug: str) -> dict[str, Any] | None:
    clean = (slug or "").strip().lower()
    if not clean:
        return None
    with _connect() as conn:
        row = conn.execute(
            f"SELECT {_COURSE_COLUMNS} FROM courses WHERE public_slug=? AND is_published=1",
            (clean,),
        ).fetchone()
    return _course_from_row(row)


# ---------- Log items ----------

_LOG_ITEM_COLUMNS = "id, course_id, kind, title, description, link, date"


def create_log_item(
    course_id: int,
    kind: str,
    title: str,
    description: str | None = None,
    link: str | None = None,
    date: str | None = None,
) -> dict[str, Any]:
    if get_course(course_id) is None:
        raise CourseLogValidationError("Course not found.")
    values = (
        _normalize_kind(kind),
        _required(title, "Title", 200),
        _blank_to_none(description),
        _blank_to_none(link),
        _normalize_date(date),
    )
    with _connect() as conn:
        cur = conn.execute(
            """
            INSERT INTO log_items(course_id, kind, title, description, link, date)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (int(course_id), *values),
        )
        item_id = int(cur.lastrowid)
    return get_log_item(item_id) or {}


def get_log_item(item_id: int) -> dict[str, Any] | None:
    with _connect() as conn:
        row = conn.execute(
            f"SELECT {_LOG_ITEM_COLUMNS} FROM log_items WHERE id=?",
            (int(item_id),),
        ).fetchone()
    return _row_to_dict(row)


def update_log_item(
    item_id: int,
    kind: str,
    title: str,
    description: str | None = None,
    link: str | None = None,
    date: str | None = None,
) -> dict[str, Any]:
    if get_log_item(item_id) is None:
        raise CourseLogValidationError("Log item not found.")
    with _connect() as conn:
        conn.execute(
            "UPDATE log_items SET kind=?, title=?, description=?, link=?, date=? WHERE id=?",
            (
                _normalize_kind(kind),
                _required(title, "Title", 200),
                _blank_to_none(description),
                _blank_to_none(link),
                _normalize_date(date),
                int(item_id),
            ),
        )
    return get_log_item(item_id) or {}


def _delete_problems_where(conn: sqlite3.Connection, column: str, owner_id: int) -> None:
    # column is one of two literals chosen by the callers below.
    conn.execute(
        f"DELETE FROM problem_categories WHERE problem_id IN (SELECT id FROM problems WHERE {column}=?)",
        (owner_id,),
    )
    conn.execute(f"DELETE FROM problems WHERE {column}=?", (owner_id,))


def delete_log_item(item_id: int) -> bool:
    """Delete a log item together with its problems. Returns False when it did not exist."""
    with _connect() as conn:
        _delete_problems_where(conn, "log_item_id", int(item_id))
        cur = conn.execute("DELETE FROM log_items WHERE id=?", (int(item_id),))
    return cur.rowcount > 0


def list_log_items(course_id: int, newest_first: bool = True) -> list[dict[str, Any]]:
    """Instructor view lists newest first; the public calendar reads oldest first."""
    order = "date DESC, id DESC" if newest_first else "date ASC, id ASC"
    with _connect() as conn:
        rows = conn.execute(
            f"SELECT {_LOG_ITEM_COLUMNS} FROM log_items WHERE course_id=? ORDER BY {order}",
            (int(course_id),),
        ).fetchall()
    return [_row_to_dict(r) or {} for r in rows]


# ---------- Categories ----------

def list_categories(course_id: int) -> list[dict[str, Any]]:
    with _connect() as conn:
        rows = conn.execute(
            "SELECT id, course_id, name FROM categories WHERE course_id=? ORDER BY name ASC",
            (int(course_id),),
        ).fetchall()
    return [_row_to_dict(r) or {} for r in rows]


def _ensure_category(conn: sqlite3.Connection, course_id: int, name: str) -> int:
    row = conn.execute(
        "SELECT id FROM categories WHERE course_id=? AND name=?",
        (course_id, name),
    ).fetchone()
    if row is not None:
        return int(row[0])
    cur = conn.execute("INSERT INTO categories(course_id, name) VALUES (?, ?)", (course_id, name))
    return int(cur.lastrowid)


def _replace_problem_categories(
    conn: sqlite3.Connection, problem_id: int, course_id: int, names: Iterable[str]
) -> None:
    conn.execute("DELETE FROM problem_categories WHERE problem_id=?", (problem_id,))
    for name in names:
        category_id = _ensure_category(conn, course_id, name)
        conn.execute(
            "INSERT OR IGNORE INTO problem_categories(problem_id, category_id) VALUES (?, ?)",
            (problem_id, category_id),
        )


# ---------- Problems ----------

def _problem_course_id(problem: dict[str, Any]) -> int | None:
    if problem.get("log_item_id"):
        item = get_log_item(int(problem["log_item_id"]))
        return int(item["course_id"]) if item else None
    if problem.get("exam_id"):
        exam = get_exam(int(problem["exam_id"]))
        return int(exam["course_id"]) if exam else None
    return None


def _problem_from_row(row: sqlite3.Row | None) -> dict[str, Any] | None:
    problem = _row_to_dict(row)
    if problem is not None:
        problem["is_incorrect"] = bool(problem["is_incorrect"])
    return problem


def create_problem(
    image_bytes: bytes,
    log_item_id: int | None = None,
    exam_id: int | None = None,
    notes: str | None = None,
    categories: str | None = None,
    solution_link: str | None = None,
    is_incorrect: bool = False,
) -> dict[str, Any]:
    """
    Attach a screenshot problem to a log item or an exam.

    Args:
        image_bytes: Screenshot contents, stored as ``<uuid>.png``.
        log_item_id: Owning log item (exactly one of log_item_id / exam_id).
        exam_id: Owning exam.
        notes: Free-text notes.
        categories: Comma or 、 separated category names, created on demand.
        solution_link: Optional solution URL.
        is_incorrect: Whether the problem was answered incorrectly.

    Returns:
        The stored problem with category_names, source_kind and source_title.

    Raises:
        CourseLogValidationError: On a missing owner or an empty screenshot.
    """
    if (log_item_id is None) == (exam_id is None):
        raise CourseLogValidationError("A problem belongs to exactly one log item or exam.")
    if log_item_id is not None:
        owner = get_log_item(log_item_id)
    else:
        owner = get_exam(int(exam_id))
    if owner is None:
        raise CourseLogValidationError("Problem owner not found.")
    if not image_bytes:
        raise CourseLogValidationError("Screenshot is required.")

    image_url = save_screenshot(UPLOADS_DIR, image_bytes)
    try:
        with _connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO problems(log_item_id, exam_id, description, notes, image_url, solution_link, is_incorrect)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    log_item_id,
                    exam_id,
                    SCREENSHOT_DESCRIPTION,
                    _blank_to_none(notes),
                    image_url,
                    _blank_to_none(solution_link),
                    int(bool(is_incorrect)),
                ),
            )
            problem_id = int(cur.lastrowid)
            _replace_problem_categories(conn, problem_id, int(owner["course_id"]), split_category_names(categories))
    except sqlite3.Error:
        # The row was rolled back; drop the file it would have pointed at.
        (Path(UPLOADS_DIR) / image_url.rsplit("/", 1)[-1]).unlink(missing_ok=True)
        raise
    return get_problem(problem_id) or {}


def get_problem(problem_id: int) -> dict[str, Any] | None:
    with _connect() as conn:
        row = conn.execute(
            f"{_PROBLEM_SELECT} WHERE p.id=? GROUP BY p.id",
            (int(problem_id),),
        ).fetchone()
    return _problem_from_row(row)


def update_problem(
    problem_id: int,
    notes: str | None = None,
    solution_link: str | None = None,
    categories: str | None = None,
    is_incorrect: bool = False,
) -> dict[str, Any]:
    """Update notes/link/flag and replace the problem's categories."""
    problem = get_problem(problem_id)
    if problem is None:
        raise CourseLogValidationError("Problem not found.")
    course_id = _problem_course_id(problem)
    if course_id is None:
        raise CourseLogValidationError("Problem has neither a log item nor an exam.")
    with _connect() as conn:
        conn.execute(
            "UPDATE problems SET notes=?, solution_link=?, is_incorrect=? WHERE id=?",
            (_blank_to_none(notes), _blank_to_none(solution_link), int(bool(is_incorrect)), int(problem_id)),
        )
        _replace_problem_categories(conn, int(problem_id), course_id, split_category_names(categories))
    return get_problem(problem_id) or {}


def list_log_item_problems(log_item_id: int) -> list[dict[str, Any]]:
    with _connect() as conn:
        rows = conn.execute(
            f"{_PROBLEM_SELECT} WHERE p.log_item_id=? GROUP BY p.id ORDER BY p.id ASC",
            (int(log_item_id),),
        ).fetchall()
    return [_problem_from_row(r) or {} for r in rows]


def list_exam_problems(exam_id: int) -> list[dict[str, Any]]:
    with _connect() as conn:
        rows = conn.execute(
            f"{_PROBLEM_SELECT} WHERE p.exam_id=? GROUP BY p.id ORDER BY p.id ASC",
            (int(exam_id),),
        ).fetchall()
    return [_problem_from_row(r) or {} for r in rows]


def list_course_problems(course_id: int) -> list[dict[str, Any]]:
    return filter_study_problems(course_id)


def filter_study_problems(
    course_id: int,
    sources: Iterable[str] | None = None,
    category_ids: Iterable[int] | None = None,
    incorrect_only: bool = False,
) -> list[dict[str, Any]]:
    """
    Problems of a course, optionally filtered.

    Args:
        course_id: Course to read.
        sources: Log kinds to keep; "Exam" keeps exam problems.
        category_ids: Keep problems tagged with any of these categories.
        incorrect_only: Keep only problems marked incorrect.

    Returns:
        Problem rows ordered by id.
    """
    clauses = ["(l.course_id=? OR e.course_id=?)"]
    params: list[Any] = [int(course_id), int(course_id)]

    if incorrect_only:
        clauses.append("p.is_incorrect=1")

    source_list = [s for s in (sources or []) if s]
    if source_list:
        kinds = [s for s in source_list if s != EXAM_SOURCE]
        parts: list[str] = []
        if kinds:
            parts.append(f"l.kind IN ({','.join('?' for _ in kinds)})")
            params.extend(kinds)
        if EXAM_SOURCE in source_list:
            parts.append("p.exam_id IS NOT NULL")
        clauses.append(f"({' OR '.join(parts)})")

    category_list = sorted({int(c) for c in (category_ids or [])})
    if category_list:
        clauses.append(
            "p.id IN (SELECT pc2.problem_id FROM problem_categories pc2 "
            f"WHERE pc2.category_id IN ({','.join('?' for _ in category_list)}))"
        )
        params.extend(category_list)

    sql = f"{_PROBLEM_SELECT} WHERE {' AND '.join(clauses)} GROUP BY p.id ORDER BY p.id ASC"
    with _connect() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [_problem_from_row(r) or {} for r in rows]


# ---------- Exams ----------

_EXAM_COLUMNS = "id, course_id, title, semester"


def create_exam(course_id: int, title: str, semester: str | None = None) -> dict[str, Any]:
    if get_course(course_id) is None:
        raise CourseLogValidationError("Course not found.")
    with _connect() as conn:
        cur = conn.execute(
            "INSERT INTO exams(course_id, title, semester) VALUES (?, ?, ?)",
            (int(course_id), _required(title, "Exam title", 200), _blank_to_none(semester)),
        )
        exam_id = int(cur.lastrowid)
    return get_exam(exam_id) or {}


def get_exam(exam_id: int) -> dict[str, Any] | None:
    with _connect() as conn:
        row = conn.execute(f"SELECT {_EXAM_COLUMNS} FROM exams WHERE id=?", (int(exam_id),)).fetchone()
    return _row_to_dict(row)


def update_exam(exam_id: int, title: str, semester: str | None = None) -> dict[str, Any]:
    if get_exam(exam_id) is None:
        raise CourseLogValidationError("Exam not found.")
    with _connect() as conn:
        conn.execute(
            "UPDATE exams SET title=?, semester=? WHERE id=?",
            (_required(title, "Exam title", 200), _blank_to_none(semester), int(exam_id)),
        )
    return get_exam(exam_id) or {}


def delete_exam(exam_id: int) -> bool:
    with _connect() as conn:
        _delete_problems_where(conn, "exam_id", int(exam_id))
        cur = conn.execute("DELETE FROM exams WHERE id=?", (int(exam_id),))
    return cur.rowcount > 0


def list_exams(course_id: int) -> list[dict[str, Any]]:
    with _connect() as conn:
        rows = conn.execute(
            f"SELECT {_EXAM_COLUMNS} FROM exams WHERE course_id=? ORDER BY id ASC",
            (int(course_id),),
        ).fetchall()
    return [_row_to_dict(r) or {} for r in rows]
