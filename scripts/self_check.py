"""Minimal stability self-check for migrations, course log CRUD and the public calendar."""

from __future__ import annotations

import sqlite3
import sys
import uuid
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from migrations.migrate import DB_PATH, latest_migration_version, migrate_to_latest
from services.course_log_service import (
    create_course,
    create_log_item,
    create_semester,
    delete_log_item,
    get_published_course,
    list_log_items,
    update_course_settings,
)
from services.public_view_service import get_public_calendar
from services.title_transliterator import transliterate


def check_migrations_idempotent() -> None:
    first = migrate_to_latest()
    second = migrate_to_latest()
    latest = latest_migration_version()
    assert second == first, f"migrate_to_latest not idempotent: {first} vs {second}"
    assert second == latest, f"schema version not latest: {second} vs {latest}"

    conn = sqlite3.connect(DB_PATH)
    try:
        row = conn.execute("SELECT value FROM meta WHERE key='schema_version'").fetchone()
        assert row is not None, "meta.schema_version row missing"
        assert int(row[0]) == latest, f"DB schema_version != latest ({row[0]} vs {latest})"
    finally:
        conn.close()


def check_transliterator() -> None:
    cases = {
        ("Lecture", "第二十一讲"): "Lecture 21",
        ("Homework", "作业三甲"): "Homework 3A",
        ("Midterm", "期中考试"): "Midterm",
        ("Other", "Something else"): "Something else",
    }
    for (kind, title), expected in cases.items():
        got = transliterate(kind, title)
        assert got == expected, f"transliterate({kind!r}, {title!r}) = {got!r}, expected {expected!r}"


def _cleanup_test_semester(semester_id: int) -> None:
    """Delete a test semester and all its related rows from the DB."""
    conn = sqlite3.connect(DB_PATH)
    try:
        # Delete in dependency order (children before parents).
        conn.execute(
            "DELETE FROM log_items WHERE course_id IN (SELECT id FROM courses WHERE semester_id=?)",
            [semester_id],
        )
        conn.execute("DELETE FROM courses WHERE semester_id=?", [semester_id])
        conn.execute("DELETE FROM semesters WHERE id=?", [semester_id])
        conn.commit()
    finally:
        conn.close()


def check_course_log_crud_and_calendar() -> None:
    expected_tables = {"semesters", "courses", "log_items", "problems", "exams", "translations"}
    conn = sqlite3.connect(DB_PATH)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        tables = {str(r[0]) for r in rows}
        missing = expected_tables - tables
        assert not missing, f"missing course log tables: {sorted(missing)}"
    finally:
        conn.close()

    semester = create_semester(f"Self Check {uuid.uuid4().hex[:6]}")
    try:
        course = create_course(semester["id"], "SC101", "Self Check Course")
        first = create_log_item(course["id"], "Lecture", "第一讲", date="2024-09-02")
        create_log_item(course["id"], "Quiz", "测验一", date="2024-09-18")
        assert len(list_log_items(course["id"])) == 2, "log item create/list failed"

        slug = f"selfcheck-{uuid.uuid4().hex[:8]}"
        update_course_settings(course["id"], True, slug, False)
        assert get_published_course(slug) is not None, "publish failed"

        page = get_public_calendar(slug)
        assert page is not None, "public calendar missing"
        assert [w.week_number for w in page["weeks"]] == [1, 2, 3], "weeks not contiguous"
        assert page["active_kinds"] == ["Lecture", "Quiz"], "active kinds wrong"

        assert delete_log_item(first["id"]) is True, "log item delete failed"
    finally:
        # Always clean up the test semester to prevent DB pollution across runs.
        _cleanup_test_semester(semester["id"])


def main() -> None:
    check_migrations_idempotent()
    check_transliterator()
    check_course_log_crud_and_calendar()
    print("self_check: OK")


if __name__ == "__main__":
    main()
