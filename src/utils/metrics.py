"""Operation timing log backed by SQLite (translation batches, public page builds)."""

from __future__ import annotations

import json
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from migrations.migrate import DB_PATH


def _now_iso() -> str:
    return datetime.utcnow().replace(microsecond=0).isoformat()


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def record_operation(operation: str, elapsed_s: float, course_id: str | int = "", **meta: Any) -> None:
    """Persist one timing row for *operation*.

    Never raises: a broken metrics table must not break a public page or a
    translation run.

    Args:
        operation: e.g. "translate_batch", "public_calendar", "public_problems".
        elapsed_s: Wall-clock seconds the operation took.
        course_id: Optional course identifier.
        **meta: Extra key-value pairs stored as JSON (e.g. cache_hits=3).
    """
    try:
        meta_json = json.dumps(meta, ensure_ascii=False, default=str)
        with _connect() as conn:
            conn.execute(
                """
                INSERT INTO operation_metrics (operation, course_id, elapsed_s, meta_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (operation, str(course_id or ""), round(elapsed_s, 3), meta_json, _now_iso()),
            )
    except (sqlite3.Error, TypeError, ValueError):
        pass


@contextmanager
def timed(operation: str, course_id: str | int = "", **meta: Any) -> Iterator[dict[str, Any]]:
    """Time the enclosed block and record it; the yielded dict is merged into meta."""
    extra: dict[str, Any] = {}
    started = time.perf_counter()
    try:
        yield extra
    finally:
        record_operation(operation, time.perf_counter() - started, course_id, **{**meta, **extra})


def recent_operations(limit: int = 50) -> list[dict[str, Any]]:
    """Newest *limit* rows first; ``[]`` when the table is missing."""
    try:
        with _connect() as conn:
            rows = conn.execute(
                """
                SELECT id, operation, course_id, elapsed_s, meta_json, created_at
                FROM operation_metrics
                ORDER BY id DESC
                LIMIT ?
                """,
                (max(1, limit),),
            ).fetchall()
    except sqlite3.Error:
        return []
    out: list[dict[str, Any]] = []
    for row in rows:
        item = dict(row)
        try:
            item["meta"] = json.loads(item.pop("meta_json") or "{}")
        except json.JSONDecodeError:
            item["meta"] = {}
        out.append(item)
    return out


def operation_summary() -> dict[str, dict[str, Any]]:
    """Per-operation count and average/max seconds, keyed by operation name."""
    try:
        with _connect() as conn:
            rows = conn.execute(
                """
                SELECT operation, COUNT(*) AS total, AVG(elapsed_s) AS avg_s, MAX(elapsed_s) AS max_s
                FROM operation_metrics
                GROUP BY operation
                ORDER BY total DESC
                """
            ).fetchall()
    except sqlite3.Error:
        return {}
    return {
        row["operation"]: {
            "total": row["total"],
            "avg_s": round(row["avg_s"], 3),
            "max_s": round(row["max_s"], 3),
        }
        for row in rows
    }
