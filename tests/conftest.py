"""Shared pytest fixtures for the Course Log test suite."""

from __future__ import annotations

import sqlite3
import sys
from pathlib import Path

import pytest

# Ensure src/ is on the path so all service imports resolve.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

MIGRATIONS_SQL_DIR = SRC_DIR / "migrations" / "sql"


def _apply_migrations(db_path: str) -> None:
    """Run all SQL migration files in order against *db_path*."""
    conn = sqlite3.connect(db_path)
    try:
        sql_files = sorted(MIGRATIONS_SQL_DIR.glob("[0-9][0-9][0-9]_*.sql"))
        for sql_file in sql_files:
            conn.executescript(sql_file.read_text(encoding="utf-8"))
        conn.execute(
            "INSERT INTO meta(key, value) VALUES('schema_version', ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (str(len(sql_files)),),
        )
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def tmp_db(tmp_path, monkeypatch):
    """Temporary SQLite DB with all migrations applied.

    Points DB_PATH of every service module (and the upload directory) at
    tmp_path so tests never touch data/.
    """
    db_file = tmp_path / "test_app.db"
    _apply_migrations(str(db_file))

    import migrations.migrate as migrate_mod
    import services.auth_service as auth_mod
    import services.course_log_service as log_mod
    import services.translation_service as ts_mod
    import utils.metrics as metrics_mod

    for mod in (migrate_mod, auth_mod, log_mod, ts_mod, metrics_mod):
        monkeypatch.setattr(mod, "DB_PATH", db_file)
    monkeypatch.setattr(log_mod, "UPLOADS_DIR", tmp_path / "uploads")

    return str(db_file)


@pytest.fixture
def no_sleep(monkeypatch):
    """Record the retry backoff of the translation gateway instead of sleeping."""
    import services.translation_service as ts_mod

    sleeps: list[float] = []
    monkeypatch.setattr(ts_mod, "_retry_sleep", sleeps.append)
    return sleeps
