"""Tests for the migration runner (paths redirected to tmp_path)."""

from __future__ import annotations

import sqlite3

import pytest

import migrations.migrate as migrate_mod


@pytest.fixture
def fresh_paths(tmp_path, monkeypatch):
    data = tmp_path / "data"
    backups = tmp_path / "backups"
    monkeypatch.setattr(migrate_mod, "DATA_DIR", data)
    monkeypatch.setattr(migrate_mod, "DB_PATH", data / "app.db")
    monkeypatch.setattr(migrate_mod, "UPLOADS_DIR", data / "uploads")
    monkeypatch.setattr(migrate_mod, "BACKUPS_DIR", backups)
    monkeypatch.setattr(migrate_mod, "LOCK_PATH", backups / ".migrate.lock")
    return tmp_path


def _tables(db_path) -> set[str]:
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    finally:
        conn.close()
    return {r[0] for r in rows}


class TestMigrateToLatest:
    def test_creates_schema(self, fresh_paths):
        version = migrate_mod.migrate_to_latest()
        assert version == migrate_mod.latest_migration_version()
        tables = _tables(migrate_mod.DB_PATH)
        assert {
            "meta",
            "users",
            "sessions",
            "semesters",
            "courses",
            "log_items",
            "categories",
            "problems",
            "problem_categories",
            "exams",
            "translations",
            "operation_metrics",
        } <= tables

    def test_idempotent(self, fresh_paths):
        first = migrate_mod.migrate_to_latest()
        second = migrate_mod.migrate_to_latest()
        assert first == second
        conn = sqlite3.connect(migrate_mod.DB_PATH)
        try:
            assert migrate_mod.read_schema_version(conn) == first
        finally:
            conn.close()

    def test_lock_released(self, fresh_paths):
        migrate_mod.migrate_to_latest()
        assert not migrate_mod.LOCK_PATH.exists()

    def test_lock_held_raises(self, fresh_paths):
        migrate_mod.BACKUPS_DIR.mkdir(parents=True)
        migrate_mod.LOCK_PATH.touch()
        with pytest.raises(migrate_mod.MigrationInProgressError):
            migrate_mod.migrate_to_latest()

    def test_uploads_backed_up(self, fresh_paths):
        migrate_mod.UPLOADS_DIR.mkdir(parents=True)
        (migrate_mod.UPLOADS_DIR / "a.png").write_bytes(b"png")
        migrate_mod.migrate_to_latest()
        assert list(migrate_mod.BACKUPS_DIR.glob("uploads_*.zip"))

    def test_read_schema_version_without_meta(self, fresh_paths):
        conn = sqlite3.connect(":memory:")
        try:
            assert migrate_mod.read_schema_version(conn) == 0
        finally:
            conn.close()
