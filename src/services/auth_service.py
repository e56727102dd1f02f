"""Single-instructor credential gate: one account, opaque session tokens."""

from __future__ import annotations

import secrets
import sqlite3
from datetime import datetime
from typing import Any

from werkzeug.security import check_password_hash, generate_password_hash

from migrations.migrate import DB_PATH

MIN_PASSWORD_LENGTH = 8


class AuthError(ValueError):
    """Raised when registration is refused."""


def _now_iso() -> str:
    return datetime.utcnow().replace(microsecond=0).isoformat()


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def has_users() -> bool:
    with _connect() as conn:
        row = conn.execute("SELECT EXISTS(SELECT 1 FROM users)").fetchone()
    return bool(row[0])


def register_user(username: str, password: str) -> dict[str, Any]:
    """
    Create the instructor account. Only allowed while no account exists.

    Raises:
        AuthError: Registration closed, blank username or short password.
    """
    clean_name = (username or "").strip()
    if not clean_name:
        raise AuthError("Username is required.")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if has_users():
        raise AuthError("Registration is closed.")
    password_hash = generate_password_hash(password)
    try:
        with _connect() as conn:
            cur = conn.execute(
                "INSERT INTO users(username, password_hash, created_at) VALUES (?, ?, ?)",
                (clean_name, password_hash, _now_iso()),
            )
            user_id = int(cur.lastrowid)
    except sqlite3.IntegrityError as e:
        raise AuthError("Username already taken.") from e
    return {"id": user_id, "username": clean_name}


def authenticate(username: str, password: str) -> dict[str, Any] | None:
    """Return ``{"id", "username"}`` for valid credentials, else None."""
    with _connect() as conn:
        row = conn.execute(
            "SELECT id, username, password_hash FROM users WHERE username=?",
            ((username or "").strip(),),
        ).fetchone()
    if row is None or not check_password_hash(row["password_hash"], password or ""):
        return None
    return {"id": int(row["id"]), "username": row["username"]}


def create_session(user_id: int) -> str:
    token = secrets.token_urlsafe(32)
    with _connect() as conn:
        conn.execute(
            "INSERT INTO sessions(token, user_id, created_at) VALUES (?, ?, ?)",
            (token, int(user_id), _now_iso()),
        )
    return token


def get_session_user(token: str) -> dict[str, Any] | None:
    if not token:
        return None
    with _connect() as conn:
        row = conn.execute(
            """
            SELECT u.id, u.username FROM sessions s
            JOIN users u ON u.id = s.user_id
            WHERE s.token=?
            """,
            (token,),
        ).fetchone()
    if row is None:
        return None
    return {"id": int(row["id"]), "username": row["username"]}


def delete_session(token: str) -> None:
    with _connect() as conn:
        conn.execute("DELETE FROM sessions WHERE token=?", (token,))
