"""Tests for the single-instructor auth gate."""

from __future__ import annotations

import pytest

import services.auth_service as auth


class TestRegistration:
    def test_first_user_can_register(self, tmp_db):
        assert auth.has_users() is False
        user = auth.register_user(" alice ", "correct horse")
        assert user["username"] == "alice"
        assert auth.has_users() is True

    def test_registration_closes_after_first_user(self, tmp_db):
        auth.register_user("alice", "correct horse")
        with pytest.raises(auth.AuthError):
            auth.register_user("bob", "battery staple")

    def test_short_password(self, tmp_db):
        with pytest.raises(auth.AuthError):
            auth.register_user("alice", "short")

    def test_blank_username(self, tmp_db):
        with pytest.raises(auth.AuthError):
            auth.register_user("  ", "correct horse")

    def test_password_is_hashed(self, tmp_db):
        import sqlite3

        auth.register_user("alice", "correct horse")
        conn = sqlite3.connect(tmp_db)
        try:
            stored = conn.execute("SELECT password_hash FROM users").fetchone()[0]
        finally:
            conn.close()
        assert stored != "correct horse"


class TestLoginAndSessions:
    @pytest.fixture
    def user(self, tmp_db):
        return auth.register_user("alice", "correct horse")

    def test_authenticate(self, user):
        assert auth.authenticate("alice", "correct horse") == user
        assert auth.authenticate("alice", "wrong password") is None
        assert auth.authenticate("mallory", "correct horse") is None

    def test_session_roundtrip(self, user):
        token = auth.create_session(user["id"])
        assert auth.get_session_user(token) == user
        auth.delete_session(token)
        assert auth.get_session_user(token) is None

    def test_unknown_or_blank_token(self, user):
        assert auth.get_session_user("") is None
        assert auth.get_session_user("nope") is None

    def test_tokens_are_unique(self, user):
        assert auth.create_session(user["id"]) != auth.create_session(user["id"])
