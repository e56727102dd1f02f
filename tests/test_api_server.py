"""HTTP-level tests for the JSON API (real server on an ephemeral port)."""

from __future__ import annotations

import base64
import json
import threading
import urllib.error
import urllib.request
from http.server import ThreadingHTTPServer

import pytest

import api_server
from api_server import ApiHandler

PNG = b"\x89PNG\r\n\x1a\nfake"


@pytest.fixture
def api(tmp_db):
    server = ThreadingHTTPServer(("127.0.0.1", 0), ApiHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    base = f"http://127.0.0.1:{server.server_address[1]}"

    def call(method, path, body=None, token=None):
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(base + path, data=data, method=method)
        req.add_header("Content-Type", "application/json")
        if token:
            req.add_header("Authorization", f"Bearer {token}")
        try:
            with urllib.request.urlopen(req, timeout=5) as resp:
                return resp.status, json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            return e.code, json.loads(e.read().decode("utf-8"))

    yield call
    server.shutdown()
    server.server_close()


@pytest.fixture
def token(api):
    status, payload = api("POST", "/api/register", {"username": "alice", "password": "correct horse"})
    assert status == 200
    return payload["token"]


class TestHelpers:
    def test_flag(self):
        assert api_server._flag("true") is True
        assert api_server._flag("on") is True
        assert api_server._flag("0") is False
        assert api_server._flag(1) is True
        assert api_server._flag(None) is False

    def test_decode_screenshot_plain_and_data_url(self):
        encoded = base64.b64encode(PNG).decode("ascii")
        assert api_server._decode_screenshot(encoded) == PNG
        assert api_server._decode_screenshot(f"data:image/png;base64,{encoded}") == PNG

    def test_decode_screenshot_invalid(self):
        with pytest.raises(api_server.CourseLogValidationError):
            api_server._decode_screenshot("not base64!!")


class TestAuthRoutes:
    def test_health_is_public(self, api):
        status, payload = api("GET", "/health")
        assert status == 200
        assert payload["ok"] is True

    def test_private_routes_need_token(self, api):
        status, _ = api("GET", "/api/semesters")
        assert status == 401

    def test_second_registration_forbidden(self, api, token):
        status, _ = api("POST", "/api/register", {"username": "bob", "password": "battery staple"})
        assert status == 403

    def test_login_logout(self, api, token):
        status, payload = api("POST", "/api/login", {"username": "alice", "password": "correct horse"})
        assert status == 200
        second = payload["token"]
        assert api("GET", "/api/semesters", token=second)[0] == 200
        api("POST", "/api/logout", token=second)
        assert api("GET", "/api/semesters", token=second)[0] == 401

    def test_bad_login(self, api, token):
        status, _ = api("POST", "/api/login", {"username": "alice", "password": "nope nope"})
        assert status == 401


class TestCourseFlow:
    def test_full_flow(self, api, token):
        status, semester = api("POST", "/api/semesters", {"name": "Fall 2024"}, token)
        assert status == 200
        status, course = api(
            "POST", f"/api/semesters/{semester['id']}/courses", {"code": "CS61A", "title": "SICP"}, token
        )
        assert status == 200

        status, item = api(
            "POST",
            f"/api/courses/{course['id']}/logs",
            {"kind": "Lecture", "title": "第一讲", "date": "2024-09-02"},
            token,
        )
        assert status == 200

        screenshot = base64.b64encode(PNG).decode("ascii")
        status, problem = api(
            "POST",
            f"/api/logs/{item['id']}/problems",
            {"screenshot": screenshot, "categories": "递归", "isIncorrect": True},
            token,
        )
        assert status == 200
        assert problem["is_incorrect"] is True

        status, listing = api("GET", f"/api/courses/{course['id']}/logs", token=token)
        assert listing["count"] == 1
        assert [c["name"] for c in listing["categories"]] == ["递归"]

        status, study = api("GET", f"/api/courses/{course['id']}/study/problems?incorrect=1", token=token)
        assert [p["id"] for p in study["items"]] == [problem["id"]]

        assert api("GET", "/api/p/cs61a")[0] == 404
        status, _ = api(
            "POST",
            f"/api/courses/{course['id']}/settings",
            {"isPublished": True, "publicSlug": "cs61a", "showLectureLinks": False},
            token,
        )
        assert status == 200

        status, calendar = api("GET", "/api/p/cs61a")
        assert status == 200
        assert calendar["activeKinds"] == ["Lecture"]
        assert calendar["basePath"] == "/p/cs61a"
        assert calendar["weeks"][0]["items_by_kind"][0]["items"][0]["title"] == "Lecture 1"

        status, calendar_zh = api("GET", "/api/p/cs61a/zh")
        assert calendar_zh["weeks"][0]["items_by_kind"][0]["items"][0]["title"] == "第一讲"

        status, problems = api("GET", "/api/p/cs61a/problems")
        assert status == 200
        assert problems["problems"][0]["source_title"] == "Lecture 1"

        assert api("DELETE", f"/api/logs/{item['id']}", token=token) == (200, {"ok": True})
        assert api("DELETE", f"/api/logs/{item['id']}", token=token)[0] == 404

    def test_validation_error_is_400(self, api, token):
        _, semester = api("POST", "/api/semesters", {"name": "S"}, token)
        _, course = api("POST", f"/api/semesters/{semester['id']}/courses", {"code": "C", "title": "T"}, token)
        status, payload = api("POST", f"/api/courses/{course['id']}/logs", {"kind": "Nope", "title": "x"}, token)
        assert status == 400
        assert "kind" in payload["error"]

    def test_scalar_json_fields_are_stringified(self, api, token):
        _, semester = api("POST", "/api/semesters", {"name": "S"}, token)
        _, course = api("POST", f"/api/semesters/{semester['id']}/courses", {"code": "C", "title": "T"}, token)
        status, item = api(
            "POST", f"/api/courses/{course['id']}/logs", {"kind": "Lecture", "title": "x", "description": 5}, token
        )
        assert status == 200
        assert item["description"] == "5"

    def test_array_or_object_field_is_400(self, api, token):
        _, semester = api("POST", "/api/semesters", {"name": "S"}, token)
        _, course = api("POST", f"/api/semesters/{semester['id']}/courses", {"code": "C", "title": "T"}, token)
        _, item = api("POST", f"/api/courses/{course['id']}/logs", {"kind": "Homework", "title": "h"}, token)
        screenshot = base64.b64encode(PNG).decode("ascii")

        status, payload = api(
            "POST", f"/api/logs/{item['id']}/problems", {"screenshot": screenshot, "notes": []}, token
        )
        assert status == 400
        assert "notes" in payload["error"]

        status, _ = api("POST", f"/api/courses/{course['id']}/settings", {"publicSlug": {"a": 1}}, token)
        assert status == 400

    def test_text_helper(self):
        assert api_server._text({}, "notes") is None
        assert api_server._text({"notes": 3}, "notes") == "3"
        with pytest.raises(api_server.CourseLogValidationError):
            api_server._text({"notes": ["a"]}, "notes")

    def test_missing_resources_are_404(self, api, token):
        assert api("GET", "/api/courses/999", token=token)[0] == 404
        assert api("GET", "/api/problems/999", token=token)[0] == 404
        assert api("POST", "/api/courses/999/translate", {}, token)[0] == 404
        assert api("GET", "/api/unknown", token=token)[0] == 404
