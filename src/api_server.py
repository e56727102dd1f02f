"""HTTP JSON API for the course log and its public calendar."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from datetime import datetime
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable
from urllib.parse import parse_qs, urlparse

from migrations.migrate import migrate_to_latest
from services import auth_service
from services import course_log_service as log_svc
from services.course_log_service import CourseLogValidationError
from services.public_view_service import get_public_calendar, get_public_problems, translate_course

LOGGER = logging.getLogger("courselog.api")


def _now_iso() -> str:
    return datetime.utcnow().replace(microsecond=0).isoformat()


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "on", "yes"}
    return bool(value)


def _text(body: dict[str, Any], key: str) -> str | None:
    """Optional text field; scalars are stringified, arrays and objects are a 400."""
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise CourseLogValidationError(f"{key} must be a string.")
    return str(value)


def _calendar_payload(page: dict[str, Any]) -> dict[str, Any]:
    return {
        "course": page["course"],
        "weeks": [w.to_dict() for w in page["weeks"]],
        "unscheduled": [i.to_dict() for i in page["unscheduled"]],
        "activeKinds": page["active_kinds"],
        "lang": page["lang"],
        "basePath": page["base_path"],
    }


def _problems_payload(page: dict[str, Any]) -> dict[str, Any]:
    return {
        "course": page["course"],
        "problems": page["problems"],
        "allCategories": page["all_categories"],
        "lang": page["lang"],
        "basePath": page["base_path"],
    }


def _decode_screenshot(raw: Any) -> bytes:
    text = str(raw or "")
    if text.startswith("data:") and "," in text:
        text = text.split(",", 1)[1]
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CourseLogValidationError("screenshot must be base64 encoded.") from e


class ApiHandler(BaseHTTPRequestHandler):
    server_version = "CourseLogAPI/1.0"

    def _send_json(self, code: int, payload: Any) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET,POST,DELETE,OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type, Authorization")
        self.end_headers()
        self.wfile.write(body)

    def _read_json(self) -> dict[str, Any]:
        try:
            length = int(self.headers.get("Content-Length") or "0")
        except ValueError:
            length = 0
        if length <= 0:
            return {}
        raw = self.rfile.read(length)
        try:
            parsed = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def _bearer_token(self) -> str:
        header = self.headers.get("Authorization") or ""
        return header[7:].strip() if header.startswith("Bearer ") else ""

    def _require_user(self) -> dict[str, Any] | None:
        user = auth_service.get_session_user(self._bearer_token())
        if user is None:
            self._send_json(HTTPStatus.UNAUTHORIZED, {"error": "unauthorized"})
        return user

    def _run(self, action: Callable[[], Any], not_found: str = "not_found") -> None:
        """Run a service call, mapping validation errors to 400 and None to 404."""
        try:
            result = action()
        except CourseLogValidationError as e:
            self._send_json(HTTPStatus.BAD_REQUEST, {"error": str(e)})
            return
        if result is None or result is False:
            self._send_json(HTTPStatus.NOT_FOUND, {"error": not_found})
            return
        self._send_json(HTTPStatus.OK, result if result is not True else {"ok": True})

    def do_OPTIONS(self) -> None:  # noqa: N802
        self._send_json(HTTPStatus.OK, {})

    # ---------- GET ----------

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        path = parsed.path
        query = parse_qs(parsed.query)

        if path == "/health":
            self._send_json(HTTPStatus.OK, {"ok": True, "time": _now_iso()})
            return

        public_match = re.fullmatch(r"/api/p/([^/]+)(/zh)?(/problems)?", path)
        if public_match:
            slug, zh, problems = public_match.groups()
            lang = "zh" if zh else "en"
            if problems:
                page = get_public_problems(slug, lang)
                payload = _problems_payload(page) if page else None
            else:
                page = get_public_calendar(slug, lang)
                payload = _calendar_payload(page) if page else None
            if payload is None:
                self._send_json(HTTPStatus.NOT_FOUND, {"error": "course_not_found"})
                return
            self._send_json(HTTPStatus.OK, payload)
            return

        if self._require_user() is None:
            return

        if path == "/api/semesters":
            rows = log_svc.list_semesters()
            self._send_json(HTTPStatus.OK, {"items": rows, "count": len(rows)})
            return

        match = re.fullmatch(r"/api/semesters/(\d+)/courses", path)
        if match:
            rows = log_svc.list_courses(int(match.group(1)))
            self._send_json(HTTPStatus.OK, {"items": rows, "count": len(rows)})
            return

        match = re.fullmatch(r"/api/courses/(\d+)", path)
        if match:
            self._run(lambda: log_svc.get_course(int(match.group(1))), "course_not_found")
            return

        match = re.fullmatch(r"/api/courses/(\d+)/logs", path)
        if match:
            course_id = int(match.group(1))
            rows = log_svc.list_log_items(course_id)
            categories = log_svc.list_categories(course_id)
            self._send_json(HTTPStatus.OK, {"items": rows, "count": len(rows), "categories": categories})
            return

        match = re.fullmatch(r"/api/courses/(\d+)/exams", path)
        if match:
            rows = log_svc.list_exams(int(match.group(1)))
            self._send_json(HTTPStatus.OK, {"items": rows, "count": len(rows)})
            return

        match = re.fullmatch(r"/api/courses/(\d+)/study/problems", path)
        if match:
            category_ids: list[int] = []
            for raw in query.get("category") or []:
                try:
                    category_ids.append(int(raw))
                except ValueError:
                    continue
            rows = log_svc.filter_study_problems(
                int(match.group(1)),
                sources=query.get("source") or [],
                category_ids=category_ids,
                incorrect_only=_flag((query.get("incorrect") or [""])[0]),
            )
            self._send_json(HTTPStatus.OK, {"items": rows, "count": len(rows)})
            return

        match = re.fullmatch(r"/api/logs/(\d+)", path)
        if match:
            self._run(lambda: log_svc.get_log_item(int(match.group(1))), "log_item_not_found")
            return

        match = re.fullmatch(r"/api/(logs|exams)/(\d+)/problems", path)
        if match:
            owner_id = int(match.group(2))
            if match.group(1) == "logs":
                rows = log_svc.list_log_item_problems(owner_id)
            else:
                rows = log_svc.list_exam_problems(owner_id)
            self._send_json(HTTPStatus.OK, {"items": rows, "count": len(rows)})
            return

        match = re.fullmatch(r"/api/problems/(\d+)", path)
        if match:
            self._run(lambda: log_svc.get_problem(int(match.group(1))), "problem_not_found")
            return

        self._send_json(HTTPStatus.NOT_FOUND, {"error": "not_found"})

    # ---------- POST ----------

    def do_POST(self) -> None:  # noqa: N802
        path = urlparse(self.path).path
        body = self._read_json()

        if path == "/api/register":
            try:
                user = auth_service.register_user(str(body.get("username") or ""), str(body.get("password") or ""))
            except auth_service.AuthError as e:
                self._send_json(HTTPStatus.FORBIDDEN, {"error": str(e)})
                return
            LOGGER.info("auth.register(username=%s)", user["username"])
            self._send_json(HTTPStatus.OK, {"user": user, "token": auth_service.create_session(user["id"])})
            return

        if path == "/api/login":
            user = auth_service.authenticate(str(body.get("username") or ""), str(body.get("password") or ""))
            if user is None:
                self._send_json(HTTPStatus.UNAUTHORIZED, {"error": "Invalid username or password"})
                return
            self._send_json(HTTPStatus.OK, {"user": user, "token": auth_service.create_session(user["id"])})
            return

        if path == "/api/logout":
            auth_service.delete_session(self._bearer_token())
            self._send_json(HTTPStatus.OK, {"ok": True})
            return

        if self._require_user() is None:
            return

        if path == "/api/semesters":
            LOGGER.info("semesters.create")
            self._run(lambda: log_svc.create_semester(str(body.get("name") or "")))
            return

        match = re.fullmatch(r"/api/semesters/(\d+)/courses", path)
        if match:
            LOGGER.info("courses.create(semester=%s)", match.group(1))
            self._run(
                lambda: log_svc.create_course(
                    int(match.group(1)), str(body.get("code") or ""), str(body.get("title") or "")
                )
            )
            return

        match = re.fullmatch(r"/api/courses/(\d+)/logs", path)
        if match:
            LOGGER.info("logs.create(course=%s,kind=%s)", match.group(1), body.get("kind"))
            self._run(
                lambda: log_svc.create_log_item(
                    int(match.group(1)),
                    kind=str(body.get("kind") or ""),
                    title=str(body.get("title") or ""),
                    description=_text(body, "description"),
                    link=_text(body, "link"),
                    date=_text(body, "date"),
                )
            )
            return

        match = re.fullmatch(r"/api/logs/(\d+)", path)
        if match:
            LOGGER.info("logs.update(id=%s)", match.group(1))
            self._run(
                lambda: log_svc.update_log_item(
                    int(match.group(1)),
                    kind=str(body.get("kind") or ""),
                    title=str(body.get("title") or ""),
                    description=_text(body, "description"),
                    link=_text(body, "link"),
                    date=_text(body, "date"),
                )
            )
            return

        match = re.fullmatch(r"/api/(logs|exams)/(\d+)/problems", path)
        if match:
            owner_id = int(match.group(2))
            owner = {"log_item_id": owner_id} if match.group(1) == "logs" else {"exam_id": owner_id}
            LOGGER.info("problems.create(%s)", owner)
            self._run(
                lambda: log_svc.create_problem(
                    _decode_screenshot(body.get("screenshot")),
                    notes=_text(body, "notes"),
                    categories=_text(body, "categories"),
                    solution_link=_text(body, "solutionLink"),
                    is_incorrect=_flag(body.get("isIncorrect")),
                    **owner,
                )
            )
            return

        match = re.fullmatch(r"/api/problems/(\d+)", path)
        if match:
            LOGGER.info("problems.update(id=%s)", match.group(1))
            self._run(
                lambda: log_svc.update_problem(
                    int(match.group(1)),
                    notes=_text(body, "notes"),
                    solution_link=_text(body, "solutionLink"),
                    categories=_text(body, "categories"),
                    is_incorrect=_flag(body.get("isIncorrect")),
                )
            )
            return

        match = re.fullmatch(r"/api/courses/(\d+)/exams", path)
        if match:
            LOGGER.info("exams.create(course=%s)", match.group(1))
            self._run(
                lambda: log_svc.create_exam(int(match.group(1)), str(body.get("title") or ""), _text(body, "semester"))
            )
            return

        match = re.fullmatch(r"/api/exams/(\d+)", path)
        if match:
            LOGGER.info("exams.update(id=%s)", match.group(1))
            self._run(
                lambda: log_svc.update_exam(int(match.group(1)), str(body.get("title") or ""), _text(body, "semester"))
            )
            return

        match = re.fullmatch(r"/api/courses/(\d+)/settings", path)
        if match:
            LOGGER.info("courses.settings(id=%s)", match.group(1))
            self._run(
                lambda: log_svc.update_course_settings(
                    int(match.group(1)),
                    is_published=_flag(body.get("isPublished")),
                    public_slug=_text(body, "publicSlug"),
                    show_lecture_links=_flag(body.get("showLectureLinks")),
                )
            )
            return

        match = re.fullmatch(r"/api/courses/(\d+)/translate", path)
        if match:
            course_id = int(match.group(1))
            LOGGER.info("courses.translate(id=%s)", course_id)
            try:
                count = translate_course(course_id)
            except ValueError as e:
                self._send_json(HTTPStatus.NOT_FOUND, {"error": str(e)})
                return
            self._send_json(HTTPStatus.OK, {"ok": True, "translated": count})
            return

        self._send_json(HTTPStatus.NOT_FOUND, {"error": "not_found"})

    # ---------- DELETE ----------

    def do_DELETE(self) -> None:  # noqa: N802
        path = urlparse(self.path).path
        if self._require_user() is None:
            return

        match = re.fullmatch(r"/api/logs/(\d+)", path)
        if match:
            LOGGER.info("logs.delete(id=%s)", match.group(1))
            self._run(lambda: log_svc.delete_log_item(int(match.group(1))), "log_item_not_found")
            return

        match = re.fullmatch(r"/api/exams/(\d+)", path)
        if match:
            LOGGER.info("exams.delete(id=%s)", match.group(1))
            self._run(lambda: log_svc.delete_exam(int(match.group(1))), "exam_not_found")
            return

        self._send_json(HTTPStatus.NOT_FOUND, {"error": "not_found"})


def run_api_server(host: str = "127.0.0.1", port: int = 8800) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    migrate_to_latest()
    server = ThreadingHTTPServer((host, port), ApiHandler)
    LOGGER.info("API server listening on http://%s:%s", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    run_api_server()
