#!/usr/bin/env python3
"""Pulseboard JSON service

A small WSGI app that serves derived display state (progress, escalated priority,
status, badges, KPIs) for tasks, objectives, projects, meetings and goals.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import threading
from socketserver import ThreadingMixIn
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote
from wsgiref.simple_server import WSGIServer, make_server

from pulseboard import derive
from pulseboard.client import ApiClient, ApiError
from pulseboard.config import (
    APP_NAME,
    DEFAULT_RULE,
    DISPLAY_TIMEZONE,
    HOST,
    PORT,
    UPSTREAM_BASE_URL,
    WSGI_THREADED,
)
from pulseboard.dates import display_tz, iso, parse_datetime_value, safe_timezone, utcnow
from pulseboard.escalation import (
    EscalationRule,
    ProgressMode,
    ZeroWindow,
    divergent_rules,
    estimate,
    rule_variants,
)
from pulseboard.logging_setup import setup_logging

logger = logging.getLogger(__name__)

BOOTSTRAPPED = False
BOOTSTRAP_LOCK = threading.Lock()
BOOTSTRAP_ERROR = ""

VALIDATION_KINDS = ("dates", "weights", "rsvp")
MAX_BODY_BYTES = 2_000_000


class Request:
    """Thin wrapper over WSGI environ with lazy JSON body parsing."""

    def __init__(self, environ: dict):
        self.environ = environ
        self.method = environ.get("REQUEST_METHOD", "GET").upper()
        self.path = environ.get("PATH_INFO", "/") or "/"
        self.query = {k: v[0] for k, v in parse_qs(environ.get("QUERY_STRING", "")).items()}
        self._body: Optional[bytes] = None

    @property
    def content_length(self) -> int:
        try:
            return max(0, int(self.environ.get("CONTENT_LENGTH") or 0))
        except ValueError:
            return 0

    @property
    def body(self) -> bytes:
        if self._body is None:
            length = min(self.content_length, MAX_BODY_BYTES)
            self._body = self.environ["wsgi.input"].read(length) if length else b""
        return self._body

    def json(self) -> object:
        """Decoded JSON body; an empty body is `{}`. Raises ValueError on bad JSON."""
        raw = self.body.decode("utf-8", errors="replace").strip()
        if not raw:
            return {}
        return json.loads(raw)


class Response:
    """Simple response object that centralizes security headers."""

    def __init__(
        self,
        body: str = "",
        status: str = "200 OK",
        content_type: str = "application/json; charset=utf-8",
        headers: Optional[List[Tuple[str, str]]] = None,
    ):
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        self.status = status
        self.content_type = content_type
        self.headers = headers or []

    def wsgi(self, start_response):
        sec_headers = [
            ("Content-Type", self.content_type),
            ("X-Content-Type-Options", "nosniff"),
            ("Referrer-Policy", "strict-origin-when-cross-origin"),
            ("Cache-Control", "no-store"),
            ("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'"),
        ]
        start_response(self.status, sec_headers + self.headers)
        return [self.body]


def json_response(payload: object, status: str = "200 OK") -> Response:
    return Response(json.dumps(payload), status=status)


def error_response(message: str, status: str = "400 Bad Request") -> Response:
    return json_response({"error": message}, status=status)


def upstream_client() -> ApiClient:
    return ApiClient()


def ensure_bootstrap() -> None:
    """Configure logging and check configuration once per process."""
    global BOOTSTRAPPED, BOOTSTRAP_ERROR
    if BOOTSTRAPPED:
        return
    with BOOTSTRAP_LOCK:
        if BOOTSTRAPPED:
            return
        setup_logging()
        if EscalationRule.lookup(DEFAULT_RULE) is None:
            BOOTSTRAP_ERROR = f"Unknown PULSEBOARD_DEFAULT_RULE {DEFAULT_RULE!r}; using step."
            logger.warning(BOOTSTRAP_ERROR)
        if safe_timezone(DISPLAY_TIMEZONE) is dt.timezone.utc and DISPLAY_TIMEZONE.upper() != "UTC":
            logger.warning("Unknown PULSEBOARD_TIMEZONE %r; falling back to UTC", DISPLAY_TIMEZONE)
        BOOTSTRAPPED = True


def request_now(req: Request, body: Optional[Dict[str, object]] = None, tz: Optional[dt.tzinfo] = None) -> dt.datetime:
    raw = (body or {}).get("now") or req.query.get("now")
    return parse_datetime_value(raw, tz) or utcnow()


def read_json_object(req: Request) -> Tuple[Optional[Dict[str, object]], Optional[Response]]:
    if req.content_length > MAX_BODY_BYTES:
        return None, error_response("Request body too large", "413 Payload Too Large")
    try:
        body = req.json()
    except ValueError:
        return None, error_response("Invalid JSON body")
    if not isinstance(body, dict):
        return None, error_response("Expected a JSON object")
    return body, None


def handle_rules() -> Response:
    return json_response(
        {
            "rules": [rule.value for rule in EscalationRule],
            "default_rule": EscalationRule.parse(DEFAULT_RULE).value,
            "zero_window": [mode.value for mode in ZeroWindow],
            "progress_modes": [mode.value for mode in ProgressMode],
            "profiles": {name: profile.as_dict() for name, profile in derive.PROFILES.items()},
            "entities": sorted(derive.ENTITY_DECORATORS),
        }
    )


def handle_estimate(req: Request) -> Response:
    body, failure = read_json_object(req)
    if failure:
        return failure
    tz = display_tz()
    start = parse_datetime_value(body.get("start"), tz)
    end = parse_datetime_value(body.get("end"), tz)
    if start is None or end is None:
        return error_response("Both start and end must be valid dates or datetimes.")
    result = estimate(
        start,
        end,
        now=request_now(req, body, tz),
        base_priority=body.get("base_priority") or body.get("priority"),
        rule=EscalationRule.lookup(body.get("rule")) or EscalationRule.parse(DEFAULT_RULE),
        zero_window=ZeroWindow.parse(body.get("zero_window")),
        mode=ProgressMode.parse(body.get("mode")),
        work_progress=derive.to_number(body.get("work_progress")),
    )
    variants = rule_variants(result.base_priority, result.progress)
    return json_response(
        {
            "estimate": result.as_dict(),
            "variants": {rule.value: value.value for rule, value in variants.items()},
            "divergent": divergent_rules(result.base_priority, result.progress),
        }
    )


def handle_decorate(req: Request, entity: str) -> Response:
    body, failure = read_json_object(req)
    if failure:
        return failure
    items = body.get("items")
    if not isinstance(items, list):
        return error_response("Expected an `items` list")
    tz = display_tz()
    decorated = derive.decorate_many(
        entity, items, now=request_now(req, body, tz), rule=EscalationRule.lookup(body.get("rule")), tz=tz
    )
    return json_response({"items": decorated, "kpis": derive.board_kpis(decorated)})


def handle_board(req: Request, entity: str) -> Response:
    client = upstream_client()
    if not client.configured:
        return error_response("Upstream API is not configured.", "503 Service Unavailable")
    params = {k: v for k, v in req.query.items() if k not in {"now", "rule"}}
    try:
        records = client.list_records(entity, params=params or None)
    except ApiError as exc:
        return error_response(exc.message, "502 Bad Gateway")
    tz = display_tz()
    decorated = derive.decorate_many(
        entity, records, now=request_now(req, None, tz), rule=EscalationRule.lookup(req.query.get("rule")), tz=tz
    )
    return json_response(
        {
            "items": derive.sort_by_priority(decorated),
            "kpis": derive.board_kpis(decorated),
            "fetched_at": iso(),
        }
    )


def handle_validate(req: Request, kind: str) -> Response:
    body, failure = read_json_object(req)
    if failure:
        return failure
    if kind == "dates":
        message = derive.validate_date_range(body.get("start_date"), body.get("end_date"))
    elif kind == "weights":
        message = derive.validate_subtask_weights(body.get("subtasks"))
    else:
        message = derive.validate_rsvp(body.get("rsvp"))
    return json_response({"ok": message is None, "error": message})


def route_tail(path: str, prefix: str) -> str:
    return unquote(path[len(prefix):]).strip("/")


def app(environ, start_response):
    """WSGI entrypoint.

    Route dispatch is explicit (`if req.path == ...`) to keep the service easy to
    host behind any WSGI server.
    """
    req = Request(environ)
    try:
        if req.path == "/healthz":
            return Response("ok", content_type="text/plain; charset=utf-8").wsgi(start_response)
        if req.path == "/readyz":
            return json_response(
                {
                    "ok": not BOOTSTRAP_ERROR,
                    "app": APP_NAME,
                    "upstream_configured": bool(UPSTREAM_BASE_URL),
                    "timezone": DISPLAY_TIMEZONE,
                    "default_rule": EscalationRule.parse(DEFAULT_RULE).value,
                    "warning": BOOTSTRAP_ERROR or None,
                }
            ).wsgi(start_response)

        if req.path == "/api/rules":
            return handle_rules().wsgi(start_response)

        if req.path == "/api/estimate":
            if req.method != "POST":
                return error_response("Method not allowed", "405 Method Not Allowed").wsgi(start_response)
            return handle_estimate(req).wsgi(start_response)

        if req.path.startswith("/api/decorate/"):
            entity = route_tail(req.path, "/api/decorate/")
            if entity not in derive.ENTITY_DECORATORS:
                return error_response(f"Unknown entity: {entity}", "404 Not Found").wsgi(start_response)
            if req.method != "POST":
                return error_response("Method not allowed", "405 Method Not Allowed").wsgi(start_response)
            return handle_decorate(req, entity).wsgi(start_response)

        if req.path.startswith("/api/board/"):
            entity = route_tail(req.path, "/api/board/")
            if entity not in derive.ENTITY_DECORATORS:
                return error_response(f"Unknown entity: {entity}", "404 Not Found").wsgi(start_response)
            if req.method != "GET":
                return error_response("Method not allowed", "405 Method Not Allowed").wsgi(start_response)
            return handle_board(req, entity).wsgi(start_response)

        if req.path.startswith("/api/validate/"):
            kind = route_tail(req.path, "/api/validate/")
            if kind not in VALIDATION_KINDS:
                return error_response(f"Unknown validation: {kind}", "404 Not Found").wsgi(start_response)
            if req.method != "POST":
                return error_response("Method not allowed", "405 Method Not Allowed").wsgi(start_response)
            return handle_validate(req, kind).wsgi(start_response)

        return error_response("Not found", "404 Not Found").wsgi(start_response)
    except Exception:
        logger.exception("Unhandled error for %s %s", req.method, req.path)
        return error_response("An unexpected server error occurred.", "500 Internal Server Error").wsgi(start_response)


class ThreadedWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


def run() -> None:
    ensure_bootstrap()
    server_mode = "threaded" if WSGI_THREADED else "single-threaded"
    logger.info(
        "%s running on http://%s:%s (upstream=%s, tz=%s, mode=%s)",
        APP_NAME,
        HOST,
        PORT,
        UPSTREAM_BASE_URL or "-",
        DISPLAY_TIMEZONE,
        server_mode,
    )
    if WSGI_THREADED:
        server = make_server(HOST, PORT, app, server_class=ThreadedWSGIServer)
    else:
        server = make_server(HOST, PORT, app)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    run()
