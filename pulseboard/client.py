"""JSON-over-HTTP client for the upstream business API.

Every failure surfaces as `ApiError` carrying user-facing text: the payload's
`error` field when the server sent one, otherwise `HTTP <status>`. No retries.
"""

from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional
from urllib import error as urlerror
from urllib import request as urlrequest
from urllib.parse import urlencode

from pulseboard.config import (
    ERROR_PREVIEW_CHARS,
    UPSTREAM_BASE_URL,
    UPSTREAM_COOKIE,
    UPSTREAM_TIMEOUT_S,
    UPSTREAM_TOKEN,
)

logger = logging.getLogger(__name__)

ENTITY_ENDPOINTS: Dict[str, str] = {
    "tasks": "/api/my/tasks",
    "objectives": "/api/objectives",
    "projects": "/api/projects",
    "meetings": "/api/calendar/events",
    "goals": "/api/objectives",
}

# Keys upstream endpoints wrap their lists in.
LIST_KEYS = ("items", "data", "rows", "events", "tasks", "projects", "objectives")


class ApiError(Exception):
    def __init__(self, message: str, status: Optional[int] = None, payload: object = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload


def decode_payload(raw: str) -> object:
    """Parse a response body, turning non-JSON (HTML error pages) into an error preview."""
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        preview = raw[:ERROR_PREVIEW_CHARS].strip()
        return {"error": preview or "non-JSON response"}


def error_message(payload: object, status: int) -> str:
    if isinstance(payload, dict):
        message = payload.get("error")
        if isinstance(message, str) and message.strip():
            return message
    return f"HTTP {status}"


def unwrap_items(data: object) -> List[Dict[str, object]]:
    if isinstance(data, dict):
        for key in LIST_KEYS:
            if isinstance(data.get(key), list):
                data = data[key]
                break
        else:
            return []
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


class ApiClient:
    def __init__(
        self,
        base_url: str = UPSTREAM_BASE_URL,
        token: str = UPSTREAM_TOKEN,
        cookie: str = UPSTREAM_COOKIE,
        timeout: float = UPSTREAM_TIMEOUT_S,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self.cookie = cookie
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def build_url(self, path: str, params: Optional[Dict[str, str]] = None) -> str:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        if params:
            url = f"{url}{'&' if '?' in url else '?'}{urlencode(params)}"
        return url

    def fetch_json(
        self,
        path: str,
        method: str = "GET",
        payload: object = None,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> object:
        url = self.build_url(path, params)
        method = method.upper()
        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urlrequest.Request(url, data=body, method=method)
        sent = {key.lower(): value for key, value in (headers or {}).items()}
        for key, value in sent.items():
            req.add_header(key.title(), value)
        if "accept" not in sent:
            req.add_header("Accept", "application/json")
        if body is not None and "content-type" not in sent:
            req.add_header("Content-Type", "application/json")
        if self.token and "authorization" not in sent:
            req.add_header("Authorization", f"Bearer {self.token}")
        if self.cookie and "cookie" not in sent:
            req.add_header("Cookie", self.cookie)

        try:
            with urlrequest.urlopen(req, timeout=self.timeout) as resp:
                status = int(getattr(resp, "status", 200) or 200)
                raw = resp.read().decode("utf-8", errors="ignore")
        except urlerror.HTTPError as exc:
            data = decode_payload(exc.read().decode("utf-8", errors="ignore"))
            message = error_message(data, exc.code)
            logger.warning("Upstream %s %s -> %s: %s", method, url, exc.code, message)
            raise ApiError(message, status=exc.code, payload=data) from exc
        except (urlerror.URLError, OSError) as exc:
            logger.warning("Upstream %s %s failed: %s", method, url, exc)
            raise ApiError(f"Upstream request failed: {str(exc)[:240]}") from exc

        data = decode_payload(raw)
        if not 200 <= status < 300:
            raise ApiError(error_message(data, status), status=status, payload=data)
        return data

    def list_records(self, entity: str, params: Optional[Dict[str, str]] = None) -> List[Dict[str, object]]:
        path = ENTITY_ENDPOINTS.get(entity)
        if path is None:
            raise ApiError(f"Unknown entity: {entity}", status=404)
        if not self.configured:
            raise ApiError("Upstream API is not configured.", status=503)
        return unwrap_items(self.fetch_json(path, params=params))
