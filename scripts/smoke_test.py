#!/usr/bin/env python3
"""Fast health smoke test for local/dev CI.

Uses in-process WSGI calls (no real HTTP server needed) for deterministic checks.
"""

import io
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pulseboard.server import app, ensure_bootstrap


def run_request(path="/healthz", method="GET", body=b""):
    """Execute a minimal WSGI request against the app callable."""
    status_holder = {}

    def start_response(status, headers):
        status_holder["status"] = status
        status_holder["headers"] = headers

    environ = {
        "REQUEST_METHOD": method,
        "PATH_INFO": path,
        "QUERY_STRING": "",
        "wsgi.input": io.BytesIO(body),
        "CONTENT_LENGTH": str(len(body)),
        "CONTENT_TYPE": "application/json",
        "REMOTE_ADDR": "127.0.0.1",
        "HTTP_USER_AGENT": "smoke-test",
    }

    chunks = app(environ, start_response)
    payload = b"".join(chunks)
    return status_holder["status"], payload.decode("utf-8", errors="ignore")


if __name__ == "__main__":
    ensure_bootstrap()
    status, body = run_request("/healthz")
    assert status.startswith("200"), f"health failed: {status}"
    assert "ok" in body.lower(), "health payload missing"

    window = {"start": "2024-01-01T00:00:00", "end": "2024-01-11T00:00:00", "now": "2024-01-06T00:00:00"}
    status, body = run_request("/api/estimate", "POST", json.dumps(window).encode("utf-8"))
    assert status.startswith("200"), f"estimate failed: {status}"
    assert json.loads(body)["estimate"]["progress"] == 50, "estimate payload unexpected"
    print("SMOKE_OK")
