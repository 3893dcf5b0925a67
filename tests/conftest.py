"""Pytest fixtures for pulseboard"""
from __future__ import annotations

import datetime as dt
import io
import json

import pytest

from pulseboard.server import app

UTC = dt.timezone.utc


@pytest.fixture()
def utc():
    return UTC


@pytest.fixture()
def wsgi_request():
    """Call the WSGI app in-process; returns (status_code, headers, body_bytes)."""

    def _request(path, method="GET", payload=None, query=""):
        if isinstance(payload, (bytes, bytearray)):
            body = bytes(payload)
        elif payload is None:
            body = b""
        else:
            body = json.dumps(payload).encode("utf-8")
        holder = {}

        def start_response(status, headers):
            holder["status"] = status
            holder["headers"] = dict(headers)

        environ = {
            "REQUEST_METHOD": method,
            "PATH_INFO": path,
            "QUERY_STRING": query,
            "wsgi.input": io.BytesIO(body),
            "CONTENT_LENGTH": str(len(body)),
            "CONTENT_TYPE": "application/json",
            "REMOTE_ADDR": "127.0.0.1",
        }
        chunks = app(environ, start_response)
        return int(holder["status"].split()[0]), holder["headers"], b"".join(chunks)

    return _request
