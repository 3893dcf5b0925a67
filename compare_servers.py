#!/usr/bin/env python3
"""
Comparison script to verify the plain WSGI service and the Flask wrapper answer identically.
"""

import io
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

ESTIMATE_BODY = json.dumps(
    {"start": "2024-01-01", "end": "2024-01-11", "now": "2024-01-08", "base_priority": "low"}
).encode("utf-8")

CASES = [
    ("GET", "/healthz", b""),
    ("GET", "/api/rules", b""),
    ("POST", "/api/estimate", ESTIMATE_BODY),
]


def wsgi_call(method, path, body):
    from pulseboard.server import app as wsgi_app

    holder = {}

    def start_response(status, headers):
        holder["status"] = status
        return lambda s: None

    environ = {
        'REQUEST_METHOD': method,
        'PATH_INFO': path,
        'QUERY_STRING': '',
        'SERVER_NAME': 'localhost',
        'SERVER_PORT': '8080',
        'wsgi.url_scheme': 'http',
        'wsgi.input': io.BytesIO(body),
        'CONTENT_LENGTH': str(len(body)),
        'CONTENT_TYPE': 'application/json',
    }
    payload = b''.join(wsgi_app(environ, start_response))
    return int(holder["status"].split()[0]), payload


def flask_call(method, path, body):
    from pulseboard.flask_app import flask_app

    with flask_app.test_client() as client:
        response = client.open(path, method=method, data=body, content_type='application/json')
        return response.status_code, response.data


def main():
    print("\n" + "=" * 50)
    print("Pulseboard - Server Comparison")
    print("=" * 50 + "\n")

    failures = 0
    for method, path, body in CASES:
        try:
            direct = wsgi_call(method, path, body)
            wrapped = flask_call(method, path, body)
        except Exception as e:
            print(f"  ❌ {method} {path}: {e}")
            failures += 1
            continue
        if direct == wrapped:
            print(f"  ✅ {method} {path}: {direct[0]}")
        else:
            print(f"  ⚠️  {method} {path} differs:")
            print(f"  WSGI:  {direct[0]} {direct[1][:200]!r}")
            print(f"  Flask: {wrapped[0]} {wrapped[1][:200]!r}")
            failures += 1

    print()
    if failures:
        print("❌ Some comparisons failed")
        return 1
    print("✅ Both servers work identically")
    print("\nYou can use either:")
    print("  • WSGI:  python3 -m pulseboard.server")
    print("  • Flask: python3 -m pulseboard.flask_app")
    return 0


if __name__ == "__main__":
    sys.exit(main())
