#!/usr/bin/env python3
"""Pulseboard - Flask Application

Wraps the WSGI service in Flask for production hosting and adds Flask CLI
commands for inspecting the escalation rules.
"""

from __future__ import annotations

import os
import subprocess
import sys

import click
from flask import Flask, request

from pulseboard.config import BASE_DIR, DEFAULT_RULE, HOST, PORT
from pulseboard.dates import display_tz, parse_datetime_value
from pulseboard.escalation import EscalationRule, ZeroWindow, divergence_table, estimate
from pulseboard.server import app as wsgi_app
from pulseboard.server import ensure_bootstrap

flask_app = Flask(__name__, static_folder=None, template_folder=None)


@flask_app.before_request
def setup_request():
    """Initialize logging and config checks on the first real request."""
    # Health probes stay lightweight.
    if request.path in {"/healthz"}:
        return None
    ensure_bootstrap()


@flask_app.route('/', defaults={'path': ''}, methods=['GET', 'POST', 'PUT', 'DELETE', 'PATCH'])
@flask_app.route('/<path:path>', methods=['GET', 'POST', 'PUT', 'DELETE', 'PATCH'])
def catch_all(path):
    """Delegate every route to the WSGI service and convert its response."""
    response_data = {}

    def start_response(status, headers, exc_info=None):
        response_data['status'] = status
        response_data['headers'] = headers
        return lambda s: None

    body = b''.join(list(wsgi_app(request.environ, start_response)))
    status_code = int(response_data.get('status', '200 OK').split()[0])
    response = flask_app.make_response((body, status_code))
    for header_name, header_value in response_data.get('headers', []):
        response.headers[header_name] = header_value
    return response


@flask_app.cli.command("escalation-report")
def escalation_report():
    """Print how each escalation rule treats the threshold boundaries."""
    rules = [rule.value for rule in EscalationRule]
    click.echo(" | ".join(["base", "pct"] + rules + ["divergent"]))
    for row in divergence_table():
        cells = [str(row["base"]), str(row["pct"])] + [str(row[r]) for r in rules]
        cells.append("yes" if row["divergent"] else "")
        click.echo(" | ".join(cells))


@flask_app.cli.command("estimate")
@click.option("--start", required=True, help="Window start (date or ISO datetime).")
@click.option("--end", required=True, help="Window end (date or ISO datetime).")
@click.option("--now", "now_value", default=None, help="Evaluation instant; defaults to the current time.")
@click.option("--base", default="low", type=click.Choice(["low", "medium", "high"]))
@click.option("--rule", default=DEFAULT_RULE, type=click.Choice([r.value for r in EscalationRule]))
@click.option("--zero-window", default=ZeroWindow.FULL_PROGRESS.value, type=click.Choice([z.value for z in ZeroWindow]))
def estimate_command(start, end, now_value, base, rule, zero_window):
    """Estimate progress and escalated priority for one window."""
    tz = display_tz()
    start_at = parse_datetime_value(start, tz)
    end_at = parse_datetime_value(end, tz)
    if start_at is None or end_at is None:
        raise click.BadParameter("start and end must be dates or ISO datetimes")
    result = estimate(
        start_at,
        end_at,
        now=parse_datetime_value(now_value, tz),
        base_priority=base,
        rule=EscalationRule.parse(rule),
        zero_window=ZeroWindow.parse(zero_window),
    )
    click.echo(f"progress={result.progress}% priority={result.priority.value} (base {result.base_priority.value}, rule {result.rule.value})")


@flask_app.cli.command()
def run_tests():
    """Run application tests (Flask CLI command)."""
    click.echo("Running tests...")
    subprocess.run([sys.executable, "-m", "pytest", "tests/"], cwd=str(BASE_DIR))


if __name__ == '__main__':
    # Development server; in production use gunicorn or waitress via wsgi.py
    flask_app.run(
        host=HOST,
        port=PORT,
        debug=os.environ.get('FLASK_DEBUG', '0') == '1',
        threaded=True
    )
