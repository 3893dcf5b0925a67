"""Runtime configuration.

Values are read once from the environment at import time. PULSEBOARD_* vars take
precedence; HOST/PORT are honoured for container platforms that only set those.
"""

from __future__ import annotations

import os
from pathlib import Path

APP_NAME = "Pulseboard"
BASE_DIR = Path(__file__).resolve().parent.parent

HOST = os.environ.get("PULSEBOARD_HOST", os.environ.get("HOST", "127.0.0.1"))
PORT = int(os.environ.get("PULSEBOARD_PORT", os.environ.get("PORT", "8080")))
WSGI_THREADED = os.environ.get("PULSEBOARD_WSGI_THREADED", "1") == "1"

UPSTREAM_BASE_URL = os.environ.get("PULSEBOARD_UPSTREAM_URL", "").strip().rstrip("/")
UPSTREAM_TOKEN = os.environ.get("PULSEBOARD_UPSTREAM_TOKEN", "").strip()
UPSTREAM_COOKIE = os.environ.get("PULSEBOARD_UPSTREAM_COOKIE", "").strip()
UPSTREAM_TIMEOUT_S = max(1.0, float(os.environ.get("PULSEBOARD_UPSTREAM_TIMEOUT_S", "15")))

DISPLAY_TIMEZONE = os.environ.get("PULSEBOARD_TIMEZONE", "Africa/Douala").strip() or "UTC"
DEFAULT_RULE = os.environ.get("PULSEBOARD_DEFAULT_RULE", "step").strip().lower()
WORKDAY_START = os.environ.get("PULSEBOARD_WORKDAY_START", "08:00").strip()
WORKDAY_END = os.environ.get("PULSEBOARD_WORKDAY_END", "17:00").strip()

LOG_LEVEL = os.environ.get("PULSEBOARD_LOG_LEVEL", "INFO").strip().upper()
LOG_FILE = os.environ.get("PULSEBOARD_LOG_FILE", "").strip()

# Escalation thresholds, in percent of the elapsed window.
MEDIUM_THRESHOLD_PCT = 50
HIGH_THRESHOLD_PCT = 70
# Work progress under this value at the high threshold forces "high".
LAGGING_WORK_PCT = 30
# Goals more than this many points behind the expected pace are "at_risk".
GOAL_AT_RISK_MARGIN = 15

BOOKING_WINDOW = ("07:30", "19:00")
ERROR_PREVIEW_CHARS = 200
