"""Date helpers shared by the derivation code.

Every page of the business app used "local" wall-clock dates. Here the local zone
is the configured display time zone, so results do not depend on the host clock.
"""

from __future__ import annotations

import datetime as dt
import math
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from pulseboard.config import BOOKING_WINDOW, DISPLAY_TIMEZONE


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def iso(ts: Optional[dt.datetime] = None) -> str:
    value = ts or utcnow()
    return value.replace(microsecond=0).isoformat()


def safe_timezone(tz_name: str) -> dt.tzinfo:
    try:
        return ZoneInfo(tz_name)
    except Exception:
        return dt.timezone.utc


def display_tz() -> dt.tzinfo:
    return safe_timezone(DISPLAY_TIMEZONE)


def round_half_up(value: float) -> int:
    """Round halves toward +infinity, like the browser's Math.round."""
    return int(math.floor(value + 0.5))


def to_iso_date(value: dt.date) -> str:
    """Format using the value's own calendar fields; never shifts through UTC."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def parse_iso_date(value: object) -> Optional[dt.date]:
    if value in (None, ""):
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return dt.date.fromisoformat(text[:10])
    except ValueError:
        return None


def today(tz: Optional[dt.tzinfo] = None) -> dt.date:
    return dt.datetime.now(tz or display_tz()).date()


def parse_date_only(value: object, fallback_today: bool = True, tz: Optional[dt.tzinfo] = None) -> Optional[dt.date]:
    parsed = parse_iso_date(value)
    if parsed is not None:
        return parsed
    return today(tz) if fallback_today else None


def parse_hhmm(value: object) -> Optional[Tuple[int, int]]:
    if value in (None, ""):
        return None
    parts = str(value).strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def at_local(
    date_value: object,
    hhmm: Optional[str] = "00:00",
    tz: Optional[dt.tzinfo] = None,
    fallback_today: bool = False,
) -> Optional[dt.datetime]:
    """Calendar day at a wall-clock time in the display zone."""
    day = parse_date_only(date_value, fallback_today=fallback_today, tz=tz)
    if day is None:
        return None
    hour, minute = parse_hhmm(hhmm) or (0, 0)
    return dt.datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz or display_tz())


def combine_date_time(date_value: object, time_value: Optional[str] = None, tz: Optional[dt.tzinfo] = None) -> Optional[dt.datetime]:
    return at_local(date_value, time_value or "00:00", tz=tz)


def parse_datetime_value(value: object, tz: Optional[dt.tzinfo] = None) -> Optional[dt.datetime]:
    """Parse ISO 8601, `Z`-suffixed and SQL `YYYY-MM-DD HH:MM:SS` values.

    Naive values are taken as wall-clock time in `tz` (display zone by default).
    """
    zone = tz or display_tz()
    if value in (None, ""):
        return None
    if isinstance(value, dt.datetime):
        return value if value.tzinfo else value.replace(tzinfo=zone)
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day, tzinfo=zone)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    if len(text) > 10 and text[10] == " ":
        text = f"{text[:10]}T{text[11:]}"
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed


def within_business_hours(hhmm: object, window: Tuple[str, str] = BOOKING_WINDOW) -> bool:
    parsed = parse_hhmm(hhmm)
    if parsed is None:
        return False
    low = parse_hhmm(window[0]) or (0, 0)
    high = parse_hhmm(window[1]) or (23, 59)
    value = parsed[0] * 60 + parsed[1]
    return low[0] * 60 + low[1] <= value <= high[0] * 60 + high[1]


def hours_between(start: dt.datetime, end: dt.datetime) -> int:
    return max(0, round_half_up((end - start).total_seconds() / 3600))


def days_until(end: dt.date, anchor: dt.date) -> int:
    return (end - anchor).days
