from __future__ import annotations

import datetime as dt

import pytest

from pulseboard.dates import (
    at_local,
    combine_date_time,
    hours_between,
    parse_date_only,
    parse_datetime_value,
    parse_hhmm,
    parse_iso_date,
    round_half_up,
    to_iso_date,
    today,
    within_business_hours,
)

UTC = dt.timezone.utc


@pytest.mark.parametrize("offset_hours", [-12, -5, 0, 1, 5.5, 14])
@pytest.mark.parametrize("hour", [0, 12, 23])
def test_date_only_keeps_calendar_day_in_any_zone(offset_hours, hour):
    zone = dt.timezone(dt.timedelta(hours=offset_hours))
    value = dt.datetime(2024, 3, 10, hour, 59, tzinfo=zone)
    assert to_iso_date(value) == "2024-03-10"
    assert parse_iso_date(to_iso_date(value)) == value.date()


def test_parse_iso_date_accepts_datetime_strings():
    assert parse_iso_date("2024-05-02T23:30:00Z") == dt.date(2024, 5, 2)
    assert parse_iso_date("not a date") is None
    assert parse_iso_date("") is None


def test_parse_date_only_fallback():
    assert parse_date_only("garbage", fallback_today=True, tz=UTC) == today(UTC)
    assert parse_date_only("garbage", fallback_today=False) is None


def test_parse_hhmm():
    assert parse_hhmm("08:30") == (8, 30)
    assert parse_hhmm("08:30:15") == (8, 30)
    assert parse_hhmm("24:00") is None
    assert parse_hhmm("8") is None
    assert parse_hhmm(None) is None


def test_at_local_and_combine():
    assert at_local("2024-05-02", "08:00", UTC) == dt.datetime(2024, 5, 2, 8, 0, tzinfo=UTC)
    assert at_local("bogus", "08:00", UTC) is None
    assert at_local("bogus", "08:00", UTC, fallback_today=True).date() == today(UTC)
    assert combine_date_time("2024-05-02", None, UTC) == dt.datetime(2024, 5, 2, tzinfo=UTC)
    assert combine_date_time("2024-05-02", "17:45", UTC).hour == 17


def test_parse_datetime_value_formats():
    assert parse_datetime_value("2024-01-01 10:30:00", UTC) == dt.datetime(2024, 1, 1, 10, 30, tzinfo=UTC)
    zulu = parse_datetime_value("2024-01-01T10:30:00Z")
    assert zulu == dt.datetime(2024, 1, 1, 10, 30, tzinfo=UTC)
    plus_one = dt.timezone(dt.timedelta(hours=1))
    naive = parse_datetime_value("2024-01-01T10:30:00", plus_one)
    assert naive.utcoffset() == dt.timedelta(hours=1)
    assert parse_datetime_value(dt.date(2024, 1, 1), UTC) == dt.datetime(2024, 1, 1, tzinfo=UTC)
    assert parse_datetime_value("yesterday", UTC) is None
    assert parse_datetime_value(None) is None


@pytest.mark.parametrize(
    "value, expected",
    [("07:30", True), ("19:00", True), ("12:15", True), ("07:29", False), ("19:01", False), ("abc", False)],
)
def test_within_business_hours(value, expected):
    assert within_business_hours(value) is expected


def test_round_half_up_and_hours_between():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(1.49) == 1
    start = dt.datetime(2024, 1, 1, tzinfo=UTC)
    assert hours_between(start, start + dt.timedelta(minutes=90)) == 2
    assert hours_between(start, start - dt.timedelta(hours=5)) == 0
