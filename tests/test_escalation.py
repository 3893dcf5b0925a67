from __future__ import annotations

import datetime as dt

import pytest

from pulseboard.escalation import (
    EscalationRule,
    Priority,
    ProgressMode,
    ZeroWindow,
    divergence_table,
    divergent_rules,
    elapsed_fraction,
    escalate,
    escalate_with_progress,
    estimate,
    progress_pct,
    rule_variants,
)

UTC = dt.timezone.utc
START = dt.datetime(2024, 1, 1, tzinfo=UTC)
END = dt.datetime(2024, 1, 11, tzinfo=UTC)


def day(d: int, hour: int = 0) -> dt.datetime:
    return dt.datetime(2024, 1, d, hour, tzinfo=UTC)


# --- Priority -------------------------------------------------------------------

def test_priority_ordering_and_parse():
    assert Priority.LOW < Priority.MEDIUM < Priority.HIGH
    assert max(Priority.MEDIUM, Priority.LOW) is Priority.MEDIUM
    assert Priority.parse("HIGH") is Priority.HIGH
    assert Priority.parse(" medium ") is Priority.MEDIUM
    assert Priority.parse(None) is Priority.LOW
    assert Priority.parse("critical") is Priority.LOW
    assert Priority.HIGH.promoted() is Priority.HIGH


# --- escalate -------------------------------------------------------------------

@pytest.mark.parametrize("rule", list(EscalationRule))
@pytest.mark.parametrize("pct", [0, 10, 49, 49.9])
def test_below_medium_threshold_keeps_base(rule, pct):
    for base in Priority:
        assert escalate(base, pct, rule) is base


@pytest.mark.parametrize("pct", [50, 60, 69])
def test_medium_tier_promotes_one_level(pct):
    for rule in EscalationRule:
        assert escalate("low", pct, rule) is Priority.MEDIUM
        assert escalate("medium", pct, rule) is Priority.HIGH
        assert escalate("high", pct, rule) is Priority.HIGH


@pytest.mark.parametrize("pct", [70, 85, 100])
def test_high_tier_step_rule(pct):
    assert escalate("low", pct) is Priority.MEDIUM
    assert escalate("medium", pct) is Priority.HIGH
    assert escalate("high", pct) is Priority.HIGH


def test_step_rule_is_monotone_in_pct():
    for base in Priority:
        previous = base
        for pct in range(0, 101):
            current = escalate(base, pct)
            assert current >= previous
            previous = current


def test_tiered_rule_drops_low_back_at_high_tier():
    assert escalate("low", 60, EscalationRule.TIERED) is Priority.MEDIUM
    assert escalate("low", 70, EscalationRule.TIERED) is Priority.LOW
    assert escalate("medium", 70, EscalationRule.TIERED) is Priority.HIGH


def test_cascading_rule_takes_low_to_high():
    assert escalate("low", 69, EscalationRule.CASCADING) is Priority.MEDIUM
    assert escalate("low", 70, EscalationRule.CASCADING) is Priority.HIGH


def test_no_rule_ever_lowers_priority():
    for rule in EscalationRule:
        for base in Priority:
            for pct in range(0, 101, 5):
                assert escalate(base, pct, rule) >= base


def test_lagging_work_forces_high():
    assert escalate_with_progress("low", 75, 20) is Priority.HIGH
    assert escalate_with_progress("low", 75, 40) is Priority.MEDIUM
    assert escalate_with_progress("low", 60, 10) is Priority.MEDIUM
    assert escalate_with_progress("low", 75, None) is Priority.MEDIUM


# --- progress -------------------------------------------------------------------

def test_progress_is_clamped_outside_window():
    assert progress_pct(START, END, day(1) - dt.timedelta(days=3)) == 0
    assert progress_pct(START, END, day(20)) == 100
    assert elapsed_fraction(START, END, day(20)) == 1.0


def test_progress_rounds_half_up():
    start = day(1)
    end = day(1, 8)
    # 1h of 8h = 12.5%
    assert progress_pct(start, end, day(1, 1)) == 13


def test_zero_window_progress_is_full():
    assert progress_pct(START, START, START) == 100
    assert progress_pct(END, START, START) == 100
    assert elapsed_fraction(START, START, START) is None


def test_whole_hours_mode_rounds_elapsed_hours():
    start = day(1)
    end = day(2)
    now = start + dt.timedelta(hours=11, minutes=40)
    assert progress_pct(start, end, now) == 49
    assert progress_pct(start, end, now, ProgressMode.WHOLE_HOURS) == 50


# --- estimate -------------------------------------------------------------------

def test_estimate_ten_day_window_example():
    halfway = estimate(START, END, day(6), "low")
    assert halfway.progress == 50
    assert halfway.priority is Priority.MEDIUM

    later = estimate(START, END, day(8), "low")
    assert later.progress == 70
    assert later.priority is Priority.MEDIUM
    assert rule_variants("low", later.progress) == {
        EscalationRule.STEP: Priority.MEDIUM,
        EscalationRule.TIERED: Priority.LOW,
        EscalationRule.CASCADING: Priority.HIGH,
    }
    assert divergent_rules("low", 70) is True
    assert divergent_rules("medium", 70) is False


def test_estimate_zero_window_modes():
    full = estimate(START, START, START, "low", zero_window=ZeroWindow.FULL_PROGRESS)
    assert full.progress == 100
    assert full.empty_window is True
    assert full.priority is Priority.MEDIUM

    forced = estimate(START, START, START, "low", zero_window=ZeroWindow.HIGH_PRIORITY)
    assert forced.progress == 100
    assert forced.priority is Priority.HIGH


def test_estimate_flags_and_dict():
    before = estimate(START, END, START - dt.timedelta(hours=1), "medium")
    assert before.not_started is True
    assert before.overdue is False
    assert before.progress == 0

    after = estimate(START, END, day(12), "medium", rule=EscalationRule.TIERED)
    payload = after.as_dict()
    assert payload["overdue"] is True
    assert payload["priority"] == "high"
    assert payload["escalated"] is True
    assert payload["rule"] == "tiered"
    assert payload["total_hours"] == 240.0
    assert payload["elapsed_hours"] == 240.0
    assert payload["deadline"] == "2024-01-11T00:00:00+00:00"


def test_divergence_table_marks_only_disagreements():
    rows = divergence_table()
    assert len(rows) == 3 * 6
    flagged = {(row["base"], row["pct"]) for row in rows if row["divergent"]}
    assert flagged == {("low", 70), ("low", 100)}
