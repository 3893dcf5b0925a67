"""Deadline-driven priority and progress estimation.

Progress is the elapsed share of a [start, end] window. Priority escalates as that
share crosses the medium (50%) and high (70%) thresholds and never drops below the
base priority.

Pages of the business app disagreed on what happens at the 70% tier and on empty
windows. Those variants are kept as explicit `EscalationRule` and `ZeroWindow`
values so callers can report the disagreement instead of hiding it.
"""

from __future__ import annotations

import datetime as dt
import enum
import functools
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from pulseboard.config import HIGH_THRESHOLD_PCT, LAGGING_WORK_PCT, MEDIUM_THRESHOLD_PCT
from pulseboard.dates import hours_between, iso, round_half_up, utcnow


class _ParseableEnum(enum.Enum):
    @classmethod
    def lookup(cls, value: object):
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return None

    @classmethod
    def parse(cls, value: object, default=None):
        """Lenient parse: unknown or empty values give `default`, else the first member."""
        found = cls.lookup(value)
        if found is not None:
            return found
        return default if default is not None else next(iter(cls))


@functools.total_ordering
class Priority(_ParseableEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return list(Priority).index(self)

    def promoted(self) -> "Priority":
        members = list(Priority)
        return members[min(self.rank + 1, len(members) - 1)]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank < other.rank


class EscalationRule(_ParseableEnum):
    # >=50% promotes one level; the 70% tier only re-checks medium -> high.
    STEP = "step"
    # if >=70 (medium -> high only) elif >=50 (one level): low drops back at 70%.
    TIERED = "tiered"
    # 50% step then 70% step in sequence: low reaches high at 70%.
    CASCADING = "cascading"


class ZeroWindow(_ParseableEnum):
    FULL_PROGRESS = "full_progress"
    HIGH_PRIORITY = "high_priority"


class ProgressMode(_ParseableEnum):
    EXACT = "exact"
    WHOLE_HOURS = "whole_hours"


@dataclass(frozen=True)
class Estimate:
    progress: int
    priority: Priority
    base_priority: Priority
    rule: EscalationRule
    zero_window: ZeroWindow
    elapsed_hours: float
    total_hours: float
    empty_window: bool
    overdue: bool
    not_started: bool
    deadline: dt.datetime

    def as_dict(self) -> Dict[str, object]:
        return {
            "progress": self.progress,
            "priority": self.priority.value,
            "base_priority": self.base_priority.value,
            "escalated": self.priority > self.base_priority,
            "rule": self.rule.value,
            "zero_window": self.zero_window.value,
            "elapsed_hours": round(self.elapsed_hours, 2),
            "total_hours": round(self.total_hours, 2),
            "empty_window": self.empty_window,
            "overdue": self.overdue,
            "not_started": self.not_started,
            "deadline": iso(self.deadline),
        }


def clamp_pct(value: float) -> int:
    return max(0, min(100, int(value)))


def elapsed_fraction(start: dt.datetime, end: dt.datetime, now: Optional[dt.datetime] = None) -> Optional[float]:
    """Share of the window already passed, or None for an empty window."""
    moment = now or utcnow()
    total = (end - start).total_seconds()
    if total <= 0:
        return None
    elapsed = min(max(0.0, (moment - start).total_seconds()), total)
    return elapsed / total


def progress_pct(
    start: dt.datetime,
    end: dt.datetime,
    now: Optional[dt.datetime] = None,
    mode: ProgressMode = ProgressMode.EXACT,
) -> int:
    moment = now or utcnow()
    if (end - start).total_seconds() <= 0:
        return 100
    if mode is ProgressMode.WHOLE_HOURS:
        total_h = max(1, hours_between(start, end))
        elapsed_h = max(0, round_half_up((moment - start).total_seconds() / 3600))
        return clamp_pct(round_half_up(min(100.0, elapsed_h / total_h * 100)))
    fraction = elapsed_fraction(start, end, moment) or 0.0
    return clamp_pct(round_half_up(fraction * 100))


def escalate(priority: object, pct: float, rule: EscalationRule = EscalationRule.STEP) -> Priority:
    """Raise `priority` for the elapsed percentage `pct`; never lowers it."""
    base = Priority.parse(priority)
    result = base
    if rule is EscalationRule.TIERED:
        if pct >= HIGH_THRESHOLD_PCT:
            result = Priority.HIGH if base is Priority.MEDIUM else base
        elif pct >= MEDIUM_THRESHOLD_PCT:
            result = base.promoted()
    elif rule is EscalationRule.CASCADING:
        if pct >= MEDIUM_THRESHOLD_PCT:
            result = result.promoted()
        if pct >= HIGH_THRESHOLD_PCT and result is Priority.MEDIUM:
            result = Priority.HIGH
    else:
        if pct >= MEDIUM_THRESHOLD_PCT:
            result = base.promoted()
        if pct >= HIGH_THRESHOLD_PCT and base is Priority.MEDIUM:
            result = Priority.HIGH
    return max(base, result)


def escalate_with_progress(
    priority: object,
    pct: float,
    work_progress: Optional[float],
    rule: EscalationRule = EscalationRule.STEP,
) -> Priority:
    """Escalate, then force high when most of the time is gone but little work is done."""
    result = escalate(priority, pct, rule)
    if work_progress is not None and pct >= HIGH_THRESHOLD_PCT and work_progress < LAGGING_WORK_PCT:
        return Priority.HIGH
    return result


def estimate(
    start: dt.datetime,
    end: dt.datetime,
    now: Optional[dt.datetime] = None,
    base_priority: object = Priority.LOW,
    rule: EscalationRule = EscalationRule.STEP,
    zero_window: ZeroWindow = ZeroWindow.FULL_PROGRESS,
    mode: ProgressMode = ProgressMode.EXACT,
    work_progress: Optional[float] = None,
) -> Estimate:
    moment = now or utcnow()
    base = Priority.parse(base_priority)
    total_s = (end - start).total_seconds()
    empty = total_s <= 0
    progress = progress_pct(start, end, moment, mode)
    if empty and zero_window is ZeroWindow.HIGH_PRIORITY:
        priority = Priority.HIGH
    else:
        priority = escalate_with_progress(base, progress, work_progress, rule)
    elapsed_s = min(max(0.0, (moment - start).total_seconds()), max(0.0, total_s))
    return Estimate(
        progress=progress,
        priority=priority,
        base_priority=base,
        rule=rule,
        zero_window=zero_window,
        elapsed_hours=elapsed_s / 3600,
        total_hours=max(0.0, total_s) / 3600,
        empty_window=empty,
        overdue=moment > end,
        not_started=moment < start,
        deadline=end,
    )


def rule_variants(priority: object, pct: float) -> Dict[EscalationRule, Priority]:
    return {rule: escalate(priority, pct, rule) for rule in EscalationRule}


def divergent_rules(priority: object, pct: float) -> bool:
    return len(set(rule_variants(priority, pct).values())) > 1


def divergence_table(percentages: Iterable[int] = (0, 49, 50, 69, 70, 100)) -> List[Dict[str, object]]:
    rows: List[Dict[str, object]] = []
    for base in Priority:
        for pct in percentages:
            variants = rule_variants(base, pct)
            row: Dict[str, object] = {"base": base.value, "pct": pct}
            row.update({rule.value: value.value for rule, value in variants.items()})
            row["divergent"] = len(set(variants.values())) > 1
            rows.append(row)
    return rows
