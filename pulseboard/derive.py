"""Display state derived from upstream records.

Each decorate_* function returns a shallow copy of the record with a `display`
block (progress, priority, status, badges, flags). Nothing here writes back to the
upstream API; the display block is recomputed on every request.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from pulseboard.config import GOAL_AT_RISK_MARGIN, HIGH_THRESHOLD_PCT, WORKDAY_END, WORKDAY_START
from pulseboard.dates import (
    at_local,
    combine_date_time,
    days_until,
    display_tz,
    iso,
    parse_date_only,
    parse_datetime_value,
    round_half_up,
    today,
    utcnow,
)
from pulseboard.escalation import (
    EscalationRule,
    Estimate,
    Priority,
    ProgressMode,
    ZeroWindow,
    clamp_pct,
    escalate,
    estimate,
    progress_pct,
    rule_variants,
)

logger = logging.getLogger(__name__)

Record = Dict[str, object]

RSVP_ANSWERS = ("yes", "no", "maybe")
PROJECT_STATUSES = ["planned", "active", "done", "archived"]

PRIORITY_BADGES: Dict[Priority, Tuple[str, str]] = {
    Priority.HIGH: ("Urgent", "red"),
    Priority.MEDIUM: ("Medium", "orange"),
    Priority.LOW: ("Low", "emerald"),
}

STATUS_BADGES: Dict[str, Tuple[str, str]] = {
    "todo": ("To do", "slate"),
    "in_progress": ("In progress", "indigo"),
    "blocked": ("Blocked", "red"),
    "done": ("Done", "emerald"),
    "overdue": ("Overdue", "red"),
    "planned": ("Planned", "orange"),
    "active": ("Active", "indigo"),
    "archived": ("Archived", "slate"),
    "upcoming": ("Upcoming", "indigo"),
    "ongoing": ("Ongoing", "orange"),
    "missed": ("Missed", "red"),
    "on_track": ("On track", "emerald"),
    "at_risk": ("At risk", "orange"),
    "off_track": ("Off track", "red"),
}


@dataclass(frozen=True)
class CallSiteProfile:
    """How one family of pages turned a record into an escalation window."""

    name: str
    rule: EscalationRule
    zero_window: ZeroWindow
    mode: ProgressMode
    start_anchor: Optional[str] = None
    end_anchor: Optional[str] = None

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "rule": self.rule.value,
            "zero_window": self.zero_window.value,
            "mode": self.mode.value,
            "start_anchor": self.start_anchor,
            "end_anchor": self.end_anchor,
        }


PROFILES: Dict[str, CallSiteProfile] = {
    "project": CallSiteProfile(
        "project", EscalationRule.CASCADING, ZeroWindow.FULL_PROGRESS, ProgressMode.EXACT, WORKDAY_START, WORKDAY_END
    ),
    "project_overview": CallSiteProfile(
        "project_overview", EscalationRule.CASCADING, ZeroWindow.FULL_PROGRESS, ProgressMode.EXACT, "00:00", WORKDAY_END
    ),
    "objective": CallSiteProfile(
        "objective", EscalationRule.TIERED, ZeroWindow.FULL_PROGRESS, ProgressMode.WHOLE_HOURS, "00:00", "00:00"
    ),
    # task window: created_at -> due date (+ optional due time)
    "task": CallSiteProfile("task", EscalationRule.TIERED, ZeroWindow.HIGH_PRIORITY, ProgressMode.EXACT),
    # meeting window: created_at -> start_at
    "meeting": CallSiteProfile("meeting", EscalationRule.TIERED, ZeroWindow.FULL_PROGRESS, ProgressMode.EXACT),
}


def field(record: Record, *names: str, default: object = None) -> object:
    """First non-empty value among snake_case/camelCase spellings of a field."""
    for name in names:
        value = record.get(name)
        if value not in (None, ""):
            return value
    return default


def to_number(value: object, default: Optional[float] = None) -> Optional[float]:
    if value in (None, "") or isinstance(value, bool):
        return default
    try:
        number = float(str(value))
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def priority_badge(priority: object) -> Dict[str, str]:
    level = Priority.parse(priority)
    label, tone = PRIORITY_BADGES[level]
    return {"value": level.value, "label": label, "tone": tone}


def status_badge(status: object) -> Dict[str, str]:
    key = str(status or "").strip().lower()
    label, tone = STATUS_BADGES.get(key, (key.replace("_", " ").capitalize() or "-", "slate"))
    return {"value": key, "label": label, "tone": tone}


def _escalation_flags(base: Priority, pct: int) -> Dict[str, object]:
    variants = rule_variants(base, pct)
    return {
        "variants": {rule.value: value.value for rule, value in variants.items()},
        "divergent": len(set(variants.values())) > 1,
    }


def _display(
    est: Optional[Estimate],
    base: Priority,
    priority: Priority,
    progress: int,
    status: str,
    rule: EscalationRule,
    time_pct: int,
    **extra: object,
) -> Record:
    display: Record = {
        "progress": progress,
        "time_progress": time_pct,
        "priority": priority.value,
        "base_priority": base.value,
        "escalated": priority > base,
        "rule": rule.value,
        "status": status,
        "priority_badge": priority_badge(priority),
        "status_badge": status_badge(status),
        "deadline": iso(est.deadline) if est else None,
        "overdue": False,
    }
    display.update(_escalation_flags(base, time_pct))
    display.update(extra)
    return display


# --- Projects ----------------------------------------------------------------


def project_status(existing: object, start: Optional[dt.datetime], end: Optional[dt.datetime], now: dt.datetime) -> str:
    current = str(existing or "").strip().lower()
    if current == "archived":
        return "archived"
    if start is None or end is None:
        return current if current in PROJECT_STATUSES else "planned"
    if now < start:
        return "planned"
    if now > end:
        return "done"
    return "active"


def decorate_project(
    record: Record,
    now: Optional[dt.datetime] = None,
    rule: Optional[EscalationRule] = None,
    tz: Optional[dt.tzinfo] = None,
    profile: str = "project",
) -> Record:
    moment = now or utcnow()
    zone = tz or display_tz()
    site = PROFILES[profile]
    active_rule = rule or site.rule
    base = Priority.parse(field(record, "priority"))
    start = at_local(field(record, "start_date", "startDate"), site.start_anchor, zone)
    end = at_local(field(record, "end_date", "endDate"), site.end_anchor, zone)

    est: Optional[Estimate] = None
    if start is None or end is None:
        # no usable window: 0% rather than a forced 100%
        progress, priority = 0, base
    else:
        est = estimate(start, end, moment, base, active_rule, site.zero_window, site.mode)
        progress, priority = est.progress, est.priority
    status = project_status(field(record, "status"), start, end, moment)
    return {**record, "display": _display(est, base, priority, progress, status, active_rule, progress)}


# --- Tasks -------------------------------------------------------------------


def task_due(record: Record, tz: Optional[dt.tzinfo] = None) -> Optional[dt.datetime]:
    due_date = field(record, "due_date", "dueDate", "due_datetime")
    due_time = field(record, "due_time", "dueTime")
    if due_time:
        return combine_date_time(due_date, str(due_time), tz)
    return parse_datetime_value(due_date, tz)


def task_is_overdue(record: Record, now: Optional[dt.datetime] = None, tz: Optional[dt.tzinfo] = None) -> bool:
    due = task_due(record, tz)
    if due is None:
        return False
    status = str(field(record, "status", default="")).strip().lower()
    return (now or utcnow()) > due and status != "done"


def decorate_task(
    record: Record,
    now: Optional[dt.datetime] = None,
    rule: Optional[EscalationRule] = None,
    tz: Optional[dt.tzinfo] = None,
) -> Record:
    moment = now or utcnow()
    zone = tz or display_tz()
    site = PROFILES["task"]
    active_rule = rule or site.rule
    base = Priority.parse(field(record, "priority"))
    created = parse_datetime_value(field(record, "created_at", "createdAt"), zone)
    due = task_due(record, zone)
    status = str(field(record, "status", default="todo")).strip().lower()

    est: Optional[Estimate] = None
    time_pct = 0
    priority = base
    if created is not None and due is not None:
        est = estimate(created, due, moment, base, active_rule, site.zero_window, site.mode)
        time_pct, priority = est.progress, est.priority
    work = to_number(field(record, "progress"))
    progress = clamp_pct(round_half_up(work)) if work is not None else time_pct
    overdue = task_is_overdue(record, moment, zone)
    shown = "overdue" if overdue else status
    display = _display(est, base, priority, progress, shown, active_rule, time_pct)
    display["overdue"] = overdue
    if est is None and due is not None:
        display["deadline"] = iso(due)
    return {**record, "display": display}


# --- Objectives ----------------------------------------------------------------


def weighted_subtask_progress(subtasks: Iterable[Record]) -> Optional[int]:
    items = [item for item in subtasks if isinstance(item, dict)]
    if not items:
        return None
    total = sum(max(0.0, to_number(item.get("weight"), 0.0) or 0.0) for item in items) or 100.0
    if not math.isfinite(total):
        return None
    done = sum(max(0.0, to_number(item.get("weight"), 0.0) or 0.0) for item in items if item.get("done"))
    return round_half_up(done / total * 100)


def objective_progress(record: Record, time_pct: int) -> int:
    """Weighted done subtasks, then current/target, otherwise elapsed time."""
    subtasks = record.get("subtasks")
    if isinstance(subtasks, list):
        weighted = weighted_subtask_progress(subtasks)
        if weighted is not None:
            return clamp_pct(weighted)
    if to_number(field(record, "current")) is not None:
        return goal_progress(record)
    return time_pct


def deadline_band(end_date: object, anchor: Optional[dt.date] = None) -> str:
    end = parse_date_only(end_date, fallback_today=False)
    if end is None:
        return "comfortable"
    diff = days_until(end, anchor or today())
    if diff <= 2:
        return "urgent"
    if diff <= 10:
        return "soon"
    return "comfortable"


def decorate_objective(
    record: Record,
    now: Optional[dt.datetime] = None,
    rule: Optional[EscalationRule] = None,
    tz: Optional[dt.tzinfo] = None,
) -> Record:
    moment = now or utcnow()
    zone = tz or display_tz()
    site = PROFILES["objective"]
    active_rule = rule or site.rule
    base = Priority.parse(field(record, "priority"))
    # objective pages fell back to today for unparseable dates
    start = at_local(field(record, "start_date", "startDate"), site.start_anchor, zone, fallback_today=True)
    end = at_local(field(record, "end_date", "endDate"), site.end_anchor, zone, fallback_today=True)
    est = estimate(start, end, moment, base, active_rule, site.zero_window, site.mode)
    progress = objective_progress(record, est.progress)
    status = str(field(record, "status", default="in_progress")).strip().lower()
    if status != "done" and est.overdue:
        status = "overdue"
    display = _display(
        est,
        base,
        est.priority,
        progress,
        status,
        active_rule,
        est.progress,
        deadline_band=deadline_band(field(record, "end_date", "endDate"), moment.astimezone(zone).date()),
    )
    display["overdue"] = status == "overdue"
    return {**record, "display": display}


# --- Meetings ----------------------------------------------------------------


def meeting_window(record: Record, tz: Optional[dt.tzinfo] = None) -> Tuple[Optional[dt.datetime], Optional[dt.datetime]]:
    start = parse_datetime_value(field(record, "start_at", "startAt", "start"), tz)
    end = parse_datetime_value(field(record, "end_at", "endAt", "end"), tz) or start
    return start, end


def meeting_status(record: Record, now: Optional[dt.datetime] = None, tz: Optional[dt.tzinfo] = None) -> str:
    start, end = meeting_window(record, tz)
    moment = now or utcnow()
    if start is None or end is None or moment < start:
        return "upcoming"
    if moment < end:
        return "ongoing"
    return "done"


def meeting_missed(record: Record, now: Optional[dt.datetime] = None, tz: Optional[dt.tzinfo] = None) -> bool:
    """A finished meeting nobody answered "yes" to."""
    if meeting_status(record, now, tz) != "done":
        return False
    attendees = record.get("attendees")
    if not isinstance(attendees, list) or not attendees:
        return True
    return not any(isinstance(a, dict) and str(a.get("rsvp", "")).lower() == "yes" for a in attendees)


def meeting_countdown_pct(record: Record, now: Optional[dt.datetime] = None, tz: Optional[dt.tzinfo] = None) -> int:
    moment = now or utcnow()
    start, _end = meeting_window(record, tz)
    if start is None:
        return 0
    if moment >= start:
        return 100
    created = parse_datetime_value(field(record, "created_at", "createdAt"), tz)
    if created is None or created >= start:
        return 0
    return progress_pct(created, start, moment)


def decorate_meeting(
    record: Record,
    now: Optional[dt.datetime] = None,
    rule: Optional[EscalationRule] = None,
    tz: Optional[dt.tzinfo] = None,
) -> Record:
    moment = now or utcnow()
    zone = tz or display_tz()
    site = PROFILES["meeting"]
    active_rule = rule or site.rule
    base = Priority.parse(field(record, "priority"))
    pct = meeting_countdown_pct(record, moment, zone)
    priority = escalate(base, pct, active_rule)
    status = meeting_status(record, moment, zone)
    missed = meeting_missed(record, moment, zone)
    start, _end = meeting_window(record, zone)
    display = _display(
        None,
        base,
        priority,
        pct,
        "missed" if missed else status,
        active_rule,
        pct,
        missed=missed,
        urgent=priority is Priority.HIGH or pct >= HIGH_THRESHOLD_PCT,
    )
    display["deadline"] = iso(start) if start else None
    return {**record, "display": display}


# --- Goals -------------------------------------------------------------------


def goal_progress(record: Record) -> int:
    current = to_number(field(record, "current"), 0.0) or 0.0
    # a missing or zero target counts as 100
    target = to_number(field(record, "target")) or 100.0
    return clamp_pct(round_half_up(max(0.0, min(100.0, current / target * 100))))


def goal_health(record: Record, now: Optional[dt.datetime] = None, tz: Optional[dt.tzinfo] = None) -> str:
    if str(field(record, "status", default="")).strip().lower() == "done":
        return "done"
    moment = now or utcnow()
    start = parse_datetime_value(field(record, "start_date", "startDate"), tz) or moment
    end = parse_datetime_value(field(record, "end_date", "endDate"), tz) or moment
    span = (end - start).total_seconds()
    elapsed = max(0.0, min(span, (moment - start).total_seconds()))
    expected = round_half_up(elapsed / span * 100) if span > 0 else 0
    pct = goal_progress(record)
    health = "on_track"
    if pct + GOAL_AT_RISK_MARGIN < expected:
        health = "at_risk"
    if moment > end and pct < 100:
        health = "off_track"
    return health


def decorate_goal(
    record: Record,
    now: Optional[dt.datetime] = None,
    rule: Optional[EscalationRule] = None,
    tz: Optional[dt.tzinfo] = None,
) -> Record:
    moment = now or utcnow()
    zone = tz or display_tz()
    health = goal_health(record, moment, zone)
    end = parse_datetime_value(field(record, "end_date", "endDate"), zone)
    progress = goal_progress(record)
    return {
        **record,
        "display": {
            "progress": progress,
            "status": health,
            "status_badge": status_badge(health),
            "deadline": iso(end) if end else None,
            "overdue": health == "off_track",
        },
    }


# --- Validation --------------------------------------------------------------


def validate_date_range(start_date: object, end_date: object) -> Optional[str]:
    start = parse_date_only(start_date, fallback_today=False)
    end = parse_date_only(end_date, fallback_today=False)
    if start is None or end is None:
        return "Start and end dates are required."
    if end < start:
        return "The end date cannot be earlier than the start date."
    return None


def validate_subtask_weights(subtasks: object) -> Optional[str]:
    if not isinstance(subtasks, list):
        return "Subtasks must be a list."
    kept = [s for s in subtasks if isinstance(s, dict) and str(s.get("title") or "").strip()]
    total = sum(to_number(s.get("weight"), 0.0) or 0.0 for s in kept)
    if kept and abs(total - 100) > 0.001:
        return "Subtask weights must add up to 100%."
    return None


def validate_rsvp(value: object) -> Optional[str]:
    if str(value or "").strip().lower() not in RSVP_ANSWERS:
        return "Invalid RSVP; expected yes, no or maybe."
    return None


# --- Batches -----------------------------------------------------------------

Decorator = Callable[..., Record]

ENTITY_DECORATORS: Dict[str, Decorator] = {
    "tasks": decorate_task,
    "objectives": decorate_objective,
    "projects": decorate_project,
    "meetings": decorate_meeting,
    "goals": decorate_goal,
}


def decorate_many(
    entity: str,
    records: Iterable[object],
    now: Optional[dt.datetime] = None,
    rule: Optional[EscalationRule] = None,
    tz: Optional[dt.tzinfo] = None,
) -> List[Record]:
    decorator = ENTITY_DECORATORS.get(entity)
    if decorator is None:
        raise ValueError(f"Unknown entity: {entity}")
    moment = now or utcnow()
    decorated: List[Record] = []
    skipped = 0
    for record in records:
        if not isinstance(record, dict):
            skipped += 1
            continue
        decorated.append(decorator(record, now=moment, rule=rule, tz=tz))
    if skipped:
        logger.debug("Skipped %s non-object %s records", skipped, entity)
    return decorated


def board_kpis(decorated: Iterable[Record]) -> Dict[str, object]:
    by_priority = {level.value: 0 for level in Priority}
    by_status: Dict[str, int] = {}
    total = urgent = overdue = missed = divergent = 0
    for item in decorated:
        display = item.get("display")
        if not isinstance(display, dict):
            continue
        total += 1
        priority = display.get("priority")
        if priority in by_priority:
            by_priority[str(priority)] += 1
        status = str(display.get("status") or "")
        by_status[status] = by_status.get(status, 0) + 1
        if display.get("urgent", priority == Priority.HIGH.value):
            urgent += 1
        overdue += 1 if display.get("overdue") else 0
        missed += 1 if display.get("missed") else 0
        divergent += 1 if display.get("divergent") else 0
    return {
        "total": total,
        "urgent": urgent,
        "overdue": overdue,
        "missed": missed,
        "divergent": divergent,
        "by_priority": by_priority,
        "by_status": by_status,
    }


def sort_by_priority(decorated: List[Record]) -> List[Record]:
    """High priority first, then the nearest deadline; undated items last."""

    def key(item: Record):
        display = item.get("display") if isinstance(item.get("display"), dict) else {}
        rank = Priority.parse(display.get("priority")).rank
        deadline = parse_datetime_value(display.get("deadline"))
        return (-rank, deadline is None, deadline.timestamp() if deadline else 0.0)

    return sorted(decorated, key=key)
