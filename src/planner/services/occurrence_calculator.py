"""
Occurrence Calculator

Pure date arithmetic for recurring events and reminders.
No side effects: the same inputs always give the same instant.

Month steps use dateutil.relativedelta, which clamps the day of month to
the end of a shorter month (2024-01-31 + 1 month = 2024-02-29). A rule with
an anchor_day returns to that day once the target month is long enough.
"""
from datetime import datetime, timedelta
from typing import Iterator, Optional

from dateutil.relativedelta import relativedelta

from ..models.recurrence import RecurrenceRule, RecurrenceType, RecurrenceUnit
from ..models.reminder import ReminderRule, TriggerType, TriggerUnit

_PRESET_STEPS = {
    RecurrenceType.DAILY: relativedelta(days=1),
    RecurrenceType.WEEKLY: relativedelta(weeks=1),
    RecurrenceType.BIWEEKLY: relativedelta(weeks=2),
    RecurrenceType.MONTHLY: relativedelta(months=1),
}

_REMINDER_UNITS = {
    TriggerUnit.MINUTES: "minutes",
    TriggerUnit.HOURS: "hours",
    TriggerUnit.DAYS: "days",
}


def _require_aware(value: datetime, name: str) -> None:
    if not isinstance(value, datetime):
        raise ValueError(f"{name} must be a datetime, got {type(value).__name__}")
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError(f"{name} must be timezone-aware")


def client_weekday(value: datetime) -> int:
    """Weekday index as the web client numbers it (0 = Sunday)"""
    return value.isoweekday() % 7


def _step(last_occurrence: datetime, step: relativedelta, rule: RecurrenceRule) -> datetime:
    candidate = last_occurrence + step
    if rule.anchor_day is not None and rule.steps_by_month and candidate.day < rule.anchor_day:
        # relativedelta(day=n) clamps to the end of the month as well
        candidate = candidate + relativedelta(day=rule.anchor_day)
    return candidate


def _custom_step(rule: RecurrenceRule) -> Optional[relativedelta]:
    if rule.unit == RecurrenceUnit.DAYS:
        return relativedelta(days=rule.interval)
    if rule.unit == RecurrenceUnit.WEEKS:
        return relativedelta(weeks=rule.interval)
    if rule.unit == RecurrenceUnit.MONTHS:
        return relativedelta(months=rule.interval)
    return None


def _next_custom(last_occurrence: datetime, rule: RecurrenceRule) -> Optional[datetime]:
    step = _custom_step(rule)
    if step is None:
        return None

    end_date = rule.end_date
    candidate = _step(last_occurrence, step, rule)
    if end_date is not None and candidate > end_date:
        return None

    if rule.days_of_week:
        # Walk one day at a time; the end bound is checked on every step
        while client_weekday(candidate) not in rule.days_of_week:
            candidate = candidate + timedelta(days=1)
            if end_date is not None and candidate > end_date:
                return None

    return candidate


def next_occurrence(last_occurrence: datetime, rule: Optional[RecurrenceRule]) -> Optional[datetime]:
    """
    Compute the occurrence following last_occurrence.

    Returns None for non-recurring or unknown rules and for a custom rule
    whose end date leaves no valid instant.

    Raises:
        ValueError: if last_occurrence (or the rule's end date) is naive, or
            the next occurrence falls outside the supported date range
    """
    _require_aware(last_occurrence, "last_occurrence")
    if rule is None:
        return None

    try:
        step = _PRESET_STEPS.get(rule.type)
        if step is not None:
            return _step(last_occurrence, step, rule)

        if rule.type == RecurrenceType.CUSTOM:
            if rule.end_date is not None:
                _require_aware(rule.end_date, "recurrence end_date")
            return _next_custom(last_occurrence, rule)
    except OverflowError as e:
        raise ValueError(f"Next occurrence after {last_occurrence.isoformat()} is out of range: {e}") from e

    return None


def occurrences(first: datetime, rule: Optional[RecurrenceRule], limit: int = 10) -> Iterator[datetime]:
    """
    Yield up to `limit` occurrences following `first`, stopping when the rule is exhausted.

    Month-stepped rules are anchored at `first`, as a scheduled chain is.
    """
    if limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")
    if rule is not None:
        rule = rule.anchored_at(first)
    current = first
    for _ in range(limit):
        current = next_occurrence(current, rule)
        if current is None:
            return
        yield current


def reminder_due_time(start_time: datetime, reminder: ReminderRule) -> Optional[datetime]:
    """
    Absolute instant at which a reminder fires.

    before_event/after_event apply a signed offset to start_time,
    custom_date uses its own instant. Unknown trigger types or units give None.

    Raises:
        ValueError: if start_time is naive or the offset leaves the supported date range
    """
    _require_aware(start_time, "start_time")

    if reminder.trigger_type == TriggerType.CUSTOM_DATE:
        _require_aware(reminder.custom_date, "reminder custom_date")
        return reminder.custom_date

    if reminder.trigger_type == TriggerType.BEFORE_EVENT:
        sign = -1
    elif reminder.trigger_type == TriggerType.AFTER_EVENT:
        sign = 1
    else:
        return None

    unit = _REMINDER_UNITS.get(reminder.trigger_unit)
    if unit is None:
        return None
    try:
        return start_time + sign * timedelta(**{unit: reminder.trigger_value})
    except OverflowError as e:
        raise ValueError(
            f"Reminder offset of {reminder.trigger_value} {unit} from "
            f"{start_time.isoformat()} is out of range"
        ) from e
