"""
Recurrence Rule Model

Describes how an event repeats: fixed presets (daily, weekly, biweekly,
monthly) or a custom interval with optional weekday filter and end date.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Union

from ..utils.datetime_utils import parse_instant, to_iso


class RecurrenceType(str, Enum):
    """Recurrence presets"""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class RecurrenceUnit(str, Enum):
    """Step unit for custom recurrence"""
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


def coerce_enum(enum_cls, value):
    """Return the enum member for a known value, the raw string otherwise"""
    try:
        return enum_cls(value)
    except ValueError:
        return value


@dataclass(frozen=True)
class RecurrenceRule:
    """
    Recurrence rule of an event.

    days_of_week uses the web client's weekday numbering: 0 = Sunday ... 6 = Saturday.
    end_date is an inclusive upper bound for generated occurrences.
    anchor_day is the day of month a month-stepped chain started on; later
    occurrences return to it after a short month clamped them.
    Unknown type/unit strings are kept so they can round-trip; they never
    produce an occurrence.
    """
    type: Union[RecurrenceType, str] = RecurrenceType.NONE
    interval: int = 1
    unit: Union[RecurrenceUnit, str] = RecurrenceUnit.DAYS
    days_of_week: FrozenSet[int] = field(default_factory=frozenset)
    end_date: Optional[datetime] = None
    anchor_day: Optional[int] = None

    def __post_init__(self):
        # Frozen: normalise known strings to enum members in place
        object.__setattr__(self, "type", coerce_enum(RecurrenceType, self.type))
        object.__setattr__(self, "unit", coerce_enum(RecurrenceUnit, self.unit))
        object.__setattr__(self, "days_of_week", frozenset(self.days_of_week))
        if isinstance(self.interval, bool) or not isinstance(self.interval, int):
            raise ValueError(f"Recurrence interval must be an integer, got {self.interval!r}")
        if self.interval < 1:
            raise ValueError(f"Recurrence interval must be positive, got {self.interval}")
        bad_days = [d for d in self.days_of_week if not isinstance(d, int) or not 0 <= d <= 6]
        if bad_days:
            raise ValueError(f"Weekday indices must be in 0-6, got {sorted(bad_days, key=str)}")
        if self.anchor_day is not None and (
            isinstance(self.anchor_day, bool)
            or not isinstance(self.anchor_day, int)
            or not 1 <= self.anchor_day <= 31
        ):
            raise ValueError(f"Anchor day must be in 1-31, got {self.anchor_day!r}")

    @property
    def is_recurring(self) -> bool:
        return self.type != RecurrenceType.NONE

    @property
    def steps_by_month(self) -> bool:
        return self.type == RecurrenceType.MONTHLY or (
            self.type == RecurrenceType.CUSTOM and self.unit == RecurrenceUnit.MONTHS
        )

    def anchored_at(self, start: datetime) -> "RecurrenceRule":
        """Pin a month-stepped rule to the day of month of its first occurrence"""
        if not self.steps_by_month or self.anchor_day is not None:
            return self
        return replace(self, anchor_day=start.day)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["RecurrenceRule"]:
        """Build from wire JSON ({"type", "interval", "unit", "daysOfWeek", "endDate", "anchorDay"})"""
        if not data:
            return None
        interval = data.get("interval")
        return cls(
            type=coerce_enum(RecurrenceType, data.get("type") or RecurrenceType.NONE.value),
            interval=1 if interval is None else interval,
            unit=coerce_enum(RecurrenceUnit, data.get("unit") or RecurrenceUnit.DAYS.value),
            days_of_week=frozenset(data.get("daysOfWeek") or ()),
            end_date=parse_instant(data.get("endDate"), "recurrence.endDate"),
            anchor_day=data.get("anchorDay"),
        )

    def to_dict(self) -> dict:
        """Convert to wire JSON"""
        data = {
            "type": str(getattr(self.type, "value", self.type)),
            "interval": self.interval,
            "unit": str(getattr(self.unit, "value", self.unit)),
            "daysOfWeek": sorted(self.days_of_week),
            "endDate": to_iso(self.end_date),
        }
        if self.anchor_day is not None:
            data["anchorDay"] = self.anchor_day
        return data
