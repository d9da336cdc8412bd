"""
Reminder Rule Model

A reminder fires at a signed offset from the event start time
(before_event / after_event) or at an explicit instant (custom_date).
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from ..utils.datetime_utils import parse_instant, to_iso
from .recurrence import coerce_enum


class TriggerType(str, Enum):
    """When a reminder fires relative to the event"""
    BEFORE_EVENT = "before_event"
    AFTER_EVENT = "after_event"
    CUSTOM_DATE = "custom_date"


class TriggerUnit(str, Enum):
    """Offset unit for before/after reminders"""
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


@dataclass(frozen=True)
class ReminderRule:
    """
    Reminder attached to an event.

    Inactive reminders are kept on the event but never armed.
    title/message only shape the notification text.
    """
    trigger_type: Union[TriggerType, str] = TriggerType.BEFORE_EVENT
    trigger_unit: Union[TriggerUnit, str] = TriggerUnit.HOURS
    trigger_value: int = 0
    custom_date: Optional[datetime] = None
    active: bool = True
    title: Optional[str] = None
    message: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "trigger_type", coerce_enum(TriggerType, self.trigger_type))
        object.__setattr__(self, "trigger_unit", coerce_enum(TriggerUnit, self.trigger_unit))
        if isinstance(self.trigger_value, bool) or not isinstance(self.trigger_value, int):
            raise ValueError(f"Reminder triggerValue must be an integer, got {self.trigger_value!r}")
        if self.trigger_value < 0:
            raise ValueError(f"Reminder triggerValue must be non-negative, got {self.trigger_value}")
        if self.trigger_type == TriggerType.CUSTOM_DATE and self.custom_date is None:
            raise ValueError("Reminder of type custom_date requires customDate")

    @property
    def identity(self) -> str:
        """Deterministic key suffix; identical rules map to the same key"""
        if self.trigger_type == TriggerType.CUSTOM_DATE:
            return f"{TriggerType.CUSTOM_DATE.value}-{to_iso(self.custom_date)}"
        trigger_type = getattr(self.trigger_type, "value", self.trigger_type)
        trigger_unit = getattr(self.trigger_unit, "value", self.trigger_unit)
        return f"{trigger_type}-{trigger_unit}-{self.trigger_value}"

    @classmethod
    def from_dict(cls, data: dict) -> "ReminderRule":
        """
        Build from wire JSON.

        Also reads the legacy scheduler shape {"type": "hours", "amount": 2},
        which always means "before the event".
        """
        if "triggerType" not in data and "amount" in data:
            return cls(
                trigger_type=TriggerType.BEFORE_EVENT,
                trigger_unit=coerce_enum(TriggerUnit, data.get("type")),
                trigger_value=data.get("amount") or 0,
                active=data.get("active", True),
            )

        trigger_value = data.get("triggerValue")
        return cls(
            trigger_type=coerce_enum(TriggerType, data.get("triggerType") or TriggerType.BEFORE_EVENT.value),
            trigger_unit=coerce_enum(TriggerUnit, data.get("triggerUnit") or TriggerUnit.HOURS.value),
            trigger_value=0 if trigger_value is None else trigger_value,
            custom_date=parse_instant(data.get("customDate"), "reminder.customDate"),
            active=data.get("active", True),
            title=data.get("title"),
            message=data.get("message"),
        )

    def to_dict(self) -> dict:
        """Convert to wire JSON"""
        return {
            "triggerType": str(getattr(self.trigger_type, "value", self.trigger_type)),
            "triggerUnit": str(getattr(self.trigger_unit, "value", self.trigger_unit)),
            "triggerValue": self.trigger_value,
            "customDate": to_iso(self.custom_date),
            "active": self.active,
            "title": self.title,
            "message": self.message,
        }
