"""
Notification Model

In-app notification produced when a reminder fires.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import uuid4

from ..utils.datetime_utils import to_iso, utc_now
from .event import Event
from .reminder import ReminderRule, TriggerType

EVENT_REMINDER = "event_reminder"


@dataclass
class Notification:
    """
    Notification entity.

    Serialized with the same keys the web client's notification list reads.
    """
    id: str = field(default_factory=lambda: uuid4().hex)
    type: str = EVENT_REMINDER
    title: str = "Event Reminder"
    message: str = ""
    data: dict = field(default_factory=dict)             # {"eventId": ..., "groupId": ...}
    read: bool = False
    created_at: datetime = field(default_factory=utc_now)

    @property
    def group_id(self) -> Optional[str]:
        return self.data.get("groupId")

    def to_dict(self) -> dict:
        """Convert to dictionary for API / socket payloads"""
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "read": self.read,
            "createdAt": to_iso(self.created_at),
        }


def _plural(value: int, unit: str) -> str:
    if value == 1 and unit.endswith("s"):
        unit = unit[:-1]
    return f"{value} {unit}"


def reminder_message(event: Event, reminder: Optional[ReminderRule] = None) -> str:
    """Human-readable reminder text"""
    if reminder is not None and reminder.message:
        return reminder.message
    if reminder is None or reminder.trigger_type == TriggerType.CUSTOM_DATE:
        return f"Reminder: {event.title} starts at {to_iso(event.start_time)}"

    unit = str(getattr(reminder.trigger_unit, "value", reminder.trigger_unit))
    offset = _plural(reminder.trigger_value, unit)
    if reminder.trigger_type == TriggerType.AFTER_EVENT:
        return f"{event.title} started {offset} ago"
    return f"{event.title} starts in {offset}"


def build_reminder_notification(
    event: Event,
    reminder: Optional[ReminderRule] = None,
    now: Optional[datetime] = None,
) -> Notification:
    """Build the notification emitted when a reminder fires"""
    return Notification(
        title=(reminder.title if reminder and reminder.title else "Event Reminder"),
        message=reminder_message(event, reminder),
        data={"eventId": event.id, "groupId": event.group_id},
        created_at=now or utc_now(),
    )
