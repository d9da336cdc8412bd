"""
Event Model

A group event as stored by the events API, plus the derivation of the
next occurrence of a recurring event.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..utils.datetime_utils import parse_instant, to_iso
from .recurrence import RecurrenceRule
from .reminder import ReminderRule

# Wire keys mapped onto dataclass fields; everything else lands in `extra`
_KNOWN_KEYS = {
    "_id", "id", "groupId", "title", "description", "startTime", "endTime",
    "recurrence", "reminders", "responses", "isRecurring", "parentEventId",
    "createdBy",
}


@dataclass
class Event:
    """
    Event entity.

    Occurrences produced by a recurrence carry parent_event_id pointing at
    the event they were derived from. id is None until the store assigns one.
    """
    start_time: datetime
    end_time: datetime
    id: Optional[str] = None
    group_id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None

    # Scheduling
    recurrence: Optional[RecurrenceRule] = None
    reminders: List[ReminderRule] = field(default_factory=list)

    # RSVP responses, opaque to the scheduler
    responses: List[dict] = field(default_factory=list)
    is_recurring: bool = False
    parent_event_id: Optional[str] = None
    created_by: Optional[str] = None

    # Unknown wire fields, copied verbatim into derived occurrences
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    def derive(self, start_time: datetime) -> "Event":
        """
        Build the occurrence starting at start_time.

        Duration is preserved, responses are reset and identity is left for
        the store to assign. A month-stepped recurrence is anchored at this
        event's day of month so the chain does not drift after a short month.
        """
        return replace(
            self,
            id=None,
            start_time=start_time,
            end_time=start_time + self.duration,
            recurrence=self.recurrence.anchored_at(self.start_time) if self.recurrence else None,
            reminders=list(self.reminders),
            responses=[],
            is_recurring=True,
            parent_event_id=self.id,
            extra=dict(self.extra),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        """
        Build from the events API JSON.

        Raises:
            ValueError: on missing/malformed times or invalid rules
        """
        if not isinstance(data, dict):
            raise ValueError("Event payload must be an object")

        start_time = parse_instant(data.get("startTime"), "startTime")
        end_time = parse_instant(data.get("endTime"), "endTime")
        if start_time is None:
            raise ValueError("Event startTime is required")
        if end_time is None:
            raise ValueError("Event endTime is required")
        if end_time < start_time:
            raise ValueError("Event endTime must not be before startTime")

        event_id = data.get("_id")
        if event_id is None:
            event_id = data.get("id")
        return cls(
            id=str(event_id) if event_id is not None else None,
            group_id=data.get("groupId"),
            title=data.get("title") or "",
            description=data.get("description"),
            start_time=start_time,
            end_time=end_time,
            recurrence=RecurrenceRule.from_dict(data.get("recurrence")),
            reminders=[ReminderRule.from_dict(r) for r in data.get("reminders") or []],
            responses=list(data.get("responses") or []),
            is_recurring=bool(data.get("isRecurring", False)),
            parent_event_id=data.get("parentEventId"),
            created_by=data.get("createdBy"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict:
        """Convert to events API JSON (no _id while the event is unsaved)"""
        data = dict(self.extra)
        if self.id is not None:
            data["_id"] = self.id
        data.update({
            "groupId": self.group_id,
            "title": self.title,
            "description": self.description,
            "startTime": to_iso(self.start_time),
            "endTime": to_iso(self.end_time),
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
            "reminders": [r.to_dict() for r in self.reminders],
            "responses": list(self.responses),
            "isRecurring": self.is_recurring,
            "parentEventId": self.parent_event_id,
            "createdBy": self.created_by,
        })
        return data
