"""
Scheduled Action Model

Registry entry for an armed deferred action (reminder fire or recurrence advance).
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..utils.datetime_utils import to_iso


class ActionKind(str, Enum):
    REMINDER = "reminder"
    RECURRENCE = "recurrence"


class ActionState(str, Enum):
    """ARMED -> FIRED or ARMED -> CANCELLED; both terminal"""
    ARMED = "armed"
    FIRED = "fired"
    CANCELLED = "cancelled"


@dataclass(eq=False)
class ScheduledAction:
    """
    Armed deferred action.

    Compared by identity: a timer callback only acts if its own action is
    still the one registered under the key.
    """
    key: str
    kind: ActionKind
    event_id: Optional[str]
    due_at: datetime
    handle: Any = None                       # timer facility handle
    state: ActionState = ActionState.ARMED

    @property
    def is_armed(self) -> bool:
        return self.state == ActionState.ARMED

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "key": self.key,
            "kind": self.kind.value,
            "event_id": self.event_id,
            "due_at": to_iso(self.due_at),
            "state": self.state.value,
        }
