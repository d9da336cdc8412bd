"""
Dispatch Boundary

Abstract interface between the scheduler and the outside world:
delivering reminder notifications and persisting derived occurrences.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..models.event import Event
from ..models.reminder import ReminderRule

logger = logging.getLogger("planner.notifications.dispatch")


@dataclass
class CreateResult:
    """Result of a derived-event creation attempt"""
    success: bool
    event: Optional[Event] = None
    error: Optional[str] = None


class DispatchBoundary(ABC):
    """Abstract dispatch boundary"""

    @abstractmethod
    def emit_reminder(self, event: Event, reminder: Optional[ReminderRule] = None) -> None:
        """
        Enqueue a user-visible reminder for the event.

        Must not raise for normal operation; delivery failures are logged here.
        """
        ...

    @abstractmethod
    async def create_derived_event(self, event: Event) -> CreateResult:
        """
        Persist a newly computed occurrence.

        Returns:
            CreateResult carrying the stored event (with its assigned id) or an error
        """
        ...

    def report_failure(self, event: Event, error: str):
        """Report a recurrence chain that stopped because creation failed"""
        logger.error(
            f"Recurrence halted for event {event.id} (group={event.group_id}): {error}"
        )

    async def close(self):
        """Cleanup resources"""
        return None
