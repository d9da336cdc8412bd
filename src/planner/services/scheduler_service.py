"""
Scheduler Service

In-memory engine that arms reminder timers and recurrence timers for events.
Reminders emit a notification through the dispatch boundary; recurrences
create the next occurrence and re-arm themselves from it.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Coroutine, Dict, List, Optional, Set

from ..models.event import Event
from ..models.reminder import ReminderRule
from ..models.scheduled_action import ActionKind, ActionState, ScheduledAction
from ..notifications.base import CreateResult, DispatchBoundary
from ..utils.datetime_utils import utc_now
from .occurrence_calculator import next_occurrence, reminder_due_time
from .timers import AsyncioTimerFacility, TimerFacility

logger = logging.getLogger("planner.services.scheduler")


@dataclass
class ScheduleResult:
    """Keys armed by schedule_event()"""
    reminder_keys: List[str] = field(default_factory=list)
    recurrence_key: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "reminder_keys": list(self.reminder_keys),
            "recurrence_key": self.recurrence_key,
        }


class EventScheduler:
    """
    Reminder and recurrence scheduler.

    State is two registries of armed actions:
    - reminders, keyed by "{event_id}-{rule identity}"
    - recurrences, keyed by event id (public key "{event_id}-recurrence")

    Each action goes ARMED -> FIRED or ARMED -> CANCELLED exactly once.
    Scheduling an already armed key disarms the old timer first, so a key
    never has two live timers.

    All public methods are synchronous and must be called from the event
    loop thread; only timer callbacks and derived-event creation run later.
    """

    def __init__(
        self,
        dispatch: DispatchBoundary,
        timers: Optional[TimerFacility] = None,
        clock: Optional[Callable[[], datetime]] = None,
        enabled: bool = True,
    ):
        self.dispatch = dispatch
        self.timers = timers or AsyncioTimerFacility()
        self.enabled = enabled
        self._clock = clock or utc_now
        self._reminders: Dict[str, ScheduledAction] = {}
        self._recurrences: Dict[str, ScheduledAction] = {}
        # event id -> task creating the occurrence that follows it
        self._creating: Dict[str, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ============================================
    # Keys
    # ============================================

    @staticmethod
    def reminder_key(event_id: str, reminder: ReminderRule) -> str:
        return f"{event_id}-{reminder.identity}"

    @staticmethod
    def recurrence_key(event_id: str) -> str:
        return f"{event_id}-recurrence"

    # ============================================
    # Reminders
    # ============================================

    def schedule_reminder(self, event: Event, reminder: ReminderRule) -> Optional[str]:
        """
        Arm a one-shot reminder for the event.

        Returns the reminder key, or None when nothing was armed: scheduler
        disabled, inactive or unknown rule, or a due time that is not in
        the future. A previously armed timer under the same key is
        cancelled in every case.
        """
        self._require_id(event)
        key = self.reminder_key(event.id, reminder)

        if not self.enabled:
            logger.debug(f"Scheduler disabled, reminder {key} not armed")
            return None

        if not reminder.active:
            self.cancel_reminder(key)
            return None

        due_at = reminder_due_time(event.start_time, reminder)
        if due_at is None:
            logger.debug(
                f"Unsupported reminder rule for event {event.id}: "
                f"{reminder.trigger_type}/{reminder.trigger_unit}"
            )
            self.cancel_reminder(key)
            return None

        now = self._clock()
        if due_at <= now:
            logger.debug(f"Reminder {key} is past due ({due_at.isoformat()}), skipped")
            self.cancel_reminder(key)
            return None

        self._arm(
            self._reminders, key, key, ActionKind.REMINDER, event, due_at, now,
            lambda action: self._fire_reminder(action, event, reminder),
        )
        logger.info(f"Reminder {key} armed for {due_at.isoformat()}")
        return key

    def cancel_reminder(self, key: str):
        """Cancel a reminder. Unknown or already fired keys are ignored."""
        if self._disarm(self._reminders, key):
            logger.info(f"Reminder {key} cancelled")

    def _fire_reminder(self, action: ScheduledAction, event: Event, reminder: ReminderRule):
        if not self._take(self._reminders, action.key, action):
            return
        logger.info(f"Reminder {action.key} fired for event '{event.title}'")
        try:
            self.dispatch.emit_reminder(event, reminder)
        except Exception as e:
            logger.error(f"Failed to emit reminder {action.key}: {e}")

    # ============================================
    # Recurrence
    # ============================================

    def schedule_recurrence(self, event: Event) -> Optional[str]:
        """
        Arm the timer that creates the event's next occurrence.

        Returns the recurrence key, or None for non-recurring events and
        exhausted chains; in both cases a timer previously armed for the
        event is cancelled. A next occurrence already in the past fires on
        the next loop iteration.
        """
        rule = event.recurrence
        if rule is None or not rule.is_recurring:
            if event.id:
                self.cancel_recurrence(event.id)
            return None
        self._require_id(event)

        if not self.enabled:
            logger.debug(f"Scheduler disabled, recurrence of {event.id} not armed")
            return None

        next_at = next_occurrence(event.start_time, rule)
        if next_at is None:
            logger.info(f"Recurrence of event {event.id} exhausted")
            self.cancel_recurrence(event.id)
            return None

        key = self.recurrence_key(event.id)
        self._arm(
            self._recurrences, event.id, key, ActionKind.RECURRENCE, event, next_at,
            self._clock(),
            lambda action: self._fire_recurrence(action, event, next_at),
        )
        logger.info(f"Recurrence {key} armed, next occurrence {next_at.isoformat()}")
        return key

    def cancel_recurrence(self, event_id: str):
        """
        Cancel the recurrence timer of an event. Idempotent.

        An occurrence being created at this moment is still stored, but the
        chain is not continued from it.
        """
        disarmed = self._disarm(self._recurrences, event_id)
        in_flight = self._creating.pop(event_id, None) is not None
        if disarmed or in_flight:
            logger.info(f"Recurrence of event {event_id} cancelled")

    def _fire_recurrence(self, action: ScheduledAction, event: Event, next_at: datetime):
        if not self._take(self._recurrences, event.id, action):
            return
        logger.info(f"Recurrence {action.key} fired, creating occurrence at {next_at.isoformat()}")
        task = self._spawn(self._advance_recurrence(event, next_at), event)
        if task is not None:
            self._creating[event.id] = task

    async def _advance_recurrence(self, template: Event, next_at: datetime):
        derived = None
        try:
            derived = template.derive(next_at)
            result = await self.dispatch.create_derived_event(derived)
        except Exception as e:
            result = CreateResult(success=False, error=str(e) or type(e).__name__)

        continue_chain = self._creating.get(template.id) is asyncio.current_task()
        if continue_chain:
            del self._creating[template.id]

        if not result.success or result.event is None:
            error = result.error or "no event returned"
            logger.error(f"Error creating recurring event from {template.id}: {error}")
            self._report_failure(template, error)
            return

        created = self._keep_anchor(result.event, derived)
        if not continue_chain:
            logger.info(
                f"Recurrence of {template.id} was cancelled, "
                f"not continuing from occurrence {created.id}"
            )
            return

        try:
            self.schedule_recurrence(created)
        except ValueError as e:
            logger.error(f"Cannot continue recurrence from occurrence {created.id}: {e}")
            self._report_failure(created, str(e))

    @staticmethod
    def _keep_anchor(created: Event, derived: Optional[Event]) -> Event:
        """Restore the chain anchor if the store dropped it from the rule"""
        if derived is None or derived.recurrence is None or created.recurrence is None:
            return created
        if created.recurrence.anchor_day is not None or derived.recurrence.anchor_day is None:
            return created
        rule = replace(created.recurrence, anchor_day=derived.recurrence.anchor_day)
        return replace(created, recurrence=rule)

    def _report_failure(self, event: Event, error: str):
        try:
            self.dispatch.report_failure(event, error)
        except Exception as e:
            logger.error(f"Failed to report recurrence failure for {event.id}: {e}")

    # ============================================
    # Whole events
    # ============================================

    def schedule_event(self, event: Event) -> ScheduleResult:
        """Arm every reminder of the event and, if recurring, its recurrence"""
        result = ScheduleResult()
        for reminder in event.reminders:
            key = self.schedule_reminder(event, reminder)
            if key is not None:
                result.reminder_keys.append(key)
        result.recurrence_key = self.schedule_recurrence(event)
        return result

    def cancel_event(self, event: Event):
        """
        Cancel every armed action of the event.

        Reminders are matched by event id, so rules removed from the event
        since it was scheduled are cancelled too. Safe for events that were
        never scheduled.
        """
        if event.id is None:
            return
        keys = [key for key, action in self._reminders.items() if action.event_id == event.id]
        for reminder in event.reminders:
            keys.append(self.reminder_key(event.id, reminder))
        for key in keys:
            self.cancel_reminder(key)
        self.cancel_recurrence(event.id)

    # ============================================
    # Introspection / lifecycle
    # ============================================

    def scheduled_actions(self) -> List[ScheduledAction]:
        """Armed actions ordered by due time"""
        actions = list(self._reminders.values()) + list(self._recurrences.values())
        return sorted(actions, key=lambda a: a.due_at)

    def is_reminder_armed(self, key: str) -> bool:
        return key in self._reminders

    def is_recurrence_armed(self, event_id: str) -> bool:
        return event_id in self._recurrences

    def cancel_all(self):
        """Disarm every timer and stop all chains"""
        for key in list(self._reminders):
            self._disarm(self._reminders, key)
        for event_id in list(self._recurrences):
            self._disarm(self._recurrences, event_id)
        self._creating.clear()

    async def drain(self):
        """Wait for in-flight occurrence creations"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self):
        self.cancel_all()
        await self.drain()
        logger.info("Scheduler stopped")

    # ============================================
    # Internals
    # ============================================

    @staticmethod
    def _require_id(event: Event):
        if not event.id:
            raise ValueError("Event must have an id to be scheduled")

    def _arm(
        self,
        registry: Dict[str, ScheduledAction],
        registry_key: str,
        key: str,
        kind: ActionKind,
        event: Event,
        due_at: datetime,
        now: datetime,
        on_fire: Callable[[ScheduledAction], None],
    ) -> ScheduledAction:
        action = ScheduledAction(key=key, kind=kind, event_id=event.id, due_at=due_at)
        delay = max(0.0, (due_at - now).total_seconds())
        # Registered only once the timer exists, so a failed arm leaves no entry
        action.handle = self.timers.arm(delay, lambda: on_fire(action))
        self._disarm(registry, registry_key)
        registry[registry_key] = action
        return action

    def _disarm(self, registry: Dict[str, ScheduledAction], registry_key: str) -> bool:
        action = registry.pop(registry_key, None)
        if action is None:
            return False
        action.state = ActionState.CANCELLED
        self.timers.disarm(action.handle)
        return True

    @staticmethod
    def _take(registry: Dict[str, ScheduledAction], registry_key: str, action: ScheduledAction) -> bool:
        """Move a firing action to FIRED if it is still the registered, armed one"""
        if registry.get(registry_key) is not action or not action.is_armed:
            return False
        del registry[registry_key]
        action.state = ActionState.FIRED
        return True

    def _spawn(self, coro: Coroutine, event: Event) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.error(f"No running event loop, recurrence of {event.id} halted")
            self._report_failure(event, "no running event loop")
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def reminder_count(self) -> int:
        return len(self._reminders)

    @property
    def recurrence_count(self) -> int:
        return len(self._recurrences)
