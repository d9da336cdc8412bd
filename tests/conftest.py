"""
Pytest configuration and fixtures for planner scheduler tests.

Provides a manual clock and timer facility so scheduled actions can be
fired deterministically, and a recording dispatch boundary.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import pytest

from planner.models.event import Event
from planner.models.recurrence import RecurrenceRule, RecurrenceType
from planner.models.reminder import ReminderRule, TriggerType, TriggerUnit
from planner.notifications.base import CreateResult, DispatchBoundary
from planner.services.scheduler_service import EventScheduler
from planner.services.timers import TimerFacility


NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Time doubles
# ============================================================================


class FakeClock:
    """Clock returning a settable instant"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeTimer:
    def __init__(self, due: datetime, callback: Callable[[], None], seq: int):
        self.due = due
        self.callback = callback
        self.seq = seq
        self.cancelled = False
        self.fired = False


class FakeTimerFacility(TimerFacility):
    """Timer facility driven by advance(); fires callbacks in due order"""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: List[FakeTimer] = []
        self._seq = 0

    def arm(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        self._seq += 1
        timer = FakeTimer(self.clock.now + timedelta(seconds=delay), callback, self._seq)
        self.timers.append(timer)
        return timer

    def disarm(self, handle: Optional[FakeTimer]) -> None:
        if handle is not None:
            handle.cancelled = True

    @property
    def pending(self) -> List[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, delta: timedelta = timedelta(0)):
        """Move the clock forward, firing every timer that becomes due"""
        target = self.clock.now + delta
        while True:
            due = [t for t in self.pending if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.clock.now = max(self.clock.now, timer.due)
            timer.fired = True
            timer.callback()
        self.clock.now = target


# ============================================================================
# Dispatch double
# ============================================================================


class RecordingDispatch(DispatchBoundary):
    """Dispatch boundary that records calls and assigns ids to created events"""

    def __init__(self):
        self.emitted: List[tuple] = []
        self.created: List[Event] = []
        self.failures: List[tuple] = []
        self.fail_with: Optional[str] = None
        self.raise_with: Optional[Exception] = None
        self.gate = None  # optional asyncio.Event awaited before answering

    def emit_reminder(self, event, reminder=None):
        self.emitted.append((event, reminder))

    async def create_derived_event(self, event):
        self.created.append(event)
        if self.gate is not None:
            await self.gate.wait()
        if self.raise_with is not None:
            raise self.raise_with
        if self.fail_with is not None:
            return CreateResult(success=False, error=self.fail_with)
        return CreateResult(success=True, event=replace(event, id=f"derived-{len(self.created)}"))

    def report_failure(self, event, error):
        self.failures.append((event, error))


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers(clock) -> FakeTimerFacility:
    return FakeTimerFacility(clock)


@pytest.fixture
def dispatch() -> RecordingDispatch:
    return RecordingDispatch()


@pytest.fixture
def scheduler(dispatch, timers, clock) -> EventScheduler:
    return EventScheduler(dispatch=dispatch, timers=timers, clock=clock)


@pytest.fixture
def one_hour_before() -> ReminderRule:
    return ReminderRule(
        trigger_type=TriggerType.BEFORE_EVENT,
        trigger_unit=TriggerUnit.HOURS,
        trigger_value=1,
    )


@pytest.fixture
def weekly_event(one_hour_before) -> Event:
    """Weekly event starting tomorrow, lasting two hours, reminded one hour before"""
    start = NOW + timedelta(days=1)
    return Event(
        id="evt-1",
        group_id="group-1",
        title="Board games night",
        start_time=start,
        end_time=start + timedelta(hours=2),
        recurrence=RecurrenceRule(type=RecurrenceType.WEEKLY),
        reminders=[one_hour_before],
        responses=[{"userId": "u1", "status": "going"}],
    )
