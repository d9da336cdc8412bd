"""
Unit tests for the event scheduler.

Time is driven by the FakeTimerFacility from conftest; derived-event
creation runs as asyncio tasks awaited through scheduler.drain().
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from planner.models.event import Event
from planner.models.recurrence import RecurrenceRule, RecurrenceType, RecurrenceUnit
from planner.models.reminder import ReminderRule, TriggerType, TriggerUnit
from planner.models.scheduled_action import ActionKind, ActionState
from planner.notifications.base import CreateResult
from planner.services.scheduler_service import EventScheduler
from planner.services.timers import AsyncioTimerFacility, TimerFacility
from planner.utils.datetime_utils import utc_now

from conftest import NOW


class TestScheduleReminder:
    """Arming, firing and skipping reminders"""

    def test_returns_deterministic_key(self, scheduler, weekly_event, one_hour_before):
        key = scheduler.schedule_reminder(weekly_event, one_hour_before)
        assert key == "evt-1-before_event-hours-1"
        assert scheduler.is_reminder_armed(key)

    def test_fires_once_at_due_time(self, scheduler, timers, dispatch, weekly_event, one_hour_before):
        scheduler.schedule_reminder(weekly_event, one_hour_before)

        timers.advance(timedelta(hours=22, minutes=59))
        assert dispatch.emitted == []

        timers.advance(timedelta(minutes=1))
        assert dispatch.emitted == [(weekly_event, one_hour_before)]
        assert scheduler.reminder_count == 0

        timers.advance(timedelta(days=30))
        assert len(dispatch.emitted) == 1

    def test_rescheduling_same_rule_keeps_one_timer(self, scheduler, timers, dispatch, weekly_event, one_hour_before):
        first = scheduler.schedule_reminder(weekly_event, one_hour_before)
        second = scheduler.schedule_reminder(weekly_event, one_hour_before)

        assert first == second
        assert len(timers.pending) == 1
        assert scheduler.reminder_count == 1

        timers.advance(timedelta(days=2))
        assert len(dispatch.emitted) == 1

    def test_cancel_before_fire_wins(self, scheduler, timers, dispatch, weekly_event, one_hour_before):
        key = scheduler.schedule_reminder(weekly_event, one_hour_before)
        timers.advance(timedelta(hours=12))
        scheduler.cancel_reminder(key)

        timers.advance(timedelta(days=2))
        assert dispatch.emitted == []
        assert timers.pending == []

    def test_stale_callback_after_cancel_is_ignored(self, scheduler, timers, dispatch, weekly_event, one_hour_before):
        scheduler.schedule_reminder(weekly_event, one_hour_before)
        timer = timers.pending[0]
        scheduler.cancel_reminder("evt-1-before_event-hours-1")

        # Host fires the callback anyway
        timer.callback()
        assert dispatch.emitted == []

    def test_cancel_is_idempotent(self, scheduler, weekly_event, one_hour_before):
        key = scheduler.schedule_reminder(weekly_event, one_hour_before)
        scheduler.cancel_reminder(key)
        scheduler.cancel_reminder(key)
        scheduler.cancel_reminder("no-such-key")
        assert scheduler.reminder_count == 0

    def test_past_due_reminder_is_skipped(self, scheduler, timers, dispatch, weekly_event):
        two_days_before = ReminderRule(
            trigger_type=TriggerType.BEFORE_EVENT, trigger_unit=TriggerUnit.DAYS, trigger_value=2,
        )
        assert scheduler.schedule_reminder(weekly_event, two_days_before) is None
        assert timers.pending == []

        timers.advance(timedelta(days=3))
        assert dispatch.emitted == []

    def test_due_exactly_now_is_skipped(self, scheduler, timers, weekly_event):
        exactly_now = ReminderRule(
            trigger_type=TriggerType.BEFORE_EVENT, trigger_unit=TriggerUnit.DAYS, trigger_value=1,
        )
        assert scheduler.schedule_reminder(weekly_event, exactly_now) is None
        assert timers.pending == []

    def test_after_event_reminder(self, scheduler, timers, dispatch, weekly_event):
        after = ReminderRule(
            trigger_type=TriggerType.AFTER_EVENT, trigger_unit=TriggerUnit.MINUTES, trigger_value=30,
        )
        scheduler.schedule_reminder(weekly_event, after)
        timers.advance(timedelta(days=1, minutes=29))
        assert dispatch.emitted == []
        timers.advance(timedelta(minutes=1))
        assert len(dispatch.emitted) == 1

    def test_custom_date_reminder(self, scheduler, timers, dispatch, weekly_event):
        rule = ReminderRule(trigger_type=TriggerType.CUSTOM_DATE, custom_date=NOW + timedelta(hours=3))
        key = scheduler.schedule_reminder(weekly_event, rule)
        assert key == "evt-1-custom_date-2024-03-01T15:00:00.000Z"

        timers.advance(timedelta(hours=3))
        assert len(dispatch.emitted) == 1

    def test_inactive_reminder_is_not_armed(self, scheduler, timers, weekly_event):
        rule = ReminderRule(
            trigger_type=TriggerType.BEFORE_EVENT, trigger_unit=TriggerUnit.HOURS,
            trigger_value=1, active=False,
        )
        assert scheduler.schedule_reminder(weekly_event, rule) is None
        assert timers.pending == []

    def test_unknown_trigger_type_is_no_schedule(self, scheduler, timers, weekly_event):
        rule = ReminderRule(trigger_type="on_checkin", trigger_unit=TriggerUnit.HOURS, trigger_value=1)
        assert scheduler.schedule_reminder(weekly_event, rule) is None
        assert timers.pending == []

    def test_rescheduling_into_the_past_cancels_old_timer(self, scheduler, timers, dispatch, weekly_event, one_hour_before):
        scheduler.schedule_reminder(weekly_event, one_hour_before)
        moved = replace(weekly_event, start_time=NOW - timedelta(hours=1), end_time=NOW)

        assert scheduler.schedule_reminder(moved, one_hour_before) is None
        timers.advance(timedelta(days=2))
        assert dispatch.emitted == []

    def test_event_without_id_fails_fast(self, scheduler, weekly_event, one_hour_before):
        with pytest.raises(ValueError, match="id"):
            scheduler.schedule_reminder(replace(weekly_event, id=None), one_hour_before)

    def test_sink_error_does_not_escape_timer(self, scheduler, timers, dispatch, weekly_event, one_hour_before):
        def explode(event, reminder=None):
            raise RuntimeError("socket closed")

        dispatch.emit_reminder = explode
        scheduler.schedule_reminder(weekly_event, one_hour_before)
        timers.advance(timedelta(days=1))
        assert scheduler.reminder_count == 0

    def test_disabled_scheduler_arms_nothing(self, dispatch, timers, clock, weekly_event, one_hour_before):
        scheduler = EventScheduler(dispatch=dispatch, timers=timers, clock=clock, enabled=False)
        assert scheduler.schedule_reminder(weekly_event, one_hour_before) is None
        assert scheduler.schedule_recurrence(weekly_event) is None
        assert timers.pending == []

    def test_failed_arm_leaves_no_phantom_action(self, dispatch, clock, weekly_event, one_hour_before):
        class BrokenTimers(TimerFacility):
            def arm(self, delay, callback):
                raise RuntimeError("no running event loop")

            def disarm(self, handle):
                pass

        scheduler = EventScheduler(dispatch=dispatch, timers=BrokenTimers(), clock=clock)

        with pytest.raises(RuntimeError):
            scheduler.schedule_reminder(weekly_event, one_hour_before)
        with pytest.raises(RuntimeError):
            scheduler.schedule_recurrence(weekly_event)

        assert scheduler.reminder_count == 0
        assert scheduler.recurrence_count == 0
        assert scheduler.scheduled_actions() == []

    def test_failed_rearm_keeps_previous_timer(self, scheduler, timers, weekly_event, one_hour_before):
        key = scheduler.schedule_reminder(weekly_event, one_hour_before)
        original_arm = timers.arm

        def refuse(delay, callback):
            raise RuntimeError("timer facility closed")

        timers.arm = refuse
        with pytest.raises(RuntimeError):
            scheduler.schedule_reminder(weekly_event, one_hour_before)
        timers.arm = original_arm

        assert scheduler.is_reminder_armed(key)
        assert len(timers.pending) == 1

    def test_offset_out_of_range_is_rejected(self, scheduler, timers, weekly_event):
        rule = ReminderRule(
            trigger_type=TriggerType.BEFORE_EVENT, trigger_unit=TriggerUnit.DAYS, trigger_value=10 ** 6,
        )
        with pytest.raises(ValueError, match="out of range"):
            scheduler.schedule_reminder(weekly_event, rule)
        assert timers.pending == []


class TestScheduleRecurrence:
    """Recurrence timers and chain continuation"""

    def test_non_recurring_returns_none(self, scheduler, timers, weekly_event):
        assert scheduler.schedule_recurrence(replace(weekly_event, recurrence=None)) is None
        assert scheduler.schedule_recurrence(replace(weekly_event, recurrence=RecurrenceRule())) is None
        assert timers.pending == []

    def test_exhausted_rule_returns_none(self, scheduler, timers, weekly_event):
        rule = RecurrenceRule(
            type=RecurrenceType.CUSTOM, interval=1, unit=RecurrenceUnit.WEEKS,
            end_date=weekly_event.start_time + timedelta(days=3),
        )
        assert scheduler.schedule_recurrence(replace(weekly_event, recurrence=rule)) is None
        assert timers.pending == []

    def test_arms_at_next_occurrence(self, scheduler, timers, weekly_event):
        key = scheduler.schedule_recurrence(weekly_event)
        assert key == "evt-1-recurrence"
        assert timers.pending[0].due == weekly_event.start_time + timedelta(days=7)

    def test_rescheduling_replaces_timer(self, scheduler, timers, weekly_event):
        scheduler.schedule_recurrence(weekly_event)
        scheduler.schedule_recurrence(weekly_event)
        assert len(timers.pending) == 1
        assert scheduler.recurrence_count == 1

    @pytest.mark.asyncio
    async def test_weekly_chain_end_to_end(self, scheduler, timers, dispatch, weekly_event):
        result = scheduler.schedule_event(weekly_event)
        assert result.reminder_keys == ["evt-1-before_event-hours-1"]
        assert result.recurrence_key == "evt-1-recurrence"

        timers.advance(timedelta(days=8))
        await scheduler.drain()

        assert len(dispatch.emitted) == 1
        assert len(dispatch.created) == 1
        derived = dispatch.created[0]
        assert derived.start_time == weekly_event.start_time + timedelta(days=7)
        assert derived.end_time - derived.start_time == timedelta(hours=2)
        assert derived.parent_event_id == "evt-1"
        assert derived.id is None
        assert derived.responses == []
        assert derived.is_recurring is True
        assert derived.recurrence == weekly_event.recurrence

        # Chain continues from the stored occurrence
        assert scheduler.is_recurrence_armed("derived-1")
        assert not scheduler.is_recurrence_armed("evt-1")

    @pytest.mark.asyncio
    async def test_chain_keeps_going(self, scheduler, timers, dispatch, weekly_event):
        scheduler.schedule_recurrence(weekly_event)
        timers.advance(timedelta(days=1))

        for _ in range(3):
            timers.advance(timedelta(days=7))
            await scheduler.drain()

        starts = [e.start_time for e in dispatch.created]
        assert starts == [weekly_event.start_time + timedelta(weeks=n) for n in (1, 2, 3)]
        assert [e.parent_event_id for e in dispatch.created] == ["evt-1", "derived-1", "derived-2"]

    @pytest.mark.asyncio
    async def test_failed_creation_halts_chain(self, scheduler, timers, dispatch, weekly_event):
        dispatch.fail_with = "HTTP 503"
        scheduler.schedule_recurrence(weekly_event)

        timers.advance(timedelta(days=8))
        await scheduler.drain()

        assert len(dispatch.created) == 1
        assert dispatch.failures == [(weekly_event, "HTTP 503")]
        assert scheduler.recurrence_count == 0

        timers.advance(timedelta(days=60))
        await scheduler.drain()
        assert len(dispatch.created) == 1

    @pytest.mark.asyncio
    async def test_creation_exception_halts_chain(self, scheduler, timers, dispatch, weekly_event):
        dispatch.raise_with = ConnectionError("backend down")
        scheduler.schedule_recurrence(weekly_event)

        timers.advance(timedelta(days=8))
        await scheduler.drain()

        assert len(dispatch.created) == 1
        assert dispatch.failures[0][1] == "backend down"
        assert scheduler.recurrence_count == 0

    @pytest.mark.asyncio
    async def test_chain_resumes_on_explicit_reschedule(self, scheduler, timers, dispatch, weekly_event):
        dispatch.fail_with = "HTTP 500"
        scheduler.schedule_recurrence(weekly_event)
        timers.advance(timedelta(days=8))
        await scheduler.drain()

        dispatch.fail_with = None
        assert scheduler.schedule_recurrence(weekly_event) == "evt-1-recurrence"
        timers.advance(timedelta(0))
        await scheduler.drain()
        assert len(dispatch.created) == 2

    @pytest.mark.asyncio
    async def test_cancel_during_creation_stops_chain(self, scheduler, timers, dispatch, weekly_event):
        dispatch.gate = asyncio.Event()
        scheduler.schedule_recurrence(weekly_event)

        timers.advance(timedelta(days=8))
        await asyncio.sleep(0)
        scheduler.cancel_recurrence("evt-1")
        dispatch.gate.set()
        await scheduler.drain()

        assert len(dispatch.created) == 1
        assert scheduler.recurrence_count == 0
        assert dispatch.failures == []

    @pytest.mark.asyncio
    async def test_past_next_occurrence_fires_immediately(self, scheduler, timers, dispatch, weekly_event):
        old = replace(
            weekly_event,
            start_time=NOW - timedelta(days=10),
            end_time=NOW - timedelta(days=10) + timedelta(hours=2),
        )
        scheduler.schedule_recurrence(old)
        assert timers.pending[0].due == NOW

        timers.advance(timedelta(0))
        await scheduler.drain()
        assert dispatch.created[0].start_time == NOW - timedelta(days=3)

    @pytest.mark.asyncio
    async def test_recurrence_switched_off_disarms_timer(self, scheduler, timers, dispatch, weekly_event):
        scheduler.schedule_event(weekly_event)
        edited = replace(weekly_event, recurrence=RecurrenceRule(type=RecurrenceType.NONE), reminders=[])

        result = scheduler.schedule_event(edited)
        timers.advance(timedelta(days=8))
        await scheduler.drain()

        assert result.recurrence_key is None
        assert not scheduler.is_recurrence_armed("evt-1")
        assert dispatch.created == []

    def test_recurrence_removed_disarms_timer(self, scheduler, timers, weekly_event):
        scheduler.schedule_recurrence(weekly_event)
        assert scheduler.schedule_recurrence(replace(weekly_event, recurrence=None)) is None
        assert scheduler.recurrence_count == 0
        assert timers.pending == []

    @pytest.mark.asyncio
    async def test_monthly_chain_returns_to_day_31(self, scheduler, timers, dispatch):
        start = datetime(2024, 1, 31, 10, 0, tzinfo=timezone.utc)
        event = Event(
            id="evt-31", group_id="group-1", title="Rent",
            start_time=start, end_time=start + timedelta(hours=1),
            recurrence=RecurrenceRule(type=RecurrenceType.MONTHLY),
        )
        scheduler.schedule_recurrence(event)

        timers.advance(timedelta(0))
        await scheduler.drain()
        timers.advance(timedelta(days=31))
        await scheduler.drain()
        timers.advance(timedelta(days=30))
        await scheduler.drain()

        starts = [e.start_time.date().isoformat() for e in dispatch.created]
        assert starts == ["2024-02-29", "2024-03-31", "2024-04-30"]

    @pytest.mark.asyncio
    async def test_anchor_restored_when_store_drops_it(self, scheduler, timers, dispatch):
        original_create = dispatch.create_derived_event

        async def create_without_anchor(event):
            result = await original_create(event)
            stripped = replace(result.event.recurrence, anchor_day=None)
            return CreateResult(success=True, event=replace(result.event, recurrence=stripped))

        dispatch.create_derived_event = create_without_anchor
        start = datetime(2024, 1, 31, 10, 0, tzinfo=timezone.utc)
        event = Event(
            id="evt-31", group_id="group-1", start_time=start, end_time=start,
            recurrence=RecurrenceRule(type=RecurrenceType.MONTHLY),
        )
        scheduler.schedule_recurrence(event)

        timers.advance(timedelta(0))
        await scheduler.drain()

        armed = [a for a in scheduler.scheduled_actions() if a.kind == ActionKind.RECURRENCE]
        assert armed[0].due_at == datetime(2024, 3, 31, 10, 0, tzinfo=timezone.utc)

    def test_cancel_recurrence_is_idempotent(self, scheduler, timers, weekly_event):
        scheduler.schedule_recurrence(weekly_event)
        scheduler.cancel_recurrence("evt-1")
        scheduler.cancel_recurrence("evt-1")
        scheduler.cancel_recurrence("never-scheduled")
        assert timers.pending == []


class TestScheduleEvent:
    """Whole-event scheduling and cancellation"""

    def test_cancel_event_tears_everything_down(self, scheduler, timers, dispatch, weekly_event):
        scheduler.schedule_event(weekly_event)
        assert len(timers.pending) == 2

        scheduler.cancel_event(weekly_event)
        assert timers.pending == []
        assert scheduler.scheduled_actions() == []

    def test_cancel_event_covers_removed_rules(self, scheduler, timers, weekly_event):
        scheduler.schedule_event(weekly_event)
        edited = replace(weekly_event, reminders=[])

        scheduler.cancel_event(edited)
        assert timers.pending == []

    def test_cancel_never_scheduled_event(self, scheduler, weekly_event):
        scheduler.cancel_event(weekly_event)
        scheduler.cancel_event(replace(weekly_event, id=None))

    def test_cancel_event_leaves_other_events(self, scheduler, timers, weekly_event):
        other = replace(weekly_event, id="evt-2")
        scheduler.schedule_event(weekly_event)
        scheduler.schedule_event(other)

        scheduler.cancel_event(weekly_event)
        assert {a.event_id for a in scheduler.scheduled_actions()} == {"evt-2"}

    def test_scheduled_actions_snapshot(self, scheduler, weekly_event):
        scheduler.schedule_event(weekly_event)
        actions = scheduler.scheduled_actions()

        assert [a.kind for a in actions] == [ActionKind.REMINDER, ActionKind.RECURRENCE]
        assert all(a.state == ActionState.ARMED for a in actions)
        assert actions[0].to_dict()["due_at"] == "2024-03-02T11:00:00.000Z"

    def test_cancelled_action_state(self, scheduler, weekly_event, one_hour_before):
        scheduler.schedule_reminder(weekly_event, one_hour_before)
        action = scheduler.scheduled_actions()[0]
        scheduler.cancel_event(weekly_event)
        assert action.state == ActionState.CANCELLED

    def test_multiple_reminders(self, scheduler, timers, dispatch, weekly_event, one_hour_before):
        ten_minutes = ReminderRule(
            trigger_type=TriggerType.BEFORE_EVENT, trigger_unit=TriggerUnit.MINUTES, trigger_value=10,
        )
        event = replace(weekly_event, recurrence=None, reminders=[one_hour_before, ten_minutes])
        result = scheduler.schedule_event(event)

        assert len(result.reminder_keys) == 2
        assert result.recurrence_key is None

        timers.advance(timedelta(days=1))
        assert [r for _, r in dispatch.emitted] == [one_hour_before, ten_minutes]

    @pytest.mark.asyncio
    async def test_shutdown_disarms_everything(self, scheduler, timers, dispatch, weekly_event):
        scheduler.schedule_event(weekly_event)
        await scheduler.shutdown()

        timers.advance(timedelta(days=30))
        await scheduler.drain()
        assert dispatch.emitted == []
        assert dispatch.created == []


class TestAsyncioTimerFacility:

    @pytest.mark.asyncio
    async def test_fires_after_delay(self):
        timers = AsyncioTimerFacility()
        fired = []
        timers.arm(0.01, lambda: fired.append(True))
        await asyncio.sleep(0.05)
        assert fired == [True]

    @pytest.mark.asyncio
    async def test_disarm_prevents_fire(self):
        timers = AsyncioTimerFacility()
        fired = []
        handle = timers.arm(0.01, lambda: fired.append(True))
        timers.disarm(handle)
        timers.disarm(handle)
        await asyncio.sleep(0.05)
        assert fired == []

    @pytest.mark.asyncio
    async def test_scheduler_on_real_loop(self, dispatch):
        scheduler = EventScheduler(dispatch=dispatch)
        now = utc_now()
        event = Event(
            id="evt-9",
            group_id="g",
            start_time=now + timedelta(hours=1),
            end_time=now + timedelta(hours=2),
            reminders=[ReminderRule(
                trigger_type=TriggerType.CUSTOM_DATE,
                custom_date=now + timedelta(milliseconds=50),
            )],
        )
        scheduler.schedule_event(event)
        await asyncio.sleep(0.2)
        assert len(dispatch.emitted) == 1
