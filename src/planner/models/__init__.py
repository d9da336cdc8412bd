"""
Planner Data Models

Domain models for event scheduling and reminders.
"""
from .recurrence import RecurrenceRule, RecurrenceType, RecurrenceUnit
from .reminder import ReminderRule, TriggerType, TriggerUnit
from .event import Event
from .notification import Notification, build_reminder_notification
from .scheduled_action import ScheduledAction, ActionKind, ActionState

__all__ = [
    'RecurrenceRule',
    'RecurrenceType',
    'RecurrenceUnit',
    'ReminderRule',
    'TriggerType',
    'TriggerUnit',
    'Event',
    'Notification',
    'build_reminder_notification',
    'ScheduledAction',
    'ActionKind',
    'ActionState',
]
