"""
Planner Services

Scheduling logic for the group planner.
"""
from .engine_service import EngineService
from .scheduler_service import EventScheduler, ScheduleResult
from .timers import TimerFacility, AsyncioTimerFacility
from .occurrence_calculator import next_occurrence, occurrences, reminder_due_time

__all__ = [
    'EngineService',
    'EventScheduler',
    'ScheduleResult',
    'TimerFacility',
    'AsyncioTimerFacility',
    'next_occurrence',
    'occurrences',
    'reminder_due_time',
]
