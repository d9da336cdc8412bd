"""
Planner Dispatch Boundary

Reminder delivery and derived-event persistence: local store,
WebSocket channel, events API.
"""
from .base import CreateResult, DispatchBoundary
from .event_creator import HttpEventCreator
from .realtime import ConnectionManager
from .group_dispatcher import GroupDispatcher

__all__ = [
    'CreateResult',
    'DispatchBoundary',
    'HttpEventCreator',
    'ConnectionManager',
    'GroupDispatcher',
]
