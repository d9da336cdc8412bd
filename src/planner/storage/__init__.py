"""
Planner Storage Layer

In-memory store for emitted reminder notifications.
"""
from .notification_storage import NotificationStorage

__all__ = [
    'NotificationStorage',
]
