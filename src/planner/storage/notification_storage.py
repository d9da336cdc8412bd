"""
Notification Storage

In-process local store of notifications, newest first.
Bounded: the oldest entries are evicted once the limit is reached.
"""
import logging
from collections import deque
from typing import Deque, List, Optional

from ..models.notification import Notification

logger = logging.getLogger("planner.storage.notifications")


class NotificationStorage:
    """Local notification store"""

    def __init__(self, limit: int = 500):
        if limit < 1:
            raise ValueError(f"Notification store limit must be positive, got {limit}")
        self.limit = limit
        self._items: Deque[Notification] = deque(maxlen=limit)

    def add(self, notification: Notification) -> Notification:
        """Store a notification"""
        self._items.appendleft(notification)
        return notification

    def get_by_id(self, notification_id: str) -> Optional[Notification]:
        for item in self._items:
            if item.id == notification_id:
                return item
        return None

    def list(self, group_id: Optional[str] = None, limit: int = 50) -> List[Notification]:
        """List notifications, optionally for one group"""
        result = []
        for item in self._items:
            if group_id is not None and item.group_id != group_id:
                continue
            result.append(item)
            if len(result) >= limit:
                break
        return result

    def mark_read(self, notification_id: str) -> Optional[Notification]:
        """Mark notification as read"""
        item = self.get_by_id(notification_id)
        if item is not None:
            item.read = True
        return item

    def unread_count(self, group_id: Optional[str] = None) -> int:
        return sum(
            1 for item in self._items
            if not item.read and (group_id is None or item.group_id == group_id)
        )

    def clear(self):
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
