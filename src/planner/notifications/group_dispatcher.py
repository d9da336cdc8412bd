"""
Group Dispatcher

Dispatch boundary for the planner service: reminders go to the local
notification store and are pushed to the group's real-time channel;
derived occurrences are persisted through the events API.
"""
import asyncio
import logging
from typing import Optional, Set

from ..models.event import Event
from ..models.notification import Notification, build_reminder_notification
from ..models.reminder import ReminderRule
from ..storage.notification_storage import NotificationStorage
from .base import CreateResult, DispatchBoundary
from .event_creator import HttpEventCreator
from .realtime import ConnectionManager

logger = logging.getLogger("planner.notifications.group_dispatcher")


class GroupDispatcher(DispatchBoundary):
    """
    Notification and persistence sink used by the scheduler.

    1. Builds the reminder notification and stores it locally
    2. Broadcasts it on the group's WebSocket channel (in the background)
    3. Creates derived occurrences via HttpEventCreator, if configured
    """

    def __init__(
        self,
        storage: NotificationStorage,
        connections: Optional[ConnectionManager] = None,
        event_creator: Optional[HttpEventCreator] = None,
    ):
        self.storage = storage
        self.connections = connections
        self.event_creator = event_creator
        self._broadcasts: Set[asyncio.Task] = set()

    def emit_reminder(self, event: Event, reminder: Optional[ReminderRule] = None) -> None:
        notification = build_reminder_notification(event, reminder)
        self.storage.add(notification)
        logger.info(f"Reminder for event {event.id}: {notification.message}")

        if self.connections is not None and event.group_id:
            self._schedule_broadcast(event.group_id, notification)

    def _schedule_broadcast(self, group_id: str, notification: Notification):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                f"No running event loop, notification {notification.id} stored but not pushed"
            )
            return
        task = loop.create_task(self._broadcast(group_id, notification))
        self._broadcasts.add(task)
        task.add_done_callback(self._broadcasts.discard)

    async def _broadcast(self, group_id: str, notification: Notification):
        try:
            delivered = await self.connections.broadcast(
                group_id, {"event": "notification", "notification": notification.to_dict()}
            )
            logger.debug(f"Notification {notification.id} pushed to {delivered} client(s)")
        except Exception as e:
            logger.error(f"Failed to push notification {notification.id}: {e}")

    async def create_derived_event(self, event: Event) -> CreateResult:
        if self.event_creator is None:
            return CreateResult(success=False, error="Events API not configured (EVENTS_API_URL)")
        return await self.event_creator.create(event)

    async def close(self):
        """Wait for pending pushes and close the HTTP client"""
        if self._broadcasts:
            await asyncio.gather(*self._broadcasts, return_exceptions=True)
        if self.event_creator is not None:
            await self.event_creator.close()
