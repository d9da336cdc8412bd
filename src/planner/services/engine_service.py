"""
Engine Service

Main composite service that wires the scheduler to its dispatch boundary.
Singleton pattern - one instance per process.
"""
import logging
from typing import Optional

from ..config import Config
from ..notifications.event_creator import HttpEventCreator
from ..notifications.group_dispatcher import GroupDispatcher
from ..notifications.realtime import ConnectionManager
from ..storage.notification_storage import NotificationStorage
from .scheduler_service import EventScheduler

logger = logging.getLogger("planner.services.engine")

# Singleton instance
_engine_service: Optional["EngineService"] = None


class EngineService:
    """
    Composite engine service.

    Manages:
    - Local notification store and real-time connections
    - Events API client for derived occurrences
    - The event scheduler
    - Graceful shutdown
    """

    def __init__(self):
        self.notification_storage = NotificationStorage(limit=Config.NOTIFICATION_STORE_LIMIT)
        self.connection_manager = ConnectionManager()

        events_api_url = Config.get_events_api_url()
        if events_api_url:
            self.event_creator = HttpEventCreator(
                base_url=events_api_url,
                token=Config.EVENTS_API_TOKEN or None,
                timeout=Config.EVENTS_API_TIMEOUT,
            )
        else:
            self.event_creator = None
            logger.info("Recurring event creation disabled (no EVENTS_API_URL)")

        self.dispatcher = GroupDispatcher(
            storage=self.notification_storage,
            connections=self.connection_manager,
            event_creator=self.event_creator,
        )

        self.scheduler = EventScheduler(
            dispatch=self.dispatcher,
            enabled=Config.SCHEDULER_ENABLED,
        )
        if not Config.SCHEDULER_ENABLED:
            logger.info("Scheduler is disabled (SCHEDULER_ENABLED=false)")

        self._initialized = False
        logger.info("EngineService created")

    async def initialize(self):
        if self._initialized:
            logger.info("EngineService already initialized")
            return
        self._initialized = True
        logger.info("EngineService initialized successfully")

    async def close(self):
        """Stop timers and close connections"""
        logger.info("Closing EngineService...")
        await self.scheduler.shutdown()
        await self.dispatcher.close()
        self._initialized = False
        logger.info("EngineService closed")

    @property
    def is_initialized(self) -> bool:
        """Check if service is initialized"""
        return self._initialized


def get_engine_service() -> EngineService:
    """Get or create engine service singleton"""
    global _engine_service
    if _engine_service is None:
        _engine_service = EngineService()
    return _engine_service


async def init_engine_service() -> EngineService:
    """Initialize and return engine service"""
    service = get_engine_service()
    await service.initialize()
    return service


def reset_engine_service():
    """Drop the singleton (tests)"""
    global _engine_service
    _engine_service = None
