"""
Planner API Routes

FastAPI route handlers for the scheduler service.
"""
from .health import router as health_router
from .scheduler import router as scheduler_router
from .notifications import router as notifications_router, ws_router as notifications_ws_router

__all__ = [
    'health_router',
    'scheduler_router',
    'notifications_router',
    'notifications_ws_router',
]
