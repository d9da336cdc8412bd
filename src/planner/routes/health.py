"""
Health Routes

Service status with the scheduler's armed timer counts.
"""
from fastapi import APIRouter

from ..config import Config
from ..services.engine_service import get_engine_service
from ..utils.datetime_utils import to_iso, utc_now

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    """Scheduler status: enabled flag, armed timers, next due action"""
    scheduler = get_engine_service().scheduler
    actions = scheduler.scheduled_actions()
    return {
        "status": "healthy",
        "service": "planner-scheduler",
        "scheduler_enabled": scheduler.enabled,
        "events_api_configured": bool(Config.get_events_api_url()),
        "armed_reminders": scheduler.reminder_count,
        "armed_recurrences": scheduler.recurrence_count,
        "next_due_at": to_iso(actions[0].due_at) if actions else None,
        "timestamp": to_iso(utc_now()),
    }


@router.get("/ready")
async def readiness_check():
    """Ready once the engine has started; used by orchestrator probes"""
    engine = get_engine_service()
    return {"ready": engine.is_initialized}
