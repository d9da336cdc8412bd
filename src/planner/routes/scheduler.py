"""
Scheduler Routes

Endpoints for arming and cancelling event reminders and recurrences.
Events are posted in the events API JSON shape.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel, Field

from ..models.event import Event
from ..models.recurrence import RecurrenceRule
from ..services.engine_service import get_engine_service
from ..services.occurrence_calculator import occurrences
from ..utils.datetime_utils import parse_instant, to_iso

logger = logging.getLogger("planner.routes.scheduler")
router = APIRouter(prefix="/scheduler", tags=["scheduler"])


# ============================================
# Request/Response Models
# ============================================

class ScheduleResponse(BaseModel):
    """Keys armed for an event"""
    event_id: str
    reminder_keys: List[str]
    recurrence_key: Optional[str]


class ActionResponse(BaseModel):
    """Armed deferred action"""
    key: str
    kind: str
    event_id: Optional[str]
    due_at: str
    state: str


class PreviewRequest(BaseModel):
    """Upcoming occurrences of a recurrence rule"""
    start_time: str
    recurrence: Dict[str, Any]
    limit: int = Field(default=10, ge=0, le=366)


class PreviewResponse(BaseModel):
    occurrences: List[str]


def _parse_event(payload: Dict[str, Any]) -> Event:
    try:
        event = Event.from_dict(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not event.id:
        raise HTTPException(status_code=400, detail="Event _id is required")
    return event


# ============================================
# Routes
# ============================================

@router.post("/events", response_model=ScheduleResponse)
async def schedule_event(payload: Dict[str, Any] = Body(...)):
    """Arm reminders and recurrence for an event (replaces existing timers)"""
    event = _parse_event(payload)
    engine = get_engine_service()

    try:
        result = engine.scheduler.schedule_event(event)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(
        f"Scheduled event {event.id}: {len(result.reminder_keys)} reminder(s), "
        f"recurrence={result.recurrence_key}"
    )
    return ScheduleResponse(event_id=event.id, **result.to_dict())


@router.post("/events/cancel")
async def cancel_event(payload: Dict[str, Any] = Body(...)):
    """Cancel every armed action of an event"""
    event = _parse_event(payload)
    engine = get_engine_service()
    engine.scheduler.cancel_event(event)
    return {"success": True, "message": "Event timers cancelled"}


@router.get("/actions", response_model=List[ActionResponse])
async def list_actions():
    """List armed actions ordered by due time"""
    engine = get_engine_service()
    return [ActionResponse(**a.to_dict()) for a in engine.scheduler.scheduled_actions()]


@router.post("/preview", response_model=PreviewResponse)
async def preview_occurrences(request: PreviewRequest):
    """Compute upcoming occurrences without scheduling anything"""
    try:
        start_time = parse_instant(request.start_time, "start_time")
        rule = RecurrenceRule.from_dict(request.recurrence)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if start_time is None:
        raise HTTPException(status_code=400, detail="start_time is required")

    try:
        upcoming = [to_iso(dt) for dt in occurrences(start_time, rule, request.limit)]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PreviewResponse(occurrences=upcoming)
