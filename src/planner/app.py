"""
Planner Scheduler Application

FastAPI application hosting the event reminder and recurrence scheduler.
The engine is created on startup and its timers are torn down on shutdown.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Config
from .services.engine_service import get_engine_service, init_engine_service
from .routes import (
    health_router,
    scheduler_router,
    notifications_router,
    notifications_ws_router,
)

logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("planner.app")

# Request logs of the events API client are noise at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Start the engine, then stop it on shutdown.

    Shutdown disarms every pending reminder and recurrence timer and waits
    for occurrences that are being created.
    """
    logger.info(
        f"Starting planner scheduler (scheduler_enabled={Config.SCHEDULER_ENABLED}, "
        f"events_api={Config.get_events_api_url() or 'not configured'})"
    )
    engine = await init_engine_service()

    yield

    logger.info(
        f"Stopping planner scheduler with {engine.scheduler.reminder_count} reminder(s) "
        f"and {engine.scheduler.recurrence_count} recurrence(s) armed"
    )
    try:
        await get_engine_service().close()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


app = FastAPI(
    title="Planner Scheduler API",
    description="Event reminders and recurring occurrences for group planning",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValueError)
async def invalid_schedule_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Scheduling inputs the calculator rejects are client errors"""
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


app.include_router(health_router, prefix="/api/v1")
app.include_router(scheduler_router, prefix="/api/v1")
app.include_router(notifications_router, prefix="/api/v1")
app.include_router(notifications_ws_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=Config.API_HOST, port=Config.API_PORT)
