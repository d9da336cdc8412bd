"""
Planner Scheduler Runner

Entry point for running the scheduler service.
"""
import logging
import os

import uvicorn

from .config import Config

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("planner")


def run():
    """Run the scheduler service"""
    host = Config.API_HOST
    port = Config.API_PORT

    logger.info(f"Starting planner scheduler on {host}:{port}")

    # Single worker: timers live in process memory
    uvicorn.run(
        "planner.app:app",
        host=host,
        port=port,
        reload=os.getenv("DEBUG", "false").lower() == "true"
    )


if __name__ == "__main__":
    run()
