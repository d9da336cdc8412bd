"""
Planner Scheduler Configuration

Configuration class for the group planner event scheduler.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from project root
_env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_env_path)


class Config:
    """Configuration class for the scheduler service"""

    # Base paths
    BASE_DIR = Path(__file__).parent.parent.parent

    # API settings
    API_HOST = os.getenv("API_HOST", "127.0.0.1")
    API_PORT = int(os.getenv("API_PORT", "8200"))

    # Events API (persists derived occurrences)
    EVENTS_API_URL = os.getenv("EVENTS_API_URL", "")          # e.g. http://localhost:5000
    EVENTS_API_TOKEN = os.getenv("EVENTS_API_TOKEN", "")
    EVENTS_API_TIMEOUT = float(os.getenv("EVENTS_API_TIMEOUT", "30"))

    # Scheduler settings
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"

    # Local notification store
    NOTIFICATION_STORE_LIMIT = int(os.getenv("NOTIFICATION_STORE_LIMIT", "500"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    @staticmethod
    def get_events_api_url() -> str:
        """Get events API base URL without trailing slash"""
        return Config.EVENTS_API_URL.rstrip("/")
