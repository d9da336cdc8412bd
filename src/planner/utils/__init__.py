"""
Planner Utilities
"""
from .datetime_utils import utc_now, ensure_utc, parse_instant, to_iso

__all__ = [
    'utc_now',
    'ensure_utc',
    'parse_instant',
    'to_iso',
]
