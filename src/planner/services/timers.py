"""
Timer Facility

Single-shot deferred execution with cancellation.
The scheduler only talks to this interface, so tests can drive time by hand.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

logger = logging.getLogger("planner.services.timers")


class TimerFacility(ABC):
    """Abstract host timer"""

    @abstractmethod
    def arm(self, delay: float, callback: Callable[[], None]) -> Any:
        """
        Run callback once after delay seconds.

        Returns:
            Opaque handle accepted by disarm()
        """
        ...

    @abstractmethod
    def disarm(self, handle: Any) -> None:
        """Cancel a pending timer. Unknown or already-fired handles are ignored."""
        ...


class AsyncioTimerFacility(TimerFacility):
    """Timers on the asyncio event loop (loop.call_later, monotonic clock)"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def arm(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._get_loop().call_later(max(0.0, delay), callback)

    def disarm(self, handle: Any) -> None:
        if handle is not None:
            handle.cancel()
