"""
Concurrency utilities for the otto agent.
Provides the cancellation primitive shared between a running loop and its caller.
"""
from __future__ import annotations

import asyncio
import logging
import threading

logger = logging.getLogger(__name__)


class CancellationToken:
    """Lock-guarded cancel flag passed explicitly into a control loop.

    ``cancel()`` may be called from any thread or task; the loop polls
    ``cancelled`` at iteration boundaries and after every suspension point.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False

    def cancel(self) -> None:
        with self._lock:
            if not self._cancelled:
                logger.info("Cancellation requested")
            self._cancelled = True

    def reset(self) -> None:
        with self._lock:
            self._cancelled = False

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled


async def settle(seconds: float) -> None:
    """Fixed pause letting the UI settle between actions."""
    if seconds > 0:
        await asyncio.sleep(seconds)
