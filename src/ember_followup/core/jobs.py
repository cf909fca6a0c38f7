# src/ember_followup/core/jobs.py

from __future__ import annotations

"""
Periodic background jobs.

A job owns one asyncio task that runs its body every `interval_seconds` for the
life of the process. Ticks never overlap: if a tick is still running when the
next one is due (or run_once() is called concurrently), the extra tick is skipped.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

JobBody = Callable[[], Awaitable[object]]


class PeriodicJob:
    def __init__(self, name: str, body: JobBody, *, interval_seconds: float) -> None:
        self.name = name
        self._body = body
        self._interval = max(0.01, float(interval_seconds))
        self._task: asyncio.Task[None] | None = None
        self._running = asyncio.Lock()
        self.runs = 0
        self.skipped = 0

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop. Calling it twice is a no-op."""
        if self.started:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=f"job:{self.name}")
        logger.info("Job %s started interval=%.1fs", self.name, self._interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish. Safe to call when not started."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Job %s stopped", self.name)

    async def run_once(self) -> bool:
        """
        Execute the body once unless a run is already in flight.

        Returns False when the tick was skipped. Body errors are logged, not raised.
        """
        if self._running.locked():
            self.skipped += 1
            logger.debug("Job %s tick skipped (previous run still active)", self.name)
            return False

        async with self._running:
            try:
                await self._body()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Job %s failed", self.name)
            finally:
                self.runs += 1
        return True

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self._interval)
