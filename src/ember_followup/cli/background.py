# src/ember_followup/cli/background.py

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
import threading
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

from ..core.jobs import PeriodicJob
from ..core.state import AppState

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


@dataclass
class BackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event
    jobs: list[PeriodicJob]

    def submit(self, coro: Coroutine[Any, Any, _T]) -> concurrent.futures.Future[_T]:
        """Run a coroutine on the background loop (from any other thread)."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal background stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def build_jobs(state: AppState) -> list[PeriodicJob]:
    settings = state.settings
    return [
        PeriodicJob(
            "past-due-sweep",
            state.sweeper.run,
            interval_seconds=float(getattr(settings, "sweep_interval_seconds", 300)),
        ),
        PeriodicJob(
            "digest-scheduler",
            state.scheduler.tick,
            interval_seconds=float(getattr(settings, "digest_interval_seconds", 60)),
        ),
    ]


async def _run_jobs(jobs: list[PeriodicJob], stop_event: asyncio.Event) -> None:
    for job in jobs:
        job.start()
    try:
        await stop_event.wait()
    finally:
        for job in jobs:
            await job.stop()


def start_jobs_in_background(state: AppState) -> BackgroundRunner | None:
    """
    Start the sweep and digest jobs in a background thread.

    Why a thread:
    - console REPL is blocking (input()).
    - the jobs are async and want their own event loop.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}
    jobs = build_jobs(state)

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_jobs(jobs, stop_event))
        finally:
            with contextlib.suppress(Exception):
                loop.stop()
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="ember-jobs", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Background thread did not initialize properly.")
        return None

    logger.info("Background jobs started: %s", ", ".join(j.name for j in jobs))
    return BackgroundRunner(thread=t, loop=loop, stop_event=stop_event, jobs=jobs)
