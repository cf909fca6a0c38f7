# src/ember_followup/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the past-due sweep and digest scheduler in a background thread,
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.background import start_jobs_in_background
from ..cli.bootstrap import create_initial_state
from ..cli.console import run_console_loop
from ..config import get_settings
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _shutdown(state) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        session = getattr(state, "session", None)
        if session is not None:
            state.store.logout(session.token)
        state.store.sessions.clear()
    except Exception:
        logger.debug("Session cleanup failed.", exc_info=True)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/ember")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "ember"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)
    state.runner = start_jobs_in_background(state)

    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError, AttributeError):
        # Some platforms may not support SIGTERM, etc.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running background jobs only. Press Ctrl+C to stop.")
            stop_main.wait()

    finally:
        if state.runner is not None:
            state.runner.stop()
            state.runner.join(timeout=10.0)

        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
