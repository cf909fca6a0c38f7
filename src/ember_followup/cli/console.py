# src/ember_followup/cli/console.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..core.state import AppState
from .commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


_SECRET_COMMANDS = ("/login", "/signup", "/users add")


def _masked(line: str) -> str:
    """Don't echo passwords back into the terminal scrollback."""
    for prefix in _SECRET_COMMANDS:
        if line.lower().startswith(prefix):
            return f"{prefix} ***"
    return line


def _prompt(state: AppState) -> str:
    session = state.session
    return f"{session.church.name} > " if session else "ember > "


def run_console_loop(state: AppState) -> None:
    logger.info("Console started.")
    _print_ts("[CONSOLE] Use /help for commands, /login or /signup to begin, /exit to quit.\n")

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (e.g., sweep)
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            prompt = _prompt(state)
            user_input = input(prompt).strip()
            _rewrite_prev_line(f"[{_ts_local()}] {prompt}{_masked(user_input)}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            with state.lock:
                response = command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            response = "Commands start with '/'. Use /help to list them."
        print(f"[{_ts_local()}] {response}")

    logger.info("Console finished.")
