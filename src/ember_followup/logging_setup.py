# src/ember_followup/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILENAME = "ember.log"

_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _PromptFilter(logging.Filter):
    """
    Decides what reaches the terminal while the ember> prompt is open.

    Request-driven records from the store and the commands pass through.
    The sweeper and digest scheduler tick on a background thread, so only
    their warnings are shown. Library chatter and captured warnings need
    ERROR or worse.
    """

    QUIET_LOGGERS = (
        "ember_followup.core.jobs",
        "ember_followup.reports.scheduler",
        "ember_followup.tasks.sweeper",
    )

    def filter(self, record: logging.LogRecord) -> bool:
        if not record.name.startswith("ember_followup."):
            # Includes "py.warnings".
            return record.levelno >= logging.ERROR
        if record.name.startswith(self.QUIET_LOGGERS):
            return record.levelno >= logging.WARNING
        return True


def setup_logging(
    *,
    log_dir: str | Path = ".local/ember",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Route every record to stderr (filtered) and to ``<log_dir>/ember.log``.

    Replaces whatever handlers the root logger already had, so calling it
    twice does not double the output. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILENAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(formatter)
    console.addFilter(_PromptFilter())
    root.addHandler(console)

    # The file keeps the background jobs' INFO lines the console hides.
    logfile = logging.FileHandler(str(log_file), encoding="utf-8")
    logfile.setLevel(file_level)
    logfile.setFormatter(formatter)
    root.addHandler(logfile)

    logging.captureWarnings(True)
    return log_file
