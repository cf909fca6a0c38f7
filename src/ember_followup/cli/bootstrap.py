# src/ember_followup/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the store, alert fan-out and background job bodies into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import EmailSender, Notifier
from ..core.sessions import SessionStore
from ..core.state import AppState
from ..notifications.alerts import AlertDispatcher, LoggingNotifier
from ..notifications.email import SmtpEmailSender
from ..reports.scheduler import DigestScheduler
from ..store.data_store import DataStore
from ..tasks.sweeper import PastDueSweeper

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    for sub in ("uploads", "reports", "sync", "mail-outbox"):
        (settings.data_dir / sub).mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings=None,
    email_sender: EmailSender | None = None,
    notifier: Notifier | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = DataStore(
        settings.data_dir,
        filename=getattr(settings, "db_filename", "ember-db.json"),
        sessions=SessionStore(),
        seed_demo=bool(getattr(settings, "seed_demo_data", True)),
        bcrypt_rounds=int(getattr(settings, "bcrypt_rounds", 10)),
        week_start=int(getattr(settings, "week_start", 0)),
    )

    if email_sender is None:
        email_sender = SmtpEmailSender(
            settings.data_dir / "mail-outbox",
            timeout=float(getattr(settings, "smtp_timeout_seconds", 10.0)),
        )
    alerts = AlertDispatcher(store, email_sender, notifier or LoggingNotifier())

    state = AppState(
        settings=settings,
        store=store,
        alerts=alerts,
        sweeper=PastDueSweeper(store, alerts),
        scheduler=DigestScheduler(
            store,
            alerts,
            tolerance_minutes=float(getattr(settings, "digest_tolerance_minutes", 5)),
        ),
    )
    logger.info("State ready data_dir=%s", settings.data_dir)
    return state
