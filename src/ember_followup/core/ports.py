# src/ember_followup/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the email transport and the notification surface swappable and
makes testing easier.
"""

from pathlib import Path
from typing import Protocol

from .models import NotificationPayload, OutboundEmail, SmtpSettings


class EmailSender(Protocol):
    """
    Outbound email capability.

    Blocking; callers run it off the event loop and swallow its failures.
    Returns where a copy of the message was stored, if anywhere.
    """

    def send(self, message: OutboundEmail, smtp: SmtpSettings | None = None) -> Path | None: ...


class Notifier(Protocol):
    """UI-side port: how background jobs surface events (toasts, console lines)."""

    def notify(self, payload: NotificationPayload) -> None: ...
