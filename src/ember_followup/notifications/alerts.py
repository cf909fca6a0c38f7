# src/ember_followup/notifications/alerts.py

from __future__ import annotations

"""
Best-effort alert fan-out.

State changes are authoritative; everything here happens after the fact and
never raises to the caller. Emails run in a worker thread so a slow SMTP
server cannot stall the event loop.
"""

import asyncio
import html
import logging
from collections import defaultdict
from collections.abc import Iterable

from ..core.clock import Clock, to_iso, utc_now
from ..core.models import (
    Church,
    FollowUpTask,
    NotificationPayload,
    OutboundEmail,
    TaskStatus,
    UserAccount,
)
from ..core.ports import EmailSender, Notifier
from ..store.data_store import DataStore

logger = logging.getLogger(__name__)


class LoggingNotifier:
    """Notifier used when no UI is attached: notifications end up in the log."""

    def notify(self, payload: NotificationPayload) -> None:
        level = logging.WARNING if payload.severity == "warning" else logging.INFO
        logger.log(level, "[%s] %s", payload.title, payload.message)


class AlertDispatcher:
    def __init__(
        self,
        store: DataStore,
        email_sender: EmailSender,
        notifier: Notifier,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.email_sender = email_sender
        self.notifier = notifier
        self._clock = clock

    def emit(
        self,
        title: str,
        message: str,
        *,
        severity: str = "info",
        kind: str | None = None,
        task_id: str | None = None,
        contact_id: str | None = None,
    ) -> None:
        payload = NotificationPayload(
            title=title,
            message=message,
            severity=severity,
            timestamp=to_iso(self._clock()),
            kind=kind,
            task_id=task_id,
            contact_id=contact_id,
        )
        try:
            self.notifier.notify(payload)
        except Exception:
            logger.exception("Notifier failed title=%r", title)

    async def send_email(self, church: Church, to: str, subject: str, summary: str) -> bool:
        """Send a plain summary email. Returns False (and logs) on any failure."""
        message = OutboundEmail(
            to=to,
            subject=subject,
            html="<p>" + html.escape(summary).replace("\n", "<br>") + "</p>",
            text=summary,
        )
        try:
            await asyncio.to_thread(self.email_sender.send, message, church.smtp)
        except Exception:
            logger.exception("Email to %s failed subject=%r", to, subject)
            return False
        return True

    def email_recipient(self, church: Church | None) -> UserAccount | None:
        """The director, when the church wants email alerts."""
        if church is None or not church.email_alerts:
            return None
        return self.store.find_director(church.id)

    async def task_updated(self, task: FollowUpTask) -> None:
        try:
            await self._task_updated(task)
        except Exception:
            logger.exception("Task alerts failed task=%s", task.id)

    async def _task_updated(self, task: FollowUpTask) -> None:
        church = self.store.find_church(task.church_id)
        if church is None:
            return
        contact = self.store.find_contact(task.contact_id, task.church_id)
        done = task.status == TaskStatus.COMPLETED

        if church.audible_alerts:
            self.emit(
                "Assignment completed" if done else "Assignment updated",
                f"{contact.display_name} assignment {task.status.value}" if contact else "Assignment updated",
                severity="success" if done else "warning",
                kind="assignment",
                task_id=task.id,
                contact_id=contact.id if contact else None,
            )

        director = self.email_recipient(church)
        if director is not None:
            name = contact.display_name if contact else "contact"
            outcome = "completed" if done else task.status.value
            await self.send_email(
                church,
                director.email,
                f"{church.name} assignment update",
                f"Assignment for {name} was {outcome}.",
            )

    async def past_due(self, tasks: Iterable[FollowUpTask]) -> None:
        """One notification (and optionally one email) per church."""
        grouped: dict[str, list[FollowUpTask]] = defaultdict(list)
        for task in tasks:
            grouped[task.church_id].append(task)

        for church_id, church_tasks in grouped.items():
            try:
                church = self.store.find_church(church_id)
                names = ", ".join(self._contact_name(t) for t in church_tasks)
                self.emit(
                    "Past Due Alert",
                    f"{len(church_tasks)} follow-up task(s) past due: {names}",
                    severity="warning",
                    kind="assignment",
                )
                director = self.email_recipient(church)
                if church is not None and director is not None:
                    await self.send_email(
                        church,
                        director.email,
                        f"{church.name} past due assignments",
                        f"{len(church_tasks)} assignments are past due: {names}",
                    )
            except Exception:
                logger.exception("Past-due alerts failed church=%s", church_id)

    def _contact_name(self, task: FollowUpTask) -> str:
        contact = self.store.find_contact(task.contact_id, task.church_id)
        return contact.display_name if contact else "Unknown contact"
