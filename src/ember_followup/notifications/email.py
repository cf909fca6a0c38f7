# src/ember_followup/notifications/email.py

from __future__ import annotations

import logging
import smtplib
import ssl
import time
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from pathlib import Path

from ..core.models import OutboundEmail, SmtpSettings

logger = logging.getLogger(__name__)

DEFAULT_SENDER = "alerts@ember.local"


def build_message(message: OutboundEmail, smtp: SmtpSettings | None = None) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = formataddr((smtp.from_name, smtp.from_email)) if smtp else DEFAULT_SENDER
    msg["To"] = message.to
    msg["Subject"] = message.subject
    msg["Message-ID"] = make_msgid(domain="ember.local")
    msg.set_content(message.text or message.html)
    msg.add_alternative(message.html, subtype="html")
    return msg


class SmtpEmailSender:
    """
    Blocking email transport.

    Every message is rendered to an .eml file in the outbox directory. When the
    church has SMTP configured the message is also delivered through smtplib;
    transport errors propagate to the caller (AlertDispatcher swallows them).
    """

    def __init__(self, outbox_dir: str | Path, *, timeout: float = 10.0) -> None:
        self._outbox = Path(outbox_dir)
        self._timeout = float(timeout)

    @property
    def outbox_dir(self) -> Path:
        return self._outbox

    def send(self, message: OutboundEmail, smtp: SmtpSettings | None = None) -> Path | None:
        msg = build_message(message, smtp)
        if smtp is not None and smtp.host:
            self._deliver(msg, smtp)
        path = self._write_outbox(msg)
        logger.info("Email queued to=%s subject=%r outbox=%s", message.to, message.subject, path)
        return path

    def _deliver(self, msg: EmailMessage, smtp: SmtpSettings) -> None:
        if smtp.secure:
            with smtplib.SMTP_SSL(
                smtp.host, smtp.port, timeout=self._timeout, context=ssl.create_default_context()
            ) as client:
                if smtp.user:
                    client.login(smtp.user, smtp.password or "")
                client.send_message(msg)
            return

        with smtplib.SMTP(smtp.host, smtp.port, timeout=self._timeout) as client:
            client.ehlo()
            if client.has_extn("starttls"):
                client.starttls(context=ssl.create_default_context())
                client.ehlo()
            if smtp.user:
                client.login(smtp.user, smtp.password or "")
            client.send_message(msg)

    def _write_outbox(self, msg: EmailMessage) -> Path:
        self._outbox.mkdir(parents=True, exist_ok=True)
        path = self._outbox / f"mail-{int(time.time() * 1000)}.eml"
        while path.exists():
            path = path.with_name(f"{path.stem}-1{path.suffix}")
        path.write_bytes(msg.as_bytes())
        return path
