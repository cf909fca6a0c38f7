# tests/test_email.py

from __future__ import annotations

from email import message_from_bytes
from pathlib import Path

import pytest

from ember_followup.core.models import OutboundEmail, SmtpSettings
from ember_followup.notifications import email as email_module
from ember_followup.notifications.email import DEFAULT_SENDER, SmtpEmailSender, build_message


class _FakeSMTP:
    instances: list["_FakeSMTP"] = []

    def __init__(self, host: str, port: int, timeout: float = 0, context=None) -> None:
        self.host = host
        self.port = port
        self.logged_in: tuple[str, str] | None = None
        self.started_tls = False
        self.sent: list = []
        _FakeSMTP.instances.append(self)

    def __enter__(self) -> "_FakeSMTP":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def ehlo(self) -> None:
        return None

    def has_extn(self, name: str) -> bool:
        return name == "starttls"

    def starttls(self, context=None) -> None:
        self.started_tls = True

    def login(self, user: str, password: str) -> None:
        self.logged_in = (user, password)

    def send_message(self, msg) -> None:
        self.sent.append(msg)


@pytest.fixture()
def fake_smtp(monkeypatch: pytest.MonkeyPatch) -> type[_FakeSMTP]:
    _FakeSMTP.instances = []
    monkeypatch.setattr(email_module.smtplib, "SMTP", _FakeSMTP)
    monkeypatch.setattr(email_module.smtplib, "SMTP_SSL", _FakeSMTP)
    return _FakeSMTP


def _mail() -> OutboundEmail:
    return OutboundEmail(
        to="sarah@gracecity.test",
        subject="Grace City past due assignments",
        html="<p>2 assignments are past due</p>",
        text="2 assignments are past due",
    )


def test_message_headers() -> None:
    msg = build_message(_mail())
    assert msg["From"] == DEFAULT_SENDER
    assert msg["To"] == "sarah@gracecity.test"

    smtp = SmtpSettings(host="smtp.grace.test", from_name="Grace City", from_email="care@grace.test")
    assert build_message(_mail(), smtp)["From"] == "Grace City <care@grace.test>"


def test_without_smtp_only_writes_outbox(tmp_path: Path, fake_smtp) -> None:
    sender = SmtpEmailSender(tmp_path / "outbox")
    path = sender.send(_mail())

    assert path is not None and path.parent == sender.outbox_dir
    parsed = message_from_bytes(path.read_bytes())
    assert parsed["Subject"] == "Grace City past due assignments"
    assert fake_smtp.instances == []


def test_starttls_delivery_with_login(tmp_path: Path, fake_smtp) -> None:
    smtp = SmtpSettings(host="smtp.grace.test", port=587, user="mailer", password="s3cret")
    SmtpEmailSender(tmp_path / "outbox").send(_mail(), smtp)

    [client] = fake_smtp.instances
    assert (client.host, client.port) == ("smtp.grace.test", 587)
    assert client.started_tls is True
    assert client.logged_in == ("mailer", "s3cret")
    assert len(client.sent) == 1


def test_transport_errors_propagate(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("no server")

    monkeypatch.setattr(email_module.smtplib, "SMTP", refuse)
    sender = SmtpEmailSender(tmp_path / "outbox")
    with pytest.raises(ConnectionRefusedError):
        sender.send(_mail(), SmtpSettings(host="smtp.grace.test"))
