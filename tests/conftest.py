# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from ember_followup.cli.bootstrap import create_initial_state
from ember_followup.core.models import Contact, ContactInput, SessionInfo
from ember_followup.core.state import AppState
from ember_followup.notifications.alerts import AlertDispatcher
from ember_followup.store.data_store import DataStore

from .fakes import FakeClock, FakeEmailSender, FakeNotifier, local


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and the store.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="ember-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        db_filename="ember-db.json",
        seed_demo_data=False,
        # Lowest cost bcrypt accepts; keeps signup/login fast.
        bcrypt_rounds=4,
        week_start=0,
        sweep_interval_seconds=0.05,
        digest_interval_seconds=0.05,
        digest_tolerance_minutes=5,
        smtp_timeout_seconds=1,
        console_enabled=False,
    )


@pytest.fixture()
def clock() -> FakeClock:
    # Wednesday, mid-day.
    return FakeClock(local(2024, 6, 5, 12, 0))


@pytest.fixture()
def store(settings: SimpleNamespace, clock: FakeClock) -> DataStore:
    return DataStore(
        settings.data_dir,
        filename=settings.db_filename,
        clock=clock,
        seed_demo=False,
        bcrypt_rounds=settings.bcrypt_rounds,
        week_start=settings.week_start,
    )


@pytest.fixture()
def director(store: DataStore) -> SessionInfo:
    """Session of the director of a freshly signed-up church."""
    return store.signup(
        church_name="Grace City",
        name="Sarah Summers",
        email="sarah@gracecity.test",
        password="director123",
    )


@pytest.fixture()
def contact(store: DataStore, director: SessionInfo) -> Contact:
    return store.create_contact(ContactInput(church_id=director.church.id, display_name="Jasmine Patel"))


@pytest.fixture()
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def alerts(
    store: DataStore, email_sender: FakeEmailSender, notifier: FakeNotifier, clock: FakeClock
) -> AlertDispatcher:
    return AlertDispatcher(store, email_sender, notifier, clock=clock)


@pytest.fixture()
def state(settings: SimpleNamespace, email_sender: FakeEmailSender, notifier: FakeNotifier) -> AppState:
    """Fully wired application state (real clock) with fake outbound channels."""
    return create_initial_state(settings=settings, email_sender=email_sender, notifier=notifier)
