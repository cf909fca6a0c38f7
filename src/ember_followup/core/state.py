# src/ember_followup/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .models import SessionInfo

if TYPE_CHECKING:
    from ..cli.background import BackgroundRunner
    from ..notifications.alerts import AlertDispatcher
    from ..reports.scheduler import DigestScheduler
    from ..store.data_store import DataStore
    from ..tasks.sweeper import PastDueSweeper


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: object

    store: DataStore
    alerts: AlertDispatcher
    sweeper: PastDueSweeper
    scheduler: DigestScheduler

    # Console session (one signed-in user per process).
    session: SessionInfo | None = None
    runner: BackgroundRunner | None = None

    lock: threading.RLock = field(default_factory=threading.RLock)

    @property
    def church_id(self) -> str | None:
        return self.session.church.id if self.session else None

    @property
    def user_id(self) -> str | None:
        return self.session.user.id if self.session else None
