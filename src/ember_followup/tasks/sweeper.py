# src/ember_followup/tasks/sweeper.py

from __future__ import annotations

import logging
from datetime import datetime

from ..core.models import FollowUpTask
from ..notifications.alerts import AlertDispatcher
from ..store.data_store import DataStore

logger = logging.getLogger(__name__)


class PastDueSweeper:
    """
    Body of the periodic past-due job.

    Promotes overdue tasks, then alerts only for the tasks that actually changed
    on this pass. Never raises.
    """

    def __init__(self, store: DataStore, alerts: AlertDispatcher) -> None:
        self.store = store
        self.alerts = alerts

    async def run(self, now: datetime | None = None) -> list[FollowUpTask]:
        try:
            changed = self.store.sweep_past_due(now)
        except Exception:
            logger.exception("Past-due sweep failed")
            return []

        if changed:
            await self.alerts.past_due(changed)
        return changed
