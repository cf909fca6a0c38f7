# src/ember_followup/reports/scheduler.py

from __future__ import annotations

"""
Digest scheduler.

Each tick looks at every church's digest preference (day of week + HH:mm, local
time). A church is due when the most recent scheduled occurrence lies within
the tolerance window before `now`; the occurrence may be yesterday's, so a
preference near midnight still fires after the day rolls over.

A per-church marker keyed by the occurrence's calendar date makes the weekly
digest fire at most once per day, however many ticks land inside the window.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from ..core.clock import Clock, js_day_of_week, utc_now
from ..core.models import Church, DigestPreference, ReportDigest
from ..notifications.alerts import AlertDispatcher
from ..store.data_store import DataStore
from .digest import is_last_day_of_month

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DigestFiring:
    church_id: str
    digest: ReportDigest
    report_path: Path
    emailed: bool


def due_occurrence(
    preference: DigestPreference, now: datetime, tolerance: timedelta
) -> datetime | None:
    """
    The scheduled local datetime that is due at `now`, or None.

    Raises ValueError for a malformed preference time.
    """
    local = now.astimezone()
    hour, minute = preference.hour_minute()
    for days_back in (0, 1):
        day = local - timedelta(days=days_back)
        target = day.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if js_day_of_week(target) != int(preference.day_of_week):
            continue
        if target <= local <= target + tolerance:
            return target
    return None


class DigestScheduler:
    def __init__(
        self,
        store: DataStore,
        alerts: AlertDispatcher,
        *,
        tolerance_minutes: float = 5,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.alerts = alerts
        self._tolerance = timedelta(minutes=float(tolerance_minutes))
        self._clock = clock
        # church id -> date (YYYY-MM-DD) of the last occurrence handled
        self._last_sent: dict[str, str] = {}

    async def tick(self, now: datetime | None = None) -> list[DigestFiring]:
        """
        Fire every due digest. One church failing does not stop the others.
        """
        now = now or self._clock()
        firings: list[DigestFiring] = []
        for church in self.store.list_churches():
            try:
                firings.extend(await self._run_church(church, now))
            except Exception:
                logger.exception("Digest run failed church=%s", church.id)
                continue
        return firings

    async def _run_church(self, church: Church, now: datetime) -> list[DigestFiring]:
        try:
            target = due_occurrence(church.digest_preference, now, self._tolerance)
        except ValueError:
            logger.warning(
                "Church %s has an invalid digest time %r; skipped",
                church.id,
                church.digest_preference.time,
            )
            return []
        if target is None:
            return []

        marker = target.date().isoformat()
        if self._last_sent.get(church.id) == marker:
            return []
        self._last_sent[church.id] = marker

        weekly = self.store.generate_weekly_digest(church.id, target)
        firings = [
            await self._deliver(
                church,
                weekly,
                subject=f"{church.name} Weekly Activity Digest",
                title="Weekly Digest",
                message=f"{church.name} summary ready. File saved to reports folder.",
            )
        ]

        if is_last_day_of_month(target):
            monthly = self.store.generate_monthly_digest(church.id, target)
            firings.append(
                await self._deliver(
                    church,
                    monthly,
                    subject=f"{church.name} Monthly Activity Digest",
                    title="Monthly Digest",
                    message=f"{church.name} monthly log exported.",
                )
            )
        return firings

    async def _deliver(
        self,
        church: Church,
        digest: ReportDigest,
        *,
        subject: str,
        title: str,
        message: str,
    ) -> DigestFiring:
        path = self.store.write_report_to_disk(church.id, digest)

        emailed = False
        director = self.alerts.email_recipient(church)
        if director is not None:
            emailed = await self.alerts.send_email(
                church, director.email, subject, digest.summary_text(str(path))
            )

        self.alerts.emit(title, message, severity="info", kind="digest")
        logger.info("%s digest fired church=%s report=%s emailed=%s", digest.label, church.id, path, emailed)
        return DigestFiring(church_id=church.id, digest=digest, report_path=path, emailed=emailed)
