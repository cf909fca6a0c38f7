# src/ember_followup/reports/digest.py

from __future__ import annotations

"""
Digest aggregation.

Pure functions over the entity collections: no writes, no clock reads.
Windows are computed in local time; membership uses strict comparisons, so a
timestamp exactly on the window start or end is outside the window.
"""

import calendar
import json
import logging
import time
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from pathlib import Path

from ..core.clock import js_day_of_week, to_iso, try_parse_iso
from ..core.models import (
    ActivityLog,
    Contact,
    ContactTemperature,
    FollowUpTask,
    ReportDigest,
    TaskStatus,
)

logger = logging.getLogger(__name__)

WEEKLY = "Weekly"
MONTHLY = "Monthly"

_LAST_MS = timedelta(milliseconds=1)


def _local_midnight(day: date) -> datetime:
    # Offset of that date, not of "now".
    return datetime.combine(day, datetime.min.time()).astimezone()


def week_window(now: datetime, week_start: int = 0) -> tuple[datetime, datetime]:
    """Current calendar week: [start-of-week 00:00:00.000, end-of-week 23:59:59.999] local."""
    local = now.astimezone()
    back = (js_day_of_week(local) - int(week_start)) % 7
    first = local.date() - timedelta(days=back)
    return _local_midnight(first), _local_midnight(first + timedelta(days=7)) - _LAST_MS


def month_window(now: datetime) -> tuple[datetime, datetime]:
    local = now.astimezone()
    first = local.date().replace(day=1)
    if first.month == 12:
        following = first.replace(year=first.year + 1, month=1)
    else:
        following = first.replace(month=first.month + 1)
    return _local_midnight(first), _local_midnight(following) - _LAST_MS


def is_last_day_of_month(dt: datetime) -> bool:
    return dt.day == calendar.monthrange(dt.year, dt.month)[1]


def _within(raw: str | None, start: datetime, end: datetime) -> bool:
    ts = try_parse_iso(raw)
    return ts is not None and start < ts < end


def compose_digest(
    church_id: str,
    start: datetime,
    end: datetime,
    label: str,
    *,
    activities: Iterable[ActivityLog],
    tasks: Iterable[FollowUpTask],
    contacts: Iterable[Contact],
) -> ReportDigest:
    church_tasks = [t for t in tasks if t.church_id == church_id]
    church_contacts = [c for c in contacts if c.church_id == church_id]

    total_activities = sum(
        1 for a in activities if a.church_id == church_id and _within(a.created_at, start, end)
    )
    completed = sum(
        1
        for t in church_tasks
        if t.status == TaskStatus.COMPLETED and t.completed_at and _within(t.completed_at, start, end)
    )
    rescheduled = sum(
        1
        for t in church_tasks
        if t.status == TaskStatus.RESCHEDULED and t.rescheduled_for and _within(t.updated_at, start, end)
    )
    # Current, church-wide counts (not window scoped).
    past_due = sum(1 for t in church_tasks if t.status == TaskStatus.PAST_DUE)
    converts = sum(1 for c in church_contacts if c.temperature == ContactTemperature.CONVERT)

    new_contacts = sum(1 for c in church_contacts if _within(c.created_at, start, end))

    return ReportDigest(
        period_start=to_iso(start),
        period_end=to_iso(end),
        label=label,
        total_activities=total_activities,
        completed_assignments=completed,
        rescheduled_assignments=rescheduled,
        new_contacts=new_contacts,
        converts=converts,
        past_due_tasks=past_due,
    )


def write_report(reports_dir: str | Path, church_id: str, digest: ReportDigest) -> Path:
    """Persist a digest as `<label>-digest-<churchId>-<millis>.json`; returns the path."""
    reports_dir = Path(reports_dir)
    reports_dir.mkdir(parents=True, exist_ok=True)
    slug = digest.label.lower()
    path = reports_dir / f"{slug}-digest-{church_id}-{int(time.time() * 1000)}.json"
    while path.exists():
        # Same label written twice within one millisecond.
        path = path.with_name(f"{path.stem}-1{path.suffix}")
    path.write_text(json.dumps(digest.to_dict(), ensure_ascii=False, indent=2), "utf-8")
    logger.info("Report written label=%s church=%s path=%s", digest.label, church_id, path)
    return path
