# src/ember_followup/sync/bundle.py

from __future__ import annotations

"""
Sync bundles: a church-scoped, portable slice of the document.

Export is a pure projection. Import is an id-keyed union: a record is admitted
only if no record with the same id exists; existing records are never touched.
"""

import json
import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, TypeVar

from ..core.errors import ValidationError
from ..core.models import (
    ActivityLog,
    AssignmentTemplate,
    Campus,
    Church,
    Contact,
    FollowUpTask,
    record_to_dict,
)

logger = logging.getLogger(__name__)


class _HasId(Protocol):
    id: str


_R = TypeVar("_R", bound=_HasId)


@dataclass(slots=True)
class SyncBundle:
    church: dict[str, Any]
    generated_at: str
    campuses: list[Campus] = field(default_factory=list)
    contacts: list[Contact] = field(default_factory=list)
    tasks: list[FollowUpTask] = field(default_factory=list)
    activities: list[ActivityLog] = field(default_factory=list)
    templates: list[AssignmentTemplate] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return record_to_dict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SyncBundle:
        if not isinstance(raw, dict):
            raise ValidationError("sync bundle must be a JSON object")

        def _items(key: str, parse: Callable[[dict[str, Any]], _R]) -> list[_R]:
            items = raw.get(key) or []
            if not isinstance(items, list):
                raise ValidationError(f"sync bundle field {key!r} must be a list")
            try:
                return [parse(item) for item in items if isinstance(item, dict)]
            except (KeyError, TypeError, ValueError) as e:
                raise ValidationError(f"malformed {key} record in sync bundle: {e}") from e

        church = raw.get("church")
        return cls(
            church=dict(church) if isinstance(church, dict) else {},
            generated_at=str(raw.get("generatedAt") or ""),
            campuses=_items("campuses", Campus.from_dict),
            contacts=_items("contacts", Contact.from_dict),
            tasks=_items("tasks", FollowUpTask.from_dict),
            activities=_items("activities", ActivityLog.from_dict),
            templates=_items("templates", AssignmentTemplate.from_dict),
        )


def build_bundle(
    church: Church,
    *,
    campuses: Iterable[Campus],
    contacts: Iterable[Contact],
    tasks: Iterable[FollowUpTask],
    activities: Iterable[ActivityLog],
    templates: Iterable[AssignmentTemplate],
    generated_at: str,
) -> SyncBundle:
    """Project one church's records. SMTP settings (credentials) never leave the device."""
    cid = church.id
    own_campuses = [c for c in campuses if c.church_id == cid]
    church_view = record_to_dict(church)
    church_view.pop("smtp", None)
    church_view["campuses"] = record_to_dict(own_campuses)
    return SyncBundle(
        church=church_view,
        generated_at=generated_at,
        campuses=own_campuses,
        contacts=[c for c in contacts if c.church_id == cid],
        tasks=[t for t in tasks if t.church_id == cid],
        activities=[a for a in activities if a.church_id == cid],
        templates=[t for t in templates if t.church_id == cid],
    )


def merge_by_id(existing: list[_R], incoming: Sequence[_R]) -> list[_R]:
    """
    Append every incoming record whose id is not present yet.

    Returns the admitted records (in bundle order). Duplicate ids inside the
    bundle itself are admitted once.
    """
    seen = {r.id for r in existing}
    admitted: list[_R] = []
    for record in incoming:
        if record.id in seen:
            continue
        seen.add(record.id)
        existing.append(record)
        admitted.append(record)
    return admitted


def default_export_path(sync_dir: str | Path, church_id: str) -> Path:
    return Path(sync_dir) / f"ember-sync-{church_id}-{int(time.time() * 1000)}.json"


def write_bundle(path: str | Path, bundle: SyncBundle) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(bundle.to_dict(), ensure_ascii=False, indent=2), "utf-8")
    logger.info(
        "Sync bundle exported path=%s contacts=%d tasks=%d",
        path,
        len(bundle.contacts),
        len(bundle.tasks),
    )
    return path


def read_bundle(path: str | Path) -> SyncBundle:
    path = Path(path)
    try:
        raw = json.loads(path.read_text("utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"sync bundle {path} is not valid JSON: {e}") from e
    return SyncBundle.from_dict(raw)
