# src/ember_followup/store/document.py

from __future__ import annotations

"""
The persisted document: one JSON file per installation.

Load path:
  read raw JSON -> migrate(raw, raw["version"]) -> Document.from_dict
Old documents are repaired by migrate() (a pure dict -> dict step) and written
back immediately when the repair changed anything.
"""

import contextlib
import copy
import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..core.models import (
    ActivityLog,
    AssignmentTemplate,
    Campus,
    Church,
    Contact,
    FollowUpTask,
    SubscriptionPlan,
    UserAccount,
    UserCredential,
    record_to_dict,
)

logger = logging.getLogger(__name__)

DB_VERSION = 3
DEFAULT_TIMEZONE = "America/Chicago"
DEFAULT_TAGLINE = "Never let an ember go cold."

COLLECTIONS = (
    "churches",
    "campuses",
    "users",
    "credentials",
    "contacts",
    "tasks",
    "activities",
    "plans",
    "templates",
)


@dataclass(slots=True)
class Document:
    version: int = DB_VERSION
    last_updated: str = ""
    churches: list[Church] = field(default_factory=list)
    campuses: list[Campus] = field(default_factory=list)
    users: list[UserAccount] = field(default_factory=list)
    credentials: list[UserCredential] = field(default_factory=list)
    contacts: list[Contact] = field(default_factory=list)
    tasks: list[FollowUpTask] = field(default_factory=list)
    activities: list[ActivityLog] = field(default_factory=list)
    plans: list[SubscriptionPlan] = field(default_factory=list)
    templates: list[AssignmentTemplate] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return record_to_dict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Document:
        return cls(
            version=int(raw.get("version") or DB_VERSION),
            last_updated=str(raw.get("lastUpdated") or ""),
            churches=[Church.from_dict(r) for r in raw.get("churches", [])],
            campuses=[Campus.from_dict(r) for r in raw.get("campuses", [])],
            users=[UserAccount.from_dict(r) for r in raw.get("users", [])],
            credentials=[UserCredential.from_dict(r) for r in raw.get("credentials", [])],
            contacts=[Contact.from_dict(r) for r in raw.get("contacts", [])],
            tasks=[FollowUpTask.from_dict(r) for r in raw.get("tasks", [])],
            activities=[ActivityLog.from_dict(r) for r in raw.get("activities", [])],
            plans=[SubscriptionPlan.from_dict(r) for r in raw.get("plans", [])],
            templates=[AssignmentTemplate.from_dict(r) for r in raw.get("templates", [])],
        )


# ---- migration ----


def _lift_embedded_campuses(doc: dict[str, Any]) -> None:
    """v1 kept campuses inside each church record; move them into the campus table."""
    known = {c.get("id") for c in doc["campuses"]}
    for church in doc["churches"]:
        for campus in church.get("campuses") or []:
            if not isinstance(campus, dict) or not campus.get("id") or campus["id"] in known:
                continue
            lifted = dict(campus)
            lifted["churchId"] = church.get("id")
            doc["campuses"].append(lifted)
            known.add(lifted["id"])


def _repair_church(doc: dict[str, Any], church: dict[str, Any]) -> None:
    own = [c for c in doc["campuses"] if c.get("churchId") == church.get("id")]
    legacy_tz = church.pop("timezone", None)
    if not own:
        fallback = {
            "id": str(uuid.uuid4()),
            "churchId": church.get("id"),
            "name": church.get("name") or "Main Campus",
            "timezone": legacy_tz or DEFAULT_TIMEZONE,
            "primary": True,
        }
        if church.get("address"):
            fallback["address"] = church["address"]
        doc["campuses"].append(fallback)
        own = [fallback]
        logger.info("Migration: created fallback campus for church %s", church.get("id"))

    own_ids = {c["id"] for c in own}
    if church.get("primaryCampusId") not in own_ids:
        flagged = next((c for c in own if c.get("primary")), own[0])
        church["primaryCampusId"] = flagged["id"]

    # The campus table is authoritative; drop the embedded copy.
    church.pop("campuses", None)
    church.setdefault("brandTagline", DEFAULT_TAGLINE)


def _repair_contacts(doc: dict[str, Any]) -> None:
    campus_church = {c.get("id"): c.get("churchId") for c in doc["campuses"]}
    primary = {ch.get("id"): ch.get("primaryCampusId") for ch in doc["churches"]}
    for contact in doc["contacts"]:
        cid = contact.get("churchId")
        if contact.get("campusId") and campus_church.get(contact["campusId"]) == cid:
            continue
        fallback = primary.get(cid) or next(
            (c["id"] for c in doc["campuses"] if c.get("churchId") == cid), None
        )
        if not fallback:
            continue
        contact["campusId"] = fallback
        logger.info("Migration: contact %s moved to campus %s", contact.get("id"), fallback)


def migrate(raw: dict[str, Any], from_version: int) -> dict[str, Any]:
    """
    Bring a raw document up to DB_VERSION and repair stale references.

    Pure: returns a new dict and never touches the input or the filesystem.
    The repair steps run for every version, so a current document with a
    dangling campus reference is fixed too.
    """
    doc = copy.deepcopy(raw) if isinstance(raw, dict) else {}
    for key in COLLECTIONS:
        if not isinstance(doc.get(key), list):
            doc[key] = []

    if from_version < 2:
        _lift_embedded_campuses(doc)

    for church in doc["churches"]:
        _repair_church(doc, church)
    _repair_contacts(doc)

    doc["version"] = DB_VERSION
    return doc


# ---- file I/O ----


def read_raw(path: Path) -> dict[str, Any]:
    data = json.loads(path.read_text("utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data


def write_raw(path: Path, data: dict[str, Any]) -> None:
    """Write the whole document atomically (temp file + rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
    os.replace(tmp, path)
    with contextlib.suppress(OSError):
        # Password hashes live in here.
        os.chmod(path, 0o600)
