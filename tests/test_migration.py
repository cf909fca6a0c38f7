# tests/test_migration.py

from __future__ import annotations

import copy
import json
from pathlib import Path

from ember_followup.store.data_store import DataStore
from ember_followup.store.document import DB_VERSION, DEFAULT_TAGLINE, migrate

from .fakes import FakeClock


def _v1_document() -> dict:
    return {
        "version": 1,
        "churches": [
            {
                "id": "ch-grace",
                "name": "Grace City",
                "planId": "plan-lite",
                "campuses": [
                    {"id": "cp-north", "name": "North", "timezone": "America/Denver"},
                    {"id": "cp-south", "name": "South", "timezone": "America/Denver", "primary": True},
                ],
            },
            {
                "id": "ch-hope",
                "name": "Hope Chapel",
                "planId": "plan-lite",
                "timezone": "America/New_York",
                "address": "12 Elm St",
            },
        ],
        "contacts": [
            {
                "id": "p-1",
                "churchId": "ch-grace",
                "campusId": "cp-north",
                "displayName": "Jasmine Patel",
                "createdAt": "2024-05-01T10:00:00.000Z",
            },
            {
                "id": "p-2",
                "churchId": "ch-hope",
                "campusId": "cp-gone",
                "displayName": "Marcus Reid",
                "createdAt": "2024-05-01T10:00:00.000Z",
            },
        ],
    }


def _campuses_of(doc: dict, church_id: str) -> list[dict]:
    return [c for c in doc["campuses"] if c["churchId"] == church_id]


def test_embedded_campuses_are_lifted_into_the_table() -> None:
    doc = migrate(_v1_document(), 1)

    grace = _campuses_of(doc, "ch-grace")
    assert [c["id"] for c in grace] == ["cp-north", "cp-south"]
    church = doc["churches"][0]
    assert "campuses" not in church
    # No primaryCampusId yet: the campus flagged primary wins.
    assert church["primaryCampusId"] == "cp-south"


def test_church_without_campuses_gets_a_fallback() -> None:
    doc = migrate(_v1_document(), 1)

    [fallback] = _campuses_of(doc, "ch-hope")
    assert fallback["timezone"] == "America/New_York"
    assert fallback["address"] == "12 Elm St"
    assert fallback["primary"] is True

    hope = doc["churches"][1]
    assert hope["primaryCampusId"] == fallback["id"]
    assert "timezone" not in hope


def test_dangling_contact_campus_is_repaired() -> None:
    doc = migrate(_v1_document(), 1)
    by_id = {c["id"]: c for c in doc["contacts"]}
    assert by_id["p-1"]["campusId"] == "cp-north"
    assert by_id["p-2"]["campusId"] == doc["churches"][1]["primaryCampusId"]


def test_stale_primary_campus_id_is_repointed() -> None:
    raw = {
        "version": DB_VERSION,
        "churches": [{"id": "ch-1", "name": "One", "primaryCampusId": "cp-deleted"}],
        "campuses": [{"id": "cp-a", "churchId": "ch-1", "name": "A", "timezone": "UTC"}],
    }
    doc = migrate(raw, DB_VERSION)
    assert doc["churches"][0]["primaryCampusId"] == "cp-a"


def test_migrate_sets_version_defaults_and_is_pure() -> None:
    raw = _v1_document()
    before = copy.deepcopy(raw)

    doc = migrate(raw, 1)

    assert raw == before
    assert doc["version"] == DB_VERSION
    assert all(ch["brandTagline"] == DEFAULT_TAGLINE for ch in doc["churches"])
    for key in ("users", "credentials", "tasks", "activities", "plans", "templates"):
        assert doc[key] == []


def test_current_document_is_left_alone() -> None:
    raw = {
        "version": DB_VERSION,
        "churches": [
            {"id": "ch-1", "name": "One", "primaryCampusId": "cp-a", "brandTagline": "Hello"},
        ],
        "campuses": [{"id": "cp-a", "churchId": "ch-1", "name": "A", "timezone": "UTC", "primary": True}],
    }
    doc = migrate(raw, DB_VERSION)
    assert doc["churches"] == raw["churches"]
    assert doc["campuses"] == raw["campuses"]


def test_store_writes_repaired_document_back(tmp_path: Path, clock: FakeClock) -> None:
    data_dir = tmp_path / "legacy"
    data_dir.mkdir()
    db = data_dir / "ember-db.json"
    db.write_text(json.dumps(_v1_document()), "utf-8")

    store = DataStore(data_dir, clock=clock, seed_demo=False, bcrypt_rounds=4)

    on_disk = json.loads(db.read_text("utf-8"))
    assert on_disk["version"] == DB_VERSION
    assert len(on_disk["campuses"]) == 3
    assert [c.name for c in store.list_campuses("ch-grace")] == ["North", "South"]
    assert store.find_contact("p-2", "ch-hope").campus_id == store.find_church("ch-hope").primary_campus_id

    snapshot = store.get_snapshot()
    assert [c["name"] for c in snapshot["churches"][0]["campuses"]] == ["North", "South"]
