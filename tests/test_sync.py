# tests/test_sync.py

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from ember_followup.core.clock import to_iso
from ember_followup.core.errors import NotFoundError, ValidationError
from ember_followup.core.models import (
    ActivityInput,
    ActivityType,
    ContactInput,
    TaskCategory,
    TaskInput,
)
from ember_followup.store.data_store import DataStore
from ember_followup.sync.bundle import default_export_path, read_bundle, write_bundle

from .fakes import FakeClock


@pytest.fixture
def remote(tmp_path: Path, clock: FakeClock) -> DataStore:
    """A second installation with its own data file."""
    return DataStore(tmp_path / "remote", clock=clock, seed_demo=False, bcrypt_rounds=4)


@pytest.fixture
def remote_director(remote: DataStore):
    return remote.signup(
        church_name="Hope Chapel", name="Nia Brooks", email="nia@hope.test", password="pastor123"
    )


def _populate(store: DataStore, director, contact, clock: FakeClock) -> None:
    store.update_smtp_settings(director.church.id, host="smtp.grace.test", user="mailer", password="s3cret")
    store.create_task(
        TaskInput(
            church_id=director.church.id,
            contact_id=contact.id,
            assignee_id=director.user.id,
            category=TaskCategory.PRAYER,
            due_date=to_iso(clock.now + timedelta(days=2)),
        )
    )
    store.record_activity(
        ActivityInput(
            church_id=director.church.id,
            contact_id=contact.id,
            user_id=director.user.id,
            type=ActivityType.VISIT,
            note="Dropped off a welcome basket",
        )
    )
    store.create_template(director.church.id, label="Coffee", category="coffee")


def test_bundle_is_church_scoped_and_has_no_smtp(
    store: DataStore, director, contact, clock: FakeClock
) -> None:
    _populate(store, director, contact, clock)
    other = store.signup(church_name="Other", name="Bo", email="bo@other.test", password="pw12345")
    store.create_contact(ContactInput(church_id=other.church.id, display_name="Not ours"))

    bundle = store.create_sync_bundle(director.church.id)

    assert bundle is not None
    assert "smtp" not in bundle.church
    assert [c["name"] for c in bundle.church["campuses"]] == ["Main Campus"]
    assert [c.display_name for c in bundle.contacts] == ["Jasmine Patel"]
    assert len(bundle.tasks) == 1
    assert len(bundle.activities) == 3
    assert all(a.church_id == director.church.id for a in bundle.activities)
    assert [t.label for t in bundle.templates] == ["Coffee"]
    assert bundle.generated_at == to_iso(clock.now)
    assert "s3cret" not in json.dumps(bundle.to_dict())


def test_unknown_church_exports_nothing(store: DataStore) -> None:
    assert store.create_sync_bundle("missing") is None


def test_import_admits_new_records_once(
    store: DataStore, director, contact, clock: FakeClock, remote: DataStore, remote_director
) -> None:
    _populate(store, director, contact, clock)
    bundle = store.create_sync_bundle(director.church.id)
    target = remote_director.church.id

    result = remote.import_sync_bundle(target, bundle, source_path="grace.json")
    assert result.imported_contacts == len(bundle.contacts) == 1
    assert result.imported_tasks == len(bundle.tasks) == 1
    assert result.path == "grace.json"

    again = remote.import_sync_bundle(target, bundle)
    assert (again.imported_contacts, again.imported_tasks) == (0, 0)
    assert len(remote.list_contacts(target)) == 1
    assert len(remote.list_activities(target)) == len(bundle.activities)


def test_import_rehomes_records_to_destination(
    store: DataStore, director, contact, clock: FakeClock, remote: DataStore, remote_director
) -> None:
    _populate(store, director, contact, clock)
    bundle = store.create_sync_bundle(director.church.id)
    target = remote_director.church.id
    primary = remote.find_church(target).primary_campus_id

    remote.import_sync_bundle(target, bundle)

    [imported] = remote.list_contacts(target)
    assert imported.id == contact.id
    assert imported.church_id == target
    # The bundle's campus came along but the contact still lands on a campus of the destination.
    assert imported.campus_id in {c.id for c in remote.list_campuses(target)}
    campuses = remote.list_campuses(target)
    assert sum(1 for c in campuses if c.primary) == 1
    assert remote.find_church(target).primary_campus_id == primary
    assert all(t.church_id == target for t in remote.list_tasks(target))
    assert [t.label for t in remote.list_templates(target)] == ["Coffee"]

    stamps = [a.created_at for a in remote.list_activities(target)]
    assert stamps == sorted(stamps, reverse=True)


def test_import_never_overwrites_existing_records(
    store: DataStore, director, contact, remote: DataStore, remote_director
) -> None:
    bundle = store.create_sync_bundle(director.church.id)
    target = remote_director.church.id
    remote.import_sync_bundle(target, bundle)

    renamed = bundle.to_dict()
    renamed["contacts"][0]["displayName"] = "Someone Else"
    result = remote.import_sync_bundle(target, renamed)

    assert result.imported_contacts == 0
    assert remote.find_contact(contact.id, target).display_name == "Jasmine Patel"


def test_import_into_unknown_church_fails(store: DataStore, director, contact) -> None:
    bundle = store.create_sync_bundle(director.church.id)
    with pytest.raises(NotFoundError):
        store.import_sync_bundle("missing", bundle)


def test_bundle_file_round_trip(
    tmp_path: Path, store: DataStore, director, contact, remote: DataStore, remote_director
) -> None:
    bundle = store.create_sync_bundle(director.church.id)
    path = write_bundle(default_export_path(tmp_path / "sync", director.church.id), bundle)
    assert path.name.startswith(f"ember-sync-{director.church.id}-")

    loaded = read_bundle(path)
    result = remote.import_sync_bundle(remote_director.church.id, loaded, source_path=path)
    assert result.imported_contacts == 1
    assert result.path == str(path)


def test_read_bundle_rejects_garbage(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", "utf-8")
    with pytest.raises(ValidationError):
        read_bundle(broken)

    wrong_shape = tmp_path / "list.json"
    wrong_shape.write_text("[1, 2, 3]", "utf-8")
    with pytest.raises(ValidationError):
        read_bundle(wrong_shape)

    bad_contacts = tmp_path / "contacts.json"
    bad_contacts.write_text(json.dumps({"contacts": "nope"}), "utf-8")
    with pytest.raises(ValidationError):
        read_bundle(bad_contacts)


def test_import_skips_tasks_and_activities_without_a_local_contact(
    store: DataStore, director, contact, clock: FakeClock, remote: DataStore, remote_director
) -> None:
    _populate(store, director, contact, clock)
    target = remote_director.church.id

    headless = store.create_sync_bundle(director.church.id).to_dict()
    headless["contacts"] = []
    result = remote.import_sync_bundle(target, headless)

    assert (result.imported_contacts, result.imported_tasks) == (0, 0)
    assert remote.list_tasks(target) == []
    assert remote.list_activities(target) == []
    assert [t.label for t in remote.list_templates(target)] == ["Coffee"]


def test_import_does_not_attach_tasks_to_another_churchs_contact(
    store: DataStore, director, contact, clock: FakeClock, remote: DataStore, remote_director
) -> None:
    _populate(store, director, contact, clock)
    bundle = store.create_sync_bundle(director.church.id).to_dict()
    neighbor = remote.signup(church_name="Riverside", name="Ada", email="ada@river.test", password="pw12345")

    contacts_only = dict(bundle, tasks=[], activities=[])
    remote.import_sync_bundle(neighbor.church.id, contacts_only)
    assert remote.find_contact(contact.id, neighbor.church.id) is not None

    result = remote.import_sync_bundle(remote_director.church.id, bundle)

    assert (result.imported_contacts, result.imported_tasks) == (0, 0)
    assert remote.list_tasks(remote_director.church.id) == []
    assert remote.list_tasks(neighbor.church.id) == []
