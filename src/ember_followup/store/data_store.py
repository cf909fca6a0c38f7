# src/ember_followup/store/data_store.py

from __future__ import annotations

import contextlib
import copy
import dataclasses
import logging
import shutil
import threading
import uuid
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import bcrypt

from ..core.clock import Clock, to_iso, try_parse_iso, utc_now
from ..core.errors import InvalidCredentials, NotFoundError, ValidationError
from ..core.models import (
    ActivityInput,
    ActivityLog,
    ActivityType,
    AssignmentTemplate,
    Campus,
    Church,
    Contact,
    ContactInput,
    ContactStatusUpdate,
    ContactTemperature,
    DigestPreference,
    FollowUpTask,
    PreferredContactMethod,
    ReportDigest,
    SessionInfo,
    SmtpSettings,
    SubscriptionPlan,
    SyncImportResult,
    TaskCategory,
    TaskInput,
    TaskRecurrence,
    TaskStatus,
    TaskStatusUpdate,
    UserAccount,
    UserCredential,
    UserRole,
)
from ..core.sessions import SessionStore
from ..reports.digest import MONTHLY, WEEKLY, compose_digest, month_window, week_window, write_report
from ..sync.bundle import SyncBundle, build_bundle, merge_by_id
from ..tasks.lifecycle import apply_status_update, sweep_past_due
from .document import DB_VERSION, DEFAULT_TAGLINE, DEFAULT_TIMEZONE, Document, migrate, read_raw, write_raw
from .seed import demo_document, empty_document, seed_plans

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_AVATAR_COLORS = ("#2563eb", "#22c55e", "#f97316", "#8b5cf6", "#ec4899", "#14b8a6")


def _new_id() -> str:
    return str(uuid.uuid4())


def _detached(obj: _T) -> _T:
    """Hand out copies so callers never mutate the live document behind our back."""
    return copy.deepcopy(obj)


def _enum(enum_cls: type[Any], raw: Any, what: str) -> Any:
    try:
        return enum_cls(raw)
    except ValueError as e:
        raise ValidationError(f"invalid {what}: {raw!r}") from e


class DataStore:
    """
    JSON-document store and business-rule layer.

    The in-memory Document is the live state. Every mutating call validates first,
    applies the change together with its derived effects (activity entry, contact
    timestamps), then writes the whole document atomically. If anything fails on
    the way, the in-memory state is rolled back to the last written document.

    Thread-safety:
    - all reads and read-modify-write sequences hold one re-entrant lock
    """

    def __init__(
        self,
        data_dir: str | Path,
        *,
        filename: str = "ember-db.json",
        sessions: SessionStore | None = None,
        clock: Clock = utc_now,
        seed_demo: bool = True,
        bcrypt_rounds: int = 10,
        week_start: int = 0,
    ) -> None:
        self._data_dir = Path(data_dir)
        self._path = self._data_dir / filename
        self.uploads_dir = self._data_dir / "uploads"
        self.reports_dir = self._data_dir / "reports"
        self.sync_dir = self._data_dir / "sync"

        self.sessions = sessions if sessions is not None else SessionStore()
        self._clock = clock
        self._bcrypt_rounds = max(4, min(31, int(bcrypt_rounds)))
        self._week_start = int(week_start) % 7
        self._lock = threading.RLock()
        self._persisted: dict[str, Any] = {}
        self._doc = self._load(seed_demo=seed_demo)

        logger.info(
            "DataStore ready path=%s churches=%d contacts=%d tasks=%d",
            self._path,
            len(self._doc.churches),
            len(self._doc.contacts),
            len(self._doc.tasks),
        )

    @property
    def path(self) -> Path:
        return self._path

    # ---- low-level helpers ----

    def _now(self) -> datetime:
        return self._clock()

    def _hash_password(self, password: str) -> str:
        try:
            salt = bcrypt.gensalt(rounds=self._bcrypt_rounds)
            return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")
        except ValueError as e:
            raise ValidationError(f"unusable password: {e}") from e

    @staticmethod
    def _check_password(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw((password or "").encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            logger.warning("Stored password hash is malformed; rejecting login.")
            return False

    def _load(self, *, seed_demo: bool) -> Document:
        if not self._path.exists():
            now = self._now()
            seed = demo_document(now, self._hash_password) if seed_demo else empty_document(now)
            write_raw(self._path, seed.to_dict())
            logger.info("Created new document path=%s demo=%s", self._path, seed_demo)

        raw = read_raw(self._path)
        try:
            from_version = int(raw.get("version") or 1)
        except (TypeError, ValueError):
            from_version = 1

        repaired = migrate(raw, from_version)
        if repaired != raw:
            write_raw(self._path, repaired)
            logger.info("Document repaired from_version=%s to_version=%s", from_version, DB_VERSION)

        self._persisted = repaired
        return Document.from_dict(repaired)

    def _flush(self) -> None:
        self._doc.last_updated = to_iso(self._now())
        raw = self._doc.to_dict()
        write_raw(self._path, raw)
        self._persisted = raw

    def _rollback(self) -> None:
        self._doc = Document.from_dict(self._persisted)

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[Document]:
        with self._lock:
            try:
                yield self._doc
                self._flush()
            except BaseException:
                self._rollback()
                raise

    def _church(self, church_id: str | None) -> Church | None:
        return next((c for c in self._doc.churches if c.id == church_id), None)

    def _campus(self, campus_id: str | None) -> Campus | None:
        return next((c for c in self._doc.campuses if c.id == campus_id), None)

    def _user(self, user_id: str | None) -> UserAccount | None:
        return next((u for u in self._doc.users if u.id == user_id), None)

    def _contact(self, contact_id: str | None, church_id: str | None) -> Contact | None:
        return next(
            (c for c in self._doc.contacts if c.id == contact_id and c.church_id == church_id),
            None,
        )

    def _task(self, task_id: str | None) -> FollowUpTask | None:
        return next((t for t in self._doc.tasks if t.id == task_id), None)

    def _require_church(self, church_id: str | None) -> Church:
        church = self._church(church_id)
        if church is None:
            raise ValidationError(f"unknown church {church_id!r}")
        return church

    def _require_user(self, user_id: str | None, church_id: str) -> UserAccount:
        user = self._user(user_id)
        if user is None or user.church_id != church_id:
            raise ValidationError(f"user {user_id!r} does not belong to church {church_id!r}")
        return user

    def _require_contact(self, contact_id: str | None, church_id: str) -> Contact:
        contact = self._contact(contact_id, church_id)
        if contact is None:
            raise ValidationError(f"contact {contact_id!r} does not belong to church {church_id!r}")
        return contact

    def _default_user_id(self, church_id: str) -> str:
        user = next((u for u in self._doc.users if u.church_id == church_id), None)
        return user.id if user else "system"

    def _email_taken(self, email: str) -> bool:
        needle = email.strip().lower()
        return any(u.email.strip().lower() == needle for u in self._doc.users)

    def _append_activity(
        self,
        *,
        church_id: str,
        contact_id: str,
        user_id: str,
        type: ActivityType,
        note: str,
        stamp: str,
        task_id: str | None = None,
    ) -> ActivityLog:
        entry = ActivityLog(
            id=_new_id(),
            church_id=church_id,
            contact_id=contact_id,
            user_id=user_id,
            type=type,
            note=note,
            created_at=stamp,
            task_id=task_id,
        )
        contact = self._contact(contact_id, church_id)
        if contact is not None:
            contact.last_activity_at = stamp
            contact.updated_at = stamp
        # Newest first.
        self._doc.activities.insert(0, entry)
        return entry

    # ---- snapshot ----

    def get_snapshot(self) -> dict[str, Any]:
        """
        Deep projection of the document for the UI.

        Credentials are never included; each church carries its campus list
        expanded from the campus table.
        """
        with self._lock:
            raw = self._doc.to_dict()
        raw.pop("credentials", None)
        for church in raw["churches"]:
            church["campuses"] = [
                copy.deepcopy(c) for c in raw["campuses"] if c.get("churchId") == church["id"]
            ]
        return raw

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "churches": len(self._doc.churches),
                "users": len(self._doc.users),
                "contacts": len(self._doc.contacts),
                "tasks": len(self._doc.tasks),
                "activities": len(self._doc.activities),
            }

    # ---- identity & sessions ----

    def authenticate(self, email: str, password: str) -> SessionInfo:
        with self._lock:
            needle = (email or "").strip().lower()
            user = next((u for u in self._doc.users if u.email.strip().lower() == needle), None)
            if user is None or not user.active:
                raise InvalidCredentials("invalid email or password")
            credential = next((c for c in self._doc.credentials if c.user_id == user.id), None)
            if credential is None or not self._check_password(password, credential.password_hash):
                raise InvalidCredentials("invalid email or password")
            church = self._church(user.church_id)
            if church is None:
                raise InvalidCredentials("account has no church")

            token = self.sessions.issue(user.id)
            logger.info("User %s signed in church=%s", user.id, church.id)
            return SessionInfo(token=token, user=_detached(user), church=_detached(church))

    def get_session(self, token: str | None) -> SessionInfo | None:
        user_id = self.sessions.resolve(token)
        if user_id is None or token is None:
            return None
        with self._lock:
            user = self._user(user_id)
            church = self._church(user.church_id) if user else None
            if user is None or church is None:
                return None
            return SessionInfo(token=token, user=_detached(user), church=_detached(church))

    def logout(self, token: str | None) -> None:
        self.sessions.revoke(token)

    def signup(
        self,
        *,
        church_name: str,
        name: str,
        email: str,
        password: str,
        phone: str | None = None,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> SessionInfo:
        """Create a church with a primary campus and its director, then open a session."""
        if not church_name or not church_name.strip():
            raise ValidationError("church name is required")
        if not name or not name.strip():
            raise ValidationError("name is required")
        if not email or "@" not in email:
            raise ValidationError("a valid email is required")
        if not password:
            raise ValidationError("password is required")

        password_hash = self._hash_password(password)

        with self._transaction() as doc:
            if self._email_taken(email):
                raise ValidationError(f"email already registered: {email}")
            if not doc.plans:
                doc.plans = seed_plans()

            church_id, campus_id, user_id = _new_id(), _new_id(), _new_id()
            campus = Campus(
                id=campus_id,
                church_id=church_id,
                name="Main Campus",
                timezone=timezone,
                primary=True,
            )
            church = Church(
                id=church_id,
                name=church_name.strip(),
                brand_tagline=DEFAULT_TAGLINE,
                plan_id=doc.plans[0].id,
                digest_preference=DigestPreference(day_of_week=1, time="08:00"),
                email_alerts=False,
                audible_alerts=True,
                primary_campus_id=campus_id,
            )
            user = UserAccount(
                id=user_id,
                church_id=church_id,
                name=name.strip(),
                email=email.strip(),
                phone=phone.strip() if phone else None,
                role=UserRole.DIRECTOR,
                avatar_color=_AVATAR_COLORS[len(doc.users) % len(_AVATAR_COLORS)],
            )
            doc.churches.append(church)
            doc.campuses.append(campus)
            doc.users.append(user)
            doc.credentials.append(UserCredential(user_id=user_id, password_hash=password_hash))

        token = self.sessions.issue(user_id)
        logger.info("Signup church=%s director=%s", church_id, user_id)
        return SessionInfo(token=token, user=_detached(user), church=_detached(church))

    # ---- churches, campuses, users ----

    def list_churches(self) -> list[Church]:
        with self._lock:
            return _detached(self._doc.churches)

    def find_church(self, church_id: str) -> Church | None:
        with self._lock:
            return _detached(self._church(church_id))

    def list_campuses(self, church_id: str) -> list[Campus]:
        with self._lock:
            return _detached([c for c in self._doc.campuses if c.church_id == church_id])

    def create_campus(
        self,
        church_id: str,
        name: str,
        *,
        timezone: str = DEFAULT_TIMEZONE,
        address: str | None = None,
        primary: bool = False,
    ) -> Campus:
        if not name or not name.strip():
            raise ValidationError("campus name is required")
        with self._transaction() as doc:
            church = self._require_church(church_id)
            campus = Campus(
                id=_new_id(),
                church_id=church.id,
                name=name.strip(),
                timezone=timezone,
                address=address,
                primary=primary,
            )
            if primary:
                for other in doc.campuses:
                    if other.church_id == church.id:
                        other.primary = False
                church.primary_campus_id = campus.id
            doc.campuses.append(campus)
        return _detached(campus)

    def update_church_settings(
        self,
        church_id: str,
        *,
        digest_preference: DigestPreference | None = None,
        email_alerts: bool | None = None,
        audible_alerts: bool | None = None,
    ) -> Church | None:
        if digest_preference is not None and not digest_preference.is_valid():
            raise ValidationError(
                f"digest preference needs day 0-6 and HH:mm, got "
                f"{digest_preference.day_of_week!r} {digest_preference.time!r}"
            )
        with self._lock:
            church = self._church(church_id)
            if church is None:
                return None
            with self._transaction():
                if digest_preference is not None:
                    church.digest_preference = DigestPreference(
                        day_of_week=int(digest_preference.day_of_week), time=digest_preference.time
                    )
                if email_alerts is not None:
                    church.email_alerts = bool(email_alerts)
                if audible_alerts is not None:
                    church.audible_alerts = bool(audible_alerts)
            return _detached(church)

    def create_user(
        self,
        church_id: str,
        *,
        name: str,
        email: str,
        role: UserRole | str,
        password: str | None = None,
        phone: str | None = None,
    ) -> UserAccount:
        role = _enum(UserRole, role, "role")
        if not name or not name.strip():
            raise ValidationError("name is required")
        if not email or "@" not in email:
            raise ValidationError("a valid email is required")
        password_hash = self._hash_password(password) if password else None

        with self._transaction() as doc:
            self._require_church(church_id)
            if self._email_taken(email):
                raise ValidationError(f"email already registered: {email}")
            user = UserAccount(
                id=_new_id(),
                church_id=church_id,
                name=name.strip(),
                email=email.strip(),
                role=role,
                phone=phone,
                avatar_color=_AVATAR_COLORS[len(doc.users) % len(_AVATAR_COLORS)],
            )
            doc.users.append(user)
            if password_hash:
                doc.credentials.append(UserCredential(user_id=user.id, password_hash=password_hash))
        return _detached(user)

    def list_users(self, church_id: str) -> list[UserAccount]:
        with self._lock:
            return _detached([u for u in self._doc.users if u.church_id == church_id])

    def find_user(self, user_id: str) -> UserAccount | None:
        with self._lock:
            return _detached(self._user(user_id))

    def find_director(self, church_id: str) -> UserAccount | None:
        with self._lock:
            director = next(
                (
                    u
                    for u in self._doc.users
                    if u.church_id == church_id and u.role == UserRole.DIRECTOR and u.active
                ),
                None,
            )
            return _detached(director)

    # ---- contacts ----

    def create_contact(self, payload: ContactInput) -> Contact:
        name = (payload.display_name or "").strip()
        if not name:
            raise ValidationError("display name is required")
        temperature = _enum(ContactTemperature, payload.temperature or ContactTemperature.NEW, "temperature")
        method = _enum(
            PreferredContactMethod,
            payload.preferred_contact_method or PreferredContactMethod.PHONE,
            "preferred contact method",
        )

        with self._transaction() as doc:
            church = self._require_church(payload.church_id)
            campus_id = payload.campus_id or church.primary_campus_id
            campus = self._campus(campus_id)
            if campus is None or campus.church_id != church.id:
                if payload.campus_id:
                    raise ValidationError(f"campus {payload.campus_id!r} does not belong to church {church.id!r}")
                raise ValidationError("No campus configured for this church.")
            if payload.owner_id:
                self._require_user(payload.owner_id, church.id)

            stamp = to_iso(self._now())
            contact = Contact(
                id=_new_id(),
                church_id=church.id,
                campus_id=campus.id,
                display_name=name,
                email=payload.email.strip() if payload.email else None,
                phone=payload.phone.strip() if payload.phone else None,
                temperature=temperature,
                owner_id=payload.owner_id,
                preferred_contact_method=method,
                background_notes=payload.background_notes,
                tags=list(payload.tags or []),
                address=payload.address,
                age_range=payload.age_range,
                anniversary=payload.anniversary,
                birthday=payload.birthday,
                spouse_name=payload.spouse_name,
                marital_status=payload.marital_status,
                children=payload.children,
                created_at=stamp,
                updated_at=stamp,
                last_activity_at=stamp,
            )
            doc.contacts.append(contact)
            self._append_activity(
                church_id=church.id,
                contact_id=contact.id,
                user_id=payload.owner_id or self._default_user_id(church.id),
                type=ActivityType.NOTE,
                note=f"Contact created: {contact.display_name}",
                stamp=stamp,
            )

        logger.info("Contact created id=%s church=%s campus=%s", contact.id, church.id, campus.id)
        return _detached(contact)

    def find_contact(self, contact_id: str, church_id: str) -> Contact | None:
        with self._lock:
            return _detached(self._contact(contact_id, church_id))

    def list_contacts(
        self, church_id: str, *, temperature: ContactTemperature | None = None
    ) -> list[Contact]:
        with self._lock:
            return _detached(
                [
                    c
                    for c in self._doc.contacts
                    if c.church_id == church_id and (temperature is None or c.temperature == temperature)
                ]
            )

    def update_contact_status(self, update: ContactStatusUpdate) -> Contact | None:
        temperature = _enum(ContactTemperature, update.temperature, "temperature")
        with self._lock:
            contact = self._contact(update.contact_id, update.church_id)
            if contact is None:
                return None
            with self._transaction():
                if update.owner_id:
                    self._require_user(update.owner_id, update.church_id)
                contact.temperature = temperature
                contact.owner_id = update.owner_id or contact.owner_id
                self._append_activity(
                    church_id=update.church_id,
                    contact_id=contact.id,
                    user_id=update.user_id,
                    type=ActivityType.NOTE,
                    note=update.note or f"Temperature set to {temperature.value}",
                    stamp=to_iso(self._now()),
                )
            logger.debug("Contact %s temperature -> %s", contact.id, temperature.value)
            return _detached(contact)

    def reorder_contact_temperature(
        self,
        contact_id: str,
        church_id: str,
        destination: ContactTemperature | str,
        user_id: str,
    ) -> Contact | None:
        return self.update_contact_status(
            ContactStatusUpdate(
                contact_id=contact_id,
                church_id=church_id,
                temperature=destination,
                user_id=user_id,
            )
        )

    def update_contact_photo(
        self, contact_id: str, church_id: str, source_path: str | Path
    ) -> Contact | None:
        """Copy an image into the managed uploads area and record it on the contact."""
        source = Path(source_path)
        with self._lock:
            contact = self._contact(contact_id, church_id)
            if contact is None:
                return None
            if not source.is_file():
                raise ValidationError(f"photo file not found: {source}")
            with self._transaction():
                self.uploads_dir.mkdir(parents=True, exist_ok=True)
                destination = self.uploads_dir / f"{contact.id}{source.suffix.lower()}"
                shutil.copyfile(source, destination)
                contact.photo_path = str(destination)
                contact.updated_at = to_iso(self._now())
            return _detached(contact)

    # ---- tasks ----

    def create_task(self, payload: TaskInput) -> FollowUpTask:
        category = _enum(TaskCategory, payload.category, "category")
        if try_parse_iso(payload.due_date) is None:
            raise ValidationError(f"due date is not a valid date: {payload.due_date!r}")

        with self._transaction() as doc:
            church = self._require_church(payload.church_id)
            contact = self._require_contact(payload.contact_id, church.id)
            assignee = self._require_user(payload.assignee_id, church.id)
            template: AssignmentTemplate | None = None
            if payload.template_id:
                template = next(
                    (t for t in doc.templates if t.id == payload.template_id and t.church_id == church.id),
                    None,
                )
                if template is None:
                    raise ValidationError(f"unknown template {payload.template_id!r}")
            recurrence = _enum(
                TaskRecurrence,
                payload.recurrence or (template.default_recurrence if template else TaskRecurrence.ONE_TIME),
                "recurrence",
            )

            stamp = to_iso(self._now())
            task = FollowUpTask(
                id=_new_id(),
                church_id=church.id,
                contact_id=contact.id,
                assignee_id=assignee.id,
                category=category,
                status=TaskStatus.PENDING,
                due_date=payload.due_date,
                window_start=payload.window_start,
                window_end=payload.window_end,
                notes=payload.notes,
                recurrence=recurrence,
                template_id=payload.template_id,
                created_at=stamp,
                updated_at=stamp,
            )
            doc.tasks.append(task)
            self._append_activity(
                church_id=church.id,
                contact_id=contact.id,
                user_id=assignee.id,
                type=ActivityType.TASK,
                note=f"Assignment scheduled ({category.value}) for {assignee.name}",
                stamp=stamp,
                task_id=task.id,
            )

        logger.info("Task created id=%s contact=%s assignee=%s due=%s", task.id, contact.id, assignee.id, task.due_date)
        return _detached(task)

    def find_task(self, task_id: str) -> FollowUpTask | None:
        with self._lock:
            return _detached(self._task(task_id))

    def list_tasks(self, church_id: str, *, status: TaskStatus | None = None) -> list[FollowUpTask]:
        with self._lock:
            return _detached(
                [
                    t
                    for t in self._doc.tasks
                    if t.church_id == church_id and (status is None or t.status == status)
                ]
            )

    def update_task_status(self, update: TaskStatusUpdate) -> FollowUpTask | None:
        update = dataclasses.replace(update, status=_enum(TaskStatus, update.status, "task status"))
        with self._lock:
            task = self._task(update.task_id)
            if task is None:
                return None
            with self._transaction():
                previous = task.status
                apply_status_update(task, update, self._now())
                self._append_activity(
                    church_id=task.church_id,
                    contact_id=task.contact_id,
                    user_id=update.user_id,
                    type=ActivityType.ASSIGNMENT_RESULT,
                    note=update.note or f"Updated task status to {task.status.value}",
                    stamp=task.updated_at,
                    task_id=task.id,
                )
            logger.info("Task %s %s -> %s", task.id, previous.value, task.status.value)
            return _detached(task)

    def sweep_past_due(self, now: datetime | None = None) -> list[FollowUpTask]:
        """
        Promote overdue tasks to past-due.

        Returns exactly the tasks that changed; writes nothing when none did.
        """
        with self._lock:
            try:
                changed = sweep_past_due(self._doc.tasks, now or self._now())
                if changed:
                    self._flush()
            except BaseException:
                self._rollback()
                raise
        if changed:
            logger.info("Sweep marked %d task(s) past due", len(changed))
        return _detached(changed)

    # ---- activities ----

    def record_activity(self, payload: ActivityInput) -> ActivityLog:
        kind = _enum(ActivityType, payload.type, "activity type")
        with self._transaction():
            church = self._require_church(payload.church_id)
            self._require_contact(payload.contact_id, church.id)
            if payload.task_id and self._task(payload.task_id) is None:
                raise ValidationError(f"unknown task {payload.task_id!r}")
            entry = self._append_activity(
                church_id=church.id,
                contact_id=payload.contact_id,
                user_id=payload.user_id or self._default_user_id(church.id),
                type=kind,
                note=payload.note or "",
                stamp=to_iso(self._now()),
                task_id=payload.task_id,
            )
        return entry

    def list_activities(self, church_id: str, *, contact_id: str | None = None) -> list[ActivityLog]:
        """Newest first."""
        with self._lock:
            return [
                a
                for a in self._doc.activities
                if a.church_id == church_id and (contact_id is None or a.contact_id == contact_id)
            ]

    # ---- templates, plans, smtp ----

    def create_template(
        self,
        church_id: str,
        *,
        label: str,
        category: TaskCategory | str,
        default_recurrence: TaskRecurrence | str = TaskRecurrence.ONE_TIME,
        description: str | None = None,
    ) -> AssignmentTemplate:
        if not label or not label.strip():
            raise ValidationError("template label is required")
        entry = AssignmentTemplate(
            id=_new_id(),
            church_id=church_id,
            label=label.strip(),
            category=_enum(TaskCategory, category, "category"),
            default_recurrence=_enum(TaskRecurrence, default_recurrence, "recurrence"),
            description=description,
        )
        with self._transaction() as doc:
            self._require_church(church_id)
            doc.templates.append(entry)
        return _detached(entry)

    def list_templates(self, church_id: str) -> list[AssignmentTemplate]:
        with self._lock:
            return _detached([t for t in self._doc.templates if t.church_id == church_id])

    def list_plans(self) -> list[SubscriptionPlan]:
        with self._lock:
            return _detached(self._doc.plans)

    def update_plan(self, church_id: str, plan_id: str) -> Church | None:
        with self._lock:
            church = self._church(church_id)
            if church is None:
                return None
            if not any(p.id == plan_id for p in self._doc.plans):
                raise ValidationError(f"unknown plan {plan_id!r}")
            with self._transaction():
                church.plan_id = plan_id
            return _detached(church)

    def update_smtp_settings(
        self,
        church_id: str,
        *,
        host: str | None = None,
        port: int | None = None,
        secure: bool | None = None,
        user: str | None = None,
        password: str | None = None,
        from_name: str | None = None,
        from_email: str | None = None,
    ) -> SmtpSettings | None:
        """
        Merge SMTP settings into the church. An empty host clears them.
        An explicit empty password clears the stored one; None keeps it.
        """
        with self._lock:
            church = self._church(church_id)
            if church is None:
                return None
            with self._transaction():
                if not host:
                    church.smtp = None
                else:
                    existing = church.smtp or SmtpSettings(host="")
                    church.smtp = SmtpSettings(
                        host=host,
                        port=int(port) if port is not None else existing.port,
                        secure=bool(secure) if secure is not None else existing.secure,
                        user=user if user is not None else existing.user,
                        password=existing.password if password is None else (password or None),
                        from_name=from_name or existing.from_name,
                        from_email=from_email or existing.from_email,
                    )
            return _detached(church.smtp)

    # ---- reports ----

    def _compose(self, church_id: str, start: datetime, end: datetime, label: str) -> ReportDigest:
        with self._lock:
            if self._church(church_id) is None:
                raise NotFoundError(f"church {church_id!r} not found")
            return compose_digest(
                church_id,
                start,
                end,
                label,
                activities=self._doc.activities,
                tasks=self._doc.tasks,
                contacts=self._doc.contacts,
            )

    def generate_weekly_digest(self, church_id: str, now: datetime | None = None) -> ReportDigest:
        start, end = week_window(now or self._now(), self._week_start)
        return self._compose(church_id, start, end, WEEKLY)

    def generate_monthly_digest(self, church_id: str, now: datetime | None = None) -> ReportDigest:
        start, end = month_window(now or self._now())
        return self._compose(church_id, start, end, MONTHLY)

    def write_report_to_disk(self, church_id: str, digest: ReportDigest) -> Path:
        return write_report(self.reports_dir, church_id, digest)

    # ---- sync ----

    def create_sync_bundle(self, church_id: str) -> SyncBundle | None:
        with self._lock:
            church = self._church(church_id)
            if church is None:
                return None
            bundle = build_bundle(
                church,
                campuses=self._doc.campuses,
                contacts=self._doc.contacts,
                tasks=self._doc.tasks,
                activities=self._doc.activities,
                templates=self._doc.templates,
                generated_at=to_iso(self._now()),
            )
            return _detached(bundle)

    def import_sync_bundle(
        self,
        church_id: str,
        bundle: SyncBundle | dict[str, Any],
        source_path: str | Path = "",
    ) -> SyncImportResult:
        """
        Merge a bundle into `church_id`.

        Records whose id already exists are left untouched. Admitted records are
        re-homed to the destination church; a contact whose campus is not one of
        the destination's campuses lands on the destination's primary campus.
        Tasks and activities whose contact is not in the destination church
        after the contact merge are skipped.
        """
        incoming = SyncBundle.from_dict(bundle) if isinstance(bundle, dict) else _detached(bundle)

        with self._lock:
            church = self._church(church_id)
            if church is None:
                raise NotFoundError(f"church {church_id!r} not found")

            with self._transaction() as doc:
                for campus in incoming.campuses:
                    campus.church_id = church.id
                    campus.primary = False
                merge_by_id(doc.campuses, incoming.campuses)

                own_campuses = {c.id for c in doc.campuses if c.church_id == church.id}
                for contact in incoming.contacts:
                    contact.church_id = church.id
                    if contact.campus_id not in own_campuses:
                        contact.campus_id = church.primary_campus_id
                contacts = merge_by_id(doc.contacts, incoming.contacts)

                own_contacts = {c.id for c in doc.contacts if c.church_id == church.id}
                orphans = [t.id for t in incoming.tasks if t.contact_id not in own_contacts]
                if orphans:
                    logger.warning(
                        "Sync import skipped %d task(s) without a contact in church=%s: %s",
                        len(orphans),
                        church.id,
                        ", ".join(orphans),
                    )
                for task in incoming.tasks:
                    task.church_id = church.id
                tasks = merge_by_id(doc.tasks, [t for t in incoming.tasks if t.contact_id in own_contacts])

                activities = merge_by_id(
                    doc.activities,
                    [
                        dataclasses.replace(a, church_id=church.id)
                        for a in incoming.activities
                        if a.contact_id in own_contacts
                    ],
                )
                if activities:
                    doc.activities.sort(key=lambda a: a.created_at, reverse=True)

                for template in incoming.templates:
                    template.church_id = church.id
                merge_by_id(doc.templates, incoming.templates)

        logger.info(
            "Sync import church=%s contacts=%d tasks=%d activities=%d source=%s",
            church_id,
            len(contacts),
            len(tasks),
            len(activities),
            source_path,
        )
        return SyncImportResult(
            imported_contacts=len(contacts),
            imported_tasks=len(tasks),
            path=str(source_path),
        )
