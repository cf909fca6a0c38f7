# src/ember_followup/core/models.py

"""
Entities and input records.

Entities are mutable dataclasses (ActivityLog is frozen: write-once). They are
persisted as camelCase JSON objects; `to_dict()` drops unset optionals so the
document stays compatible with installations written by older versions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, is_dataclass
from enum import StrEnum
from typing import Any, TypeVar

_E = TypeVar("_E", bound=StrEnum)

_HHMM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


def record_to_dict(obj: Any) -> Any:
    """Serialize dataclasses (recursively) into camelCase JSON-ready values."""
    if is_dataclass(obj) and not isinstance(obj, type):
        out: dict[str, Any] = {}
        for f in fields(obj):
            value = getattr(obj, f.name)
            if value is None:
                continue
            out[_camel(f.name)] = record_to_dict(value)
        return out
    if isinstance(obj, StrEnum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [record_to_dict(v) for v in obj]
    if isinstance(obj, dict):
        return {k: record_to_dict(v) for k, v in obj.items()}
    return obj


def coerce_enum(enum_cls: type[_E], raw: Any, default: _E) -> _E:
    if not raw:
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        return default


def _opt_str(raw: Any) -> str | None:
    return None if raw is None else str(raw)


class UserRole(StrEnum):
    DIRECTOR = "director"
    ADMINISTRATOR = "administrator"
    CONNECTOR = "connector"
    TEACHER = "teacher"
    MEMBER = "member"


class ContactTemperature(StrEnum):
    """Outreach stage of a contact."""

    NEW = "new"
    COOL = "cool"
    WARM = "warm"
    HOT = "hot"
    CONVERT = "convert"


class PreferredContactMethod(StrEnum):
    PHONE = "phone"
    TEXT = "text"
    EMAIL = "email"
    VISIT = "visit"


class TaskCategory(StrEnum):
    CALL = "call"
    VISIT = "visit"
    TEXT = "text"
    EMAIL = "email"
    GIFT = "gift"
    MEAL = "meal"
    COFFEE = "coffee"
    BIBLE_STUDY = "bible-study"
    PRAYER = "prayer"
    OTHER = "other"


class TaskRecurrence(StrEnum):
    ONE_TIME = "one-time"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    PAST_DUE = "past-due"
    RESCHEDULED = "rescheduled"


class ActivityType(StrEnum):
    NOTE = "note"
    CALL = "call"
    VISIT = "visit"
    TASK = "task"
    ASSIGNMENT_RESULT = "assignment-result"


# ---- value objects ----


@dataclass(slots=True)
class Address:
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Address:
        return cls(
            street=_opt_str(raw.get("street")),
            city=_opt_str(raw.get("city")),
            state=_opt_str(raw.get("state")),
            postal_code=_opt_str(raw.get("postalCode")),
        )


@dataclass(slots=True)
class FamilyMember:
    name: str
    relation: str = "other"  # spouse | child | other
    age: int | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> FamilyMember:
        age = raw.get("age")
        return cls(
            name=str(raw.get("name") or ""),
            relation=str(raw.get("relation") or "other"),
            age=int(age) if age is not None else None,
        )


@dataclass(slots=True)
class DigestPreference:
    day_of_week: int = 1  # 0-6, Sunday-Saturday
    time: str = "08:00"  # HH:mm

    def hour_minute(self) -> tuple[int, int]:
        m = _HHMM.match(self.time or "")
        if not m:
            raise ValueError(f"digest time must be HH:mm, got {self.time!r}")
        return int(m.group(1)), int(m.group(2))

    def is_valid(self) -> bool:
        return 0 <= int(self.day_of_week) <= 6 and _HHMM.match(self.time or "") is not None

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> DigestPreference:
        if not raw:
            return cls()
        return cls(day_of_week=int(raw.get("dayOfWeek", 1)), time=str(raw.get("time") or "08:00"))


@dataclass(slots=True)
class SmtpSettings:
    host: str
    port: int = 587
    secure: bool = False
    from_name: str = "Ember Alerts"
    from_email: str = "alerts@ember.local"
    user: str | None = None
    password: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> SmtpSettings | None:
        if not raw or not raw.get("host"):
            return None
        return cls(
            host=str(raw["host"]),
            port=int(raw.get("port") or 587),
            secure=bool(raw.get("secure", False)),
            from_name=str(raw.get("fromName") or "Ember Alerts"),
            from_email=str(raw.get("fromEmail") or "alerts@ember.local"),
            user=_opt_str(raw.get("user")),
            password=_opt_str(raw.get("password")),
        )


# ---- entities ----


@dataclass(slots=True)
class Campus:
    id: str
    church_id: str
    name: str
    timezone: str
    address: str | None = None
    primary: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Campus:
        return cls(
            id=str(raw["id"]),
            church_id=str(raw["churchId"]),
            name=str(raw.get("name") or ""),
            timezone=str(raw.get("timezone") or "America/Chicago"),
            address=_opt_str(raw.get("address")),
            primary=bool(raw.get("primary", False)),
        )


@dataclass(slots=True)
class Church:
    """
    Tenant root.

    Campuses are not embedded: the campus table is authoritative and the snapshot
    expands each church's campus list from it.
    """

    id: str
    name: str
    plan_id: str
    primary_campus_id: str
    digest_preference: DigestPreference = field(default_factory=DigestPreference)
    email_alerts: bool = False
    audible_alerts: bool = True
    brand_tagline: str | None = None
    smtp: SmtpSettings | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Church:
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name") or ""),
            plan_id=str(raw.get("planId") or ""),
            primary_campus_id=str(raw.get("primaryCampusId") or ""),
            digest_preference=DigestPreference.from_dict(raw.get("digestPreference")),
            email_alerts=bool(raw.get("emailAlerts", False)),
            audible_alerts=bool(raw.get("audibleAlerts", True)),
            brand_tagline=_opt_str(raw.get("brandTagline")),
            smtp=SmtpSettings.from_dict(raw.get("smtp")),
        )


@dataclass(slots=True)
class UserAccount:
    id: str
    church_id: str
    name: str
    email: str
    role: UserRole
    avatar_color: str = "#2563eb"
    active: bool = True
    phone: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> UserAccount:
        return cls(
            id=str(raw["id"]),
            church_id=str(raw["churchId"]),
            name=str(raw.get("name") or ""),
            email=str(raw.get("email") or ""),
            role=coerce_enum(UserRole, raw.get("role"), UserRole.MEMBER),
            avatar_color=str(raw.get("avatarColor") or "#2563eb"),
            active=bool(raw.get("active", True)),
            phone=_opt_str(raw.get("phone")),
        )


@dataclass(slots=True)
class UserCredential:
    user_id: str
    password_hash: str

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> UserCredential:
        return cls(user_id=str(raw["userId"]), password_hash=str(raw.get("passwordHash") or ""))


@dataclass(slots=True)
class Contact:
    id: str
    church_id: str
    campus_id: str
    display_name: str
    created_at: str
    updated_at: str
    temperature: ContactTemperature = ContactTemperature.NEW
    preferred_contact_method: PreferredContactMethod = PreferredContactMethod.PHONE
    tags: list[str] = field(default_factory=list)
    email: str | None = None
    phone: str | None = None
    address: Address | None = None
    age_range: str | None = None
    birthday: str | None = None
    anniversary: str | None = None
    spouse_name: str | None = None
    marital_status: str | None = None
    children: list[FamilyMember] | None = None
    owner_id: str | None = None
    background_notes: str | None = None
    photo_path: str | None = None
    first_visit_date: str | None = None
    last_visit_date: str | None = None
    last_activity_at: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Contact:
        address = raw.get("address")
        children = raw.get("children")
        return cls(
            id=str(raw["id"]),
            church_id=str(raw["churchId"]),
            campus_id=str(raw.get("campusId") or ""),
            display_name=str(raw.get("displayName") or ""),
            created_at=str(raw.get("createdAt") or ""),
            updated_at=str(raw.get("updatedAt") or raw.get("createdAt") or ""),
            temperature=coerce_enum(ContactTemperature, raw.get("temperature"), ContactTemperature.NEW),
            preferred_contact_method=coerce_enum(
                PreferredContactMethod, raw.get("preferredContactMethod"), PreferredContactMethod.PHONE
            ),
            tags=[str(t) for t in (raw.get("tags") or [])],
            email=_opt_str(raw.get("email")),
            phone=_opt_str(raw.get("phone")),
            address=Address.from_dict(address) if isinstance(address, dict) else None,
            age_range=_opt_str(raw.get("ageRange")),
            birthday=_opt_str(raw.get("birthday")),
            anniversary=_opt_str(raw.get("anniversary")),
            spouse_name=_opt_str(raw.get("spouseName")),
            marital_status=_opt_str(raw.get("maritalStatus")),
            children=[FamilyMember.from_dict(c) for c in children if isinstance(c, dict)]
            if isinstance(children, list)
            else None,
            owner_id=_opt_str(raw.get("ownerId")),
            background_notes=_opt_str(raw.get("backgroundNotes")),
            photo_path=_opt_str(raw.get("photoPath")),
            first_visit_date=_opt_str(raw.get("firstVisitDate")),
            last_visit_date=_opt_str(raw.get("lastVisitDate")),
            last_activity_at=_opt_str(raw.get("lastActivityAt")),
        )


@dataclass(slots=True)
class FollowUpTask:
    id: str
    church_id: str
    contact_id: str
    assignee_id: str
    category: TaskCategory
    status: TaskStatus
    due_date: str
    created_at: str
    updated_at: str
    recurrence: TaskRecurrence = TaskRecurrence.ONE_TIME
    window_start: str | None = None
    window_end: str | None = None
    notes: str | None = None
    template_id: str | None = None
    completed_at: str | None = None
    rescheduled_for: str | None = None
    outcome_note: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> FollowUpTask:
        return cls(
            id=str(raw["id"]),
            church_id=str(raw["churchId"]),
            contact_id=str(raw.get("contactId") or ""),
            assignee_id=str(raw.get("assigneeId") or ""),
            category=coerce_enum(TaskCategory, raw.get("category"), TaskCategory.OTHER),
            status=coerce_enum(TaskStatus, raw.get("status"), TaskStatus.PENDING),
            due_date=str(raw.get("dueDate") or ""),
            created_at=str(raw.get("createdAt") or ""),
            updated_at=str(raw.get("updatedAt") or raw.get("createdAt") or ""),
            recurrence=coerce_enum(TaskRecurrence, raw.get("recurrence"), TaskRecurrence.ONE_TIME),
            window_start=_opt_str(raw.get("windowStart")),
            window_end=_opt_str(raw.get("windowEnd")),
            notes=_opt_str(raw.get("notes")),
            template_id=_opt_str(raw.get("templateId")),
            completed_at=_opt_str(raw.get("completedAt")),
            rescheduled_for=_opt_str(raw.get("rescheduledFor")),
            outcome_note=_opt_str(raw.get("outcomeNote")),
        )


@dataclass(frozen=True, slots=True)
class ActivityLog:
    id: str
    church_id: str
    contact_id: str
    user_id: str
    type: ActivityType
    note: str
    created_at: str
    task_id: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ActivityLog:
        return cls(
            id=str(raw["id"]),
            church_id=str(raw["churchId"]),
            contact_id=str(raw.get("contactId") or ""),
            user_id=str(raw.get("userId") or "system"),
            type=coerce_enum(ActivityType, raw.get("type"), ActivityType.NOTE),
            note=str(raw.get("note") or ""),
            created_at=str(raw.get("createdAt") or ""),
            task_id=_opt_str(raw.get("taskId")),
        )


@dataclass(slots=True)
class AssignmentTemplate:
    id: str
    church_id: str
    label: str
    category: TaskCategory
    default_recurrence: TaskRecurrence = TaskRecurrence.ONE_TIME
    description: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AssignmentTemplate:
        return cls(
            id=str(raw["id"]),
            church_id=str(raw["churchId"]),
            label=str(raw.get("label") or ""),
            category=coerce_enum(TaskCategory, raw.get("category"), TaskCategory.OTHER),
            default_recurrence=coerce_enum(
                TaskRecurrence, raw.get("defaultRecurrence"), TaskRecurrence.ONE_TIME
            ),
            description=_opt_str(raw.get("description")),
        )


@dataclass(slots=True)
class SubscriptionPlan:
    id: str
    name: str
    price_per_month: float
    max_users: int
    max_contacts: int
    features: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SubscriptionPlan:
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name") or ""),
            price_per_month=raw.get("pricePerMonth") or 0,
            max_users=int(raw.get("maxUsers") or 0),
            max_contacts=int(raw.get("maxContacts") or 0),
            features=[str(f) for f in (raw.get("features") or [])],
        )


# ---- results / transient records ----


@dataclass(frozen=True, slots=True)
class ReportDigest:
    period_start: str
    period_end: str
    label: str
    total_activities: int
    completed_assignments: int
    rescheduled_assignments: int
    new_contacts: int
    converts: int
    past_due_tasks: int

    def to_dict(self) -> dict[str, Any]:
        return record_to_dict(self)

    def summary_text(self, report_path: str | None = None) -> str:
        lines = [
            f"Completed assignments: {self.completed_assignments}",
            f"Rescheduled assignments: {self.rescheduled_assignments}",
            f"Past due tasks: {self.past_due_tasks}",
        ]
        if report_path:
            lines.append(f"Report: {report_path}")
        return "\n".join(lines)


@dataclass(slots=True)
class SessionInfo:
    token: str
    user: UserAccount
    church: Church


@dataclass(frozen=True, slots=True)
class NotificationPayload:
    title: str
    message: str
    severity: str  # info | warning | success
    timestamp: str
    kind: str | None = None  # assignment | digest | system
    task_id: str | None = None
    contact_id: str | None = None


@dataclass(frozen=True, slots=True)
class OutboundEmail:
    to: str
    subject: str
    html: str
    text: str | None = None


@dataclass(frozen=True, slots=True)
class SyncImportResult:
    imported_contacts: int
    imported_tasks: int
    path: str


# ---- inputs ----


@dataclass(slots=True)
class ContactInput:
    church_id: str
    display_name: str
    campus_id: str | None = None
    temperature: ContactTemperature | None = None
    email: str | None = None
    phone: str | None = None
    address: Address | None = None
    age_range: str | None = None
    birthday: str | None = None
    anniversary: str | None = None
    spouse_name: str | None = None
    marital_status: str | None = None
    children: list[FamilyMember] | None = None
    owner_id: str | None = None
    preferred_contact_method: PreferredContactMethod | None = None
    tags: list[str] | None = None
    background_notes: str | None = None


@dataclass(slots=True)
class ContactStatusUpdate:
    contact_id: str
    church_id: str
    temperature: ContactTemperature
    user_id: str
    owner_id: str | None = None
    note: str | None = None


@dataclass(slots=True)
class TaskInput:
    church_id: str
    contact_id: str
    assignee_id: str
    category: TaskCategory
    due_date: str
    window_start: str | None = None
    window_end: str | None = None
    notes: str | None = None
    recurrence: TaskRecurrence | None = None
    template_id: str | None = None


@dataclass(slots=True)
class TaskStatusUpdate:
    task_id: str
    status: TaskStatus
    user_id: str
    note: str | None = None
    rescheduled_for: str | None = None


@dataclass(slots=True)
class ActivityInput:
    church_id: str
    contact_id: str
    user_id: str
    type: ActivityType
    note: str
    task_id: str | None = None
