# src/ember_followup/store/seed.py

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from ..core.clock import to_iso
from ..core.models import (
    ActivityLog,
    ActivityType,
    AssignmentTemplate,
    Campus,
    Church,
    Contact,
    ContactTemperature,
    DigestPreference,
    FollowUpTask,
    PreferredContactMethod,
    SubscriptionPlan,
    TaskCategory,
    TaskRecurrence,
    TaskStatus,
    UserAccount,
    UserCredential,
    UserRole,
)
from .document import DB_VERSION, DEFAULT_TAGLINE, Document


def _id() -> str:
    return str(uuid.uuid4())


def seed_plans() -> list[SubscriptionPlan]:
    return [
        SubscriptionPlan(
            id="plan-lite",
            name="Lite",
            price_per_month=19,
            max_users=25,
            max_contacts=500,
            features=["Assignments", "Printable lists"],
        ),
        SubscriptionPlan(
            id="plan-growth",
            name="Growth",
            price_per_month=49,
            max_users=150,
            max_contacts=2500,
            features=["Scheduling", "Email alerts", "Exports"],
        ),
    ]


def empty_document(now: datetime) -> Document:
    return Document(version=DB_VERSION, last_updated=to_iso(now), plans=seed_plans())


def demo_document(now: datetime, hash_password: Callable[[str], str]) -> Document:
    """A demo church with three team members, contacts, tasks and templates."""
    ts = to_iso(now)
    church_id, campus_id = _id(), _id()
    director_id, connector_id, teacher_id = _id(), _id(), _id()
    plans = seed_plans()

    campus = Campus(
        id=campus_id,
        church_id=church_id,
        name="Downtown Campus",
        address="1200 Central Ave, Springfield, USA",
        timezone="America/Chicago",
        primary=True,
    )
    church = Church(
        id=church_id,
        name="Ember Demo Church",
        brand_tagline=DEFAULT_TAGLINE,
        plan_id=plans[1].id,
        digest_preference=DigestPreference(day_of_week=1, time="08:00"),
        email_alerts=True,
        audible_alerts=True,
        primary_campus_id=campus_id,
    )

    users = [
        UserAccount(
            id=director_id,
            church_id=church_id,
            name="Sarah Summers",
            email="sarah@gracecity.church",
            phone="555-1111",
            role=UserRole.DIRECTOR,
            avatar_color="#2563eb",
        ),
        UserAccount(
            id=connector_id,
            church_id=church_id,
            name="Andre Lewis",
            email="andre@gracecity.church",
            phone="555-1112",
            role=UserRole.CONNECTOR,
            avatar_color="#22c55e",
        ),
        UserAccount(
            id=teacher_id,
            church_id=church_id,
            name="Melissa Cho",
            email="melissa@gracecity.church",
            phone="555-1113",
            role=UserRole.TEACHER,
            avatar_color="#f97316",
        ),
    ]
    credentials = [
        UserCredential(user_id=director_id, password_hash=hash_password("director123")),
        UserCredential(user_id=connector_id, password_hash=hash_password("connector123")),
        UserCredential(user_id=teacher_id, password_hash=hash_password("teacher123")),
    ]

    def contact(name: str, email: str, phone: str, **kw) -> Contact:
        return Contact(
            id=_id(),
            church_id=church_id,
            campus_id=campus_id,
            display_name=name,
            email=email,
            phone=phone,
            created_at=ts,
            updated_at=ts,
            last_activity_at=ts,
            **kw,
        )

    contacts = [
        contact(
            "Jasmine Patel",
            "jasmine@example.com",
            "555-0101",
            preferred_contact_method=PreferredContactMethod.TEXT,
            temperature=ContactTemperature.COOL,
            owner_id=connector_id,
            tags=["young adults", "new visitor"],
            background_notes="Met during Sunday welcome brunch.",
        ),
        contact(
            "Marcus Reid",
            "marcus@example.com",
            "555-0102",
            preferred_contact_method=PreferredContactMethod.PHONE,
            temperature=ContactTemperature.WARM,
            owner_id=teacher_id,
            tags=["family"],
            background_notes="Interested in children's programs.",
        ),
        contact(
            "Elena Alvarez",
            "elena@example.com",
            "555-0103",
            preferred_contact_method=PreferredContactMethod.EMAIL,
            temperature=ContactTemperature.NEW,
            tags=["prayer"],
        ),
    ]

    tasks = [
        FollowUpTask(
            id=_id(),
            church_id=church_id,
            contact_id=contacts[0].id,
            assignee_id=connector_id,
            category=TaskCategory.TEXT,
            status=TaskStatus.PENDING,
            due_date=to_iso(now + timedelta(days=1)),
            notes="Send mid-week encouragement text.",
            recurrence=TaskRecurrence.ONE_TIME,
            created_at=ts,
            updated_at=ts,
        ),
        FollowUpTask(
            id=_id(),
            church_id=church_id,
            contact_id=contacts[1].id,
            assignee_id=teacher_id,
            category=TaskCategory.VISIT,
            status=TaskStatus.IN_PROGRESS,
            due_date=to_iso(now - timedelta(hours=12)),
            notes="Deliver family welcome basket.",
            recurrence=TaskRecurrence.MONTHLY,
            created_at=ts,
            updated_at=ts,
        ),
    ]

    activities = [
        ActivityLog(
            id=_id(),
            church_id=church_id,
            contact_id=contacts[0].id,
            user_id=connector_id,
            type=ActivityType.NOTE,
            note="Jasmine joined the young adults group.",
            created_at=ts,
        ),
        ActivityLog(
            id=_id(),
            church_id=church_id,
            contact_id=contacts[1].id,
            user_id=teacher_id,
            type=ActivityType.NOTE,
            note="Scheduled a home visit for Thursday evening.",
            created_at=ts,
        ),
    ]

    templates = [
        AssignmentTemplate(
            id=_id(),
            church_id=church_id,
            label="Welcome Phone Call",
            description="Call guest within 48 hours with a warm welcome.",
            category=TaskCategory.CALL,
            default_recurrence=TaskRecurrence.ONE_TIME,
        ),
        AssignmentTemplate(
            id=_id(),
            church_id=church_id,
            label="Bible Study Invite",
            description="Invite contact to join ongoing study group.",
            category=TaskCategory.BIBLE_STUDY,
            default_recurrence=TaskRecurrence.WEEKLY,
        ),
    ]

    return Document(
        version=DB_VERSION,
        last_updated=ts,
        churches=[church],
        campuses=[campus],
        users=users,
        credentials=credentials,
        contacts=contacts,
        tasks=tasks,
        activities=activities,
        plans=plans,
        templates=templates,
    )
