# src/ember_followup/tasks/lifecycle.py

from __future__ import annotations

"""
Follow-up task status machine.

    pending / in-progress --> completed | rescheduled | past-due (sweep)
    past-due              --> completed
    rescheduled           --> completed | past-due (sweep)
    completed             (terminal)

pending and in-progress may also move between each other. An explicit update to
pending on an overdue task is stored as past-due. The sweep always judges a task
by its original dueDate; rescheduledFor is informational.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from ..core.clock import to_iso, try_parse_iso
from ..core.errors import InvalidTransitionError, ValidationError
from ..core.models import FollowUpTask, TaskStatus, TaskStatusUpdate

logger = logging.getLogger(__name__)

_OPEN = frozenset(
    {
        TaskStatus.PENDING,
        TaskStatus.IN_PROGRESS,
        TaskStatus.COMPLETED,
        TaskStatus.RESCHEDULED,
        TaskStatus.PAST_DUE,
    }
)

TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: _OPEN,
    TaskStatus.IN_PROGRESS: _OPEN,
    TaskStatus.PAST_DUE: frozenset({TaskStatus.COMPLETED}),
    TaskStatus.RESCHEDULED: frozenset({TaskStatus.COMPLETED, TaskStatus.PAST_DUE}),
    TaskStatus.COMPLETED: frozenset(),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def is_overdue(task: FollowUpTask, now: datetime) -> bool:
    due = try_parse_iso(task.due_date)
    return due is not None and due < now


def normalize_status(status: TaskStatus, due_date: str, now: datetime) -> TaskStatus:
    due = try_parse_iso(due_date)
    if status == TaskStatus.PENDING and due is not None and due < now:
        return TaskStatus.PAST_DUE
    return status


def apply_status_update(task: FollowUpTask, update: TaskStatusUpdate, now: datetime) -> TaskStatus:
    """
    Validate and apply an explicit status update in place.

    Raises InvalidTransitionError / ValidationError before touching the task.
    Returns the stored (normalized) status.
    """
    requested = TaskStatus(update.status)
    if not can_transition(task.status, requested):
        raise InvalidTransitionError(task.id, task.status.value, requested.value)
    if requested == TaskStatus.RESCHEDULED and not update.rescheduled_for:
        raise ValidationError("rescheduledFor is required when rescheduling a task")
    if requested == TaskStatus.RESCHEDULED and try_parse_iso(update.rescheduled_for) is None:
        raise ValidationError(f"rescheduledFor is not a valid date: {update.rescheduled_for!r}")

    stamp = to_iso(now)
    task.status = normalize_status(requested, task.due_date, now)
    task.updated_at = stamp

    if requested == TaskStatus.COMPLETED:
        task.completed_at = stamp
        task.outcome_note = update.note
    elif requested == TaskStatus.RESCHEDULED:
        task.rescheduled_for = update.rescheduled_for
        task.outcome_note = update.note

    logger.debug("Task %s -> %s (requested %s)", task.id, task.status.value, requested.value)
    return task.status


def sweep_past_due(tasks: Iterable[FollowUpTask], now: datetime) -> list[FollowUpTask]:
    """
    Flip every overdue, not-yet-past-due task to past-due.

    Returns exactly the tasks that changed. A task with an unparsable due date is
    logged and left alone; it never aborts the rest of the batch.
    """
    changed: list[FollowUpTask] = []
    stamp = to_iso(now)
    for task in tasks:
        if task.status in (TaskStatus.COMPLETED, TaskStatus.PAST_DUE):
            continue
        if not can_transition(task.status, TaskStatus.PAST_DUE):
            continue
        if try_parse_iso(task.due_date) is None:
            logger.warning("Task %s has unparsable due date %r; skipped by sweep", task.id, task.due_date)
            continue
        if not is_overdue(task, now):
            continue
        task.status = TaskStatus.PAST_DUE
        task.updated_at = stamp
        changed.append(task)
    return changed
