# src/ember_followup/core/errors.py

from __future__ import annotations


class EmberError(Exception):
    """Base class for errors raised by the record keeper core."""


class ValidationError(EmberError, ValueError):
    """A required field or foreign key is missing or inconsistent. Nothing was mutated."""


class InvalidTransitionError(ValidationError):
    """The requested task status change is not allowed from the current status."""

    def __init__(self, task_id: str, current: str, requested: str) -> None:
        super().__init__(f"task {task_id}: cannot move from {current} to {requested}")
        self.task_id = task_id
        self.current = current
        self.requested = requested


class NotFoundError(EmberError, LookupError):
    """The operation requires a target (church, contact, task) that does not exist."""


class InvalidCredentials(EmberError):
    """Unknown email or wrong password."""
