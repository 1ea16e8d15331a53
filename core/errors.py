"""Failure types raised by the service layer.

Callers branch on the class: validation and state conflicts carry enough
detail to correct the request, ``NotFoundError`` is raised identically for
missing rows and rows owned by another bakery, and ``PersistenceError`` hides
the storage failure behind a generic message.
"""
from __future__ import annotations

from typing import Any


class BakeryOpsError(Exception):
    default_message = "Operation failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BakeryOpsError):
    default_message = "Invalid input."

    def __init__(self, errors: dict[str, Any], message: str | None = None):
        self.errors = errors
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls({field: [message]}, message=message)


class NotFoundError(BakeryOpsError):
    def __init__(self, entity: str, message: str | None = None):
        self.entity = entity
        super().__init__(message or f"{entity} not found.")


class StateConflictError(BakeryOpsError):
    default_message = "The record is not in a state that allows this operation."


class NotDraftError(StateConflictError):
    default_message = "Only draft sheets can be modified."


class AlreadyCompletedError(StateConflictError):
    default_message = "Sheet is already completed."


class PersistenceError(BakeryOpsError):
    default_message = "The operation could not be saved. Try again later."
