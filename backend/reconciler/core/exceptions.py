"""Error kinds raised by the reconciliation services.

Storage failures (``sqlalchemy.exc.SQLAlchemyError``) are not wrapped; they
propagate unchanged so callers can decide whether to retry.
"""

from typing import Any


class ReconcilerError(Exception):
    """Base class for all reconciliation errors."""

    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class NotFoundError(ReconcilerError):
    """No row matched the given composite key."""

    def __init__(self, entity_type: str, key: Any) -> None:
        super().__init__(f"{entity_type} {key} not found")
        self.entity_type = entity_type
        self.key = key


class AlreadyExistsError(ReconcilerError):
    """An insert collided with a uniqueness constraint."""

    def __init__(self, entity_type: str, key: Any) -> None:
        super().__init__(f"{entity_type} {key} already exists")
        self.entity_type = entity_type
        self.key = key


class ImportValidationError(ReconcilerError):
    """A stored or supplied payload could not be decoded. Not retryable."""


class InvalidTransitionError(ImportValidationError):
    """An explicit session transition is not allowed from the current status."""

    def __init__(self, session_id: str, current: str, target: str) -> None:
        super().__init__(f"Session {session_id} cannot move from {current} to {target}")
        self.session_id = session_id
        self.current = current
        self.target = target
