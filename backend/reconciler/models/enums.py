from enum import Enum


class ImportStatus(str, Enum):
    """Lifecycle of one migration job."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class SessionStatus(str, Enum):
    """Import state of a listening session (also used by progress rows)."""

    PENDING_USER = "pending_user"  # Waiting for user mapping
    PENDING_BOOK = "pending_book"  # Waiting for book mapping
    READY = "ready"  # Both mapped
    IMPORTED = "imported"  # Written to the catalog by the downstream importer
    SKIPPED = "skipped"  # Explicitly skipped by an operator

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SessionStatus.IMPORTED, SessionStatus.SKIPPED})
PENDING_STATUSES = frozenset({SessionStatus.PENDING_USER, SessionStatus.PENDING_BOOK})


class EntityKind(str, Enum):
    """Kinds of external entity the mapping registry tracks."""

    USER = "user"
    BOOK = "book"


class MappingFilter(str, Enum):
    ALL = "all"
    MAPPED = "mapped"
    UNMAPPED = "unmapped"


class SessionFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"  # pending_user or pending_book
    READY = "ready"
    IMPORTED = "imported"
    SKIPPED = "skipped"
