"""
Import statistics.

Counts are read straight from the mapping and session tables on every call,
so they reflect the last recompute pass and nothing is cached.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from reconciler.core.logging import get_context_logger
from reconciler.models.enums import EntityKind, SessionStatus
from reconciler.schemas.imports import ImportResponse
from reconciler.services.import_service import require_import
from reconciler.services.mapping_registry import MappingRegistry
from reconciler.services.session_service import count_by_status


@dataclass(frozen=True)
class ImportStats:
    mapped: int  # mapped users + mapped books
    unmapped: int  # unmapped users + unmapped books
    ready: int  # sessions in ready
    imported: int  # sessions in imported


def get_import_stats(db: Session, import_id: str) -> ImportStats:
    require_import(db, import_id)

    users_mapped, users_unmapped = MappingRegistry(db, EntityKind.USER).count(import_id)
    books_mapped, books_unmapped = MappingRegistry(db, EntityKind.BOOK).count(import_id)
    sessions = count_by_status(db, import_id)

    return ImportStats(
        mapped=users_mapped + books_mapped,
        unmapped=users_unmapped + books_unmapped,
        ready=sessions[SessionStatus.READY.value],
        imported=sessions[SessionStatus.IMPORTED.value],
    )


def refresh_import_counters(db: Session, import_id: str) -> ImportResponse:
    """Write current totals and mapped/imported counts onto the import row."""
    imp = require_import(db, import_id)

    users_mapped, users_unmapped = MappingRegistry(db, EntityKind.USER).count(import_id)
    books_mapped, books_unmapped = MappingRegistry(db, EntityKind.BOOK).count(import_id)
    sessions = count_by_status(db, import_id)

    imp.total_users = users_mapped + users_unmapped
    imp.total_books = books_mapped + books_unmapped
    imp.total_sessions = sum(sessions.values())
    imp.users_mapped = users_mapped
    imp.books_mapped = books_mapped
    imp.sessions_imported = sessions[SessionStatus.IMPORTED.value]
    db.commit()
    db.refresh(imp)

    get_context_logger(__name__, import_id=import_id).debug(
        "Refreshed import counters",
        extra={
            "extra_fields": {
                "users_mapped": imp.users_mapped,
                "books_mapped": imp.books_mapped,
                "sessions_imported": imp.sessions_imported,
            }
        },
    )
    return ImportResponse.model_validate(imp)
