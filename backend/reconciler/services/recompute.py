"""
Batch recompute of session statuses for one import.

Each pass reads the mapped user ids and mapped book ids once, then applies
:func:`derive_status` to every non-terminal session and writes the rows
whose status changed. The whole pass commits as one transaction, so a failed
pass leaves the previous state intact and can simply be run again.

Nothing is carried over between passes: running it twice in a row leaves
the same status distribution as running it once.
"""

from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reconciler.core.logging import get_context_logger
from reconciler.models.enums import EntityKind, SessionStatus
from reconciler.models.session import ImportSession
from reconciler.services.import_service import require_import
from reconciler.services.mapping_registry import MappingRegistry
from reconciler.services.session_service import (
    NON_TERMINAL_VALUES,
    count_by_status,
    derive_status,
)


@dataclass
class RecomputeResult:
    import_id: str
    examined: int = 0
    changed: int = 0
    distribution: dict[str, int] = field(default_factory=dict)


def recompute_session_statuses(db: Session, import_id: str) -> RecomputeResult:
    """Re-derive the status of every non-terminal session from current mappings."""
    log = get_context_logger(__name__, import_id=import_id)
    require_import(db, import_id)

    result = RecomputeResult(import_id=import_id)
    try:
        mapped_users = MappingRegistry(db, EntityKind.USER).mapped_ids(import_id)
        mapped_books = MappingRegistry(db, EntityKind.BOOK).mapped_ids(import_id)

        sessions = (
            db.query(ImportSession)
            .filter(
                ImportSession.import_id == import_id,
                ImportSession.status.in_(NON_TERMINAL_VALUES),
            )
            .all()
        )

        changes: dict[str, list[int]] = defaultdict(list)
        for session in sessions:
            result.examined += 1
            new_status = derive_status(
                SessionStatus(session.status),
                session.external_user_id in mapped_users,
                session.external_media_id in mapped_books,
            )
            if new_status.value != session.status:
                changes[new_status.value].append(session.id)

        # Rows imported or skipped since the read above keep their status
        for status, session_ids in changes.items():
            result.changed += (
                db.query(ImportSession)
                .filter(
                    ImportSession.id.in_(session_ids),
                    ImportSession.status.in_(NON_TERMINAL_VALUES),
                )
                .update({"status": status}, synchronize_session=False)
            )

        db.commit()

    except SQLAlchemyError:
        db.rollback()
        log.error("Session recompute failed; no statuses were changed", exc_info=True)
        raise

    result.distribution = count_by_status(db, import_id)
    log.info(
        f"Recomputed {result.examined} sessions ({result.changed} changed)",
        extra={"extra_fields": {"distribution": result.distribution}},
    )
    return result
