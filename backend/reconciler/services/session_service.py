"""
Session status state machine.

``pending_user``, ``pending_book`` and ``ready`` are derived from mapping
state by :func:`derive_status`; ``imported`` and ``skipped`` are terminal and
only reached through explicit calls. Nothing automatic ever moves a session
out of a terminal state.
"""

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reconciler.core.config import get_settings
from reconciler.core.exceptions import AlreadyExistsError, InvalidTransitionError, NotFoundError
from reconciler.core.logging import get_context_logger
from reconciler.models.enums import (
    PENDING_STATUSES,
    TERMINAL_STATUSES,
    SessionFilter,
    SessionStatus,
)
from reconciler.models.session import ImportSession
from reconciler.schemas.session import SessionCreate, SessionResponse, SessionSummary
from reconciler.services.import_service import require_import

NON_TERMINAL_VALUES = [s.value for s in SessionStatus if s not in TERMINAL_STATUSES]

_FILTER_STATUSES: dict[SessionFilter, list[str]] = {
    SessionFilter.PENDING: [s.value for s in PENDING_STATUSES],
    SessionFilter.READY: [SessionStatus.READY.value],
    SessionFilter.IMPORTED: [SessionStatus.IMPORTED.value],
    SessionFilter.SKIPPED: [SessionStatus.SKIPPED.value],
}


def derive_status(current: SessionStatus, user_mapped: bool, book_mapped: bool) -> SessionStatus:
    """Status a session should hold given its current status and mapping state.

    The user predicate is checked first: a session whose user is unmapped is
    pending_user whatever its book looks like.
    """
    current = SessionStatus(current)
    if current.is_terminal:
        return current
    if not user_mapped:
        return SessionStatus.PENDING_USER
    if not book_mapped:
        return SessionStatus.PENDING_BOOK
    return SessionStatus.READY


def _session_query(db: Session, import_id: str, session_id: str):
    return db.query(ImportSession).filter(
        ImportSession.import_id == import_id,
        ImportSession.external_session_id == session_id,
    )


def _get_row(db: Session, import_id: str, session_id: str) -> ImportSession:
    session = _session_query(db, import_id, session_id).first()
    if not session:
        raise NotFoundError("Import session", f"{import_id}:{session_id}")
    return session


def create_session(db: Session, import_id: str, data: SessionCreate) -> SessionResponse:
    """Insert a session from ingestion. Raises AlreadyExistsError on a duplicate id."""
    require_import(db, import_id)
    session = ImportSession(
        import_id=import_id,
        **data.model_dump(exclude={"status"}),
        status=data.status.value,
    )
    db.add(session)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyExistsError(
            "Import session", f"{import_id}:{data.external_session_id}"
        ) from None

    db.refresh(session)
    return SessionResponse.model_validate(session)


def get_session(db: Session, import_id: str, session_id: str) -> SessionResponse:
    return SessionResponse.model_validate(_get_row(db, import_id, session_id))


def list_sessions(
    db: Session,
    import_id: str,
    status_filter: SessionFilter | str = SessionFilter.ALL,
    limit: int | None = None,
    offset: int = 0,
) -> list[SessionResponse]:
    """List sessions of an import, oldest first."""
    q = db.query(ImportSession).filter(ImportSession.import_id == import_id)

    status_filter = SessionFilter(status_filter)
    if status_filter != SessionFilter.ALL:
        q = q.filter(ImportSession.status.in_(_FILTER_STATUSES[status_filter]))

    q = q.order_by(ImportSession.start_time.asc(), ImportSession.external_session_id.asc())
    if offset:
        q = q.offset(offset)
    if limit is not None:
        q = q.limit(limit)

    return [SessionResponse.model_validate(s) for s in q.all()]


def count_by_status(db: Session, import_id: str) -> dict[str, int]:
    rows = (
        db.query(ImportSession.status, func.count(ImportSession.id))
        .filter(ImportSession.import_id == import_id)
        .group_by(ImportSession.status)
        .all()
    )
    counts = {status.value: 0 for status in SessionStatus}
    counts.update({status: count for status, count in rows})
    return counts


def session_summary(db: Session, import_id: str) -> SessionSummary:
    counts = count_by_status(db, import_id)
    return SessionSummary(
        total=sum(counts.values()),
        pending=counts[SessionStatus.PENDING_USER.value] + counts[SessionStatus.PENDING_BOOK.value],
        ready=counts[SessionStatus.READY.value],
        imported=counts[SessionStatus.IMPORTED.value],
        skipped=counts[SessionStatus.SKIPPED.value],
    )


def mark_imported(db: Session, import_id: str, session_id: str) -> SessionResponse:
    """
    Record that the downstream importer wrote this session to the catalog.

    Allowed from any non-terminal status and stamps ``imported_at``. Calling
    it again on an imported session changes nothing; a skipped session
    cannot be imported.
    """
    updated = (
        _session_query(db, import_id, session_id)
        .filter(ImportSession.status.in_(NON_TERMINAL_VALUES))
        .update(
            {"status": SessionStatus.IMPORTED.value, "imported_at": datetime.utcnow()},
            synchronize_session=False,
        )
    )
    if updated == 0:
        db.rollback()
        session = _get_row(db, import_id, session_id)
        if session.status == SessionStatus.IMPORTED.value:
            return SessionResponse.model_validate(session)
        raise InvalidTransitionError(session_id, session.status, SessionStatus.IMPORTED.value)

    db.commit()
    get_context_logger(__name__, import_id=import_id).info(
        f"Session {session_id} imported", extra={"extra_fields": {"session_id": session_id}}
    )
    return get_session(db, import_id, session_id)


def skip_session(
    db: Session,
    import_id: str,
    session_id: str,
    reason: str | None = None,
) -> SessionResponse:
    """
    Skip a session so it is never imported.

    Allowed from any non-terminal status; repeating it on a skipped session
    just replaces the reason. The previous status is not kept.
    """
    reason = reason or get_settings().DEFAULT_SKIP_REASON
    allowed = NON_TERMINAL_VALUES + [SessionStatus.SKIPPED.value]

    updated = (
        _session_query(db, import_id, session_id)
        .filter(ImportSession.status.in_(allowed))
        .update(
            {"status": SessionStatus.SKIPPED.value, "skip_reason": reason},
            synchronize_session=False,
        )
    )
    if updated == 0:
        db.rollback()
        session = _get_row(db, import_id, session_id)
        raise InvalidTransitionError(session_id, session.status, SessionStatus.SKIPPED.value)

    db.commit()
    get_context_logger(__name__, import_id=import_id).info(
        f"Session {session_id} skipped",
        extra={"extra_fields": {"session_id": session_id, "reason": reason}},
    )
    return get_session(db, import_id, session_id)
