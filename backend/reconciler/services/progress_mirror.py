"""
Mirror of ABS media progress rows.

Progress rows are written once at ingestion and read by the downstream
importer, which also owns their ``status``/``imported_at`` pair. Session
recompute never touches them.
"""

from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reconciler.core.exceptions import AlreadyExistsError, NotFoundError
from reconciler.core.logging import get_context_logger
from reconciler.models.enums import SessionStatus
from reconciler.models.mapping import ImportBook
from reconciler.models.session import ImportProgress
from reconciler.schemas.session import ProgressCreate, ProgressResponse
from reconciler.services.import_service import require_import


def _progress_query(db: Session, import_id: str, user_id: str, media_id: str):
    return db.query(ImportProgress).filter(
        ImportProgress.import_id == import_id,
        ImportProgress.external_user_id == user_id,
        ImportProgress.external_media_id == media_id,
    )


def create_progress(db: Session, import_id: str, data: ProgressCreate) -> ProgressResponse:
    """Insert a progress row from ingestion. Raises AlreadyExistsError on a duplicate key."""
    require_import(db, import_id)
    progress = ImportProgress(import_id=import_id, **data.model_dump())
    db.add(progress)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyExistsError(
            "Import progress",
            f"{import_id}:{data.external_user_id}:{data.external_media_id}",
        ) from None

    db.refresh(progress)
    return ProgressResponse.model_validate(progress)


def get_progress(db: Session, import_id: str, user_id: str, media_id: str) -> ProgressResponse:
    progress = _progress_query(db, import_id, user_id, media_id).first()
    if not progress:
        raise NotFoundError("Import progress", f"{import_id}:{user_id}:{media_id}")
    return ProgressResponse.model_validate(progress)


def list_progress_for_user(db: Session, import_id: str, user_id: str) -> list[ProgressResponse]:
    """All progress rows of one ABS user, most recently updated first."""
    rows = (
        db.query(ImportProgress)
        .filter(ImportProgress.import_id == import_id, ImportProgress.external_user_id == user_id)
        .order_by(ImportProgress.last_update.desc(), ImportProgress.external_media_id)
        .all()
    )
    return [ProgressResponse.model_validate(p) for p in rows]


def list_progress(
    db: Session,
    import_id: str,
    status: SessionStatus | None = None,
) -> list[ProgressResponse]:
    q = db.query(ImportProgress).filter(ImportProgress.import_id == import_id)
    if status is not None:
        q = q.filter(ImportProgress.status == SessionStatus(status).value)
    rows = q.order_by(ImportProgress.external_user_id, ImportProgress.external_media_id).all()
    return [ProgressResponse.model_validate(p) for p in rows]


def find_progress_by_internal_book(
    db: Session,
    import_id: str,
    user_id: str,
    internal_book_id: str,
) -> ProgressResponse:
    """
    Find a user's progress row through the book mapping.

    The catalog side only knows its own book id, and several ABS media ids can
    map to it; the lookup joins progress to the book mapping on media id and
    matches the mapping's internal id. Raises NotFoundError when the book has
    no mapping or the user has no progress for it.
    """
    progress = (
        db.query(ImportProgress)
        .join(
            ImportBook,
            (ImportBook.import_id == ImportProgress.import_id)
            & (ImportBook.external_id == ImportProgress.external_media_id),
        )
        .filter(
            ImportProgress.import_id == import_id,
            ImportProgress.external_user_id == user_id,
            ImportBook.internal_id == internal_book_id,
        )
        .order_by(ImportProgress.last_update.desc())
        .first()
    )
    if not progress:
        raise NotFoundError("Import progress", f"{import_id}:{user_id}:book={internal_book_id}")
    return ProgressResponse.model_validate(progress)


def set_progress_status(
    db: Session,
    import_id: str,
    user_id: str,
    media_id: str,
    status: SessionStatus,
) -> ProgressResponse:
    """Record the downstream importer's outcome for a progress row."""
    status = SessionStatus(status)
    values: dict = {"status": status.value}
    if status == SessionStatus.IMPORTED:
        values["imported_at"] = datetime.utcnow()

    updated = _progress_query(db, import_id, user_id, media_id).update(
        values, synchronize_session=False
    )
    if updated == 0:
        db.rollback()
        raise NotFoundError("Import progress", f"{import_id}:{user_id}:{media_id}")
    db.commit()

    get_context_logger(__name__, import_id=import_id).info(
        f"Progress {user_id}/{media_id} marked {status.value}",
    )
    return get_progress(db, import_id, user_id, media_id)
