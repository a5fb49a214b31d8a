"""
ABS import job registry.

An import is created once per backup, collects the parsed snapshot rows
(users, books, sessions, progress) and is worked on over several operator
visits until it is marked completed or archived. Deleting an import removes
every row that belongs to it.
"""

import uuid
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reconciler.core.exceptions import AlreadyExistsError, NotFoundError
from reconciler.core.logging import get_context_logger, get_logger
from reconciler.models.enums import EntityKind, ImportStatus
from reconciler.models.imports import Import
from reconciler.models.session import ImportProgress, ImportSession
from reconciler.schemas.imports import ImportCreate, ImportResponse, SnapshotIngestResponse
from reconciler.schemas.snapshot import SnapshotIngest

logger = get_logger(__name__)


def require_import(db: Session, import_id: str) -> Import:
    """Load an import row or raise NotFoundError."""
    imp = db.query(Import).filter(Import.id == import_id).first()
    if not imp:
        raise NotFoundError("Import", import_id)
    return imp


def create_import(db: Session, data: ImportCreate) -> ImportResponse:
    """Create a new import job in the active state."""
    import_id = data.id or str(uuid.uuid4())
    if db.get(Import, import_id) is not None:
        raise AlreadyExistsError("Import", import_id)

    now = datetime.utcnow()

    imp = Import(
        id=import_id,
        name=data.name,
        backup_path=data.backup_path,
        status=ImportStatus.ACTIVE.value,
        created_at=now,
        updated_at=now,
        total_users=data.total_users,
        total_books=data.total_books,
        total_sessions=data.total_sessions,
    )
    db.add(imp)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyExistsError("Import", import_id) from None

    db.refresh(imp)
    logger.info(
        f"Created import {import_id}",
        extra={"extra_fields": {"import_id": import_id, "import_name": data.name}},
    )
    return ImportResponse.model_validate(imp)


def get_import(db: Session, import_id: str) -> ImportResponse:
    return ImportResponse.model_validate(require_import(db, import_id))


def list_imports(db: Session) -> list[ImportResponse]:
    """All imports, newest first."""
    imports = db.query(Import).order_by(Import.created_at.desc(), Import.id).all()
    return [ImportResponse.model_validate(imp) for imp in imports]


def update_import_status(db: Session, import_id: str, status: ImportStatus) -> ImportResponse:
    """Move an import through active -> completed -> archived (any order is allowed)."""
    imp = require_import(db, import_id)
    status = ImportStatus(status)

    imp.status = status.value
    if status == ImportStatus.COMPLETED and imp.completed_at is None:
        imp.completed_at = datetime.utcnow()
    elif status == ImportStatus.ACTIVE:
        imp.completed_at = None

    db.commit()
    db.refresh(imp)
    logger.info(
        f"Import {import_id} is now {status.value}",
        extra={"extra_fields": {"import_id": import_id}},
    )
    return ImportResponse.model_validate(imp)


def delete_import(db: Session, import_id: str) -> None:
    """Delete an import and, through the cascade, all of its rows."""
    imp = require_import(db, import_id)
    db.delete(imp)
    db.commit()
    logger.info(f"Deleted import {import_id}", extra={"extra_fields": {"import_id": import_id}})


def ingest_snapshot(db: Session, import_id: str, snapshot: SnapshotIngest) -> SnapshotIngestResponse:
    """
    Store a parsed backup snapshot for an import in one transaction.

    Every row lands unresolved (no internal ids, sessions pending_user);
    confidence and suggestions are stored as supplied. Any duplicate key
    rolls back the whole snapshot.
    """
    from reconciler.services.mapping_registry import build_mapping_row

    log = get_context_logger(__name__, import_id=import_id)
    imp = require_import(db, import_id)

    for user in snapshot.users:
        db.add(build_mapping_row(EntityKind.USER, import_id, user))
    for book in snapshot.books:
        db.add(build_mapping_row(EntityKind.BOOK, import_id, book))
    for session in snapshot.sessions:
        db.add(
            ImportSession(
                import_id=import_id,
                **session.model_dump(exclude={"status"}),
                status=session.status.value,
            )
        )
    for progress in snapshot.progress:
        db.add(ImportProgress(import_id=import_id, **progress.model_dump()))

    imp.total_users += len(snapshot.users)
    imp.total_books += len(snapshot.books)
    imp.total_sessions += len(snapshot.sessions)

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        log.warning(f"Snapshot rejected: {e.orig}")
        raise AlreadyExistsError("Snapshot row", import_id) from None

    log.info(
        "Ingested snapshot",
        extra={
            "extra_fields": {
                "users": len(snapshot.users),
                "books": len(snapshot.books),
                "sessions": len(snapshot.sessions),
                "progress": len(snapshot.progress),
            }
        },
    )
    return SnapshotIngestResponse(
        import_id=import_id,
        users=len(snapshot.users),
        books=len(snapshot.books),
        sessions=len(snapshot.sessions),
        progress=len(snapshot.progress),
    )
