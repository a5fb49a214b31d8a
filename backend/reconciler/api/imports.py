from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reconciler.core.config import get_settings
from reconciler.core.database import get_db
from reconciler.core.logging import get_context_logger
from reconciler.models.enums import EntityKind, MappingFilter, SessionFilter, SessionStatus
from reconciler.schemas.imports import (
    ImportCreate,
    ImportResponse,
    ImportStatsResponse,
    ImportStatusUpdate,
    RecomputeResponse,
    SnapshotIngestResponse,
)
from reconciler.schemas.mapping import BookMappingResponse, MappingUpdate, UserMappingResponse
from reconciler.schemas.session import (
    ProgressCreate,
    ProgressResponse,
    ProgressStatusUpdate,
    SessionCreate,
    SessionListResponse,
    SessionResponse,
    SkipRequest,
)
from reconciler.schemas.snapshot import SnapshotIngest
from reconciler.services import import_service, progress_mirror, session_service
from reconciler.services.mapping_registry import MappingRegistry
from reconciler.services.recompute import recompute_session_statuses
from reconciler.services.stats import get_import_stats, refresh_import_counters

router = APIRouter()
settings = get_settings()

MappingResponse = UserMappingResponse | BookMappingResponse


def _after_mapping_change(db: Session, import_id: str) -> None:
    """Re-derive session statuses once a mapping was written.

    The mapping write is already committed; if the recompute fails it is
    logged and left for the next recompute call.
    """
    if not settings.RECOMPUTE_ON_MAPPING_CHANGE:
        return
    try:
        recompute_session_statuses(db, import_id)
        refresh_import_counters(db, import_id)
    except SQLAlchemyError as e:
        db.rollback()
        get_context_logger(__name__, import_id=import_id).error(
            f"Recompute after mapping change failed: {e}"
        )


# --- Imports ---


@router.post("/", response_model=ImportResponse, status_code=201)
async def create_import(data: ImportCreate, db: Session = Depends(get_db)):
    """Register a new ABS backup import."""
    return import_service.create_import(db, data)


@router.get("/", response_model=list[ImportResponse])
async def list_imports(db: Session = Depends(get_db)):
    """List all imports, newest first."""
    return import_service.list_imports(db)


@router.get("/{import_id}", response_model=ImportResponse)
async def get_import(import_id: str, db: Session = Depends(get_db)):
    return import_service.get_import(db, import_id)


@router.patch("/{import_id}", response_model=ImportResponse)
async def update_import_status(
    import_id: str,
    update: ImportStatusUpdate,
    db: Session = Depends(get_db),
):
    """Mark an import active, completed or archived."""
    return import_service.update_import_status(db, import_id, update.status)


@router.delete("/{import_id}")
async def delete_import(import_id: str, db: Session = Depends(get_db)):
    """Delete an import together with all of its mappings, sessions and progress."""
    import_service.delete_import(db, import_id)
    return {"message": f"Import {import_id} deleted"}


@router.post("/{import_id}/snapshot", response_model=SnapshotIngestResponse, status_code=201)
async def ingest_snapshot(
    import_id: str,
    snapshot: SnapshotIngest,
    db: Session = Depends(get_db),
):
    """
    Store a parsed ABS backup for this import.

    All rows land unresolved. A duplicate id anywhere in the payload rejects
    the whole snapshot.
    """
    return import_service.ingest_snapshot(db, import_id, snapshot)


@router.get("/{import_id}/stats", response_model=ImportStatsResponse)
async def import_stats(import_id: str, db: Session = Depends(get_db)):
    """Mapped/unmapped entity counts and ready/imported session counts."""
    return get_import_stats(db, import_id)


@router.post("/{import_id}/recompute", response_model=RecomputeResponse)
async def recompute(import_id: str, db: Session = Depends(get_db)):
    """Re-derive every non-terminal session status from the current mappings."""
    result = recompute_session_statuses(db, import_id)
    refresh_import_counters(db, import_id)
    return result


# --- Mappings ---


@router.get("/{import_id}/mappings/{kind}", response_model=list[MappingResponse])
async def list_mappings(
    import_id: str,
    kind: EntityKind,
    mapping_filter: MappingFilter = Query(
        MappingFilter.ALL, alias="filter", description="all, mapped or unmapped"
    ),
    limit: int | None = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """List ABS users (by username) or books (by title)."""
    import_service.require_import(db, import_id)
    return MappingRegistry(db, kind).list_mappings(
        import_id, mapping_filter, limit=limit, offset=offset
    )


@router.post("/{import_id}/mappings/{kind}", response_model=MappingResponse, status_code=201)
async def register_mapping(
    import_id: str,
    kind: EntityKind,
    data: dict = Body(...),
    db: Session = Depends(get_db),
):
    """Register one unresolved ABS user or book."""
    return MappingRegistry(db, kind).register(import_id, data)


@router.get("/{import_id}/mappings/{kind}/{external_id}", response_model=MappingResponse)
async def get_mapping(
    import_id: str,
    kind: EntityKind,
    external_id: str,
    db: Session = Depends(get_db),
):
    return MappingRegistry(db, kind).get(import_id, external_id)


@router.put("/{import_id}/mappings/{kind}/{external_id}", response_model=MappingResponse)
async def set_mapping(
    import_id: str,
    kind: EntityKind,
    external_id: str,
    update: MappingUpdate,
    db: Session = Depends(get_db),
):
    """
    Map an ABS user or book to a catalog id.

    An empty ``internal_id`` clears the mapping. Session statuses are
    recomputed afterwards.
    """
    mapping = MappingRegistry(db, kind).set_mapping(
        import_id, external_id, update.internal_id, update.display_fields
    )
    _after_mapping_change(db, import_id)
    return mapping


@router.delete("/{import_id}/mappings/{kind}/{external_id}", response_model=MappingResponse)
async def clear_mapping(
    import_id: str,
    kind: EntityKind,
    external_id: str,
    db: Session = Depends(get_db),
):
    mapping = MappingRegistry(db, kind).clear_mapping(import_id, external_id)
    _after_mapping_change(db, import_id)
    return mapping


# --- Sessions ---


@router.get("/{import_id}/sessions", response_model=SessionListResponse)
async def list_sessions(
    import_id: str,
    status: SessionFilter = Query(
        SessionFilter.ALL, description="all, pending, ready, imported, skipped"
    ),
    limit: int = Query(settings.SESSION_PAGE_SIZE, ge=1, le=settings.SESSION_PAGE_SIZE_MAX),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """List sessions oldest first, with a per-status summary of the whole import."""
    import_service.require_import(db, import_id)
    return SessionListResponse(
        sessions=session_service.list_sessions(db, import_id, status, limit=limit, offset=offset),
        summary=session_service.session_summary(db, import_id),
    )


@router.post("/{import_id}/sessions", response_model=SessionResponse, status_code=201)
async def create_session(import_id: str, data: SessionCreate, db: Session = Depends(get_db)):
    return session_service.create_session(db, import_id, data)


@router.get("/{import_id}/sessions/{session_id}", response_model=SessionResponse)
async def get_session(import_id: str, session_id: str, db: Session = Depends(get_db)):
    return session_service.get_session(db, import_id, session_id)


@router.post("/{import_id}/sessions/{session_id}/imported", response_model=SessionResponse)
async def mark_session_imported(import_id: str, session_id: str, db: Session = Depends(get_db)):
    """Called by the downstream importer once the session is in the catalog."""
    session = session_service.mark_imported(db, import_id, session_id)
    refresh_import_counters(db, import_id)
    return session


@router.put("/{import_id}/sessions/{session_id}/skip", response_model=SessionResponse)
async def skip_session(
    import_id: str,
    session_id: str,
    request: SkipRequest | None = None,
    db: Session = Depends(get_db),
):
    """Exclude a session from import. The reason defaults to DEFAULT_SKIP_REASON."""
    reason = request.reason if request else None
    return session_service.skip_session(db, import_id, session_id, reason)


# --- Progress ---


@router.post("/{import_id}/progress", response_model=ProgressResponse, status_code=201)
async def create_progress(import_id: str, data: ProgressCreate, db: Session = Depends(get_db)):
    return progress_mirror.create_progress(db, import_id, data)


@router.get("/{import_id}/progress", response_model=list[ProgressResponse])
async def list_progress(
    import_id: str,
    status: SessionStatus | None = Query(None),
    db: Session = Depends(get_db),
):
    import_service.require_import(db, import_id)
    return progress_mirror.list_progress(db, import_id, status)


@router.get("/{import_id}/progress/users/{user_id}", response_model=list[ProgressResponse])
async def list_user_progress(import_id: str, user_id: str, db: Session = Depends(get_db)):
    """Progress of one ABS user, most recently updated first."""
    import_service.require_import(db, import_id)
    return progress_mirror.list_progress_for_user(db, import_id, user_id)


@router.get(
    "/{import_id}/progress/users/{user_id}/books/{internal_book_id}",
    response_model=ProgressResponse,
)
async def get_progress_for_book(
    import_id: str,
    user_id: str,
    internal_book_id: str,
    db: Session = Depends(get_db),
):
    """Look up progress by catalog book id, through the book mapping."""
    return progress_mirror.find_progress_by_internal_book(db, import_id, user_id, internal_book_id)


@router.put(
    "/{import_id}/progress/users/{user_id}/media/{media_id}/status",
    response_model=ProgressResponse,
)
async def set_progress_status(
    import_id: str,
    user_id: str,
    media_id: str,
    update: ProgressStatusUpdate,
    db: Session = Depends(get_db),
):
    return progress_mirror.set_progress_status(db, import_id, user_id, media_id, update.status)
