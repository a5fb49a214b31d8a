from reconciler.schemas.imports import (
    ImportCreate,
    ImportResponse,
    ImportStatsResponse,
    ImportStatusUpdate,
    RecomputeResponse,
    SnapshotIngestResponse,
)
from reconciler.schemas.mapping import (
    BookMappingCreate,
    BookMappingResponse,
    MappingUpdate,
    UserMappingCreate,
    UserMappingResponse,
)
from reconciler.schemas.session import (
    ProgressCreate,
    ProgressResponse,
    ProgressStatusUpdate,
    SessionCreate,
    SessionListResponse,
    SessionResponse,
    SessionSummary,
    SkipRequest,
)
from reconciler.schemas.snapshot import SnapshotIngest

__all__ = [
    "ImportCreate",
    "ImportResponse",
    "ImportStatusUpdate",
    "ImportStatsResponse",
    "RecomputeResponse",
    "SnapshotIngest",
    "SnapshotIngestResponse",
    "UserMappingCreate",
    "UserMappingResponse",
    "BookMappingCreate",
    "BookMappingResponse",
    "MappingUpdate",
    "SessionCreate",
    "SessionResponse",
    "SessionSummary",
    "SessionListResponse",
    "SkipRequest",
    "ProgressCreate",
    "ProgressResponse",
    "ProgressStatusUpdate",
]
