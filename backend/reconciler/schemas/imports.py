from datetime import datetime

from pydantic import BaseModel, Field

from reconciler.models.enums import ImportStatus


class ImportCreate(BaseModel):
    id: str | None = None  # Generated when omitted
    name: str = Field(..., min_length=1, max_length=255)
    backup_path: str = ""
    total_users: int = Field(0, ge=0)
    total_books: int = Field(0, ge=0)
    total_sessions: int = Field(0, ge=0)


class ImportStatusUpdate(BaseModel):
    status: ImportStatus


class ImportResponse(BaseModel):
    id: str
    name: str
    backup_path: str
    status: ImportStatus
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None

    total_users: int
    total_books: int
    total_sessions: int
    users_mapped: int
    books_mapped: int
    sessions_imported: int

    class Config:
        from_attributes = True


class ImportStatsResponse(BaseModel):
    mapped: int
    unmapped: int
    ready: int
    imported: int

    class Config:
        from_attributes = True


class RecomputeResponse(BaseModel):
    import_id: str
    examined: int
    changed: int
    distribution: dict[str, int]

    class Config:
        from_attributes = True


class SnapshotIngestResponse(BaseModel):
    import_id: str
    users: int
    books: int
    sessions: int
    progress: int
