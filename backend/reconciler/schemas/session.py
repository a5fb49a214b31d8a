from datetime import datetime

from pydantic import BaseModel, Field

from reconciler.models.enums import SessionStatus


class SessionCreate(BaseModel):
    external_session_id: str = Field(..., min_length=1, max_length=255)
    external_user_id: str = Field(..., min_length=1, max_length=255)
    external_media_id: str = Field(..., min_length=1, max_length=255)
    start_time: datetime
    duration_ms: int = Field(0, ge=0)
    start_position_ms: int = Field(0, ge=0)
    end_position_ms: int = Field(0, ge=0)
    status: SessionStatus = SessionStatus.PENDING_USER


class SessionResponse(BaseModel):
    import_id: str
    external_session_id: str
    external_user_id: str
    external_media_id: str
    start_time: datetime
    duration_ms: int
    start_position_ms: int
    end_position_ms: int
    status: SessionStatus
    imported_at: datetime | None
    skip_reason: str | None

    class Config:
        from_attributes = True


class SessionSummary(BaseModel):
    total: int = 0
    pending: int = 0
    ready: int = 0
    imported: int = 0
    skipped: int = 0


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]
    summary: SessionSummary


class SkipRequest(BaseModel):
    reason: str | None = None  # Falls back to DEFAULT_SKIP_REASON


class ProgressCreate(BaseModel):
    external_user_id: str = Field(..., min_length=1, max_length=255)
    external_media_id: str = Field(..., min_length=1, max_length=255)
    current_time_ms: int = Field(0, ge=0)
    duration_ms: int = Field(0, ge=0)
    progress: float = Field(0.0, ge=0.0, le=1.0)
    is_finished: bool = False
    finished_at: datetime | None = None
    last_update: datetime


class ProgressResponse(BaseModel):
    import_id: str
    external_user_id: str
    external_media_id: str
    current_time_ms: int
    duration_ms: int
    progress: float
    is_finished: bool
    finished_at: datetime | None
    last_update: datetime
    status: SessionStatus
    imported_at: datetime | None

    class Config:
        from_attributes = True


class ProgressStatusUpdate(BaseModel):
    status: SessionStatus
