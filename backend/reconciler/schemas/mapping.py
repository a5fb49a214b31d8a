from datetime import datetime

from pydantic import BaseModel, Field


class MappingCreateBase(BaseModel):
    """Fields every ingested entity carries, whatever its kind."""

    external_id: str = Field(..., min_length=1, max_length=255)
    session_count: int = Field(0, ge=0)

    # Matching hints computed by the ingestion heuristic
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    match_reason: str = ""
    suggestions: list[str] = Field(default_factory=list)  # Internal ids, best first


class UserMappingCreate(MappingCreateBase):
    username: str = ""
    email: str = ""
    total_listen_ms: int = Field(0, ge=0)


class BookMappingCreate(MappingCreateBase):
    title: str = ""
    author: str = ""
    duration_ms: int = Field(0, ge=0)
    asin: str = ""
    isbn: str = ""


class MappingUpdate(BaseModel):
    """Set (non-empty ``internal_id``) or clear (empty/null) a mapping.

    ``display_fields`` carries the resolved display info of the internal
    entity: ``internal_email``/``internal_display_name`` for users,
    ``internal_title``/``internal_author`` for books.
    """

    internal_id: str | None = None
    display_fields: dict[str, str | None] = Field(default_factory=dict)


class MappingResponseBase(BaseModel):
    import_id: str
    external_id: str
    internal_id: str | None
    mapped_at: datetime | None
    is_mapped: bool
    session_count: int
    confidence: float
    match_reason: str
    suggestions: list[str]


class UserMappingResponse(MappingResponseBase):
    username: str
    email: str
    internal_email: str | None
    internal_display_name: str | None
    total_listen_ms: int


class BookMappingResponse(MappingResponseBase):
    title: str
    author: str
    duration_ms: int
    asin: str
    isbn: str
    internal_title: str | None
    internal_author: str | None
