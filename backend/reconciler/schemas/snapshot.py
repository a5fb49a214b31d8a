from pydantic import BaseModel, Field

from reconciler.schemas.mapping import BookMappingCreate, UserMappingCreate
from reconciler.schemas.session import ProgressCreate, SessionCreate


class SnapshotIngest(BaseModel):
    """Parsed contents of one ABS backup, as produced by the ingestion step."""

    users: list[UserMappingCreate] = Field(default_factory=list)
    books: list[BookMappingCreate] = Field(default_factory=list)
    sessions: list[SessionCreate] = Field(default_factory=list)
    progress: list[ProgressCreate] = Field(default_factory=list)
