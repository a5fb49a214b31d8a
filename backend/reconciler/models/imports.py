from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reconciler.core.database import Base
from reconciler.models.enums import ImportStatus


class Import(Base):
    """A connected ABS backup, processed incrementally across operator visits."""

    __tablename__ = "abs_imports"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    backup_path: Mapped[str] = mapped_column(String(1024), default="")
    status: Mapped[str] = mapped_column(String(20), default=ImportStatus.ACTIVE.value, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Summary counters (denormalized for quick display)
    total_users: Mapped[int] = mapped_column(Integer, default=0)
    total_books: Mapped[int] = mapped_column(Integer, default=0)
    total_sessions: Mapped[int] = mapped_column(Integer, default=0)
    users_mapped: Mapped[int] = mapped_column(Integer, default=0)
    books_mapped: Mapped[int] = mapped_column(Integer, default=0)
    sessions_imported: Mapped[int] = mapped_column(Integer, default=0)

    # Relationships
    users: Mapped[list["ImportUser"]] = relationship(cascade="all, delete-orphan")
    books: Mapped[list["ImportBook"]] = relationship(cascade="all, delete-orphan")
    sessions: Mapped[list["ImportSession"]] = relationship(cascade="all, delete-orphan")
    progress: Mapped[list["ImportProgress"]] = relationship(cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Import id={self.id} status={self.status}>"


# Forward references
from reconciler.models.mapping import ImportBook, ImportUser  # noqa: E402
from reconciler.models.session import ImportProgress, ImportSession  # noqa: E402
