from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from reconciler.core.database import Base
from reconciler.models.enums import SessionStatus


class ImportSession(Base):
    """One ABS listening session awaiting import."""

    __tablename__ = "abs_import_sessions"
    __table_args__ = (
        UniqueConstraint("import_id", "external_session_id", name="uq_abs_import_session"),
        Index("ix_abs_import_sessions_import_status", "import_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    import_id: Mapped[str] = mapped_column(
        ForeignKey("abs_imports.id", ondelete="CASCADE"), index=True
    )
    external_session_id: Mapped[str] = mapped_column(String(255))
    external_user_id: Mapped[str] = mapped_column(String(255), index=True)
    external_media_id: Mapped[str] = mapped_column(String(255), index=True)

    # Session data (milliseconds)
    start_time: Mapped[datetime] = mapped_column(DateTime, index=True)
    duration_ms: Mapped[int] = mapped_column(BigInteger, default=0)
    start_position_ms: Mapped[int] = mapped_column(BigInteger, default=0)
    end_position_ms: Mapped[int] = mapped_column(BigInteger, default=0)

    # Import state
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.PENDING_USER.value)
    imported_at: Mapped[datetime | None] = mapped_column(DateTime)
    skip_reason: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<ImportSession {self.import_id}:{self.external_session_id} {self.status}>"


class ImportProgress(Base):
    """ABS media progress for a user/book pair, mirrored for the downstream importer."""

    __tablename__ = "abs_import_progress"
    __table_args__ = (
        UniqueConstraint(
            "import_id", "external_user_id", "external_media_id", name="uq_abs_import_progress"
        ),
        CheckConstraint("progress >= 0 AND progress <= 1", name="ck_abs_import_progress_range"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    import_id: Mapped[str] = mapped_column(
        ForeignKey("abs_imports.id", ondelete="CASCADE"), index=True
    )
    external_user_id: Mapped[str] = mapped_column(String(255), index=True)
    external_media_id: Mapped[str] = mapped_column(String(255), index=True)

    # Progress data
    current_time_ms: Mapped[int] = mapped_column(BigInteger, default=0)
    duration_ms: Mapped[int] = mapped_column(BigInteger, default=0)
    progress: Mapped[float] = mapped_column(Float, default=0.0)  # 0.0 to 1.0
    is_finished: Mapped[bool] = mapped_column(Boolean, default=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime)
    last_update: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    # Import state, owned by the downstream importer
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.PENDING_USER.value)
    imported_at: Mapped[datetime | None] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return (
            f"<ImportProgress {self.import_id}:{self.external_user_id}/"
            f"{self.external_media_id} {self.progress:.2f}>"
        )
