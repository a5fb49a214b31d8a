"""
External -> internal identity mappings for one import.

Users and books share the mapping columns through ``MappingMixin``; each
table adds the external display fields the operator needs to decide on a
match and the denormalized display fields of the chosen internal entity.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from reconciler.core.database import Base


class MappingMixin:
    id: Mapped[int] = mapped_column(primary_key=True)
    import_id: Mapped[str] = mapped_column(
        ForeignKey("abs_imports.id", ondelete="CASCADE"), index=True
    )
    external_id: Mapped[str] = mapped_column(String(255))

    # Mapping to the target catalog
    internal_id: Mapped[str | None] = mapped_column(String(255), index=True)
    mapped_at: Mapped[datetime | None] = mapped_column(DateTime)

    session_count: Mapped[int] = mapped_column(Integer, default=0)

    # Matching hints from ingestion
    confidence: Mapped[float] = mapped_column(Float, default=0.0)  # 0-1 score
    match_reason: Mapped[str] = mapped_column(Text, default="")
    suggestions: Mapped[str] = mapped_column(Text, default="[]")  # JSON list of internal ids

    @property
    def is_mapped(self) -> bool:
        return bool(self.internal_id)


def _mapping_constraints(table: str) -> tuple:
    return (
        UniqueConstraint("import_id", "external_id", name=f"uq_{table}_external"),
        CheckConstraint("confidence >= 0 AND confidence <= 1", name=f"ck_{table}_confidence"),
        CheckConstraint(
            "(internal_id IS NULL) = (mapped_at IS NULL)", name=f"ck_{table}_mapped_at"
        ),
    )


class ImportUser(MappingMixin, Base):
    """An ABS user and its mapping to a catalog user."""

    __tablename__ = "abs_import_users"
    __table_args__ = _mapping_constraints("abs_import_users")

    username: Mapped[str] = mapped_column(String(255), default="", index=True)
    email: Mapped[str] = mapped_column(String(255), default="")

    internal_email: Mapped[str | None] = mapped_column(String(255))
    internal_display_name: Mapped[str | None] = mapped_column(String(255))

    total_listen_ms: Mapped[int] = mapped_column(BigInteger, default=0)

    def __repr__(self) -> str:
        return f"<ImportUser {self.import_id}:{self.external_id} -> {self.internal_id}>"


class ImportBook(MappingMixin, Base):
    """An ABS library item (keyed by media id) and its mapping to a catalog book."""

    __tablename__ = "abs_import_books"
    __table_args__ = _mapping_constraints("abs_import_books")

    title: Mapped[str] = mapped_column(String(500), default="", index=True)
    author: Mapped[str] = mapped_column(String(500), default="")
    duration_ms: Mapped[int] = mapped_column(BigInteger, default=0)
    asin: Mapped[str] = mapped_column(String(20), default="")
    isbn: Mapped[str] = mapped_column(String(20), default="")

    internal_title: Mapped[str | None] = mapped_column(String(500))
    internal_author: Mapped[str | None] = mapped_column(String(500))

    def __repr__(self) -> str:
        return f"<ImportBook {self.import_id}:{self.external_id} -> {self.internal_id}>"
