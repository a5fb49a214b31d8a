"""
Mapping registry for ABS users and books.

Both entity kinds go through the same ``MappingRegistry`` class; a
``MappingSpec`` per kind supplies the model, the column listings sort on,
the denormalized display fields of the internal entity and the pydantic
schemas used at the edges.

A row is mapped when ``internal_id`` is set; ``mapped_at`` is stamped on
every set and cleared together with the id.
"""

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reconciler.core.exceptions import AlreadyExistsError, ImportValidationError, NotFoundError
from reconciler.core.logging import get_context_logger
from reconciler.models.enums import EntityKind, MappingFilter
from reconciler.models.mapping import ImportBook, ImportUser, MappingMixin
from reconciler.schemas.mapping import (
    BookMappingCreate,
    BookMappingResponse,
    MappingCreateBase,
    UserMappingCreate,
    UserMappingResponse,
)
from reconciler.services.import_service import require_import

_suggestions_adapter = TypeAdapter(list[str])


@dataclass(frozen=True)
class MappingSpec:
    kind: EntityKind
    label: str
    model: type[MappingMixin]
    sort_column: str
    display_fields: tuple[str, ...]
    create_schema: type[MappingCreateBase]
    response_schema: type[BaseModel]


MAPPING_SPECS: dict[EntityKind, MappingSpec] = {
    EntityKind.USER: MappingSpec(
        kind=EntityKind.USER,
        label="Import user",
        model=ImportUser,
        sort_column="username",
        display_fields=("internal_email", "internal_display_name"),
        create_schema=UserMappingCreate,
        response_schema=UserMappingResponse,
    ),
    EntityKind.BOOK: MappingSpec(
        kind=EntityKind.BOOK,
        label="Import book",
        model=ImportBook,
        sort_column="title",
        display_fields=("internal_title", "internal_author"),
        create_schema=BookMappingCreate,
        response_schema=BookMappingResponse,
    ),
}


def encode_suggestions(suggestions: list[str]) -> str:
    return _suggestions_adapter.dump_json(suggestions).decode()


def decode_suggestions(raw: str | None) -> list[str]:
    """Decode the stored suggestions list; a malformed payload is fatal to the caller."""
    if raw is None or raw == "":
        return []
    try:
        return _suggestions_adapter.validate_json(raw)
    except PydanticValidationError as e:
        raise ImportValidationError(f"Malformed suggestions payload: {e.errors()[0]['msg']}") from e


def build_mapping_row(kind: EntityKind, import_id: str, data: MappingCreateBase) -> MappingMixin:
    """Build an unresolved mapping row from an ingestion payload."""
    spec = MAPPING_SPECS[EntityKind(kind)]
    if not isinstance(data, spec.create_schema):
        try:
            data = spec.create_schema.model_validate(data)
        except PydanticValidationError as e:
            raise ImportValidationError(f"Invalid {spec.kind.value} payload: {e}") from e

    fields = data.model_dump(exclude={"suggestions"})
    return spec.model(
        import_id=import_id,
        suggestions=encode_suggestions(data.suggestions),
        internal_id=None,
        mapped_at=None,
        **fields,
    )


class MappingRegistry:
    """External -> internal identity store for one entity kind."""

    def __init__(self, db: Session, kind: EntityKind | str):
        self.db = db
        self.spec = MAPPING_SPECS[EntityKind(kind)]
        self.model = self.spec.model

    def _to_response(self, row: MappingMixin) -> BaseModel:
        values = {
            column.key: getattr(row, column.key)
            for column in self.model.__table__.columns
            if column.key not in ("id", "suggestions")
        }
        values["suggestions"] = decode_suggestions(row.suggestions)
        values["is_mapped"] = row.is_mapped
        return self.spec.response_schema.model_validate(values)

    def _query(self, import_id: str):
        return self.db.query(self.model).filter(self.model.import_id == import_id)

    def _log(self, import_id: str):
        return get_context_logger(__name__, import_id=import_id, kind=self.spec.kind.value)

    def register(self, import_id: str, data: MappingCreateBase | dict) -> BaseModel:
        """Create an unresolved row. Raises AlreadyExistsError on a duplicate external id."""
        require_import(self.db, import_id)
        row = build_mapping_row(self.spec.kind, import_id, data)
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AlreadyExistsError(self.spec.label, f"{import_id}:{row.external_id}") from None

        self.db.refresh(row)
        return self._to_response(row)

    def get(self, import_id: str, external_id: str) -> BaseModel:
        row = self._query(import_id).filter(self.model.external_id == external_id).first()
        if not row:
            raise NotFoundError(self.spec.label, f"{import_id}:{external_id}")
        return self._to_response(row)

    def list_mappings(
        self,
        import_id: str,
        mapping_filter: MappingFilter | str = MappingFilter.ALL,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[BaseModel]:
        """List rows ordered by display name (users) or title (books), ascending."""
        q = self._query(import_id)

        mapping_filter = MappingFilter(mapping_filter)
        if mapping_filter == MappingFilter.MAPPED:
            q = q.filter(self.model.internal_id.isnot(None))
        elif mapping_filter == MappingFilter.UNMAPPED:
            q = q.filter(self.model.internal_id.is_(None))

        sort_column = getattr(self.model, self.spec.sort_column)
        q = q.order_by(sort_column.asc(), self.model.external_id.asc())
        if offset:
            q = q.offset(offset)
        if limit is not None:
            q = q.limit(limit)

        return [self._to_response(row) for row in q.all()]

    def set_mapping(
        self,
        import_id: str,
        external_id: str,
        internal_id: str | None,
        display_fields: dict[str, str | None] | None = None,
    ) -> BaseModel:
        """
        Map an external entity to an internal id, or clear the mapping.

        A non-empty ``internal_id`` stamps ``mapped_at`` and stores the display
        fields; an empty or missing one clears the id, ``mapped_at`` and the
        display fields. Concurrent calls for the same row are last-write-wins.
        """
        display_fields = display_fields or {}
        unknown = sorted(set(display_fields) - set(self.spec.display_fields))
        if unknown:
            raise ImportValidationError(
                f"Unknown display fields for {self.spec.kind.value}: {', '.join(unknown)}"
            )

        if internal_id:
            values = {
                "internal_id": internal_id,
                "mapped_at": datetime.utcnow(),
                **{field: display_fields.get(field) for field in self.spec.display_fields},
            }
        else:
            values = {
                "internal_id": None,
                "mapped_at": None,
                **{field: None for field in self.spec.display_fields},
            }

        updated = (
            self._query(import_id)
            .filter(self.model.external_id == external_id)
            .update(values, synchronize_session=False)
        )
        if updated == 0:
            self.db.rollback()
            raise NotFoundError(self.spec.label, f"{import_id}:{external_id}")
        self.db.commit()

        self._log(import_id).info(
            f"{'Mapped' if internal_id else 'Cleared mapping for'} {self.spec.kind.value} {external_id}",
            extra={"extra_fields": {"external_id": external_id, "internal_id": internal_id}},
        )
        return self.get(import_id, external_id)

    def clear_mapping(self, import_id: str, external_id: str) -> BaseModel:
        return self.set_mapping(import_id, external_id, None)

    def mapped_ids(self, import_id: str) -> set[str]:
        """External ids currently mapped for this import."""
        rows = (
            self.db.query(self.model.external_id)
            .filter(self.model.import_id == import_id, self.model.internal_id.isnot(None))
            .all()
        )
        return {external_id for (external_id,) in rows}

    def count(self, import_id: str) -> tuple[int, int]:
        """Return (mapped, unmapped) row counts."""
        total = (
            self.db.query(func.count(self.model.id))
            .filter(self.model.import_id == import_id)
            .scalar()
        )
        mapped = (
            self.db.query(func.count(self.model.id))
            .filter(self.model.import_id == import_id, self.model.internal_id.isnot(None))
            .scalar()
        )
        return mapped, total - mapped
