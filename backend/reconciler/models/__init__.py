from reconciler.models.enums import (
    EntityKind,
    ImportStatus,
    MappingFilter,
    SessionFilter,
    SessionStatus,
)
from reconciler.models.imports import Import
from reconciler.models.mapping import ImportBook, ImportUser
from reconciler.models.session import ImportProgress, ImportSession

__all__ = [
    "EntityKind",
    "ImportStatus",
    "MappingFilter",
    "SessionFilter",
    "SessionStatus",
    "Import",
    "ImportUser",
    "ImportBook",
    "ImportSession",
    "ImportProgress",
]
