from reconciler.services import import_service, progress_mirror, session_service
from reconciler.services.mapping_registry import MAPPING_SPECS, MappingRegistry, MappingSpec
from reconciler.services.recompute import RecomputeResult, recompute_session_statuses
from reconciler.services.session_service import derive_status
from reconciler.services.stats import ImportStats, get_import_stats, refresh_import_counters

__all__ = [
    "import_service",
    "session_service",
    "progress_mirror",
    # Mapping registry
    "MappingRegistry",
    "MappingSpec",
    "MAPPING_SPECS",
    # Status machine and recompute
    "derive_status",
    "RecomputeResult",
    "recompute_session_statuses",
    # Stats
    "ImportStats",
    "get_import_stats",
    "refresh_import_counters",
]
