"""Entity models for tracked repositories and sync outcomes."""

from spec_sync.entities.reports import PathFailure, SyncReport, SyncResult, TickReport
from spec_sync.entities.repository import (
    SYNC_STATE_FIELDS,
    AuthType,
    CatalogRef,
    RepositoryConfig,
    SecretRef,
    normalize_spec_path,
)

__all__ = [
    "SYNC_STATE_FIELDS",
    "AuthType",
    "CatalogRef",
    "PathFailure",
    "RepositoryConfig",
    "SecretRef",
    "SyncReport",
    "SyncResult",
    "TickReport",
    "normalize_spec_path",
]
