"""Pydantic input/output models for MCP tool handlers."""

from __future__ import annotations

from pydantic import BaseModel, Field

from spec_sync.entities.reports import SyncReport  # noqa: TC001
from spec_sync.entities.repository import RepositoryConfig  # noqa: TC001

# ---------------------------------------------------------------------------
# Input models (keep descriptions under 10 words)
# ---------------------------------------------------------------------------


class CreateRepositoryInput(BaseModel):
    """Input for create_repository tool."""

    name: str = Field(description="Unique repository name")
    repository_url: str = Field(description="Git clone URL")
    spec_paths: list[str] = Field(default_factory=list, description="Relative spec file paths")
    branch: str | None = Field(default=None, description="Branch to track")
    cron_expression: str | None = Field(default=None, description="Optional cron schedule")
    auth_type: str = Field(default="none", description="none, token, or ssh-key")
    secret_id: str | None = Field(default=None, description="Secret reference for auth")


class RepositoryIdInput(BaseModel):
    """Input for tools acting on one repository."""

    repository_id: str = Field(description="Repository config ID")


# ---------------------------------------------------------------------------
# Output models
# ---------------------------------------------------------------------------


class RepositoryStatus(BaseModel):
    """Status view of a tracked repository."""

    id: str
    name: str
    repository_url: str
    branch: str | None
    spec_paths: list[str]
    active: bool
    cloned: bool = Field(description="Whether a working copy exists")
    last_commit_hash: str | None = None
    last_import_date: str | None = Field(default=None, description="ISO timestamp of last import")
    last_import_error: str | None = None
    catalog_entries: list[str] = Field(default_factory=list)

    @classmethod
    def from_config(cls, config: RepositoryConfig) -> RepositoryStatus:
        return cls(
            id=config.id,
            name=config.name,
            repository_url=config.repository_url,
            branch=config.branch,
            spec_paths=list(config.spec_paths),
            active=config.active,
            cloned=config.local_path is not None,
            last_commit_hash=config.last_commit_hash,
            last_import_date=config.last_import_date.isoformat() if config.last_import_date else None,
            last_import_error=config.last_import_error,
            catalog_entries=[ref.entry_id for ref in config.catalog_refs],
        )


class ListRepositoriesResult(BaseModel):
    """Result of list_repositories tool."""

    repositories: list[RepositoryStatus]
    total: int


class SyncResultOutput(BaseModel):
    """Result of a triggered sync."""

    success: bool
    message: str
    imported_specs: list[str]
    failed_specs: list[str] = Field(default_factory=list)
    commit_hash: str | None = None

    @classmethod
    def from_report(cls, report: SyncReport) -> SyncResultOutput:
        return cls(
            success=report.success,
            message=report.error or report.summary,
            imported_specs=report.imported_paths,
            failed_specs=[f.path for f in report.failed_paths],
            commit_hash=report.commit_hash,
        )


class OperationResult(BaseModel):
    """Generic acknowledgement."""

    success: bool
    message: str
