"""Runtime settings for the sync engine."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Settings loaded from ``SPEC_SYNC_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SPEC_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    workspace_dir: Path = Field(
        default_factory=lambda: Path.home() / ".spec-sync" / "workspaces",
        description="Directory holding working copies",
    )
    store_path: Path = Field(
        default_factory=lambda: Path.home() / ".spec-sync" / "repositories.json",
        description="Path to the repository config store",
    )
    default_branch: str = Field(default="main", description="Branch used when a config names none")

    # Scheduling
    poll_enabled: bool = Field(default=True, description="Run the periodic sync loop")
    poll_interval_seconds: int = Field(default=180, ge=1, description="Seconds between ticks")
    sync_timeout_seconds: float | None = Field(
        default=600.0, description="Abort a single repository sync after this many seconds"
    )
    max_concurrent_syncs: int = Field(default=4, ge=1, description="Repositories synced in parallel per tick")

    # Webhook settings
    webhook_enabled: bool = Field(default=False, description="Start the push webhook server")
    webhook_host: str = Field(default="0.0.0.0", description="Webhook bind address")
    webhook_port: int = Field(default=9847, description="Port for webhook server")
    webhook_secret: str | None = Field(default=None, description="Webhook secret for HMAC validation")

    # Catalog
    catalog_url: str = Field(default="http://localhost:8080", description="Base URL of the API catalog")
    catalog_token: str | None = Field(default=None, description="Bearer token for the catalog")
    catalog_timeout_seconds: float = Field(default=30.0, description="Timeout for a single upload")

    log_level: str = "INFO"


# Default settings
SYNC_SETTINGS = SyncSettings()
