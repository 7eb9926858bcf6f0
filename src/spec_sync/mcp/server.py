"""FastMCP server exposing repository management tools."""

from __future__ import annotations

import asyncio
import logging
import sys

from fastmcp import FastMCP

from spec_sync.config import SYNC_SETTINGS
from spec_sync.errors import SyncError
from spec_sync.mcp.schemas import (
    CreateRepositoryInput,
    ListRepositoriesResult,
    OperationResult,
    RepositoryIdInput,
    RepositoryStatus,
    SyncResultOutput,
)
from spec_sync.sync.manager import SyncManager

# Configure logging to stderr (CRITICAL: never print to stdout for MCP)
logging.basicConfig(
    level=SYNC_SETTINGS.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP("spec-sync")

# Global state (lazy initialized)
_manager: SyncManager | None = None
_init_lock = asyncio.Lock()


async def get_manager() -> SyncManager:
    """Get or initialize the sync manager, starting its background services."""
    global _manager

    async with _init_lock:
        if _manager is None:
            logger.info("Initializing sync manager...")
            _manager = SyncManager(SYNC_SETTINGS)
            await _manager.start()
            logger.info("Sync manager initialized")

        return _manager


@mcp.tool
async def create_repository(input: CreateRepositoryInput) -> RepositoryStatus:
    """Track a new Git repository (inactive)."""
    manager = await get_manager()
    config = manager.service.create(
        name=input.name,
        repository_url=input.repository_url,
        spec_paths=input.spec_paths,
        branch=input.branch,
        cron_expression=input.cron_expression,
        auth_type=input.auth_type,
        secret_id=input.secret_id,
    )
    return RepositoryStatus.from_config(config)


@mcp.tool
async def list_repositories() -> ListRepositoriesResult:
    """List tracked repositories."""
    manager = await get_manager()
    repos = [RepositoryStatus.from_config(c) for c in manager.service.list_repositories()]
    return ListRepositoriesResult(repositories=repos, total=len(repos))


@mcp.tool
async def repository_status(input: RepositoryIdInput) -> RepositoryStatus:
    """Show sync state of a repository."""
    manager = await get_manager()
    return RepositoryStatus.from_config(manager.service.status(input.repository_id))


@mcp.tool
async def activate_repository(input: RepositoryIdInput) -> SyncResultOutput:
    """Activate a repository and run its initial import."""
    manager = await get_manager()
    try:
        report = await manager.service.activate(input.repository_id)
    except SyncError as e:
        return SyncResultOutput(success=False, message=e.message, imported_specs=[])
    return SyncResultOutput.from_report(report)


@mcp.tool
async def deactivate_repository(input: RepositoryIdInput) -> OperationResult:
    """Stop periodic syncs for a repository."""
    manager = await get_manager()
    try:
        config = manager.service.deactivate(input.repository_id)
    except SyncError as e:
        return OperationResult(success=False, message=e.message)
    return OperationResult(success=True, message=f"Repository {config.name} deactivated")


@mcp.tool
async def delete_repository(input: RepositoryIdInput) -> OperationResult:
    """Delete a repository and its working copy."""
    manager = await get_manager()
    try:
        await manager.service.delete(input.repository_id)
    except SyncError as e:
        return OperationResult(success=False, message=e.message)
    return OperationResult(success=True, message=f"Repository {input.repository_id} deleted")


@mcp.tool
async def sync_repository_now(input: RepositoryIdInput) -> SyncResultOutput:
    """Force sync all specs of a repository."""
    manager = await get_manager()
    try:
        report = await manager.service.sync_now(input.repository_id)
    except SyncError as e:
        return SyncResultOutput(success=False, message=e.message, imported_specs=[])
    return SyncResultOutput.from_report(report)


def main() -> None:
    """Run the MCP server."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
