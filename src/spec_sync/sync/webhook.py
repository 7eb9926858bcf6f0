"""Webhook server turning Git push events into immediate syncs."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

from spec_sync.errors import LockContentionError, RepositoryNotFoundError

if TYPE_CHECKING:
    from spec_sync.config import SyncSettings
    from spec_sync.memory.repository_store import RepositoryStore
    from spec_sync.sync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


def _repository_urls(repo_data: dict[str, Any]) -> list[str]:
    """Every URL form a push payload advertises for the pushed repository."""
    keys = ("clone_url", "html_url", "ssh_url", "git_url", "url")
    return [repo_data[k] for k in keys if isinstance(repo_data.get(k), str)]


class WebhookServer:
    """HTTP server for receiving push events.

    Validates webhook signatures (if a secret is configured) and starts an
    incremental sync for every active repository config matching the pushed
    repository. The sync runs in the background so the sender gets a quick
    ``202``.
    """

    def __init__(self, settings: SyncSettings, store: RepositoryStore, scheduler: SyncScheduler) -> None:
        """Initialize webhook server.

        Args:
            settings: Webhook host, port and secret.
            store: Repository config store used to match pushed URLs.
            scheduler: Runs the triggered syncs.
        """
        self._settings = settings
        self._store = store
        self._scheduler = scheduler
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._site is not None

    def _verify_signature(self, payload: bytes, signature: str) -> bool:
        """Verify the HMAC signature of a webhook payload."""
        if not self._settings.webhook_secret:
            return True

        if not signature.startswith("sha256="):
            logger.warning("Invalid signature format: %s", signature)
            return False

        computed = hmac.new(
            self._settings.webhook_secret.encode(),
            payload,
            hashlib.sha256,
        ).hexdigest()

        return hmac.compare_digest(computed, signature.removeprefix("sha256="))

    async def _sync_in_background(self, repository_id: str) -> None:
        try:
            report = await self._scheduler.sync_repository(repository_id)
            logger.info("Push-triggered sync of %s: %s", report.repository_name, report.summary)
        except LockContentionError:
            logger.info("Sync of %s already in progress, push will be picked up by it or the next tick", repository_id)
        except RepositoryNotFoundError:
            logger.warning("Repository %s disappeared before its push-triggered sync", repository_id)
        except Exception:
            logger.exception("Push-triggered sync failed for %s", repository_id)

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        """Handle incoming webhook request."""
        event_type = request.headers.get("X-GitHub-Event", "")
        if event_type == "ping":
            return web.Response(text="pong", status=200)
        if event_type != "push":
            logger.debug("Ignoring non-push event: %s", event_type)
            return web.Response(text="OK", status=200)

        payload = await request.read()

        signature = request.headers.get("X-Hub-Signature-256", "")
        if not self._verify_signature(payload, signature):
            logger.warning("Webhook signature verification failed")
            return web.Response(text="Forbidden", status=403)

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Failed to parse webhook JSON")
            return web.Response(text="Bad Request", status=400)

        urls = _repository_urls(data.get("repository") or {})
        if not urls:
            logger.warning("Missing repository info in webhook payload")
            return web.Response(text="Bad Request", status=400)

        matched: dict[str, str] = {}
        for url in urls:
            for config in self._store.find_by_url(url):
                if config.active:
                    matched[config.id] = config.name

        logger.info("Received push event for %s (after: %s), %d configs match", urls[0], data.get("after"), len(matched))

        for repository_id in matched:
            task = asyncio.create_task(self._sync_in_background(repository_id))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return web.json_response({"triggered": sorted(matched)}, status=202)

    async def _handle_status(self, request: web.Request) -> web.Response:
        """Current state of one repository config."""
        config = self._store.get(request.match_info["repository_id"])
        if config is None:
            return web.json_response({"error": "not found"}, status=404)
        return web.json_response(config.model_dump(mode="json"))

    async def _handle_health(self, _request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.Response(text="OK", status=200)

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/webhook", self._handle_webhook)
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/repositories/{repository_id}/status", self._handle_status)
        return app

    async def wait_pending(self) -> None:
        """Wait for all push-triggered syncs started so far."""
        if self._pending:
            await asyncio.gather(*self._pending)

    async def start(self) -> None:
        """Start the webhook server."""
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self._settings.webhook_host, self._settings.webhook_port)
        await self._site.start()

        logger.info("Webhook server started on port %d", self._settings.webhook_port)

    async def stop(self) -> None:
        """Stop the webhook server."""
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        await self.wait_pending()

        logger.info("Webhook server stopped")
