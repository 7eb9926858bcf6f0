"""Tests for the push webhook server."""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import TYPE_CHECKING

import pytest
from aiohttp import test_utils

from spec_sync.entities.repository import RepositoryConfig
from spec_sync.sync.webhook import WebhookServer

if TYPE_CHECKING:
    from spec_sync.config import SyncSettings
    from spec_sync.memory.repository_store import RepositoryStore
    from spec_sync.sync.scheduler import SyncScheduler
    from tests.conftest import FakeVcs

URL = "https://github.com/acme/petstore.git"
SECRET = "hook-secret"


def _push(url: str = URL) -> bytes:
    return json.dumps(
        {
            "ref": "refs/heads/main",
            "after": "c2",
            "repository": {"clone_url": url, "html_url": url.removesuffix(".git")},
        }
    ).encode()


def _sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def webhook(settings: SyncSettings, store: RepositoryStore, scheduler: SyncScheduler) -> WebhookServer:
    return WebhookServer(settings.model_copy(update={"webhook_secret": SECRET}), store, scheduler)


def _tracked(store: RepositoryStore, name: str = "petstore", url: str = URL, active: bool = True) -> RepositoryConfig:
    config = RepositoryConfig(name=name, repository_url=url, spec_paths=("openapi/orders.yaml",), active=active)
    return store.save(config)


class TestPushEvents:
    async def test_push_triggers_matching_active_configs(
        self, webhook: WebhookServer, store: RepositoryStore, fake_vcs: FakeVcs
    ) -> None:
        """A push syncs every active config tracking that URL and branch."""
        active = _tracked(store)
        _tracked(store, name="paused", active=False)
        _tracked(store, name="unrelated", url="https://github.com/acme/other.git")
        body = _push("https://github.com/ACME/petstore")

        async with test_utils.TestClient(test_utils.TestServer(webhook.build_app())) as client:
            resp = await client.post(
                "/webhook",
                data=body,
                headers={"X-GitHub-Event": "push", "X-Hub-Signature-256": _sign(body)},
            )
            assert resp.status == 202
            assert await resp.json() == {"triggered": [active.id]}
            await webhook.wait_pending()

        assert [url for url, _, _ in fake_vcs.clone_calls] == [URL]
        assert store.get(active.id).last_commit_hash == "c1"

    async def test_bad_signature_rejected(self, webhook: WebhookServer, store: RepositoryStore) -> None:
        """A push with a wrong HMAC signature gets 401."""
        _tracked(store)
        body = _push()

        async with test_utils.TestClient(test_utils.TestServer(webhook.build_app())) as client:
            resp = await client.post(
                "/webhook",
                data=body,
                headers={"X-GitHub-Event": "push", "X-Hub-Signature-256": _sign(body, "wrong")},
            )
            assert resp.status == 403

    async def test_malformed_payloads_rejected(self, webhook: WebhookServer) -> None:
        """Non-JSON or incomplete payloads get 400."""
        async with test_utils.TestClient(test_utils.TestServer(webhook.build_app())) as client:
            for body in (b"{not json", json.dumps({"repository": {}}).encode()):
                resp = await client.post(
                    "/webhook",
                    data=body,
                    headers={"X-GitHub-Event": "push", "X-Hub-Signature-256": _sign(body)},
                )
                assert resp.status == 400

    async def test_ping_and_other_events(self, webhook: WebhookServer) -> None:
        """Ping is answered and other events are ignored."""
        async with test_utils.TestClient(test_utils.TestServer(webhook.build_app())) as client:
            ping = await client.post("/webhook", data=b"{}", headers={"X-GitHub-Event": "ping"})
            assert await ping.text() == "pong"
            issue = await client.post("/webhook", data=b"{}", headers={"X-GitHub-Event": "issues"})
            assert issue.status == 200

    async def test_unsigned_push_accepted_without_secret(
        self, settings: SyncSettings, store: RepositoryStore, scheduler: SyncScheduler
    ) -> None:
        """Signatures are not checked when no secret is configured."""
        webhook = WebhookServer(settings, store, scheduler)
        active = _tracked(store)

        async with test_utils.TestClient(test_utils.TestServer(webhook.build_app())) as client:
            resp = await client.post("/webhook", data=_push(), headers={"X-GitHub-Event": "push"})
            assert resp.status == 202
            assert (await resp.json())["triggered"] == [active.id]
            await webhook.wait_pending()


class TestReadEndpoints:
    async def test_health(self, webhook: WebhookServer) -> None:
        async with test_utils.TestClient(test_utils.TestServer(webhook.build_app())) as client:
            resp = await client.get("/health")
            assert resp.status == 200

    async def test_status(self, webhook: WebhookServer, store: RepositoryStore) -> None:
        """Status lists tracked repositories."""
        config = _tracked(store)

        async with test_utils.TestClient(test_utils.TestServer(webhook.build_app())) as client:
            found = await client.get(f"/repositories/{config.id}/status")
            missing = await client.get("/repositories/nope/status")

            assert found.status == 200
            data = await found.json()
            assert data["name"] == "petstore"
            assert data["spec_paths"] == ["openapi/orders.yaml"]
            assert missing.status == 404
