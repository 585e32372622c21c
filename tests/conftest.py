"""Shared fixtures: a temp-file mapping store and a fake Discord built on httpx.MockTransport."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from urllib.parse import parse_qs

import httpx
import pytest

import main
from chat_log import ChatLog
from discord_client import DISCORD_TOKEN_URL, DiscordClient
from link_manager import LinkManager
from mapping_store import MappingStore
from pending_links import PendingLinkStore


class FakeDiscord:
    """Answers the token and /users/@me endpoints from a code -> user table."""

    def __init__(self, users: dict[str, dict] | None = None) -> None:
        self.users: dict[str, dict] = dict(users or {})
        self.requests: list[httpx.Request] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # yield so concurrent attempts interleave at the network boundary
        await asyncio.sleep(0)
        if request.method == "POST" and str(request.url) == DISCORD_TOKEN_URL:
            form = parse_qs(request.content.decode())
            code = form.get("code", [""])[0]
            if code not in self.users:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": f"tok-{code}", "token_type": "Bearer"})
        if request.method == "GET" and request.url.path.startswith("/api/users/"):
            token = request.headers.get("Authorization", "").removeprefix("Bearer tok-")
            if token not in self.users:
                return httpx.Response(401, json={"message": "401: Unauthorized"})
            return httpx.Response(200, json=self.users[token])
        return httpx.Response(500, json={"error": "unexpected request"})

    def client(self) -> DiscordClient:
        transport = httpx.MockTransport(self.handler)
        return DiscordClient(http_client=httpx.AsyncClient(transport=transport))


@pytest.fixture
def store(tmp_path) -> MappingStore:
    return MappingStore(path=str(tmp_path / "discordMappings.json"))


@pytest.fixture
def fake_discord() -> FakeDiscord:
    return FakeDiscord(
        {
            "code-alice": {"id": "1", "username": "alice", "global_name": "Alice"},
            "code-bob": {"id": "2", "username": "bob", "global_name": None},
            "code-carol": {"id": "3", "username": "carol", "global_name": "Carol"},
        }
    )


@pytest.fixture
def pending() -> PendingLinkStore:
    return PendingLinkStore()


@pytest.fixture
def linker(store, fake_discord, pending) -> LinkManager:
    return LinkManager(store=store, discord=fake_discord.client(), pending=pending)


@pytest.fixture
def app(store, fake_discord, pending):
    """The FastAPI app wired to per-test state."""
    log = ChatLog()
    main.app.dependency_overrides[main.get_mapping_store] = lambda: store
    main.app.dependency_overrides[main.get_pending_links] = lambda: pending
    main.app.dependency_overrides[main.get_chat_log] = lambda: log
    main.app.dependency_overrides[main.get_discord_client] = fake_discord.client
    yield main.app
    main.app.dependency_overrides.clear()


@pytest.fixture
def make_client(app) -> Callable[[], httpx.AsyncClient]:
    def _make() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://test",
        )

    return _make
