"""Shared pytest fixtures for the ListGenie client gateway tests.

Provides an in-memory token backend, httpx clients backed by
``MockTransport`` handlers, a fully wired gateway stack, and a fake
``sleep`` that records delays instead of waiting.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable

import httpx
import pytest

from listgenie.auth import (
    AuthEvents,
    MemoryTokenBackend,
    TokenRefreshCoordinator,
    TokenStore,
)
from listgenie.gateway import RequestGateway
from listgenie.models import TokenPair

API_URL = "http://listgenie.test/api"

Handler = Callable[[httpx.Request], object]


class SleepRecorder:
    """Awaitable stand-in for ``asyncio.sleep`` acting as a logical clock."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        await asyncio.sleep(0)

    @property
    def elapsed(self) -> float:
        return sum(self.calls)


@dataclass
class GatewayStack:
    """Every component a request needs, sharing one MockTransport."""

    backend: MemoryTokenBackend
    store: TokenStore
    events: AuthEvents
    http: httpx.AsyncClient
    coordinator: TokenRefreshCoordinator
    gateway: RequestGateway


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def token_pair() -> TokenPair:
    return TokenPair("old-access", "refresh-1")


@pytest.fixture
async def make_client():
    """Factory for AsyncClients routed to a handler; closed on teardown."""
    clients: list[httpx.AsyncClient] = []

    def _make(handler: Handler) -> httpx.AsyncClient:
        client = httpx.AsyncClient(
            base_url=API_URL, transport=httpx.MockTransport(handler)
        )
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.aclose()


@pytest.fixture
def build_stack(make_client, token_pair: TokenPair):
    """Factory for a :class:`GatewayStack` around *handler*."""

    def _build(handler: Handler, pair: TokenPair | None = token_pair) -> GatewayStack:
        backend = MemoryTokenBackend(pair)
        store = TokenStore(backend)
        events = AuthEvents()
        http = make_client(handler)
        coordinator = TokenRefreshCoordinator(store, http, events)
        gateway = RequestGateway(http, store, coordinator)
        return GatewayStack(backend, store, events, http, coordinator, gateway)

    return _build
