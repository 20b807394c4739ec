"""Explicit per-backend context wiring every gateway component.

One :class:`GatewaySession` owns one HTTP client, one token store and one
refresh coordinator. Everything that talks to the backend in a process
should share a session so concurrent 401s collapse into a single refresh.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from listgenie.auth.coordinator import TokenRefreshCoordinator
from listgenie.auth.events import AuthEvents
from listgenie.auth.store import KeyringTokenBackend, TokenBackend, TokenStore
from listgenie.gateway.client import RequestGateway
from listgenie.gateway.upload import UploadTransport
from listgenie.models import GatewayConfig, TokenPair
from listgenie.pipeline.poller import JobStatusPoller, Sleep
from listgenie.pipeline.retry import RetrySession
from listgenie.pipeline.runner import ProcessingRunner
from listgenie.services.account import AccountService

logger = logging.getLogger(__name__)


class GatewaySession:
    """Builds and owns the gateway components for one backend.

    Usage::

        async with GatewaySession(load_gateway_config()) as session:
            outcome = await session.runner.process(["a.jpg"])

    Args:
        config: Gateway configuration.
        backend: Token persistence; defaults to the system keyring under
            ``config.keyring_service``.
        transport: Optional httpx transport (tests pass a MockTransport).
        sleep: Awaitable sleep for polling and retry pauses.
    """

    def __init__(
        self,
        config: GatewayConfig,
        backend: TokenBackend | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self.http = httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.request_timeout,
            transport=transport,
        )
        self.events = AuthEvents()
        self.store = TokenStore(backend or KeyringTokenBackend(config.keyring_service))
        self.coordinator = TokenRefreshCoordinator(self.store, self.http, self.events)
        self.gateway = RequestGateway(self.http, self.store, self.coordinator)
        self.transport = UploadTransport(
            self.gateway,
            timeout=config.upload_timeout,
            max_file_size=config.max_file_size,
            max_files=config.max_files,
        )
        self.poller = JobStatusPoller(
            self.gateway,
            interval=config.poll_interval,
            max_polls=config.max_polls,
            sleep=sleep,
        )
        self.runner = ProcessingRunner(
            self.transport,
            self.poller,
            retry_session=RetrySession(max_retries=config.max_retries),
            sleep=sleep,
        )
        self.account = AccountService(self.gateway, self.store, self.events)

    @property
    def logged_in(self) -> bool:
        return self.store.get() is not None

    def login(self, access_token: str, refresh_token: str | None = None) -> None:
        """Store a token pair obtained out of band."""
        self.store.set(TokenPair(access_token, refresh_token))
        logger.info("Logged in to %s", self.config.base_url)

    def logout(self) -> None:
        self.store.clear()
        logger.info("Logged out of %s", self.config.base_url)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> GatewaySession:
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.aclose()
