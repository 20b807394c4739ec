"""Authenticated request gateway.

Every authenticated backend call goes through :class:`RequestGateway`. It
attaches the bearer token, and when the backend answers 401 while a refresh
token is stored it refreshes once (through the shared coordinator) and
re-issues the call exactly once. Whatever the retry returns, including a
second 401, is handed back as-is: there is no retry loop.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import httpx

from listgenie.auth.coordinator import TokenRefreshCoordinator
from listgenie.auth.store import TokenStore
from listgenie.exceptions import (
    InvalidResponseError,
    NetworkError,
    RequestFailedError,
    RequestTimeoutError,
)

logger = logging.getLogger(__name__)

RequestBuilder = Callable[[], httpx.Request]


def server_message(response: httpx.Response) -> str | None:
    """Extract the backend's ``message`` (or ``error``) field, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    message = body.get("message") or body.get("error")
    return str(message) if message else None


class RequestGateway:
    """Wraps outbound calls with auth injection and refresh-then-retry-once.

    Usage::

        gateway = RequestGateway(http_client, store, coordinator)
        response = await gateway.request("GET", "/settings")
        health = await gateway.request("GET", "/health", auth=False)

    Args:
        http: Client whose ``base_url`` points at the API root.
        store: Token store read at call time for the current access token.
        coordinator: Shared refresh coordinator for this session.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: TokenStore,
        coordinator: TokenRefreshCoordinator,
    ) -> None:
        self._http = http
        self._store = store
        self._coordinator = coordinator

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    async def request(
        self, method: str, url: str, *, auth: bool = True, **kwargs: Any
    ) -> httpx.Response:
        """Issue one call; keyword arguments go to ``httpx.AsyncClient.build_request``."""
        return await self.send(
            lambda: self._http.build_request(method, url, **kwargs), auth=auth
        )

    async def send(self, build: RequestBuilder, *, auth: bool = True) -> httpx.Response:
        """Send the request produced by *build*, retrying once after a refresh.

        *build* is called again for the retry so request bodies backed by
        one-shot streams can be recreated.

        Raises:
            NetworkError: Transport failure.
            RequestTimeoutError: The HTTP client timed out.
            NoRefreshTokenError: A refresh was needed but became impossible.
            AuthRefreshFailedError: The refresh itself failed.
        """
        request = build()
        if auth:
            self._authorize(request, self._store.access_token)
        response = await self._dispatch(request)

        if response.status_code != 401 or not auth or not self._store.refresh_token:
            return response

        await response.aclose()
        logger.info(
            "%s %s returned 401; refreshing token and retrying once",
            request.method,
            request.url.path,
        )
        token = await self._coordinator.refresh()

        retry = build()
        self._authorize(retry, token)
        response = await self._dispatch(retry)
        if response.status_code == 401:
            logger.warning(
                "%s %s still unauthorized after refresh", retry.method, retry.url.path
            )
        return response

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        auth: bool = True,
        failure_message: str = "Request failed",
        **kwargs: Any,
    ) -> Any:
        """Like :meth:`request`, but decode a JSON body and reject non-2xx.

        Raises:
            RequestFailedError: Non-2xx response; carries the server message
                when present, else *failure_message*.
            InvalidResponseError: The 2xx body is not JSON.
        """
        response = await self.request(method, url, auth=auth, **kwargs)
        return self.read_json(response, failure_message=failure_message)

    @staticmethod
    def read_json(response: httpx.Response, *, failure_message: str = "Request failed") -> Any:
        if not response.is_success:
            message = server_message(response) or (
                f"{failure_message} (HTTP {response.status_code})"
            )
            raise RequestFailedError(message, response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise InvalidResponseError() from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _authorize(request: httpx.Request, token: str | None) -> None:
        if token:
            request.headers["Authorization"] = f"Bearer {token}"

    async def _dispatch(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self._http.send(request)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(
                f"{request.method} {request.url.path} timed out"
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(
                f"Network error during {request.method} {request.url.path}: {exc}"
            ) from exc
