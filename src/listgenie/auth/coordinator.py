"""Single-flight access token refresh.

However many requests discover an expired token at the same time, exactly
one ``POST /auth/refresh`` is outstanding. The first caller performs the
call; everyone arriving while it is in flight is queued as a
:class:`PendingWaiter` and receives the same token, or the same exception,
in enqueue order.

The in-flight flag is set before the first ``await`` so no other coroutine
can slip in between the check and the network call.
"""

from __future__ import annotations

import asyncio
import collections
import logging
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from listgenie.auth.events import AuthEvent, AuthEvents, AuthEventType
from listgenie.auth.store import TokenStore
from listgenie.constants import REFRESH_PATH
from listgenie.exceptions import AuthError, AuthRefreshFailedError, NoRefreshTokenError
from listgenie.models import TokenPair
from listgenie.schemas import RefreshResponse

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingWaiter:
    """A caller parked behind the in-flight refresh."""

    future: asyncio.Future[str]


class TokenRefreshCoordinator:
    """Guarantees at most one refresh network call at any time.

    Usage::

        coordinator = TokenRefreshCoordinator(store, http_client, events)
        token = await coordinator.refresh()

    Args:
        store: Token store to read the refresh token from and write to.
        http: Client used for the refresh call. Its ``base_url`` must point
            at the API root.
        events: Channel receiving ``AUTH_FAILURE`` when a refresh fails.
        refresh_path: Refresh endpoint, relative to the client base URL.
    """

    def __init__(
        self,
        store: TokenStore,
        http: httpx.AsyncClient,
        events: AuthEvents | None = None,
        refresh_path: str = REFRESH_PATH,
    ) -> None:
        self._store = store
        self._http = http
        self._events = events or AuthEvents()
        self._refresh_path = refresh_path

        self._in_flight = False
        self._waiters: collections.deque[PendingWaiter] = collections.deque()
        self.refresh_count = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def waiting(self) -> int:
        """Number of callers queued behind the in-flight refresh."""
        return len(self._waiters)

    async def refresh(self) -> str:
        """Return a fresh access token, sharing any refresh already running.

        Raises:
            NoRefreshTokenError: No refresh token is stored.
            AuthRefreshFailedError: The refresh endpoint rejected the token,
                was unreachable, or returned an unusable body. Tokens are
                cleared before this is raised.
        """
        if self._in_flight:
            waiter = PendingWaiter(asyncio.get_running_loop().create_future())
            self._waiters.append(waiter)
            logger.debug("Refresh in flight; queued waiter #%d", len(self._waiters))
            return await waiter.future

        refresh_token = self._store.refresh_token
        if not refresh_token:
            error = NoRefreshTokenError()
            self._signal_failure(error)
            raise error

        self._in_flight = True
        self.refresh_count += 1
        try:
            try:
                access_token = await self._request_new_token(refresh_token)
            except Exception as exc:
                error = (
                    exc
                    if isinstance(exc, AuthRefreshFailedError)
                    else AuthRefreshFailedError(f"Token refresh failed: {exc}")
                )
                if error is not exc:
                    error.__cause__ = exc
                self._store.clear()
                self._reject_waiters(error)
                self._signal_failure(error)
                raise error
            self._resolve_waiters(access_token)
            return access_token
        finally:
            self._in_flight = False
            # Only reachable with waiters left when the refresh was cancelled;
            # the cancellation belongs to the initiating caller alone
            if self._waiters:
                logger.warning(
                    "Token refresh cancelled; rejecting %d waiter(s)", len(self._waiters)
                )
                self._reject_waiters(AuthRefreshFailedError("Token refresh was cancelled"))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request_new_token(self, refresh_token: str) -> str:
        logger.info("Refreshing access token")
        try:
            response = await self._http.post(
                self._refresh_path, json={"refreshToken": refresh_token}
            )
        except httpx.TimeoutException as exc:
            raise AuthRefreshFailedError("Token refresh timed out") from exc
        except httpx.HTTPError as exc:
            raise AuthRefreshFailedError(f"Token refresh request failed: {exc}") from exc

        if not response.is_success:
            logger.warning("Token refresh rejected with HTTP %d", response.status_code)
            raise AuthRefreshFailedError(
                "Token refresh failed", status_code=response.status_code
            )

        try:
            payload = RefreshResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise AuthRefreshFailedError(
                "Token refresh returned an invalid body",
                status_code=response.status_code,
            ) from exc

        if payload.refresh_token:
            self._store.set(TokenPair(payload.access_token, payload.refresh_token))
        else:
            self._store.set_access_token(payload.access_token)
        logger.info("Access token refreshed (%d waiter(s) released)", len(self._waiters))
        return payload.access_token

    def _resolve_waiters(self, access_token: str) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.future.done():
                waiter.future.set_result(access_token)

    def _reject_waiters(self, error: BaseException) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.future.done():
                waiter.future.set_exception(error)

    def _signal_failure(self, error: AuthError) -> None:
        self._events.emit(
            AuthEvent(
                type=AuthEventType.FAILURE,
                message="Authentication failed. Please log in again.",
                error=error,
            )
        )
