"""Tests for single-flight token refresh.

Groups:
  - Single flight: concurrent callers share one network call
  - Failure fan-out: every waiter sees the same error, one AUTH_FAILURE
  - Edge cases: missing refresh token, rotation, bad bodies, cancellation
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from listgenie.auth import AuthEvent, AuthEventType
from listgenie.exceptions import AuthRefreshFailedError, NoRefreshTokenError
from listgenie.models import TokenPair


def _refresh_handler(calls: list[httpx.Request], *, status: int = 200, body=None, delay=0.01):
    payload = body if body is not None else {"accessToken": "new-access"}

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(delay)
        return httpx.Response(status, json=payload)

    return handler


# ======================================================================
# Single flight
# ======================================================================


class TestSingleFlight:
    async def test_concurrent_callers_share_one_request(self, build_stack):
        calls: list[httpx.Request] = []
        stack = build_stack(_refresh_handler(calls))

        tokens = await asyncio.gather(*(stack.coordinator.refresh() for _ in range(5)))

        assert tokens == ["new-access"] * 5
        assert len(calls) == 1
        assert stack.coordinator.refresh_count == 1
        assert json.loads(calls[0].content) == {"refreshToken": "refresh-1"}
        assert calls[0].url.path == "/api/auth/refresh"

    async def test_store_updated_and_refresh_token_kept(self, build_stack):
        stack = build_stack(_refresh_handler([]))

        await stack.coordinator.refresh()

        assert stack.store.get() == TokenPair("new-access", "refresh-1")
        assert stack.backend.pair == TokenPair("new-access", "refresh-1")

    async def test_waiters_released_in_enqueue_order(self, build_stack):
        stack = build_stack(_refresh_handler([]))
        order: list[int] = []

        async def caller(n: int) -> None:
            await stack.coordinator.refresh()
            order.append(n)

        await asyncio.gather(*(caller(n) for n in range(5)))

        assert order == [0, 1, 2, 3, 4]

    async def test_state_idle_after_refresh(self, build_stack):
        stack = build_stack(_refresh_handler([]))

        await asyncio.gather(*(stack.coordinator.refresh() for _ in range(3)))

        assert not stack.coordinator.in_flight
        assert stack.coordinator.waiting == 0

    async def test_sequential_refreshes_each_hit_network(self, build_stack):
        calls: list[httpx.Request] = []
        stack = build_stack(_refresh_handler(calls))

        await stack.coordinator.refresh()
        await stack.coordinator.refresh()

        assert len(calls) == 2

    async def test_rotated_refresh_token_stored(self, build_stack):
        body = {"accessToken": "new-access", "refreshToken": "refresh-2"}
        stack = build_stack(_refresh_handler([], body=body))

        await stack.coordinator.refresh()

        assert stack.store.get() == TokenPair("new-access", "refresh-2")


# ======================================================================
# Failure fan-out
# ======================================================================


class TestRefreshFailure:
    async def test_all_waiters_receive_same_error(self, build_stack):
        stack = build_stack(_refresh_handler([], status=401, body={"message": "expired"}))
        failures: list[AuthEvent] = []
        stack.events.subscribe(failures.append, AuthEventType.FAILURE)

        results = await asyncio.gather(
            *(stack.coordinator.refresh() for _ in range(4)), return_exceptions=True
        )

        assert all(isinstance(r, AuthRefreshFailedError) for r in results)
        assert len({id(r) for r in results}) == 1
        assert results[0].status_code == 401
        assert len(failures) == 1
        assert failures[0].error is results[0]

    async def test_failure_clears_tokens(self, build_stack):
        stack = build_stack(_refresh_handler([], status=500, body={}))

        with pytest.raises(AuthRefreshFailedError):
            await stack.coordinator.refresh()

        assert stack.store.get() is None
        assert stack.backend.pair is None
        assert not stack.coordinator.in_flight

    async def test_invalid_body_is_refresh_failure(self, build_stack):
        stack = build_stack(_refresh_handler([], body={"token": "wrong-field"}))

        with pytest.raises(AuthRefreshFailedError):
            await stack.coordinator.refresh()

        assert stack.store.get() is None

    async def test_network_error_is_refresh_failure(self, build_stack):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        stack = build_stack(handler)

        with pytest.raises(AuthRefreshFailedError) as excinfo:
            await stack.coordinator.refresh()

        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


# ======================================================================
# Edge cases
# ======================================================================


class TestRefreshEdgeCases:
    async def test_no_refresh_token_fails_without_network(self, build_stack):
        calls: list[httpx.Request] = []
        stack = build_stack(_refresh_handler(calls), pair=TokenPair("old-access"))
        failures: list[AuthEvent] = []
        stack.events.subscribe(failures.append)

        with pytest.raises(NoRefreshTokenError):
            await stack.coordinator.refresh()

        assert calls == []
        assert stack.coordinator.refresh_count == 0
        assert [e.type for e in failures] == [AuthEventType.FAILURE]

    async def test_cancelled_refresh_rejects_waiters(self, build_stack):
        gate = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            await gate.wait()
            return httpx.Response(200, json={"accessToken": "never"})

        stack = build_stack(handler)
        initiator = asyncio.create_task(stack.coordinator.refresh())
        while not stack.coordinator.in_flight:
            await asyncio.sleep(0)
        waiter = asyncio.create_task(stack.coordinator.refresh())
        while stack.coordinator.waiting < 1:
            await asyncio.sleep(0)

        initiator.cancel()

        with pytest.raises(asyncio.CancelledError):
            await initiator
        with pytest.raises(AuthRefreshFailedError, match="cancelled"):
            await waiter
        assert not waiter.cancelled()
        assert not stack.coordinator.in_flight
        assert stack.coordinator.waiting == 0
        assert stack.store.get() == TokenPair("old-access", "refresh-1")
