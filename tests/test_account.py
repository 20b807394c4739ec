"""Tests for the account, settings and health facade."""

from __future__ import annotations

import json

import httpx
import pytest

from listgenie.auth import AuthEvent, AuthEventType
from listgenie.exceptions import InvalidResponseError, RequestFailedError
from listgenie.models import TokenPair
from listgenie.services import AccountService


class Recorder:
    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


@pytest.fixture
def make_service(build_stack):
    def _make(handler, pair=TokenPair("old-access", "refresh-1")):
        stack = build_stack(handler, pair=pair)
        return AccountService(stack.gateway, stack.store, stack.events), stack

    return _make


# ======================================================================
# Auth status and OAuth
# ======================================================================


class TestAuthStatus:
    async def test_returns_backend_status(self, make_service):
        body = {
            "success": True,
            "authenticated": True,
            "services": {"googleDrive": {"connected": True}, "etsy": {"connected": False}},
        }
        recorder = Recorder(httpx.Response(200, json=body))
        service, _ = make_service(recorder)

        assert await service.get_auth_status() == body
        assert recorder.requests[0].url.path == "/api/auth/status"

    async def test_falls_back_on_error(self, make_service):
        service, _ = make_service(Recorder(httpx.Response(500, json={})))

        status = await service.get_auth_status()

        assert status["success"] is False
        assert status["authenticated"] is False
        assert status["services"]["etsy"] == {"connected": False}

    async def test_falls_back_on_network_failure(self, make_service):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        service, _ = make_service(handler)

        assert (await service.get_auth_status())["authenticated"] is False


class TestOAuth:
    async def test_initiate_returns_auth_url(self, make_service):
        recorder = Recorder(
            httpx.Response(200, json={"authUrl": "https://accounts.example/consent"})
        )
        service, _ = make_service(recorder)

        assert await service.initiate_oauth("google") == "https://accounts.example/consent"
        assert recorder.requests[0].url.path == "/api/auth/google"

    async def test_unknown_service_rejected(self, make_service):
        service, _ = make_service(Recorder(httpx.Response(200, json={})))

        with pytest.raises(ValueError):
            await service.initiate_oauth("dropbox")

    async def test_missing_auth_url(self, make_service):
        service, _ = make_service(Recorder(httpx.Response(200, json={"success": True})))

        with pytest.raises(InvalidResponseError):
            await service.initiate_oauth("etsy")

    async def test_disconnect_uses_delete(self, make_service):
        recorder = Recorder(httpx.Response(200, json={"success": True}))
        service, _ = make_service(recorder)

        await service.disconnect_service("etsy")

        assert recorder.requests[0].method == "DELETE"
        assert recorder.requests[0].url.path == "/api/auth/disconnect/etsy"


class TestAuthRedirect:
    def test_success_stores_new_token(self, make_service):
        service, stack = make_service(Recorder(httpx.Response(200)))
        seen: list[AuthEvent] = []
        stack.events.subscribe(seen.append)

        event = service.handle_auth_redirect(
            {"auth": "success", "service": "google", "token": "fresh"}
        )

        assert event.type is AuthEventType.SUCCESS
        assert stack.store.get() == TokenPair("fresh", "refresh-1")
        assert seen == [event]

    def test_existing_marker_keeps_token(self, make_service):
        service, stack = make_service(Recorder(httpx.Response(200)))

        service.handle_auth_redirect({"auth": "success", "service": "etsy", "token": "existing"})

        assert stack.store.access_token == "old-access"

    def test_error_emits_auth_error(self, make_service):
        service, stack = make_service(Recorder(httpx.Response(200)))
        seen: list[AuthEvent] = []
        stack.events.subscribe(seen.append, AuthEventType.ERROR)

        service.handle_auth_redirect({"auth": "error", "service": "etsy", "error": "denied"})

        assert [(e.service, e.message) for e in seen] == [("etsy", "denied")]

    def test_unrelated_params_ignored(self, make_service):
        service, stack = make_service(Recorder(httpx.Response(200)))
        seen: list[AuthEvent] = []
        stack.events.subscribe(seen.append)

        assert service.handle_auth_redirect({"page": "2"}) is None
        assert seen == []


# ======================================================================
# Settings and health
# ======================================================================


class TestSettings:
    async def test_save_wraps_settings(self, make_service):
        recorder = Recorder(httpx.Response(200, json={"success": True}))
        service, _ = make_service(recorder)

        await service.save_settings({"watermark": {"text": "shop"}})

        request = recorder.requests[0]
        assert request.method == "PUT"
        assert json.loads(request.content) == {"settings": {"watermark": {"text": "shop"}}}

    async def test_update_section_wraps_updates(self, make_service):
        recorder = Recorder(httpx.Response(200, json={"success": True}))
        service, _ = make_service(recorder)

        await service.update_settings_section("collage", {"columns": 3})

        request = recorder.requests[0]
        assert request.method == "PATCH"
        assert request.url.path == "/api/settings/collage"
        assert json.loads(request.content) == {"updates": {"columns": 3}}

    async def test_save_failure_surfaces_message(self, make_service):
        recorder = Recorder(httpx.Response(400, json={"message": "Invalid watermark"}))
        service, _ = make_service(recorder)

        with pytest.raises(RequestFailedError, match="Invalid watermark"):
            await service.save_settings({})

    async def test_get_settings(self, make_service):
        recorder = Recorder(httpx.Response(200, json={"settings": {"etsy": {}}}))
        service, _ = make_service(recorder)

        assert await service.get_settings() == {"settings": {"etsy": {}}}


class TestHealth:
    async def test_health_sends_no_auth(self, make_service):
        recorder = Recorder(httpx.Response(200, json={"success": True, "status": "healthy"}))
        service, _ = make_service(recorder)

        assert (await service.get_health_status())["status"] == "healthy"
        assert "Authorization" not in recorder.requests[0].headers

    async def test_unhealthy_fallback(self, make_service):
        service, _ = make_service(Recorder(httpx.Response(503, json={})))

        status = await service.get_health_status()

        assert status["success"] is False
        assert status["status"] == "unhealthy"
        assert "HTTP 503" in status["error"]
