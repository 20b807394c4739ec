"""Account, connected-service and settings calls.

Thin async facade over :class:`RequestGateway` for the non-pipeline
endpoints. Status and health lookups degrade to a "not connected" /
"unhealthy" payload instead of raising, so a dashboard can always render;
everything else raises the gateway's typed errors.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from listgenie.auth.events import AuthEvent, AuthEvents, AuthEventType
from listgenie.auth.store import TokenStore
from listgenie.constants import AUTH_STATUS_PATH, HEALTH_PATH, SETTINGS_PATH
from listgenie.exceptions import GatewayError, InvalidResponseError
from listgenie.gateway.client import RequestGateway
from listgenie.models import TokenPair

logger = logging.getLogger(__name__)

# Connectable third-party services
SERVICES: tuple[str, ...] = ("google", "etsy")

# Sent back by the OAuth callback when the session already holds a token
EXISTING_TOKEN = "existing"


def unauthenticated_status() -> dict[str, Any]:
    """Status payload used when the backend cannot be asked."""
    return {
        "success": False,
        "authenticated": False,
        "services": {
            "googleDrive": {"connected": False},
            "etsy": {"connected": False},
        },
    }


class AccountService:
    """Async facade for auth status, OAuth, settings and health.

    Usage::

        svc = AccountService(gateway, store, events)
        status = await svc.get_auth_status()
        url = await svc.initiate_oauth("google")
        await svc.update_settings_section("watermark", {"opacity": 0.4})
    """

    def __init__(
        self,
        gateway: RequestGateway,
        store: TokenStore,
        events: AuthEvents,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._events = events

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def get_auth_status(self) -> dict[str, Any]:
        """Return the backend's auth status, or an unauthenticated default."""
        try:
            return await self._gateway.request_json(
                "GET", AUTH_STATUS_PATH, failure_message="Failed to get auth status"
            )
        except GatewayError as exc:
            logger.warning("Could not get auth status: %s", exc)
            return unauthenticated_status()

    async def initiate_oauth(self, service: str) -> str:
        """Start the OAuth flow for *service* and return the consent URL.

        Raises:
            ValueError: *service* is not connectable.
            RequestFailedError: The backend refused to start the flow.
            InvalidResponseError: No ``authUrl`` in the response.
        """
        self._check_service(service)
        body = await self._gateway.request_json(
            "GET",
            f"/auth/{service}",
            failure_message=f"Failed to initiate {service} authentication",
        )
        auth_url = body.get("authUrl") if isinstance(body, dict) else None
        if not auth_url:
            raise InvalidResponseError(f"No authUrl returned for {service}")
        return auth_url

    async def disconnect_service(self, service: str) -> dict[str, Any]:
        self._check_service(service)
        return await self._gateway.request_json(
            "DELETE",
            f"/auth/disconnect/{service}",
            failure_message=f"Failed to disconnect {service}",
        )

    def handle_auth_redirect(self, params: Mapping[str, str]) -> AuthEvent | None:
        """Process the query parameters of an OAuth redirect.

        ``auth=success`` stores the returned token (unless it is the
        ``existing`` marker) and emits ``AUTH_SUCCESS``; ``auth=error``
        emits ``AUTH_ERROR``. Anything else is ignored.

        Returns:
            The emitted event, or ``None``.
        """
        outcome = params.get("auth")
        service = params.get("service")
        if outcome == "success":
            token = params.get("token")
            if token and token != EXISTING_TOKEN:
                self._store.set(TokenPair(token, self._store.refresh_token))
            event = AuthEvent(type=AuthEventType.SUCCESS, service=service)
        elif outcome == "error":
            event = AuthEvent(
                type=AuthEventType.ERROR,
                service=service,
                message=params.get("error") or "Authentication failed",
            )
        else:
            return None
        logger.info("OAuth redirect for %s: %s", service, outcome)
        self._events.emit(event)
        return event

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_settings(self) -> dict[str, Any]:
        return await self._gateway.request_json(
            "GET", SETTINGS_PATH, failure_message="Failed to get settings"
        )

    async def save_settings(self, settings: Mapping[str, Any]) -> dict[str, Any]:
        """Replace all settings."""
        return await self._gateway.request_json(
            "PUT",
            SETTINGS_PATH,
            json={"settings": dict(settings)},
            failure_message="Failed to save settings",
        )

    async def update_settings_section(
        self, section: str, updates: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Merge *updates* into one settings section."""
        return await self._gateway.request_json(
            "PATCH",
            f"{SETTINGS_PATH}/{section}",
            json={"updates": dict(updates)},
            failure_message=f"Failed to update {section} settings",
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def get_health_status(self) -> dict[str, Any]:
        """Unauthenticated health check; never raises for backend failures."""
        try:
            return await self._gateway.request_json(
                "GET", HEALTH_PATH, auth=False, failure_message="Health check failed"
            )
        except GatewayError as exc:
            logger.warning("Health check failed: %s", exc)
            return {"success": False, "status": "unhealthy", "error": str(exc)}

    @staticmethod
    def _check_service(service: str) -> None:
        if service not in SERVICES:
            raise ValueError(
                f"Unknown service {service!r}; expected one of {', '.join(SERVICES)}"
            )
