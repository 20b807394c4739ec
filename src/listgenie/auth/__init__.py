"""Token storage, auth events, and single-flight refresh."""

from listgenie.auth.coordinator import PendingWaiter, TokenRefreshCoordinator
from listgenie.auth.events import AuthEvent, AuthEvents, AuthEventType
from listgenie.auth.store import (
    KeyringTokenBackend,
    MemoryTokenBackend,
    TokenBackend,
    TokenStore,
)

__all__ = [
    "AuthEvent",
    "AuthEventType",
    "AuthEvents",
    "KeyringTokenBackend",
    "MemoryTokenBackend",
    "PendingWaiter",
    "TokenBackend",
    "TokenRefreshCoordinator",
    "TokenStore",
]
