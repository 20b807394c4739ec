"""Token store with a synchronous persistence hook.

The store is a dumb accessor: it never validates token contents and never
talks to the network. Its only writers are the refresh coordinator and
explicit login/logout. Every ``set``/``clear`` is written through to the
backend before returning, so a restarted process sees the latest tokens.
"""

from __future__ import annotations

import logging
from typing import Protocol

import keyring
from keyring.errors import PasswordDeleteError

from listgenie.constants import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY
from listgenie.models import TokenPair

logger = logging.getLogger(__name__)


class TokenBackend(Protocol):
    """Durable storage for the token pair."""

    def load(self) -> TokenPair | None: ...

    def save(self, pair: TokenPair) -> None: ...

    def delete(self) -> None: ...


class KeyringTokenBackend:
    """Persists tokens in the system keyring.

    Entries live under *service_name* with the fixed keys ``access_token``
    and ``refresh_token``.
    """

    def __init__(self, service_name: str = "listgenie") -> None:
        self.service_name = service_name

    def load(self) -> TokenPair | None:
        access = keyring.get_password(self.service_name, ACCESS_TOKEN_KEY)
        if not access:
            return None
        refresh = keyring.get_password(self.service_name, REFRESH_TOKEN_KEY)
        return TokenPair(access_token=access, refresh_token=refresh or None)

    def save(self, pair: TokenPair) -> None:
        keyring.set_password(self.service_name, ACCESS_TOKEN_KEY, pair.access_token)
        if pair.refresh_token:
            keyring.set_password(self.service_name, REFRESH_TOKEN_KEY, pair.refresh_token)
        else:
            self._delete_key(REFRESH_TOKEN_KEY)

    def delete(self) -> None:
        self._delete_key(ACCESS_TOKEN_KEY)
        self._delete_key(REFRESH_TOKEN_KEY)

    def _delete_key(self, key: str) -> None:
        try:
            keyring.delete_password(self.service_name, key)
        except PasswordDeleteError:
            # Already absent
            pass


class MemoryTokenBackend:
    """In-process backend for tests and headless runs."""

    def __init__(self, pair: TokenPair | None = None) -> None:
        self.pair = pair
        self.saves = 0

    def load(self) -> TokenPair | None:
        return self.pair

    def save(self, pair: TokenPair) -> None:
        self.pair = pair
        self.saves += 1

    def delete(self) -> None:
        self.pair = None


class TokenStore:
    """Holds the current :class:`TokenPair` and writes it through.

    Usage::

        store = TokenStore(KeyringTokenBackend("listgenie"))
        store.set(TokenPair("access", "refresh"))
        store.get().access_token
        store.clear()
    """

    def __init__(self, backend: TokenBackend) -> None:
        self._backend = backend
        self._pair = backend.load()

    def get(self) -> TokenPair | None:
        """Return the current token pair, or ``None`` when logged out."""
        return self._pair

    @property
    def access_token(self) -> str | None:
        return self._pair.access_token if self._pair else None

    @property
    def refresh_token(self) -> str | None:
        return self._pair.refresh_token if self._pair else None

    def set(self, pair: TokenPair) -> None:
        """Replace both tokens and persist them."""
        self._backend.save(pair)
        self._pair = pair
        logger.debug("Stored token pair (refresh token present: %s)", bool(pair.refresh_token))

    def set_access_token(self, access_token: str) -> None:
        """Replace the access token, keeping the current refresh token."""
        self.set(TokenPair(access_token, self.refresh_token))

    def clear(self) -> None:
        """Drop both tokens together, in memory and in the backend."""
        self._backend.delete()
        self._pair = None
        logger.debug("Cleared stored tokens")
