"""Typed observer channel for authentication state changes.

Host applications subscribe to learn when the session must re-login
(``AUTH_FAILURE``) or when an OAuth redirect landed (``AUTH_SUCCESS`` /
``AUTH_ERROR``). Each emitted event reaches each subscribed listener at most
once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class AuthEventType(str, Enum):
    """Kinds of authentication events."""

    SUCCESS = "auth-success"
    FAILURE = "auth-failure"
    ERROR = "auth-error"


@dataclass(frozen=True, slots=True)
class AuthEvent:
    """A single authentication event."""

    type: AuthEventType
    message: str | None = None
    service: str | None = None
    error: BaseException | None = None


AuthListener = Callable[[AuthEvent], None]


class AuthEvents:
    """Subscription registry for :class:`AuthEvent` notifications.

    Usage::

        events = AuthEvents()
        unsubscribe = events.subscribe(on_event, AuthEventType.FAILURE)
        ...
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: list[tuple[AuthListener, frozenset[AuthEventType]]] = []

    def subscribe(
        self, listener: AuthListener, *types: AuthEventType
    ) -> Callable[[], None]:
        """Register *listener* for *types* (all types when none given).

        Returns:
            A callable that removes the subscription. Calling it twice is
            harmless.
        """
        entry = (listener, frozenset(types or AuthEventType))
        self._listeners.append(entry)

        def _unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return _unsubscribe

    def emit(self, event: AuthEvent) -> None:
        """Deliver *event* to every matching listener, once each.

        A listener that raises is logged and does not prevent delivery to
        the remaining listeners.
        """
        logger.debug("Emitting %s to %d listener(s)", event.type.value, len(self._listeners))
        for listener, types in list(self._listeners):
            if event.type not in types:
                continue
            try:
                listener(event)
            except Exception:
                logger.exception("Auth listener %r failed on %s", listener, event.type.value)

    def __len__(self) -> int:
        return len(self._listeners)
