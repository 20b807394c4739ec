"""Tests for the AuthEvents observer channel."""

from __future__ import annotations

from listgenie.auth import AuthEvent, AuthEvents, AuthEventType


class TestAuthEvents:
    def test_listener_without_types_receives_everything(self):
        events = AuthEvents()
        seen: list[AuthEventType] = []
        events.subscribe(lambda e: seen.append(e.type))

        for kind in AuthEventType:
            events.emit(AuthEvent(type=kind))

        assert seen == list(AuthEventType)

    def test_listener_filters_by_type(self):
        events = AuthEvents()
        seen: list[AuthEvent] = []
        events.subscribe(seen.append, AuthEventType.FAILURE)

        events.emit(AuthEvent(type=AuthEventType.SUCCESS))
        events.emit(AuthEvent(type=AuthEventType.FAILURE, message="expired"))

        assert [e.message for e in seen] == ["expired"]

    def test_each_event_delivered_once(self):
        events = AuthEvents()
        seen: list[AuthEvent] = []
        events.subscribe(seen.append, AuthEventType.FAILURE, AuthEventType.FAILURE)

        events.emit(AuthEvent(type=AuthEventType.FAILURE))

        assert len(seen) == 1

    def test_unsubscribe_is_idempotent(self):
        events = AuthEvents()
        seen: list[AuthEvent] = []
        unsubscribe = events.subscribe(seen.append)
        assert len(events) == 1

        unsubscribe()
        unsubscribe()
        events.emit(AuthEvent(type=AuthEventType.ERROR))

        assert seen == []
        assert len(events) == 0

    def test_failing_listener_does_not_block_others(self):
        events = AuthEvents()
        seen: list[AuthEvent] = []

        def broken(event: AuthEvent) -> None:
            raise RuntimeError("listener bug")

        events.subscribe(broken)
        events.subscribe(seen.append)
        events.emit(AuthEvent(type=AuthEventType.SUCCESS, service="google"))

        assert [e.service for e in seen] == ["google"]

    def test_listener_may_unsubscribe_during_emit(self):
        events = AuthEvents()
        calls: list[str] = []
        holder: dict = {}

        def once(event: AuthEvent) -> None:
            calls.append("once")
            holder["unsub"]()

        holder["unsub"] = events.subscribe(once)
        events.subscribe(lambda e: calls.append("always"))

        events.emit(AuthEvent(type=AuthEventType.SUCCESS))
        events.emit(AuthEvent(type=AuthEventType.SUCCESS))

        assert calls == ["once", "always", "always"]
