"""Tests for bounded job polling on a logical clock.

Groups:
  - Termination on a terminal step
  - Sequential ticks and update callbacks
  - Failure, timeout, cancellation, and malformed responses
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from listgenie.exceptions import (
    InvalidResponseError,
    PollingCancelledError,
    PollingTimeoutError,
    RequestFailedError,
    StepFailedError,
)
from listgenie.models import ClientStepState
from listgenie.pipeline import JobStatusPoller, StepBoard
from listgenie.schemas import JobStatus

RUNNING = [
    {"step": "validation", "status": "completed"},
    {"step": "watermarking", "status": "started"},
]
DONE = [
    {"step": "validation", "status": "completed"},
    {"step": "ai_metadata", "status": "completed"},
    {"step": "etsy_listing", "status": "completed", "listingId": 991},
    {"step": "finalization", "status": "completed"},
]
FAILED = [
    {"step": "validation", "status": "completed"},
    {"step": "watermarking", "status": "failed", "error": "corrupt image"},
]


class StatusSequence:
    """Serves the given step logs in order, repeating the last one."""

    def __init__(self, *logs: list[dict]) -> None:
        self.logs = list(logs)
        self.calls = 0
        self.paths: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.paths.append(request.url.path)
        log = self.logs[min(self.calls, len(self.logs) - 1)]
        self.calls += 1
        return httpx.Response(
            200,
            json={"success": True, "status": {"id": "job-1", "steps": log, "userId": "u1"}},
        )


# ======================================================================
# Termination
# ======================================================================


class TestPollTermination:
    async def test_stops_at_first_terminal_tick(self, build_stack, sleep):
        backend = StatusSequence(RUNNING, RUNNING, DONE)
        poller = JobStatusPoller(build_stack(backend).gateway, interval=5, sleep=sleep)

        final = await poller.poll("job-1")

        assert backend.calls == 3
        assert sleep.calls == [5, 5]
        assert final.latest.step == "finalization"
        assert backend.paths[0] == "/api/status/job-1"

    async def test_terminal_on_first_tick_never_sleeps(self, build_stack, sleep):
        poller = JobStatusPoller(build_stack(StatusSequence(DONE)).gateway, sleep=sleep)

        await poller.poll("job-1")

        assert sleep.calls == []

    async def test_board_completed_on_terminal(self, build_stack, sleep):
        board = StepBoard()
        poller = JobStatusPoller(build_stack(StatusSequence(DONE)).gateway, sleep=sleep)

        await poller.poll("job-1", board=board)

        assert board.overall_progress == 1.0

    async def test_extra_fields_preserved(self, build_stack, sleep):
        poller = JobStatusPoller(build_stack(StatusSequence(DONE)).gateway, sleep=sleep)

        final = await poller.poll("job-1")

        raw = final.raw()
        assert raw["userId"] == "u1"
        assert raw["steps"][2]["listingId"] == 991


# ======================================================================
# Ticks and callbacks
# ======================================================================


class TestPollTicks:
    async def test_callback_completes_before_next_fetch(self, build_stack, sleep):
        events: list[str] = []
        backend = StatusSequence(RUNNING, RUNNING, DONE)

        def handler(request: httpx.Request) -> httpx.Response:
            events.append("fetch")
            return backend(request)

        async def on_update(status: JobStatus) -> None:
            events.append("update-start")
            await asyncio.sleep(0)
            events.append("update-end")

        poller = JobStatusPoller(build_stack(handler).gateway, sleep=sleep)
        await poller.poll("job-1", on_update=on_update)

        assert events == ["fetch", "update-start", "update-end"] * 3

    async def test_sync_callback_receives_every_snapshot(self, build_stack, sleep):
        seen: list[int] = []
        poller = JobStatusPoller(
            build_stack(StatusSequence(RUNNING, DONE)).gateway, sleep=sleep
        )

        await poller.poll("job-1", on_update=lambda s: seen.append(len(s.steps)))

        assert seen == [2, 4]

    async def test_board_tracks_progress(self, build_stack, sleep):
        board = StepBoard()
        states: list[str] = []
        poller = JobStatusPoller(
            build_stack(StatusSequence(RUNNING, DONE)).gateway, sleep=sleep
        )

        def on_update(status: JobStatus) -> None:
            states.append(board.as_dict()["processing"])

        await poller.poll("job-1", on_update=on_update, board=board)

        # on_update runs before the snapshot is applied
        assert states == ["waiting", "in-progress"]


# ======================================================================
# Failure, timeout, cancellation
# ======================================================================


class TestPollFailures:
    async def test_failed_step_raises(self, build_stack, sleep):
        backend = StatusSequence(RUNNING, FAILED, DONE)
        board = StepBoard()
        poller = JobStatusPoller(build_stack(backend).gateway, sleep=sleep)

        with pytest.raises(StepFailedError) as excinfo:
            await poller.poll("job-1", board=board)

        error = excinfo.value
        assert backend.calls == 2
        assert error.step == "watermarking"
        assert error.client_step == "processing"
        assert error.error == "corrupt image"
        assert str(error) == (
            "Processing failed at step: Processing watermarks\n\nError: corrupt image"
        )
        assert error.status["steps"][1]["status"] == "failed"
        assert board.state(board.failed_step) is ClientStepState.ERROR

    async def test_exhausts_exact_budget(self, build_stack, sleep):
        backend = StatusSequence(RUNNING)
        poller = JobStatusPoller(build_stack(backend).gateway, interval=5, sleep=sleep)

        with pytest.raises(PollingTimeoutError) as excinfo:
            await poller.poll("job-1")

        assert backend.calls == 60
        assert len(sleep.calls) == 59
        assert sleep.elapsed == 295
        assert excinfo.value.polls == 60
        assert isinstance(excinfo.value, TimeoutError)
        assert "maximum polling time exceeded" in str(excinfo.value)

    async def test_custom_budget(self, build_stack, sleep):
        backend = StatusSequence(RUNNING)
        poller = JobStatusPoller(build_stack(backend).gateway, max_polls=3, sleep=sleep)

        with pytest.raises(PollingTimeoutError):
            await poller.poll("job-1")

        assert backend.calls == 3

    async def test_http_error_propagates(self, build_stack, sleep):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"success": False, "message": "Processing not found"})

        poller = JobStatusPoller(build_stack(handler).gateway, sleep=sleep)

        with pytest.raises(RequestFailedError, match="Processing not found"):
            await poller.poll("job-x")

        assert sleep.calls == []

    async def test_malformed_status(self, build_stack, sleep):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": True})

        poller = JobStatusPoller(build_stack(handler).gateway, sleep=sleep)

        with pytest.raises(InvalidResponseError, match="Malformed processing status"):
            await poller.poll("job-1")

    async def test_cancel_stops_at_next_tick(self, build_stack, sleep):
        backend = StatusSequence(RUNNING)
        cancel = asyncio.Event()

        def on_update(status: JobStatus) -> None:
            if backend.calls == 2:
                cancel.set()

        poller = JobStatusPoller(build_stack(backend).gateway, sleep=sleep)

        with pytest.raises(PollingCancelledError):
            await poller.poll("job-1", on_update=on_update, cancel_event=cancel)

        assert backend.calls == 2
        assert len(sleep.calls) == 1

    async def test_cancel_before_start(self, build_stack, sleep):
        backend = StatusSequence(RUNNING)
        cancel = asyncio.Event()
        cancel.set()
        poller = JobStatusPoller(build_stack(backend).gateway, sleep=sleep)

        with pytest.raises(PollingCancelledError):
            await poller.poll("job-1", cancel_event=cancel)

        assert backend.calls == 0

    def test_zero_budget_rejected(self):
        with pytest.raises(ValueError):
            JobStatusPoller(gateway=None, max_polls=0)
