"""Bounded polling of a remote processing job.

Ticks are strictly sequential: the next ``GET /status/{id}`` is not issued
until the previous tick's ``on_update`` callback has returned. Polling stops
on the first of:

* a failed step in the snapshot -> :class:`StepFailedError`
* a success on a terminal step -> returns the final :class:`JobStatus`
* ``max_polls`` ticks without either -> :class:`PollingTimeoutError`
* the cancel event being set -> :class:`PollingCancelledError`

Scheduling uses tenacity with an injectable ``sleep`` so tests can run the
whole poll budget on a logical clock.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Union

from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    stop_when_event_set,
    wait_fixed,
)

from listgenie.constants import STATUS_PATH
from listgenie.exceptions import (
    InvalidResponseError,
    PollingCancelledError,
    PollingTimeoutError,
    StepFailedError,
)
from listgenie.gateway.client import RequestGateway
from listgenie.pipeline.steps import StepBoard, client_step_for, display_name, is_terminal
from listgenie.schemas import JobStatus, StatusEnvelope

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[JobStatus], Union[None, Awaitable[None]]]
Sleep = Callable[[float], Awaitable[None]]


class JobStatusPoller:
    """Polls ``GET /status/{id}`` and drives a :class:`StepBoard`.

    Usage::

        poller = JobStatusPoller(gateway, interval=5, max_polls=60)
        final = await poller.poll(job_id, on_update=render)

    Args:
        gateway: Request gateway for the status calls.
        interval: Seconds between ticks.
        max_polls: Tick budget.
        sleep: Awaitable sleep used between ticks.
        status_path: Status endpoint template with a ``{job_id}`` field.
    """

    def __init__(
        self,
        gateway: RequestGateway,
        interval: float = 5.0,
        max_polls: int = 60,
        sleep: Sleep = asyncio.sleep,
        status_path: str = STATUS_PATH,
    ) -> None:
        if max_polls < 1:
            raise ValueError("max_polls must be at least 1")
        self._gateway = gateway
        self._interval = interval
        self._max_polls = max_polls
        self._sleep = sleep
        self._status_path = status_path

    async def fetch_status(self, job_id: str) -> JobStatus:
        """Fetch one status snapshot.

        Raises:
            RequestFailedError: Non-2xx response.
            InvalidResponseError: Body missing ``status.steps`` or not JSON.
        """
        body = await self._gateway.request_json(
            "GET",
            self._status_path.format(job_id=job_id),
            failure_message="Failed to get processing status",
        )
        try:
            return StatusEnvelope.model_validate(body).status
        except ValidationError as exc:
            raise InvalidResponseError("Malformed processing status") from exc

    async def poll(
        self,
        job_id: str,
        on_update: UpdateCallback | None = None,
        board: StepBoard | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> JobStatus:
        """Poll *job_id* until it finishes, fails, or the budget runs out.

        Args:
            job_id: Processing id returned by the upload.
            on_update: Called (and awaited, if async) with every snapshot
                before it is applied to the board.
            board: Board to drive; a fresh one is used when omitted.
            cancel_event: Stops polling at the next tick once set.

        Returns:
            The terminal status snapshot.
        """
        board = board if board is not None else StepBoard()
        stop = stop_after_attempt(self._max_polls)
        if cancel_event is not None:
            stop = stop | stop_when_event_set(cancel_event)

        ticks = 0
        status: JobStatus | None = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop,
                wait=wait_fixed(self._interval),
                retry=retry_if_result(lambda s: not is_terminal(s)),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    if cancel_event is not None and cancel_event.is_set():
                        raise PollingCancelledError(f"Polling of job {job_id} cancelled")
                    ticks += 1
                    status = await self.fetch_status(job_id)
                    logger.debug(
                        "Job %s tick %d/%d: %d step record(s)",
                        job_id,
                        ticks,
                        self._max_polls,
                        len(status.steps),
                    )
                    if on_update is not None:
                        result = on_update(status)
                        if inspect.isawaitable(result):
                            await result
                    self._apply(job_id, status, board)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(status)
        except RetryError as exc:
            if cancel_event is not None and cancel_event.is_set():
                raise PollingCancelledError(f"Polling of job {job_id} cancelled") from exc
            logger.warning("Job %s did not finish within %d polls", job_id, ticks)
            raise PollingTimeoutError(job_id, ticks) from exc

        logger.info("Job %s finished after %d poll(s)", job_id, ticks)
        return status

    @staticmethod
    def _apply(job_id: str, status: JobStatus, board: StepBoard) -> None:
        failure = board.apply(status)
        if failure is not None:
            client_step = client_step_for(failure.step) or board.failed_step
            logger.warning(
                "Job %s failed at step %s: %s", job_id, failure.step, failure.error
            )
            raise StepFailedError(
                failure.step,
                failure.error,
                client_step=client_step.value if client_step else None,
                display_name=display_name(failure.step),
                status=status.raw(),
            )
        if is_terminal(status):
            board.complete_all()
