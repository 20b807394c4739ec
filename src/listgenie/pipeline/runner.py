"""End-to-end processing run: upload, poll, and drive the step board.

Composes :class:`UploadTransport`, :class:`JobStatusPoller`,
:class:`StepBoard` and :class:`RetrySession` into the flow a host
application presents to the user:

* :meth:`ProcessingRunner.process` starts a brand-new job (the retry
  counter goes back to zero);
* :meth:`ProcessingRunner.retry` re-runs the *whole* pipeline from a fresh
  upload of the same inputs, consuming one retry.

Failures propagate to the caller; the board keeps the step states reached so
far so the caller can show where it stopped or fall back to finishing the
listing manually.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from listgenie.exceptions import GatewayError, PollingCancelledError, StepFailedError
from listgenie.gateway.upload import ProgressCallback, UploadTransport
from listgenie.models import ClientStepId, ClientStepState, UploadProgress, UploadResult
from listgenie.pipeline.poller import JobStatusPoller, Sleep, UpdateCallback
from listgenie.pipeline.retry import RetrySession
from listgenie.pipeline.steps import ClientStep, StepBoard
from listgenie.schemas import JobStatus
from listgenie.validation import FileInput

logger = logging.getLogger(__name__)


@dataclass
class ProcessingOutcome:
    """Result of a successful run."""

    upload: UploadResult
    status: JobStatus | None
    steps: list[ClientStep] = field(default_factory=list)

    @property
    def job_id(self) -> str | None:
        return self.upload.job_id


class ProcessingRunner:
    """Runs upload -> poll for one job and supports bounded manual retry.

    Usage::

        runner = ProcessingRunner(transport, poller)
        try:
            outcome = await runner.process(["a.jpg"], {"price": 12})
        except StepFailedError:
            if runner.retry_session.can_retry:
                outcome = await runner.retry()

    Args:
        transport: Upload transport.
        poller: Job status poller.
        retry_session: Retry counter (default: 3 retries).
        retry_delay: Pause before a retry starts, in seconds.
        sleep: Awaitable sleep used for the retry pause.
    """

    def __init__(
        self,
        transport: UploadTransport,
        poller: JobStatusPoller,
        retry_session: RetrySession | None = None,
        retry_delay: float = 1.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._poller = poller
        self.retry_session = retry_session or RetrySession()
        self.board = StepBoard()
        self.last_error: GatewayError | None = None
        self._retry_delay = retry_delay
        self._sleep = sleep
        self._inputs: tuple[list[FileInput], dict[str, Any]] | None = None

    async def process(
        self,
        files: Iterable[FileInput],
        metadata: Mapping[str, Any] | None = None,
        *,
        on_progress: ProgressCallback | None = None,
        on_update: UpdateCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ProcessingOutcome:
        """Start a new job from *files* and *metadata*."""
        self.retry_session.reset()
        self._inputs = (list(files), dict(metadata or {}))
        return await self._run(on_progress, on_update, cancel_event)

    async def retry(
        self,
        *,
        on_progress: ProgressCallback | None = None,
        on_update: UpdateCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ProcessingOutcome:
        """Restart the last job from a fresh upload.

        Raises:
            RuntimeError: No job has been started yet.
            RetryLimitExceededError: The retry budget is spent.
        """
        if self._inputs is None:
            raise RuntimeError("No job to retry -- call process() first")
        attempt = self.retry_session.next_attempt()
        logger.info(
            "Retrying processing (attempt %d/%d)",
            attempt + 1,
            self.retry_session.max_retries + 1,
        )
        await self._sleep(self._retry_delay)
        return await self._run(on_progress, on_update, cancel_event)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run(
        self,
        on_progress: ProgressCallback | None,
        on_update: UpdateCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> ProcessingOutcome:
        files, metadata = self._inputs  # type: ignore[misc]
        board = self.board
        board.reset()
        self.last_error = None
        board.mark(ClientStepId.VALIDATION, ClientStepState.IN_PROGRESS)

        async def _progress(progress: UploadProgress) -> None:
            if progress.percent >= 100:
                board.mark(ClientStepId.VALIDATION, ClientStepState.COMPLETED)
                board.mark(ClientStepId.PROCESSING, ClientStepState.IN_PROGRESS)
            if on_progress is not None:
                result = on_progress(progress)
                if inspect.isawaitable(result):
                    await result

        try:
            upload = await self._transport.upload(files, metadata, on_progress=_progress)
            if not upload.job_id:
                logger.info("Upload returned no processing id; nothing to poll")
                board.complete_all()
                return ProcessingOutcome(upload=upload, status=None, steps=board.steps)
            status = await self._poller.poll(
                upload.job_id, on_update, board=board, cancel_event=cancel_event
            )
        except (StepFailedError, PollingCancelledError) as exc:
            self.last_error = exc
            raise
        except GatewayError as exc:
            self.last_error = exc
            board.fail_current()
            raise

        return ProcessingOutcome(upload=upload, status=status, steps=board.steps)
