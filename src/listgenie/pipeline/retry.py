"""Bounded manual retry counter for one job's lifecycle."""

from __future__ import annotations

from dataclasses import dataclass

from listgenie.exceptions import RetryLimitExceededError


@dataclass
class RetrySession:
    """Counts manual retries of the current job.

    ``attempt`` is the number of retries taken so far. Starting a new job
    must call :meth:`reset`; retrying the same job calls
    :meth:`next_attempt`, which fails once ``attempt`` would exceed
    ``max_retries``.
    """

    max_retries: int = 3
    attempt: int = 0

    def reset(self) -> None:
        self.attempt = 0

    @property
    def remaining(self) -> int:
        return max(0, self.max_retries - self.attempt)

    @property
    def can_retry(self) -> bool:
        return self.attempt < self.max_retries

    def next_attempt(self) -> int:
        """Consume one retry and return the new attempt number.

        Raises:
            RetryLimitExceededError: ``attempt`` went past ``max_retries``.
        """
        self.attempt += 1
        if self.attempt > self.max_retries:
            raise RetryLimitExceededError(self.attempt, self.max_retries)
        return self.attempt

    def describe(self) -> str:
        """Human-readable attempt counter, e.g. ``Attempt 2 of 4``."""
        return f"Attempt {self.attempt + 1} of {self.max_retries + 1}"
