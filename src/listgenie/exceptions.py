"""Exception taxonomy for the ListGenie client gateway.

Everything raised on purpose derives from :class:`GatewayError` so callers
can catch the family in one place. Timeouts additionally derive from the
builtin :class:`TimeoutError`.
"""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base class for all gateway errors."""


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthError(GatewayError):
    """A token problem that the current session cannot recover from."""


class NoRefreshTokenError(AuthError):
    """Raised when a refresh is needed but no refresh token is stored."""

    def __init__(self, message: str = "No refresh token available") -> None:
        super().__init__(message)


class AuthRefreshFailedError(AuthError):
    """Raised when the refresh endpoint rejects the refresh token."""

    def __init__(
        self, message: str = "Token refresh failed", status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class NetworkError(GatewayError):
    """Transport-level failure (connection refused, reset, DNS...)."""


class GatewayTimeoutError(GatewayError, TimeoutError):
    """An operation exceeded its time or attempt budget."""


class RequestTimeoutError(GatewayTimeoutError):
    """A single proxied request timed out."""


class UploadTimeoutError(GatewayTimeoutError):
    """The upload exceeded its wall-clock cap."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Upload timed out after {timeout:.0f}s. Please try again.")
        self.timeout = timeout


class InvalidResponseError(GatewayError):
    """A success response whose body could not be parsed."""

    def __init__(self, message: str = "Invalid response from server") -> None:
        super().__init__(message)


class RequestFailedError(GatewayError):
    """A non-2xx response from an endpoint the caller expected to succeed."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class UploadFailedError(RequestFailedError):
    """The upload endpoint answered with a non-2xx status."""


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class StepFailedError(GatewayError):
    """A backend pipeline step reported failure.

    Attributes:
        step: Backend step name (e.g. ``watermarking``).
        client_step: Client step id the failure was attributed to.
        display_name: Human-readable step name for messages.
        error: Backend error text, if any.
        status: The status snapshot that contained the failure.
    """

    def __init__(
        self,
        step: str,
        error: str | None,
        *,
        client_step: str | None = None,
        display_name: str | None = None,
        status: dict[str, Any] | None = None,
    ) -> None:
        self.step = step
        self.error = error
        self.client_step = client_step
        self.display_name = display_name or step
        self.status = status or {}
        detail = error or f"Step {step} failed"
        super().__init__(
            f"Processing failed at step: {self.display_name}\n\nError: {detail}"
        )


class PollingTimeoutError(GatewayTimeoutError):
    """No terminal state was reached within the poll budget."""

    def __init__(self, job_id: str, polls: int) -> None:
        super().__init__(
            f"Processing timeout - maximum polling time exceeded "
            f"({polls} polls for job {job_id})"
        )
        self.job_id = job_id
        self.polls = polls


class PollingCancelledError(GatewayError):
    """Polling was stopped through its cancel event."""


class RetryLimitExceededError(GatewayError):
    """A manual retry was requested after the retry budget was spent."""

    def __init__(self, attempt: int, max_retries: int) -> None:
        super().__init__(
            f"Retry limit reached ({max_retries} retries); "
            "complete the listing manually"
        )
        self.attempt = attempt
        self.max_retries = max_retries


class FileValidationError(GatewayError):
    """One or more files were rejected before upload."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("\n".join(problems))
        self.problems = problems
