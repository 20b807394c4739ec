"""Data models and enums for the ListGenie client gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class StepStatus(str, Enum):
    """Status of a single backend step record."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"

    @property
    def is_success(self) -> bool:
        return self in (
            StepStatus.COMPLETED,
            StepStatus.SKIPPED,
            StepStatus.COMPLETED_WITH_WARNINGS,
        )


class ClientStepId(str, Enum):
    """Coarse user-facing pipeline phases, in pipeline order."""

    VALIDATION = "validation"
    PROCESSING = "processing"
    AI_GENERATION = "ai-generation"
    ETSY_CREATION = "etsy-creation"


class ClientStepState(str, Enum):
    """Lifecycle state of a client step."""

    WAITING = "waiting"
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class TokenPair:
    """Access/refresh token pair held by the token store."""

    access_token: str
    refresh_token: str | None = None

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValueError("access_token must not be empty")


@dataclass(frozen=True, slots=True)
class UploadProgress:
    """One upload progress tick."""

    loaded: int
    total: int

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0
        return self.loaded / self.total * 100.0


@dataclass(slots=True)
class UploadResult:
    """Successful upload response: the job id plus the raw payload."""

    job_id: str | None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayConfig:
    """Configuration for the ListGenie client gateway.

    Controls backend targeting, polling cadence and budget, transfer
    timeouts, the manual retry bound, and where tokens are persisted.
    """

    base_url: str = "http://localhost:3000"
    api_prefix: str = "/api"
    keyring_service: str = "listgenie"
    poll_interval: float = 5.0
    max_polls: int = 60
    upload_timeout: float = 300.0
    request_timeout: float = 30.0
    max_retries: int = 3
    max_file_size: int = 10 * 1024 * 1024
    max_files: int = 20

    @property
    def api_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.api_prefix}"
