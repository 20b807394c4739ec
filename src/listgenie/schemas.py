"""Pydantic models for the backend wire contract.

Only the fields the gateway acts on are declared; everything else the
backend sends is kept (``extra="allow"``) so callers can present it.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from listgenie.models import StepStatus

_SUCCESS_VALUES = frozenset(s.value for s in StepStatus if s.is_success)


class RefreshResponse(BaseModel):
    """Body of a successful ``POST /auth/refresh``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    access_token: str = Field(alias="accessToken", min_length=1)
    refresh_token: str | None = Field(default=None, alias="refreshToken")


class UploadResponse(BaseModel):
    """Body of a successful ``POST /upload``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    processing_id: str | None = Field(default=None, alias="processingId")


class StepRecord(BaseModel):
    """One entry of the backend step log.

    ``step`` and ``status`` are kept as plain strings: the backend emits
    bookkeeping steps and statuses beyond the ones the client projects.
    """

    model_config = ConfigDict(extra="allow")

    step: str
    status: str
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.status == StepStatus.FAILED.value

    @property
    def started(self) -> bool:
        return self.status == StepStatus.STARTED.value

    @property
    def succeeded(self) -> bool:
        return self.status in _SUCCESS_VALUES


class JobStatus(BaseModel):
    """Status snapshot of one processing job."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    steps: list[StepRecord] = Field(default_factory=list)

    @property
    def latest(self) -> StepRecord | None:
        return self.steps[-1] if self.steps else None

    def first_failure(self) -> StepRecord | None:
        for record in self.steps:
            if record.failed:
                return record
        return None

    def raw(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class StatusEnvelope(BaseModel):
    """Body of ``GET /status/{processingId}``."""

    model_config = ConfigDict(extra="allow")

    status: JobStatus
