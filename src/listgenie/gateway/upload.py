"""Multipart image upload with progress reporting and a hard time cap.

The multipart body is encoded by httpx and streamed through a counting
wrapper, so progress ticks reflect bytes actually handed to the transport.
When httpx cannot compute the body length (non-seekable file objects) no
progress is reported.

The whole transfer, including a refresh-and-retry round trip, is bounded by
``upload_timeout`` seconds of wall-clock time regardless of progress.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Iterable, Mapping
from typing import Any, Awaitable, Callable, Union

import httpx
from pydantic import ValidationError

from listgenie.constants import UPLOAD_FIELD, UPLOAD_PATH
from listgenie.exceptions import (
    InvalidResponseError,
    RequestTimeoutError,
    UploadFailedError,
    UploadTimeoutError,
)
from listgenie.gateway.client import RequestGateway, server_message
from listgenie.models import UploadProgress, UploadResult
from listgenie.schemas import UploadResponse
from listgenie.validation import FileInput, UploadFile, coerce_files, validate_files

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[UploadProgress], Union[None, Awaitable[None]]]


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class UploadTransport:
    """Uploads a batch of images plus metadata fields and returns the job id.

    Usage::

        transport = UploadTransport(gateway, timeout=300)
        result = await transport.upload(["a.jpg", "b.png"], {"price": 12.5}, on_progress=print)
        result.job_id

    Args:
        gateway: Request gateway used to send (attaches the bearer token).
        timeout: Wall-clock cap in seconds for the whole transfer.
        max_file_size: Per-file limit enforced before sending.
        max_files: Largest batch accepted in one upload.
        upload_path: Upload endpoint, relative to the API root.
    """

    def __init__(
        self,
        gateway: RequestGateway,
        timeout: float = 300.0,
        max_file_size: int = 10 * 1024 * 1024,
        max_files: int = 20,
        upload_path: str = UPLOAD_PATH,
    ) -> None:
        self._gateway = gateway
        self._timeout = timeout
        self._max_file_size = max_file_size
        self._max_files = max_files
        self._upload_path = upload_path

    async def upload(
        self,
        files: Iterable[FileInput],
        metadata: Mapping[str, Any] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Upload *files* with every non-``None`` *metadata* field.

        Raises:
            FileValidationError: A file failed the client-side checks.
            UploadTimeoutError: The transfer exceeded the wall-clock cap.
            NetworkError: Transport failure.
            UploadFailedError: Non-2xx response.
            InvalidResponseError: The response body could not be parsed.
        """
        uploads = coerce_files(files)
        validate_files(
            uploads, max_file_size=self._max_file_size, max_files=self._max_files
        )
        fields = {
            key: _form_value(value)
            for key, value in (metadata or {}).items()
            if value is not None
        }

        logger.info(
            "Uploading %d file(s), %d bytes", len(uploads), sum(f.size for f in uploads)
        )
        try:
            response = await asyncio.wait_for(
                self._gateway.send(lambda: self._build_request(uploads, fields, on_progress)),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, RequestTimeoutError) as exc:
            logger.warning("Upload exceeded %.0fs", self._timeout)
            raise UploadTimeoutError(self._timeout) from exc

        return self._parse_response(response)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_request(
        self,
        uploads: list[UploadFile],
        fields: dict[str, str],
        on_progress: ProgressCallback | None,
    ) -> httpx.Request:
        encoded = self._gateway.http.build_request(
            "POST",
            self._upload_path,
            files=[
                (UPLOAD_FIELD, (f.filename, f.content, f.content_type)) for f in uploads
            ],
            data=fields,
            timeout=self._timeout,
        )
        length = encoded.headers.get("Content-Length")
        total = int(length) if length is not None else None
        return httpx.Request(
            encoded.method,
            encoded.url,
            headers=encoded.headers,
            content=self._counting_stream(encoded.stream, total, on_progress),
            extensions=encoded.extensions,
        )

    @staticmethod
    async def _counting_stream(
        stream: Any,
        total: int | None,
        on_progress: ProgressCallback | None,
    ) -> AsyncIterator[bytes]:
        loaded = 0
        async for chunk in stream:
            loaded += len(chunk)
            if on_progress is not None and total:
                result = on_progress(UploadProgress(loaded=loaded, total=total))
                if inspect.isawaitable(result):
                    await result
            yield chunk

    @staticmethod
    def _parse_response(response: httpx.Response) -> UploadResult:
        if not response.is_success:
            message = server_message(response) or (
                f"Upload failed: {response.status_code} {response.reason_phrase}".rstrip()
            )
            logger.warning("Upload rejected with HTTP %d: %s", response.status_code, message)
            raise UploadFailedError(message, response.status_code)

        try:
            body = response.json()
            payload = UploadResponse.model_validate(body)
        except (ValueError, ValidationError) as exc:
            raise InvalidResponseError() from exc

        logger.info("Upload accepted (processingId=%s)", payload.processing_id)
        return UploadResult(job_id=payload.processing_id, raw=body)
