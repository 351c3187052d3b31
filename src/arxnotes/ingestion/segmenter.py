"""Layout-aware PDF segmentation through the Unstructured partition API.

The service takes a multipart file upload rather than a raw body, so the
PDF is staged in a uniquely named temporary file for the duration of one
call. ``_staged_pdf`` removes that file on every exit path, including
cancellation.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Any, AsyncIterator, Awaitable, Callable

import httpx

from arxnotes.config import NotesSettings
from arxnotes.errors import SegmentationError
from arxnotes.models import DocumentSegment
from arxnotes.retry import RetriesExhausted, call_with_retries, status_code_of


logger = logging.getLogger(__name__)

HI_RES_STRATEGY = "hi_res"


def _write_staged_file(fd: int, pdf: bytes) -> None:
    with os.fdopen(fd, "wb") as handle:
        handle.write(pdf)


def _remove_staged_file(path: Path) -> None:
    path.unlink(missing_ok=True)


@asynccontextmanager
async def _staged_pdf(pdf: bytes, directory: Path | None) -> AsyncIterator[Path]:
    fd, name = tempfile.mkstemp(prefix="arxnotes-", suffix=".pdf", dir=directory)
    path = Path(name)
    try:
        await asyncio.to_thread(_write_staged_file, fd, pdf)
        yield path
    finally:
        try:
            await asyncio.shield(asyncio.to_thread(_remove_staged_file, path))
        except asyncio.CancelledError:
            _remove_staged_file(path)
            raise


def _segment_from_element(element: Any, position: int) -> DocumentSegment | None:
    if not isinstance(element, dict):
        raise SegmentationError(f"Element {position} is not an object")

    text = element.get("text")
    if text is None:
        return None
    if not isinstance(text, str):
        raise SegmentationError(f"Element {position} has non-string text")
    if not text.strip():
        return None

    raw_metadata = element.get("metadata") or {}
    if not isinstance(raw_metadata, dict):
        raise SegmentationError(f"Element {position} has invalid metadata")

    metadata: dict[str, Any] = dict(raw_metadata)
    if element.get("type") is not None:
        metadata["category"] = element["type"]
    if element.get("element_id") is not None:
        metadata["element_id"] = element["element_id"]

    return DocumentSegment(text=text, metadata=metadata)


def parse_elements(payload: Any) -> list[DocumentSegment]:
    """Convert the service's element list into ordered segments."""

    if not isinstance(payload, list):
        raise SegmentationError("Partition response is not a list of elements")

    segments: list[DocumentSegment] = []
    for position, element in enumerate(payload):
        segment = _segment_from_element(element, position)
        if segment is not None:
            segments.append(segment)
    return segments


class DocumentSegmenter:
    """Send a PDF to the layout-parsing service and return its segments."""

    def __init__(
        self,
        settings: NotesSettings,
        *,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api_key = settings.require_unstructured_api_key()
        self._api_url = settings.unstructured_api_url
        self._timeout = httpx.Timeout(settings.segment_timeout_seconds, connect=10.0)
        self._staging_dir = settings.staging_dir
        self._max_retries = settings.max_retries
        self._retry_base_seconds = settings.retry_base_seconds
        self._client = client
        self._sleep = sleep

    async def segment(self, pdf: bytes) -> list[DocumentSegment]:
        async with _staged_pdf(pdf, self._staging_dir) as staged_path:
            try:
                payload = await call_with_retries(
                    lambda: self._partition(staged_path),
                    max_retries=self._max_retries,
                    retry_base_seconds=self._retry_base_seconds,
                    sleep=self._sleep,
                    description="document partition",
                )
            except RetriesExhausted as exc:
                error = exc.last_error
                if isinstance(error, SegmentationError):
                    raise error
                status_code = status_code_of(error)
                if status_code is not None:
                    raise SegmentationError(
                        f"Partition request failed with HTTP {status_code}", status_code
                    ) from error
                raise SegmentationError(f"Partition request failed: {error}") from error

        segments = parse_elements(payload)
        logger.info("Segmented PDF into %d segments", len(segments))
        return segments

    async def _partition(self, staged_path: Path) -> Any:
        if self._client is not None:
            return await self._post(self._client, staged_path)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._post(client, staged_path)

    async def _post(self, client: httpx.AsyncClient, staged_path: Path) -> Any:
        with staged_path.open("rb") as handle:
            response = await client.post(
                self._api_url,
                headers={"unstructured-api-key": self._api_key, "accept": "application/json"},
                data={"strategy": HI_RES_STRATEGY},
                files={"files": (staged_path.name, handle, "application/pdf")},
                timeout=self._timeout,
            )
        response.raise_for_status()
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            raise SegmentationError("Partition response is not valid JSON") from exc
