"""Download raw PDF bytes from a remote URL."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from arxnotes.config import NotesSettings
from arxnotes.errors import NetworkError
from arxnotes.retry import RetriesExhausted, call_with_retries, status_code_of


logger = logging.getLogger(__name__)


class PdfFetcher:
    """Fetch a PDF over HTTP and return its exact byte content."""

    def __init__(
        self,
        settings: NotesSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        max_retries: int | None = None,
        retry_base_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = settings or NotesSettings()
        self._timeout = httpx.Timeout(settings.fetch_timeout_seconds, connect=10.0)
        self._client = client
        self._max_retries = settings.max_retries if max_retries is None else max_retries
        self._retry_base_seconds = (
            settings.retry_base_seconds if retry_base_seconds is None else retry_base_seconds
        )
        self._sleep = sleep

    async def fetch(self, url: str) -> bytes:
        async def _download() -> bytes:
            if self._client is not None:
                return await self._get(self._client, url)
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                return await self._get(client, url)

        try:
            payload = await call_with_retries(
                _download,
                max_retries=self._max_retries,
                retry_base_seconds=self._retry_base_seconds,
                sleep=self._sleep,
                description=f"PDF download {url}",
            )
        except RetriesExhausted as exc:
            error = exc.last_error
            status_code = status_code_of(error)
            if status_code is not None:
                raise NetworkError(url, f"HTTP {status_code} while downloading PDF", status_code) from error
            raise NetworkError(url, f"Network error while downloading PDF: {error}") from error

        logger.info("Fetched %d bytes from %s", len(payload), url)
        return payload

    async def _get(self, client: httpx.AsyncClient, url: str) -> bytes:
        response = await client.get(url, timeout=self._timeout)
        response.raise_for_status()
        return response.content
