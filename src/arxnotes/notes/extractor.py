"""Schema-constrained note extraction with an OpenAI chat model."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

from arxnotes.config import NotesSettings
from arxnotes.errors import ConfigurationError, ExtractionError
from arxnotes.models import ArxivPaperNote, DocumentSegment, format_documents_as_string
from arxnotes.notes.prompts import (
    NOTES_TOOL_CHOICE,
    NOTES_TOOL_NAME,
    NOTES_TOOL_SCHEMA,
    NotesSchemaError,
    build_correction_message,
    build_messages,
    parse_notes_arguments,
)
from arxnotes.retry import RetriesExhausted, call_with_retries


logger = logging.getLogger(__name__)

EXTRACTION_TEMPERATURE = 0.0


def _build_default_client(settings: NotesSettings, api_key: str) -> Any:
    try:
        from openai import AsyncOpenAI
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise ConfigurationError("OPENAI_API_KEY", f"OpenAI SDK unavailable: {exc}") from exc

    return AsyncOpenAI(api_key=api_key, base_url=settings.openai_base_url)


def _tool_arguments(response: Any, *, model: str) -> str:
    choices = getattr(response, "choices", None)
    if not isinstance(choices, list) or not choices:
        raise ExtractionError(model, "Model response missing choices")

    message = getattr(choices[0], "message", None)
    tool_calls = getattr(message, "tool_calls", None) if message is not None else None
    if not tool_calls:
        raise ExtractionError(model, "Model response did not call the notes tool")

    function = getattr(tool_calls[0], "function", None)
    name = getattr(function, "name", None)
    if name != NOTES_TOOL_NAME:
        raise ExtractionError(model, f"Model called unexpected tool {name!r}")

    arguments = getattr(function, "arguments", None)
    if not isinstance(arguments, str):
        raise ExtractionError(model, "Tool call carried no arguments")
    return arguments


class NoteExtractor:
    """Turn segmented paper text into structured notes.

    The model is forced to answer through the ``formatNotes`` tool; there is
    no free-text fallback. Responses that fail validation are re-requested
    up to ``max_retries`` times before surfacing as ``ExtractionError``.
    """

    def __init__(
        self,
        settings: NotesSettings,
        *,
        client: Any | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        api_key = settings.require_openai_api_key()
        self._model = settings.notes_model
        self._client = client or _build_default_client(settings, api_key)
        self._max_retries = settings.max_retries
        self._retry_base_seconds = settings.retry_base_seconds
        self._sleep = sleep

    @property
    def model(self) -> str:
        return self._model

    async def extract(
        self,
        segments: Sequence[DocumentSegment],
        *,
        page_count: int | None = None,
    ) -> list[ArxivPaperNote]:
        return await self.extract_text(format_documents_as_string(segments), page_count=page_count)

    async def extract_text(self, paper: str, *, page_count: int | None = None) -> list[ArxivPaperNote]:
        """Extract notes from already-serialized paper text."""

        if not paper.strip():
            raise ExtractionError(self._model, "Paper text is empty")

        messages = build_messages(paper)
        corrections: list[dict[str, str]] = []

        async def _attempt() -> list[ArxivPaperNote]:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[*messages, *corrections[-1:]],
                temperature=EXTRACTION_TEMPERATURE,
                tools=[NOTES_TOOL_SCHEMA],
                tool_choice=NOTES_TOOL_CHOICE,
            )
            try:
                arguments = _tool_arguments(response, model=self._model)
            except ExtractionError as exc:
                corrections.append(build_correction_message(exc.message))
                raise
            try:
                return parse_notes_arguments(arguments, page_count=page_count)
            except NotesSchemaError as exc:
                corrections.append(build_correction_message(str(exc)))
                raise ExtractionError(self._model, f"Invalid notes payload: {exc}") from exc

        try:
            notes = await call_with_retries(
                _attempt,
                max_retries=self._max_retries,
                retry_base_seconds=self._retry_base_seconds,
                sleep=self._sleep,
                description="note extraction",
            )
        except RetriesExhausted as exc:
            error = exc.last_error
            if isinstance(error, ExtractionError):
                raise ExtractionError(
                    self._model,
                    f"{error.message} after {exc.attempts} attempt(s)",
                ) from error
            raise ExtractionError(
                self._model,
                f"Model request failed after {exc.attempts} attempt(s): {error}",
            ) from error

        logger.info("Extracted %d notes with %s", len(notes), self._model)
        return notes
