"""End-to-end orchestration: URL to persisted notes.

Stages run strictly in sequence and the first failure ends the run:

    validate -> fetch -> inspect_pdf -> trim_pages? -> segment
             -> stamp_metadata -> extract -> assemble -> persist?

Every ``NotesPipelineError`` leaving a stage is tagged with that stage's
name. No partial result is ever returned.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
import logging
from typing import Iterator, Sequence
from urllib.parse import urlsplit

from arxnotes.config import NotesSettings
from arxnotes.errors import InvalidInputError, NotesPipelineError, PersistenceError
from arxnotes.ingestion.fetcher import PdfFetcher
from arxnotes.ingestion.pdf_editor import count_pages, remove_pages, validate_page_numbers
from arxnotes.ingestion.segmenter import DocumentSegmenter
from arxnotes.models import DocumentSegment, NotesResult, PaperRecord, format_documents_as_string
from arxnotes.notes.extractor import NoteExtractor
from arxnotes.storage import DocumentIndex, PaperStore


logger = logging.getLogger(__name__)

DEFAULT_PAPER_NAME = "arxiv"


@contextmanager
def _stage(name: str) -> Iterator[None]:
    try:
        yield
    except NotesPipelineError as exc:
        logger.warning("Stage %s failed: %s", name, exc.describe())
        raise exc.with_stage(name)


def validate_paper_url(paper_url: str) -> None:
    if not isinstance(paper_url, str) or not paper_url.strip():
        raise InvalidInputError("Paper URL cannot be empty")

    if paper_url != paper_url.strip():
        raise InvalidInputError(f"Paper URL has surrounding whitespace: {paper_url!r}")

    parts = urlsplit(paper_url)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise InvalidInputError(f"Paper URL must be an http(s) URL: {paper_url}")
    if not parts.path.lower().endswith(".pdf"):
        raise InvalidInputError(f"Paper URL must point to a PDF: {paper_url}")


def validate_pages_to_delete(pages_to_delete: Sequence[int]) -> list[int]:
    pages: list[int] = []
    for page in pages_to_delete:
        if isinstance(page, bool) or not isinstance(page, int):
            raise InvalidInputError(f"Page numbers must be integers, got {page!r}")
        pages.append(page)
    validate_page_numbers(pages)
    return pages


def stamp_metadata(documents: Sequence[DocumentSegment], paper_url: str) -> list[DocumentSegment]:
    """Return copies of ``documents`` tagged with their source URL."""

    return [document.with_metadata(url=paper_url) for document in documents]


class NotesPipeline:
    """Compose fetcher, page editor, segmenter and extractor into one run."""

    def __init__(
        self,
        *,
        fetcher: PdfFetcher,
        segmenter: DocumentSegmenter,
        extractor: NoteExtractor,
        store: PaperStore | None = None,
        index: DocumentIndex | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._segmenter = segmenter
        self._extractor = extractor
        self._store = store
        self._index = index

    @classmethod
    def from_settings(
        cls,
        settings: NotesSettings,
        *,
        store: PaperStore | None = None,
        index: DocumentIndex | None = None,
    ) -> "NotesPipeline":
        """Build every component; missing credentials fail here, before any I/O."""

        with _stage("configure"):
            return cls(
                fetcher=PdfFetcher(settings),
                segmenter=DocumentSegmenter(settings),
                extractor=NoteExtractor(settings),
                store=store,
                index=index,
            )

    async def run(
        self,
        paper_url: str,
        pages_to_delete: Sequence[int] = (),
        *,
        name: str = DEFAULT_PAPER_NAME,
    ) -> NotesResult:
        with _stage("validate"):
            validate_paper_url(paper_url)
            pages = validate_pages_to_delete(pages_to_delete)

        with _stage("fetch"):
            pdf = await self._fetcher.fetch(paper_url)

        with _stage("inspect_pdf"):
            page_count = count_pages(pdf)

        if pages:
            with _stage("trim_pages"):
                pdf = remove_pages(pdf, pages)

        with _stage("segment"):
            segments = await self._segmenter.segment(pdf)

        with _stage("stamp_metadata"):
            documents = stamp_metadata(segments, paper_url)

        paper_text = format_documents_as_string(documents)

        with _stage("extract"):
            notes = await self._extractor.extract_text(paper_text, page_count=page_count)

        result = NotesResult(documents=documents, notes=notes, paper_text=paper_text)
        logger.info(
            "Took %d notes from %s (%d segments, %d pages)",
            len(notes),
            paper_url,
            len(documents),
            page_count - len(pages),
        )

        if self._store is not None or self._index is not None:
            with _stage("persist"):
                record = PaperRecord(name=name, arxiv_url=paper_url, paper=paper_text, notes=notes)
                await self._persist(record, documents)

        return result

    async def _persist(self, record: PaperRecord, documents: list[DocumentSegment]) -> None:
        writes = {}
        if self._store is not None:
            writes["paper_store"] = asyncio.to_thread(self._store.add_paper, record)
        if self._index is not None:
            writes["document_index"] = asyncio.to_thread(self._index.add_documents, documents)

        outcomes = await asyncio.gather(*writes.values(), return_exceptions=True)
        failures = {
            sink: outcome
            for sink, outcome in zip(writes, outcomes)
            if isinstance(outcome, BaseException)
        }
        if failures:
            raise PersistenceError(failures)
        logger.info("Persisted %s to %s", record.arxiv_url, ", ".join(writes))


async def take_notes(
    paper_url: str,
    pages_to_delete: Sequence[int] = (),
    *,
    name: str = DEFAULT_PAPER_NAME,
    settings: NotesSettings | None = None,
    store: PaperStore | None = None,
    index: DocumentIndex | None = None,
) -> NotesResult:
    """Run the full pipeline with components built from ``settings``."""

    settings = settings or NotesSettings.from_env()
    pipeline = NotesPipeline.from_settings(settings, store=store, index=index)
    return await pipeline.run(paper_url, pages_to_delete, name=name)
