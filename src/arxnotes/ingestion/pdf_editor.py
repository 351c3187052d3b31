"""Minimal PDF page editing needed before segmentation."""

from __future__ import annotations

import logging
from typing import Sequence

import pymupdf

from arxnotes.errors import InvalidPageError, MalformedPdfError


logger = logging.getLogger(__name__)


def _open_pdf(pdf: bytes) -> pymupdf.Document:
    if not pdf:
        raise MalformedPdfError("PDF buffer is empty")
    try:
        doc = pymupdf.open(stream=pdf, filetype="pdf")
    except Exception as exc:
        raise MalformedPdfError(f"Could not parse PDF: {exc}") from exc
    # pymupdf sniffs content and will happily open HTML or images.
    if not doc.is_pdf:
        doc.close()
        raise MalformedPdfError("Buffer is not a PDF")
    if doc.page_count == 0:
        doc.close()
        raise MalformedPdfError("PDF has no pages")
    return doc


def count_pages(pdf: bytes) -> int:
    """Return the number of pages in ``pdf``."""

    with _open_pdf(pdf) as doc:
        return doc.page_count


def validate_page_numbers(pages: Sequence[int]) -> None:
    """Reject non-positive, duplicated or unsorted page numbers."""

    previous = 0
    for page in pages:
        if page <= 0:
            raise InvalidPageError(page, "Page numbers are 1-based")
        if page == previous:
            raise InvalidPageError(page, "Duplicate page number")
        if page < previous:
            raise InvalidPageError(page, "Page numbers must be in ascending order")
        previous = page


def remove_pages(pdf: bytes, pages: Sequence[int]) -> bytes:
    """Return a new PDF without the given 1-based ``pages``.

    Pages are removed left to right from the live document, so every
    removal shifts later indices down by one; the running offset accounts
    for that. An empty ``pages`` returns ``pdf`` untouched.
    """

    if not pages:
        return pdf

    validate_page_numbers(pages)

    with _open_pdf(pdf) as doc:
        original_count = doc.page_count
        offset = 1
        for page in pages:
            index = page - offset
            if index >= doc.page_count:
                raise InvalidPageError(page, "Page number exceeds document length", original_count)
            doc.delete_page(index)
            offset += 1

        trimmed = doc.tobytes(garbage=3, deflate=True)

    logger.info("Removed %d of %d pages", len(pages), original_count)
    return trimmed
