from __future__ import annotations

import pymupdf
import pytest

from arxnotes.errors import InvalidPageError, MalformedPdfError
from arxnotes.ingestion.pdf_editor import count_pages, remove_pages, validate_page_numbers


def _build_pdf(page_count: int) -> bytes:
    doc = pymupdf.open()
    for number in range(1, page_count + 1):
        page = doc.new_page()
        page.insert_text((72, 72), f"Original page {number}")
    payload = doc.tobytes()
    doc.close()
    return payload


def _page_labels(pdf: bytes) -> list[str]:
    with pymupdf.open(stream=pdf, filetype="pdf") as doc:
        return [page.get_text("text").strip() for page in doc]


def test_remove_pages_tracks_index_shift_across_removals() -> None:
    pdf = _build_pdf(10)

    trimmed = remove_pages(pdf, [3, 7])

    assert count_pages(trimmed) == 8
    assert _page_labels(trimmed) == [f"Original page {n}" for n in (1, 2, 4, 5, 6, 8, 9, 10)]


def test_remove_adjacent_and_last_pages() -> None:
    pdf = _build_pdf(5)

    trimmed = remove_pages(pdf, [4, 5])

    assert _page_labels(trimmed) == ["Original page 1", "Original page 2", "Original page 3"]


def test_remove_single_middle_page_of_three() -> None:
    trimmed = remove_pages(_build_pdf(3), [2])

    assert _page_labels(trimmed) == ["Original page 1", "Original page 3"]


def test_empty_page_list_returns_input_unchanged() -> None:
    pdf = _build_pdf(2)

    assert remove_pages(pdf, []) is pdf


def test_input_buffer_is_not_mutated() -> None:
    pdf = _build_pdf(4)
    snapshot = bytes(pdf)

    remove_pages(pdf, [1])

    assert pdf == snapshot
    assert count_pages(pdf) == 4


@pytest.mark.parametrize(
    ("pages", "match"),
    [
        ([3, 3], "Duplicate"),
        ([7, 3], "ascending"),
        ([0], "1-based"),
        ([-2], "1-based"),
    ],
)
def test_invalid_page_sequences_are_rejected(pages: list[int], match: str) -> None:
    with pytest.raises(InvalidPageError, match=match):
        remove_pages(_build_pdf(10), pages)


def test_page_beyond_document_length_is_rejected() -> None:
    with pytest.raises(InvalidPageError, match="page_count=3"):
        remove_pages(_build_pdf(3), [2, 4])


def test_validate_page_numbers_accepts_ascending_unique_pages() -> None:
    validate_page_numbers([1, 2, 9])
    validate_page_numbers([])


def test_malformed_buffer_raises_malformed_pdf_error() -> None:
    with pytest.raises(MalformedPdfError):
        remove_pages(b"<html>not a pdf</html>", [1])

    with pytest.raises(MalformedPdfError, match="empty"):
        count_pages(b"")


@pytest.mark.parametrize(
    "payload",
    [b"<html><body>Please log in</body></html>", b"plain text, not a document"],
)
def test_count_pages_rejects_non_pdf_bytes(payload: bytes) -> None:
    with pytest.raises(MalformedPdfError):
        count_pages(payload)
