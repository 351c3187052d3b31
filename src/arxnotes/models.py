"""Canonical data structures passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping


SEGMENT_SEPARATOR = "\n\n"


@dataclass(frozen=True, slots=True)
class DocumentSegment:
    """One text-bearing region returned by the layout-parsing service."""

    text: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def with_metadata(self, **extra: Any) -> "DocumentSegment":
        """Return a copy whose metadata also carries ``extra``."""

        merged = dict(self.metadata)
        merged.update(extra)
        return DocumentSegment(text=self.text, metadata=merged)

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "metadata": dict(self.metadata)}


@dataclass(frozen=True, slots=True)
class ArxivPaperNote:
    """A single finding grounded in one or more pages of the paper."""

    note: str
    page_numbers: tuple[int, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"note": self.note, "pageNumbers": list(self.page_numbers)}


@dataclass(frozen=True, slots=True)
class NotesResult:
    documents: list[DocumentSegment]
    notes: list[ArxivPaperNote]
    paper_text: str


@dataclass(frozen=True, slots=True)
class PaperRecord:
    """Row shape accepted by the paper store."""

    name: str
    arxiv_url: str
    paper: str
    notes: list[ArxivPaperNote]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "arxivUrl": self.arxiv_url,
            "paper": self.paper,
            "notes": [note.to_dict() for note in self.notes],
        }


def format_documents_as_string(documents: Iterable[DocumentSegment]) -> str:
    """Join segment texts in order, one block per segment."""

    return SEGMENT_SEPARATOR.join(document.text for document in documents)
