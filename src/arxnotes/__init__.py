"""Extract page-grounded notes from academic PDFs."""

from arxnotes.errors import NotesPipelineError
from arxnotes.models import ArxivPaperNote, DocumentSegment, NotesResult, PaperRecord
from arxnotes.pipeline import NotesPipeline, take_notes

__all__ = [
    "ArxivPaperNote",
    "DocumentSegment",
    "NotesPipeline",
    "NotesPipelineError",
    "NotesResult",
    "PaperRecord",
    "take_notes",
]
