"""Prompt, tool schema and response validation for note extraction."""

from __future__ import annotations

import json
from typing import Any

from arxnotes.models import ArxivPaperNote


NOTES_TOOL_NAME = "formatNotes"

NOTES_TOOL_SCHEMA: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": NOTES_TOOL_NAME,
        "description": "Record the notes taken from the paper.",
        "parameters": {
            "type": "object",
            "properties": {
                "notes": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "note": {
                                "type": "string",
                                "description": "One specific finding or detail from the paper.",
                            },
                            "pageNumbers": {
                                "type": "array",
                                "items": {"type": "integer"},
                                "description": "Page number(s) the note is grounded in.",
                            },
                        },
                        "required": ["note", "pageNumbers"],
                    },
                },
            },
            "required": ["notes"],
        },
    },
}

NOTES_TOOL_CHOICE: dict[str, Any] = {"type": "function", "function": {"name": NOTES_TOOL_NAME}}

NOTES_SYSTEM_PROMPT = """You are taking notes on a scientific paper.
Read the full text of the paper. Your notes should let someone understand the
whole paper without reading it.

Rules:
- Every note covers one distinct, specific part of the paper. Do not repeat a point.
- Quote specific numbers, definitions and details rather than describing them vaguely.
  Write "XYZ is a method that ...", never "The authors discuss XYZ".
- Cover the method, the experiments, their results and what is needed to reproduce them.
- Write as many notes as it takes to cover the entire paper.
- For every note, list the page number(s) of the paper that support it.

Answer only by calling the formatNotes tool."""


class NotesSchemaError(ValueError):
    """Structured model output did not match the note schema."""


def build_messages(paper: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": NOTES_SYSTEM_PROMPT},
        {"role": "user", "content": f"Paper:\n\n{paper}"},
    ]


def build_correction_message(problem: str) -> dict[str, str]:
    """Tell the model why its previous tool call was rejected."""

    return {
        "role": "user",
        "content": (
            f"Your previous {NOTES_TOOL_NAME} call was rejected: {problem}\n"
            f"Call {NOTES_TOOL_NAME} again with arguments that satisfy its schema. "
            "Every note needs a non-empty \"note\" and at least one valid page number."
        ),
    }


def _parse_page_numbers(raw: Any, position: int, page_count: int | None) -> tuple[int, ...]:
    if not isinstance(raw, list) or not raw:
        raise NotesSchemaError(f"note {position}: 'pageNumbers' must be a non-empty array")

    pages: list[int] = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, int):
            raise NotesSchemaError(f"note {position}: page number {value!r} is not an integer")
        if value < 1 or (page_count is not None and value > page_count):
            raise NotesSchemaError(f"note {position}: page number {value} is out of range")
        pages.append(value)
    return tuple(pages)


def parse_notes_arguments(arguments: str, *, page_count: int | None = None) -> list[ArxivPaperNote]:
    """Decode the tool-call arguments into notes, validating every field."""

    try:
        payload = json.loads(arguments)
    except (TypeError, json.JSONDecodeError) as exc:
        raise NotesSchemaError(f"tool arguments are not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise NotesSchemaError("tool arguments must be an object")

    raw_notes = payload.get("notes")
    if not isinstance(raw_notes, list):
        raise NotesSchemaError("'notes' must be an array")

    notes: list[ArxivPaperNote] = []
    for position, item in enumerate(raw_notes):
        if not isinstance(item, dict):
            raise NotesSchemaError(f"note {position} is not an object")
        text = item.get("note")
        if not isinstance(text, str) or not text.strip():
            raise NotesSchemaError(f"note {position}: 'note' must be a non-empty string")
        pages = _parse_page_numbers(item.get("pageNumbers"), position, page_count)
        notes.append(ArxivPaperNote(note=text.strip(), page_numbers=pages))
    return notes
