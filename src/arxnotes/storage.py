"""Persistence seams for extracted papers plus a SQLite paper store."""

from __future__ import annotations

import json
from pathlib import Path
import sqlite3
from typing import Protocol, runtime_checkable

from arxnotes.models import ArxivPaperNote, DocumentSegment, PaperRecord


@runtime_checkable
class PaperStore(Protocol):
    """Relational sink for the paper text and its notes."""

    def add_paper(self, record: PaperRecord) -> None:
        """Persist one paper record."""


@runtime_checkable
class DocumentIndex(Protocol):
    """Vector-store sink for the stamped segments."""

    def add_documents(self, documents: list[DocumentSegment]) -> None:
        """Index the segments for similarity search."""


def _notes_from_json(raw: str) -> list[ArxivPaperNote]:
    return [
        ArxivPaperNote(note=item["note"], page_numbers=tuple(item["pageNumbers"]))
        for item in json.loads(raw)
    ]


class SqlitePaperRepository:
    """SQLite-backed paper store."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        # Writes arrive from asyncio.to_thread workers.
        self._connection = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS arxiv_papers (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                arxiv_url TEXT NOT NULL,
                paper TEXT NOT NULL,
                notes TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_arxiv_papers_url
            ON arxiv_papers(arxiv_url, id);
            """
        )

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "SqlitePaperRepository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def add_paper(self, record: PaperRecord) -> None:
        notes_json = json.dumps([note.to_dict() for note in record.notes], ensure_ascii=False)
        with self._connection:
            self._connection.execute(
                "INSERT INTO arxiv_papers (name, arxiv_url, paper, notes) VALUES (?, ?, ?, ?)",
                (record.name, record.arxiv_url, record.paper, notes_json),
            )

    def get_paper(self, arxiv_url: str) -> PaperRecord | None:
        """Return the most recently stored record for ``arxiv_url``."""

        row = self._connection.execute(
            """
            SELECT name, arxiv_url, paper, notes
            FROM arxiv_papers
            WHERE arxiv_url = ?
            ORDER BY id DESC
            LIMIT 1
            """,
            (arxiv_url,),
        ).fetchone()
        if row is None:
            return None
        return PaperRecord(
            name=row["name"],
            arxiv_url=row["arxiv_url"],
            paper=row["paper"],
            notes=_notes_from_json(row["notes"]),
        )
