"""CLI command that takes notes on one paper and stores them."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from arxnotes.config import NotesSettings
from arxnotes.errors import NotesPipelineError
from arxnotes.pipeline import DEFAULT_PAPER_NAME, NotesPipeline
from arxnotes.storage import SqlitePaperRepository


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extract page-grounded notes from a PDF paper")
    parser.add_argument("--url", required=True, help="URL of the paper PDF")
    parser.add_argument(
        "--pages-to-delete",
        type=int,
        nargs="*",
        default=[],
        help="1-based page numbers to drop before parsing, ascending",
    )
    parser.add_argument("--name", default=DEFAULT_PAPER_NAME, help="Name stored with the paper")
    parser.add_argument("--db-path", default=None, help="SQLite database path (defaults to ARXNOTES_DB_PATH)")
    parser.add_argument("--no-store", action="store_true", help="Print notes without persisting them")
    return parser


async def _run_pipeline(args: argparse.Namespace, settings: NotesSettings) -> dict[str, object]:
    repository: SqlitePaperRepository | None = None
    if not args.no_store:
        db_path = Path(args.db_path) if args.db_path else settings.db_path
        repository = SqlitePaperRepository(db_path)

    try:
        pipeline = NotesPipeline.from_settings(settings, store=repository)
        result = await pipeline.run(args.url, args.pages_to_delete, name=args.name)
    finally:
        if repository is not None:
            repository.close()

    return {
        "url": args.url,
        "name": args.name,
        "document_count": len(result.documents),
        "note_count": len(result.notes),
        "notes": [note.to_dict() for note in result.notes],
    }


def main(argv: list[str] | None = None, *, environ: dict[str, str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = NotesSettings.from_env(environ)
        payload = asyncio.run(_run_pipeline(args, settings))
    except NotesPipelineError as exc:
        print(json.dumps({"url": args.url, "error": str(exc), "stage": exc.stage}, ensure_ascii=True, indent=2))
        return 1

    print(json.dumps(payload, ensure_ascii=True, indent=2))
    return 0


def run() -> None:
    load_dotenv()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )
    raise SystemExit(main())


if __name__ == "__main__":
    run()
