"""Structured note extraction."""

from .extractor import NoteExtractor

__all__ = ["NoteExtractor"]
