"""PDF retrieval, trimming and segmentation stages."""

from .fetcher import PdfFetcher
from .pdf_editor import count_pages, remove_pages, validate_page_numbers
from .segmenter import DocumentSegmenter

__all__ = ["DocumentSegmenter", "PdfFetcher", "count_pages", "remove_pages", "validate_page_numbers"]
