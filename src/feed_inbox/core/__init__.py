"""Core feed processing functionality."""

from .fetcher import FeedFetcher, FetchedDocument
from .opml import ExportFormat, export_feeds, import_outlines, parse_import
from .parser import FeedFormat, ParseResult, detect_format, parse_document
from .read_state import ReadStateTracker
from .registry import FeedRegistry

__all__ = [
    "ExportFormat",
    "FeedFetcher",
    "FeedFormat",
    "FeedRegistry",
    "FetchedDocument",
    "ParseResult",
    "ReadStateTracker",
    "detect_format",
    "export_feeds",
    "import_outlines",
    "parse_document",
    "parse_import",
]
