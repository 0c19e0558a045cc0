"""Feed document parsing: RSS 2.0 and Atom into normalized entries."""

import logging
import re
import xml.sax
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence

import feedparser

from ..errors import ParseError
from ..models import ParsedEntry
from ..utils.dates import format_timestamp, utc_now


logger = logging.getLogger(__name__)


class FeedFormat(str, Enum):
    """Wire shape of a feed document."""

    RSS = "rss"
    ATOM = "atom"


class FeedDocument(NamedTuple):
    """A feed document after format detection."""

    format: FeedFormat
    parsed: feedparser.FeedParserDict


class ParseResult(NamedTuple):
    format: FeedFormat
    entries: List[ParsedEntry]
    skipped: int


def detect_format(body: bytes, content_type: str = "") -> FeedDocument:
    """
    Read a raw document and decide whether it is RSS or Atom.

    Args:
        body: Raw response body
        content_type: Content-Type header of the response, if any

    Returns:
        The document tagged with its format

    Raises:
        ParseError: If the root element is not a recognized feed root or the
            document is not well-formed XML
    """
    headers = {"content-type": content_type} if content_type else None
    parsed = feedparser.parse(body, response_headers=headers)
    version = parsed.get("version", "") or ""

    if version.startswith("rss"):
        feed_format = FeedFormat.RSS
    elif version.startswith("atom"):
        feed_format = FeedFormat.ATOM
    else:
        if "html" in content_type.lower():
            raise ParseError(f"Not a feed document (content type {content_type})")
        reason = parsed.get("bozo_exception") or "unrecognized root element"
        raise ParseError(f"Not an RSS or Atom document: {reason}")

    if parsed.get("bozo") and parsed.get("bozo_exception"):
        # Loose-parser salvage of broken XML is never stored
        if isinstance(parsed.bozo_exception, xml.sax.SAXException):
            raise ParseError(f"Malformed {feed_format.value} document: {parsed.bozo_exception}")
        logger.warning(f"Feed parsing warning ({version}): {parsed.bozo_exception}")

    return FeedDocument(feed_format, parsed)


def clean_text(text: str) -> str:
    """
    Reduce markup to plain text for summaries.

    Args:
        text: Raw text content

    Returns:
        Cleaned text
    """
    if not text:
        return ''

    # Remove HTML tags
    text = re.sub(r'<[^>]+>', '', text)

    # Normalize whitespace
    return re.sub(r'\s+', ' ', text).strip()


def parse_date(entry: feedparser.FeedParserDict, fields: Sequence[str]) -> Optional[datetime]:
    """
    Read the first usable date feedparser resolved for an entry.

    Args:
        entry: Raw feedparser entry
        fields: ``*_parsed`` keys to try, in order of preference

    Returns:
        An aware UTC datetime, or None when no field holds a valid date
    """
    for date_field in fields:
        date_tuple = entry.get(date_field)
        if date_tuple:
            try:
                return datetime(*date_tuple[:6], tzinfo=timezone.utc)
            except (ValueError, TypeError):
                continue

    return None


def _published(entry: feedparser.FeedParserDict, fields: Sequence[str], fetched_at: datetime):
    parsed = parse_date(entry, fields)
    if parsed is None:
        raw = entry.get('published', '') or entry.get('updated', '')
        if raw:
            logger.debug(f"Unparseable date {raw!r}, using fetch time")
        return format_timestamp(fetched_at), True
    return format_timestamp(parsed), False


def _title(entry: feedparser.FeedParserDict) -> str:
    return clean_text(entry.get('title', '')) or 'Untitled'


def normalize_rss_item(entry: feedparser.FeedParserDict, fetched_at: datetime) -> ParsedEntry:
    """Normalize an RSS ``<item>``: guid, falling back to link, is the ext_id."""
    link = (entry.get('link') or '').strip()
    ext_id = str(entry.get('id') or '').strip() or link
    if not ext_id:
        raise ParseError(f"RSS item without guid or link: {_title(entry)!r}")

    published, estimated = _published(entry, ('published_parsed',), fetched_at)
    return ParsedEntry(
        ext_id=ext_id,
        title=_title(entry),
        link=link,
        summary=clean_text(entry.get('summary', '') or entry.get('description', '')),
        published=published,
        date_estimated=estimated,
    )


def _atom_link(entry: feedparser.FeedParserDict) -> str:
    link = (entry.get('link') or '').strip()
    if link:
        return link
    for candidate in entry.get('links', []):
        href = (candidate.get('href') or '').strip()
        if href:
            return href
    return ''


def _atom_summary(entry: feedparser.FeedParserDict) -> str:
    summary = entry.get('summary', '')
    if summary:
        return summary
    for content in entry.get('content', []):
        value = content.get('value', '')
        if value:
            return value
    return ''


def normalize_atom_entry(entry: feedparser.FeedParserDict, fetched_at: datetime) -> ParsedEntry:
    """Normalize an Atom ``<entry>``: id, falling back to link, is the ext_id."""
    link = _atom_link(entry)
    ext_id = str(entry.get('id') or '').strip() or link
    if not ext_id:
        raise ParseError(f"Atom entry without id or link: {_title(entry)!r}")

    published, estimated = _published(entry, ('published_parsed', 'updated_parsed'), fetched_at)
    return ParsedEntry(
        ext_id=ext_id,
        title=_title(entry),
        link=link,
        summary=clean_text(_atom_summary(entry)),
        published=published,
        date_estimated=estimated,
    )


NORMALIZERS: Dict[FeedFormat, Callable[[feedparser.FeedParserDict, datetime], ParsedEntry]] = {
    FeedFormat.RSS: normalize_rss_item,
    FeedFormat.ATOM: normalize_atom_entry,
}


def parse_document(
    body: bytes,
    content_type: str = "",
    fetched_at: Optional[datetime] = None,
) -> ParseResult:
    """
    Parse a feed document into normalized entries.

    Entries that cannot be normalized are logged and skipped; the rest of the
    document is still returned. A document that is not well-formed fails as a
    whole.

    Args:
        body: Raw document bytes
        content_type: Content-Type header of the response
        fetched_at: Time used for entries without a usable date (defaults to now)

    Returns:
        ParseResult with the detected format, entries and skipped count

    Raises:
        ParseError: If the document is not RSS or Atom, or is malformed
    """
    if fetched_at is None:
        fetched_at = utc_now()

    document = detect_format(body, content_type)
    normalize = NORMALIZERS[document.format]

    entries = []
    skipped = 0
    for raw_entry in document.parsed.entries:
        try:
            entries.append(normalize(raw_entry, fetched_at))
        except ParseError as e:
            skipped += 1
            logger.warning(f"Skipping entry: {e}")

    title = clean_text(document.parsed.feed.get('title', '')) or 'untitled feed'
    logger.debug(
        f"Parsed {document.format.value} document {title!r}: {len(entries)} entries, {skipped} skipped"
    )
    return ParseResult(document.format, entries, skipped)
