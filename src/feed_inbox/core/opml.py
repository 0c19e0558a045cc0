"""Subscription import/export: OPML outlines and JSON snapshots."""

import json
import logging
import xml.etree.ElementTree as ET
from enum import Enum
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Union

from ..errors import AlreadyExistsError, ParseError
from ..models import Feed, ImportReport
from ..utils.dates import utc_now_iso
from .registry import FeedRegistry


logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    OPML = "opml"
    JSON = "json"


class OutlineFeed(NamedTuple):
    """A feed described by one outline element."""

    url: str
    title: str


def export_opml(feeds: Iterable[Feed]) -> str:
    """Render feeds as an OPML 2.0 document, one outline per feed under <body>."""
    root = ET.Element("opml", version="2.0")
    head = ET.SubElement(root, "head")
    ET.SubElement(head, "title").text = "Feed Inbox subscriptions"
    ET.SubElement(head, "dateCreated").text = utc_now_iso()
    body = ET.SubElement(root, "body")

    for feed in feeds:
        ET.SubElement(
            body,
            "outline",
            text=feed.name,
            title=feed.name,
            type="rss",
            xmlUrl=feed.url,
        )

    ET.indent(root, space="  ")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


def export_json(feeds: Iterable[Feed]) -> Dict[str, Any]:
    """Plain snapshot of feed metadata; entries are never exported."""
    return {"feeds": [{"name": feed.name, "url": feed.url} for feed in feeds]}


def export_feeds(feeds: Iterable[Feed], fmt: Union[ExportFormat, str]) -> Union[str, Dict[str, Any]]:
    """
    Export feed metadata.

    Args:
        feeds: Feeds to export
        fmt: ``opml`` or ``json``

    Raises:
        ParseError: For an unknown format
    """
    try:
        fmt = ExportFormat(fmt)
    except ValueError:
        raise ParseError(f"Unknown export format: {fmt} (expected opml or json)")

    if fmt is ExportFormat.OPML:
        return export_opml(feeds)
    return export_json(feeds)


def _parse_json_snapshot(document: str) -> List[Optional[OutlineFeed]]:
    try:
        data = json.loads(document)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON snapshot: {e}") from e

    items = data.get("feeds", data.get("items", [])) if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise ParseError("JSON snapshot has no feed list")

    outlines: List[Optional[OutlineFeed]] = []
    for item in items:
        if not isinstance(item, dict):
            outlines.append(None)
            continue
        url = str(item.get("url") or item.get("xmlUrl") or "").strip()
        title = str(item.get("name") or item.get("title") or "").strip()
        outlines.append(OutlineFeed(url, title) if url else None)
    return outlines


def _parse_opml(document: str) -> List[Optional[OutlineFeed]]:
    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise ParseError(f"Invalid OPML document: {e}") from e

    if root.tag.lower() != "opml":
        raise ParseError(f"Not an OPML document (root element <{root.tag}>)")

    outlines: List[Optional[OutlineFeed]] = []
    for outline in root.iter("outline"):
        attrs = {key.lower(): value for key, value in outline.attrib.items()}
        url = (attrs.get("xmlurl") or "").strip()
        if url:
            title = (attrs.get("title") or attrs.get("text") or "").strip()
            outlines.append(OutlineFeed(url, title))
        elif len(outline) == 0:
            # A leaf with no feed URL; folders (outlines with children) are skipped
            outlines.append(None)
    return outlines


def parse_import(document: Union[str, bytes]) -> List[Optional[OutlineFeed]]:
    """
    Read an OPML outline tree or a JSON snapshot.

    Returns:
        One item per leaf outline; ``None`` marks an outline without a feed URL

    Raises:
        ParseError: If the document cannot be read or holds no outline entries
    """
    text = document.decode("utf-8-sig", errors="replace") if isinstance(document, bytes) else document
    stripped = text.lstrip("\ufeff \t\r\n")
    if not stripped:
        raise ParseError("Empty import document")

    if stripped[0] in "{[":
        outlines = _parse_json_snapshot(stripped)
    else:
        outlines = _parse_opml(stripped)

    if not outlines:
        raise ParseError("No outline entries found in import document")
    return outlines


def import_outlines(registry: FeedRegistry, outlines: Iterable[Optional[OutlineFeed]]) -> ImportReport:
    """
    Register every outline feed, skipping URLs that are already registered.

    Raises:
        ParseError: If no outline carried a usable feed URL
    """
    report = ImportReport()
    for outline in outlines:
        if outline is None:
            report.malformed += 1
            continue
        try:
            registry.add(outline.url, outline.title or None)
            report.added += 1
        except AlreadyExistsError:
            report.skipped += 1
        except ParseError as e:
            logger.warning(f"Skipping malformed outline: {e}")
            report.malformed += 1

    if report.added + report.skipped == 0:
        raise ParseError(f"No valid outline entries ({report.malformed} malformed)")

    logger.info(f"Imported feeds: {report.added} added, {report.skipped} skipped, {report.malformed} malformed")
    return report
