"""Feed subscription registry."""

import logging
from typing import List, Optional, Union
from urllib.parse import urlparse

from ..errors import AlreadyExistsError, NotFoundError, ParseError, StorageError
from ..models import Feed
from ..services.mirror import FeedMirror
from ..services.store import FeedStore
from ..utils.dates import utc_now_iso


logger = logging.getLogger(__name__)


def validate_feed_url(url: str) -> str:
    """
    Check that a feed URL is an absolute http(s) URL.

    Returns:
        The URL with surrounding whitespace removed

    Raises:
        ParseError: If the URL is not usable
    """
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ParseError(f"Invalid URL: {url}")
    return url


def derive_name(url: str) -> str:
    """Default display name for a feed added without one: its host."""
    host = urlparse(url).hostname or url
    return host[4:] if host.startswith("www.") else host


class FeedRegistry:
    """Manages subscribed feeds in the store and keeps the mirror in sync."""

    def __init__(self, store: FeedStore, mirror: Optional[FeedMirror] = None) -> None:
        """
        Initialize the registry.

        Args:
            store: Open feed store
            mirror: Optional subscription-list mirror rewritten on every mutation
        """
        self.store = store
        self.mirror = mirror

    def add(self, url: str, name: Optional[str] = None) -> Feed:
        """
        Add a new feed.

        Args:
            url: The feed URL
            name: Optional human-readable name, derived from the URL host if omitted

        Returns:
            The stored feed with its assigned id

        Raises:
            ParseError: If the URL is invalid
            AlreadyExistsError: If a feed with this URL is already registered
        """
        url = validate_feed_url(url)
        name = (name or "").strip() or derive_name(url)

        with self.store.transaction():
            if self.store.find_feed_by_url(url) is not None:
                raise AlreadyExistsError(f"Feed already exists: {url}")
            feed = self.store.insert_feed(name, url, utc_now_iso())
            self._write_mirror()

        logger.info(f"Added feed #{feed.id}: {feed.name} ({url})")
        return feed

    def list(self) -> List[Feed]:
        """List all feeds in creation order."""
        return self.store.list_feeds()

    def resolve(self, ref: Union[int, str]) -> Feed:
        """
        Resolve a feed reference.

        An identifier match is tried first, then an exact name match.

        Raises:
            NotFoundError: If nothing matches
        """
        feed_id = None
        if isinstance(ref, int):
            feed_id = ref
        elif isinstance(ref, str) and ref.strip().isdigit():
            feed_id = int(ref.strip())

        if feed_id is not None:
            feed = self.store.get_feed(feed_id)
            if feed is not None:
                return feed

        if isinstance(ref, str):
            matches = self.store.find_feeds_by_name(ref)
            if matches:
                return matches[0]

        raise NotFoundError(f"Feed not found: {ref}")

    def remove(self, ref: Union[int, str]) -> int:
        """
        Remove a feed and, by cascade, all of its entries.

        Returns:
            The removed feed's identifier
        """
        with self.store.transaction():
            feed = self.resolve(ref)
            self.store.delete_feed(feed.id)
            self._write_mirror()

        logger.info(f"Removed feed #{feed.id}: {feed.name} ({feed.url})")
        return feed.id

    def sync_mirror(self) -> None:
        """Rewrite the mirror from the store, repairing a missing or stale file."""
        if self.mirror is None:
            return
        feeds = self.store.list_feeds()
        mirrored = [(f.get("id"), f.get("url")) for f in self.mirror.read()]
        if self.mirror.exists() and mirrored == [(f.id, f.url) for f in feeds]:
            return
        self._write_mirror()
        logger.info(f"Resynced feed mirror ({len(feeds)} feeds)")

    def _write_mirror(self) -> None:
        if self.mirror is None:
            return
        try:
            self.mirror.write(self.store.list_feeds())
        except IOError as e:
            raise StorageError(str(e)) from e
