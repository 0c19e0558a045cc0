"""Per-entry read/unread tracking."""

import logging

from ..models import Entry, Feed
from ..services.store import FeedStore

logger = logging.getLogger(__name__)


class ReadStateTracker:
    """The only writer of the read flag on stored entries."""

    def __init__(self, store: FeedStore) -> None:
        self.store = store

    def mark_read(self, entry_id: int) -> Entry:
        """Mark one entry read; raises NotFoundError for an unknown id."""
        with self.store.transaction():
            entry = self.store.mark_read(entry_id)
        logger.debug(f"Marked entry #{entry_id} read")
        return entry

    def mark_read_all(self, feed: Feed) -> int:
        """
        Mark every unread entry of a feed read.

        Returns:
            Number of entries that changed; entries already read are not counted
        """
        with self.store.transaction():
            count = self.store.mark_read_all(feed.id)
        logger.info(f"Marked {count} entries read for feed #{feed.id}: {feed.name}")
        return count
