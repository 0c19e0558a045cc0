"""Service layer for Feed Inbox."""

from .migrations import MIGRATIONS, Migration, migrate
from .mirror import FeedMirror
from .store import FeedStore

__all__ = ["FeedMirror", "FeedStore", "MIGRATIONS", "Migration", "migrate"]
