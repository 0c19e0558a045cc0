"""Atomic subscription-list mirror for Feed Inbox.

The mirror is a small JSON file holding feed metadata only, for tools that
want the subscription list without reading SQLite. The registry rewrites it
on every mutation and only reads it back to detect a missing or stale copy.
"""

import json
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List

from ..models import Feed
from ..utils.dates import utc_now_iso

logger = logging.getLogger(__name__)


class FeedMirror:
    """Atomic writer for the feeds.json subscription list."""

    def __init__(self, mirror_file: Path) -> None:
        """
        Initialize the mirror.

        Args:
            mirror_file: Path of the JSON file to maintain
        """
        self.mirror_file = mirror_file

    def exists(self) -> bool:
        return self.mirror_file.exists()

    def read(self) -> List[Dict[str, Any]]:
        """
        Read the mirrored feed list.

        Returns:
            List of feed dictionaries, empty if the file is missing or corrupted
        """
        if not self.mirror_file.exists():
            return []

        try:
            with open(self.mirror_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable feed mirror {self.mirror_file}: {e}")
            return []

        feeds = data.get("feeds", []) if isinstance(data, dict) else []
        return [feed for feed in feeds if isinstance(feed, dict)]

    def write(self, feeds: Iterable[Feed]) -> None:
        """
        Atomically replace the mirror with the given feeds.

        Args:
            feeds: Feeds to mirror, in creation order

        Raises:
            IOError: If writing fails
        """
        state = {
            "updated_at": utc_now_iso(),
            "feeds": [
                {"id": feed.id, "name": feed.name, "url": feed.url, "created_at": feed.created_at}
                for feed in feeds
            ],
        }
        self._write_atomic(state)
        logger.debug(f"Mirrored {len(state['feeds'])} feeds to {self.mirror_file}")

    def _write_atomic(self, state: Dict[str, Any]) -> None:
        self.mirror_file.parent.mkdir(parents=True, exist_ok=True)

        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                mode='w',
                encoding='utf-8',
                dir=self.mirror_file.parent,
                delete=False,
                suffix='.tmp'
            ) as temp_file:
                temp_path = Path(temp_file.name)
                json.dump(state, temp_file, indent=2, ensure_ascii=False)
                temp_file.flush()

            # Atomic move to final location
            temp_path.replace(self.mirror_file)

        except (OSError, TypeError, ValueError) as e:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink(missing_ok=True)
            raise IOError(f"Failed to write feed mirror: {e}") from e
