"""SQLite feed store.

One store per installation holds the feed table, the entry table and the
schema_version log. A ``FeedStore`` wraps a single connection, which makes it
the only writer for the lifetime of a command.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Union

from ..errors import AlreadyExistsError, NotFoundError, StorageError
from ..models import Entry, Feed, ParsedEntry
from .migrations import MIGRATIONS, Migration, current_version, migrate

logger = logging.getLogger(__name__)

ENTRY_COLUMNS = """
    e.id, e.feed_id, f.name AS feed, e.ext_id, e.title, e.link, e.summary,
    e.published, e.date_estimated, e.read
"""


def connect(db_path: Union[str, Path]) -> sqlite3.Connection:
    """Open a connection in autocommit mode with foreign keys enforced."""
    try:
        conn = sqlite3.connect(str(db_path))
        conn.row_factory = sqlite3.Row
        conn.isolation_level = None
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.Error as e:
        raise StorageError(f"Cannot open store at {db_path}: {e}") from e
    return conn


def _row_to_feed(row: sqlite3.Row) -> Feed:
    return Feed(
        id=row["id"],
        name=row["name"],
        url=row["url"],
        created_at=row["created_at"],
        last_fetched=row["last_fetched"] or "",
        last_error=row["last_error"] or "",
    )


def _row_to_entry(row: sqlite3.Row) -> Entry:
    return Entry(
        id=row["id"],
        feed_id=row["feed_id"],
        feed=row["feed"] or "",
        ext_id=row["ext_id"],
        title=row["title"],
        link=row["link"],
        summary=row["summary"],
        published=row["published"],
        date_estimated=bool(row["date_estimated"]),
        read=bool(row["read"]),
    )


class FeedStore:
    """Thin SQLite wrapper over feeds, entries and the schema version log."""

    def __init__(self, conn: sqlite3.Connection, db_path: Union[str, Path] = ":memory:") -> None:
        self._conn = conn
        self._depth = 0
        self.db_path = db_path

    @classmethod
    @contextmanager
    def open(
        cls,
        db_path: Union[str, Path],
        migrations: Sequence[Migration] = MIGRATIONS,
    ) -> Iterator["FeedStore"]:
        """
        Open, migrate and yield a store; the connection is closed on exit.

        Raises:
            StorageError: If the database cannot be opened
            MigrationError: If bringing the schema up to date fails
        """
        conn = connect(db_path)
        try:
            migrate(conn, migrations)
            logger.debug(f"Opened store {db_path}")
            yield cls(conn, db_path)
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run the enclosed block as one atomic unit.

        Nested calls join the outermost transaction. Any exception rolls the
        whole unit back.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self._conn
            finally:
                self._depth -= 1
            return

        self._execute("BEGIN IMMEDIATE")
        self._depth = 1
        try:
            yield self._conn
        except BaseException:
            self._depth = 0
            self._conn.execute("ROLLBACK")
            raise
        self._depth = 0
        self._execute("COMMIT")

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as e:
            raise StorageError(f"Storage error: {e}") from e

    def schema_version(self) -> int:
        return current_version(self._conn)

    # Feeds

    def insert_feed(self, name: str, url: str, created_at: str) -> Feed:
        """Insert a feed and return it with its assigned id."""
        try:
            cur = self._execute(
                "INSERT INTO feeds (name, url, created_at) VALUES (?, ?, ?)",
                (name, url, created_at),
            )
        except sqlite3.IntegrityError as e:
            raise AlreadyExistsError(f"Feed already exists: {url}") from e
        feed = self.get_feed(cur.lastrowid)
        if feed is None:
            raise StorageError(f"Inserted feed {cur.lastrowid} could not be read back")
        return feed

    def get_feed(self, feed_id: int) -> Optional[Feed]:
        row = self._execute("SELECT * FROM feeds WHERE id = ?", (feed_id,)).fetchone()
        return _row_to_feed(row) if row else None

    def find_feed_by_url(self, url: str) -> Optional[Feed]:
        row = self._execute("SELECT * FROM feeds WHERE url = ?", (url,)).fetchone()
        return _row_to_feed(row) if row else None

    def find_feeds_by_name(self, name: str) -> List[Feed]:
        rows = self._execute("SELECT * FROM feeds WHERE name = ? ORDER BY id", (name,)).fetchall()
        return [_row_to_feed(row) for row in rows]

    def list_feeds(self) -> List[Feed]:
        """Return all feeds in creation order."""
        rows = self._execute("SELECT * FROM feeds ORDER BY id").fetchall()
        return [_row_to_feed(row) for row in rows]

    def delete_feed(self, feed_id: int) -> bool:
        """Delete a feed; its entries go with it through the cascade."""
        cur = self._execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
        return cur.rowcount > 0

    def record_fetch(self, feed_id: int, fetched_at: str, error: str = "") -> None:
        self._execute(
            "UPDATE feeds SET last_fetched = ?, last_error = ? WHERE id = ?",
            (fetched_at, error, feed_id),
        )

    # Entries

    def upsert(self, feed_id: int, entries: Iterable[ParsedEntry]) -> int:
        """
        Insert entries not seen before for this feed.

        Existing (feed_id, ext_id) rows are left untouched, so the first-seen
        content wins. The batch commits as a whole or not at all.

        Returns:
            Number of rows actually inserted
        """
        inserted = 0
        with self.transaction():
            for entry in entries:
                try:
                    cur = self._execute(
                        """
                        INSERT INTO entries (
                            feed_id, ext_id, title, link, summary, published, date_estimated, read
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, 0)
                        ON CONFLICT(feed_id, ext_id) DO NOTHING
                        """,
                        (
                            feed_id,
                            entry.ext_id,
                            entry.title,
                            entry.link,
                            entry.summary,
                            entry.published,
                            int(entry.date_estimated),
                        ),
                    )
                except sqlite3.IntegrityError as e:
                    raise NotFoundError(f"Feed not found: {feed_id}") from e
                inserted += cur.rowcount
        return inserted

    def get_entry(self, entry_id: int) -> Optional[Entry]:
        row = self._execute(
            f"SELECT {ENTRY_COLUMNS} FROM entries e JOIN feeds f ON f.id = e.feed_id WHERE e.id = ?",
            (entry_id,),
        ).fetchone()
        return _row_to_entry(row) if row else None

    def list_entries(
        self,
        feed_id: Optional[int] = None,
        unread_only: bool = False,
        limit: int = 20,
    ) -> List[Entry]:
        """Return stored entries newest first."""
        conditions = []
        params: List[Any] = []
        if feed_id is not None:
            conditions.append("e.feed_id = ?")
            params.append(feed_id)
        if unread_only:
            conditions.append("e.read = 0")

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)
        rows = self._execute(
            f"SELECT {ENTRY_COLUMNS} FROM entries e JOIN feeds f ON f.id = e.feed_id"
            f"{where} ORDER BY e.published DESC, e.id DESC LIMIT ?",
            params,
        ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def count_entries(self, feed_id: Optional[int] = None, unread_only: bool = False) -> int:
        conditions = []
        params: List[Any] = []
        if feed_id is not None:
            conditions.append("feed_id = ?")
            params.append(feed_id)
        if unread_only:
            conditions.append("read = 0")
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        return self._execute(f"SELECT COUNT(*) FROM entries{where}", params).fetchone()[0]

    def mark_read(self, entry_id: int) -> Entry:
        """Set the read flag on one entry and return it."""
        entry = self.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Entry not found: {entry_id}")
        self._execute("UPDATE entries SET read = 1 WHERE id = ?", (entry_id,))
        return entry.model_copy(update={"read": True})

    def mark_read_all(self, feed_id: int) -> int:
        """Mark every unread entry of a feed read; returns how many changed."""
        cur = self._execute(
            "UPDATE entries SET read = 1 WHERE feed_id = ? AND read = 0",
            (feed_id,),
        )
        return cur.rowcount
