"""Ordered schema migrations for the feed store.

Migrations are append-only: a released migration is never edited or
reordered, new schema changes get the next version number. The store records
every applied version in ``schema_version``; the highest recorded version is
the store's current schema.
"""

import logging
import sqlite3
from typing import Dict, NamedTuple, Sequence, Tuple

from ..errors import MigrationError
from ..utils.dates import utc_now_iso

logger = logging.getLogger(__name__)


class Migration(NamedTuple):
    version: int
    name: str
    statements: Tuple[str, ...]


MIGRATIONS: Tuple[Migration, ...] = (
    Migration(
        1,
        "initial",
        (
            """
            CREATE TABLE feeds (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                url TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL
            )
            """,
            """
            CREATE TABLE entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                feed_id INTEGER NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
                ext_id TEXT NOT NULL,
                title TEXT NOT NULL,
                link TEXT NOT NULL DEFAULT '',
                summary TEXT NOT NULL DEFAULT '',
                published TEXT NOT NULL,
                read INTEGER NOT NULL DEFAULT 0,
                UNIQUE(feed_id, ext_id)
            )
            """,
            "CREATE INDEX idx_entries_feed_id ON entries(feed_id)",
            "CREATE INDEX idx_entries_published ON entries(published)",
        ),
    ),
    Migration(
        2,
        "feed_fetch_status",
        (
            "ALTER TABLE feeds ADD COLUMN last_fetched TEXT NOT NULL DEFAULT ''",
            "ALTER TABLE feeds ADD COLUMN last_error TEXT NOT NULL DEFAULT ''",
        ),
    ),
    Migration(
        3,
        "entry_date_estimated",
        (
            "ALTER TABLE entries ADD COLUMN date_estimated INTEGER NOT NULL DEFAULT 0",
        ),
    ),
)

LATEST_VERSION = MIGRATIONS[-1].version

SCHEMA_VERSION_DDL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at TEXT NOT NULL
)
"""


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name=?",
        (table,),
    ).fetchone()
    return row is not None


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version, 0 for a fresh store."""
    if not _table_exists(conn, "schema_version"):
        return 0
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return int(row[0]) if row and row[0] is not None else 0


def _validate_sequence(migrations: Sequence[Migration]) -> None:
    expected = list(range(1, len(migrations) + 1))
    actual = [m.version for m in migrations]
    if actual != expected:
        raise MigrationError(f"Migrations must be numbered 1..{len(migrations)} in order, got {actual}")


def _table_counts(conn: sqlite3.Connection) -> Dict[str, int]:
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' "
        "AND name NOT IN ('schema_version', 'sqlite_sequence')"
    ).fetchall()
    return {row[0]: conn.execute(f'SELECT COUNT(*) FROM "{row[0]}"').fetchone()[0] for row in rows}


def _check_no_data_loss(conn: sqlite3.Connection, before: Dict[str, int]) -> None:
    for table, count_before in before.items():
        if not _table_exists(conn, table):
            raise MigrationError(f"Table '{table}' with {count_before} rows was dropped")
        count_after = conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0]
        if count_after < count_before:
            raise MigrationError(
                f"Table '{table}' lost {count_before - count_after} rows ({count_before} -> {count_after})"
            )


def migrate(conn: sqlite3.Connection, migrations: Sequence[Migration] = MIGRATIONS) -> int:
    """
    Bring the store up to the latest schema version.

    Only migrations newer than the current version are applied, in order, and
    all of them run inside one transaction: if any step fails nothing from this
    run is kept and the store stays at its previous version.

    Args:
        conn: Connection in autocommit mode (``isolation_level=None``)
        migrations: Ordered migration list, versions 1..N

    Returns:
        The schema version after migrating

    Raises:
        MigrationError: If the list is malformed, the store is newer than the
            code, or any migration fails
    """
    _validate_sequence(migrations)
    latest = migrations[-1].version if migrations else 0

    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as e:
        raise MigrationError(f"Could not lock store for migration: {e}") from e

    try:
        conn.execute(SCHEMA_VERSION_DDL)
        start = current_version(conn)

        if start > latest:
            raise MigrationError(f"Store schema version {start} is newer than supported version {latest}")

        pending = [m for m in migrations if m.version > start]
        before = _table_counts(conn)

        for migration in pending:
            logger.info(f"Applying migration {migration.version:03d}_{migration.name}")
            for statement in migration.statements:
                conn.execute(statement)
            conn.execute(
                "INSERT INTO schema_version (version, name, applied_at) VALUES (?, ?, ?)",
                (migration.version, migration.name, utc_now_iso()),
            )

        _check_no_data_loss(conn, before)
        conn.execute("COMMIT")

    except MigrationError as e:
        conn.execute("ROLLBACK")
        logger.error(f"Migration failed, store left unchanged: {e}")
        raise
    except sqlite3.Error as e:
        conn.execute("ROLLBACK")
        logger.error(f"Migration failed, store left unchanged: {e}")
        raise MigrationError(f"Migration failed: {e}") from e

    if pending:
        logger.info(f"Store migrated from version {start} to {latest}")
    return latest
