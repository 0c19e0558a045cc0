from __future__ import annotations

import pytest

from feed_inbox.errors import MigrationError
from feed_inbox.services.migrations import (
    LATEST_VERSION,
    MIGRATIONS,
    Migration,
    current_version,
    migrate,
)
from feed_inbox.services.store import FeedStore, connect


def _columns(conn, table: str) -> set[str]:
    return {row["name"] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


def _tables(conn) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    return {row["name"] for row in rows}


def test_fresh_store_reaches_latest_version(tmp_path) -> None:
    conn = connect(tmp_path / "feed.db")
    assert current_version(conn) == 0

    assert migrate(conn) == LATEST_VERSION
    assert current_version(conn) == LATEST_VERSION
    assert {"feeds", "entries", "schema_version"} <= _tables(conn)
    assert "date_estimated" in _columns(conn, "entries")
    assert {"last_fetched", "last_error"} <= _columns(conn, "feeds")
    conn.close()


@pytest.mark.parametrize("start", range(0, len(MIGRATIONS) + 1))
def test_migrating_from_any_version_yields_latest(tmp_path, start: int) -> None:
    conn = connect(tmp_path / "feed.db")
    if start:
        migrate(conn, MIGRATIONS[:start])
    assert current_version(conn) == start

    assert migrate(conn) == LATEST_VERSION

    versions = [row[0] for row in conn.execute("SELECT version FROM schema_version ORDER BY version")]
    assert versions == list(range(1, LATEST_VERSION + 1))
    conn.close()


def test_migrate_is_idempotent(tmp_path) -> None:
    conn = connect(tmp_path / "feed.db")
    migrate(conn)
    migrate(conn)

    assert conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0] == LATEST_VERSION
    conn.close()


def test_upgrade_keeps_existing_history(tmp_path) -> None:
    conn = connect(tmp_path / "feed.db")
    migrate(conn, MIGRATIONS[:1])
    conn.execute(
        "INSERT INTO feeds (name, url, created_at) VALUES ('Old', 'https://old.example.com/rss', '2024-01-01T00:00:00Z')"
    )
    conn.execute(
        "INSERT INTO entries (feed_id, ext_id, title, link, summary, published, read) "
        "VALUES (1, 'urn:old:1', 'Old entry', '', '', '2024-01-02T00:00:00Z', 1)"
    )

    migrate(conn)

    feed = conn.execute("SELECT * FROM feeds").fetchone()
    entry = conn.execute("SELECT * FROM entries").fetchone()
    assert feed["name"] == "Old"
    assert feed["last_error"] == ""
    assert entry["title"] == "Old entry"
    assert entry["read"] == 1
    assert entry["date_estimated"] == 0
    conn.close()


def test_failed_migration_leaves_fresh_store_untouched(tmp_path) -> None:
    broken = MIGRATIONS + (
        Migration(LATEST_VERSION + 1, "broken", ("ALTER TABLE feeds ADD COLUMN note TEXT", "INSERT INTO missing VALUES (1)")),
    )
    conn = connect(tmp_path / "feed.db")

    with pytest.raises(MigrationError):
        migrate(conn, broken)

    assert current_version(conn) == 0
    assert "feeds" not in _tables(conn)
    conn.close()


def test_failed_migration_keeps_last_good_version(tmp_path) -> None:
    conn = connect(tmp_path / "feed.db")
    migrate(conn)
    broken = MIGRATIONS + (
        Migration(LATEST_VERSION + 1, "add_note", ("ALTER TABLE feeds ADD COLUMN note TEXT",)),
        Migration(LATEST_VERSION + 2, "broken", ("CREATE TABLE feeds (id INTEGER)",)),
    )

    with pytest.raises(MigrationError):
        migrate(conn, broken)

    assert current_version(conn) == LATEST_VERSION
    assert "note" not in _columns(conn, "feeds")
    conn.close()


def test_migration_losing_rows_is_rolled_back(tmp_path) -> None:
    conn = connect(tmp_path / "feed.db")
    migrate(conn)
    conn.execute(
        "INSERT INTO feeds (name, url, created_at) VALUES ('Keep', 'https://keep.example.com/rss', '2024-01-01T00:00:00Z')"
    )
    lossy = MIGRATIONS + (Migration(LATEST_VERSION + 1, "purge", ("DELETE FROM feeds",)),)

    with pytest.raises(MigrationError, match="lost 1 rows"):
        migrate(conn, lossy)

    assert conn.execute("SELECT COUNT(*) FROM feeds").fetchone()[0] == 1
    assert current_version(conn) == LATEST_VERSION
    conn.close()


def test_out_of_order_migrations_are_rejected(tmp_path) -> None:
    conn = connect(tmp_path / "feed.db")
    gapped = (MIGRATIONS[0], Migration(3, "skipped_two", ("SELECT 1",)))

    with pytest.raises(MigrationError):
        migrate(conn, gapped)

    assert current_version(conn) == 0
    conn.close()


def test_store_newer_than_code_is_refused(tmp_path) -> None:
    conn = connect(tmp_path / "feed.db")
    migrate(conn)

    with pytest.raises(MigrationError, match="newer"):
        migrate(conn, MIGRATIONS[:1])
    conn.close()


def test_open_store_reports_schema_version(tmp_path) -> None:
    with FeedStore.open(tmp_path / "feed.db") as store:
        assert store.schema_version() == LATEST_VERSION
