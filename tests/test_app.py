from __future__ import annotations

import json

import pytest
import requests

from feed_inbox.errors import (
    AlreadyExistsError,
    FeedInboxError,
    MigrationError,
    NetworkError,
    NotFoundError,
    ParseError,
)
from feed_inbox.main import error_envelope
from feed_inbox.services.migrations import LATEST_VERSION

from samples import ATOM_WITH_BROKEN_ENTRY, HTML_PAGE, RSS_THREE_ITEMS, TRUNCATED_RSS, make_response

FEED_URL = "https://example.com/feed.xml"
ATOM_URL = "https://example.org/atom.xml"


def _contains_none(value) -> bool:
    if value is None:
        return True
    if isinstance(value, dict):
        return any(_contains_none(v) for v in value.values())
    if isinstance(value, list):
        return any(_contains_none(v) for v in value)
    return False


@pytest.fixture
def rss_feed(app, routes):
    routes[FEED_URL] = make_response(RSS_THREE_ITEMS, url=FEED_URL)
    return app.add(FEED_URL, "Example")


def test_add_and_list(app) -> None:
    added = app.add(FEED_URL)

    assert added["ok"] is True
    assert added["id"] == 1
    assert added["item"]["name"] == "example.com"

    listed = app.list()
    assert listed["count"] == 1
    assert [item["url"] for item in listed["items"]] == [FEED_URL]


def test_refetch_inserts_nothing_new(app, rss_feed) -> None:
    first = app.fetch(1)
    second = app.fetch(1)

    assert first["count"] == 3
    assert second["count"] == 0
    assert len(second["items"]) == 3
    assert [item["ext_id"] for item in second["items"]] == ["urn:example:3", "urn:example:2", "urn:example:1"]
    assert second["failures"] == []


def test_removed_feed_cannot_be_fetched(app, rss_feed) -> None:
    app.fetch(1)

    assert app.remove(1) == {"ok": True, "message": "Feed removed", "id": 1}
    assert app.info()["item"]["entries"] == 0

    with pytest.raises(NotFoundError) as excinfo:
        app.fetch(1)
    assert error_envelope(excinfo.value)["code"] == "NOT_FOUND"


def test_mark_read_all_then_unread_fetch_is_empty(app, rss_feed) -> None:
    items = app.fetch(1)["items"]
    app.read(items[0]["id"])

    marked = app.mark_read_all(1)

    assert marked["count"] == 2
    assert app.fetch(1, unread_only=True)["items"] == []


def test_atom_entry_without_identity_is_skipped(app, routes) -> None:
    routes[ATOM_URL] = make_response(ATOM_WITH_BROKEN_ENTRY, content_type="application/atom+xml", url=ATOM_URL)
    app.add(ATOM_URL, "Atom")

    result = app.fetch("Atom")

    assert result["count"] == 2
    assert {item["ext_id"] for item in result["items"]} == {"urn:atom:1", "urn:atom:2"}
    assert all(item["feed"] == "Atom" for item in result["items"])


def test_fetch_limit(app, rss_feed) -> None:
    result = app.fetch(1, limit=2)

    assert result["count"] == 3
    assert len(result["items"]) == 2


@pytest.mark.parametrize("limit", [0, -1])
def test_fetch_rejects_non_positive_limit(app, rss_feed, limit: int) -> None:
    with pytest.raises(ParseError, match="Invalid limit"):
        app.fetch(1, limit=limit)

    assert app.info()["item"]["entries"] == 0


def test_truncated_document_stores_nothing(app, routes) -> None:
    routes[FEED_URL] = make_response(TRUNCATED_RSS, url=FEED_URL)
    app.add(FEED_URL, "Cut")

    with pytest.raises(ParseError):
        app.fetch("Cut")

    assert app.info()["item"]["entries"] == 0
    assert app.list()["items"][0]["last_error"].startswith("Malformed rss document")

    result = app.fetch()
    assert result["count"] == 0
    assert [failure["code"] for failure in result["failures"]] == ["PARSE_ERROR"]
    assert app.info()["item"]["entries"] == 0


def test_read_marks_single_entry(app, rss_feed) -> None:
    entry = app.fetch(1)["items"][0]

    result = app.read(entry["id"])

    assert result["ok"] is True
    assert result["item"]["read"] is True
    assert app.fetch(1, unread_only=True)["items"][0]["id"] != entry["id"]

    with pytest.raises(NotFoundError):
        app.read(9999)


def test_single_fetch_failure_raises_and_is_recorded(app, routes) -> None:
    routes[FEED_URL] = requests.ConnectionError("connection refused")
    app.add(FEED_URL, "Example")

    with pytest.raises(NetworkError):
        app.fetch("Example")

    feed = app.list()["items"][0]
    assert "connection refused" in feed["last_error"]
    assert feed["last_fetched"].endswith("Z")


def test_fetch_all_reports_failures_without_aborting(app, routes, rss_feed) -> None:
    broken = "https://broken.example.com/"
    routes[broken] = make_response(HTML_PAGE, content_type="text/html", url=broken)
    down = "https://down.example.com/rss"
    routes[down] = make_response(b"", status=503, url=down)
    app.add(broken, "Broken")
    app.add(down, "Down")

    result = app.fetch()

    assert result["ok"] is True
    assert result["count"] == 3
    failures = {failure["feed_id"]: failure for failure in result["failures"]}
    assert failures[2]["code"] == "PARSE_ERROR"
    assert failures[3]["code"] == "NETWORK_ERROR"
    assert failures[3]["url"] == down

    feeds = {item["id"]: item for item in app.list()["items"]}
    assert feeds[1]["last_error"] == ""
    assert feeds[2]["last_error"]


def test_fetch_all_with_no_feeds(app) -> None:
    assert app.fetch() == {"ok": True, "count": 0, "items": [], "failures": []}


def test_envelopes_never_carry_null(app, rss_feed) -> None:
    envelopes = [
        app.list(),
        app.fetch(1),
        app.read(1),
        app.mark_read_all("Example"),
        app.export("json"),
        app.info(),
    ]

    for envelope in envelopes:
        assert not _contains_none(envelope)
        json.dumps(envelope)


def test_timestamps_are_utc_with_z(app, rss_feed) -> None:
    entry = app.fetch(1)["items"][0]
    feed = app.list()["items"][0]

    assert entry["published"] == "2025-01-08T10:00:00Z"
    assert feed["created_at"].endswith("Z")
    assert feed["last_fetched"].endswith("Z")


def test_duplicate_add_is_already_exists(app, rss_feed) -> None:
    with pytest.raises(AlreadyExistsError) as excinfo:
        app.add(FEED_URL)
    assert error_envelope(excinfo.value) == {
        "ok": False,
        "error": f"Feed already exists: {FEED_URL}",
        "code": "ALREADY_EXISTS",
    }


def test_export_and_import(app, rss_feed) -> None:
    exported = app.export("opml")
    assert exported["count"] == 1
    assert exported["format"] == "opml"

    app.remove(1)
    imported = app.import_feeds(exported["document"].encode("utf-8"))

    assert imported == {"ok": True, "message": "Import complete", "added": 1, "skipped": 0, "malformed": 0}
    assert [item["url"] for item in app.list()["items"]] == [FEED_URL]


def test_import_garbage_is_parse_error(app) -> None:
    with pytest.raises(ParseError):
        app.import_feeds(b"definitely not opml")


def test_info_reports_store_state(app, rss_feed, home) -> None:
    app.fetch(1)

    item = app.info()["item"]

    assert item["schema_version"] == LATEST_VERSION
    assert item["feeds"] == 1
    assert item["entries"] == 3
    assert item["unread"] == 3
    assert item["data_dir"] == str(home)
    assert (home / "feeds.json").exists()
    assert (home / "logs" / "feed-inbox.log").exists()


@pytest.mark.parametrize(
    "error, code",
    [
        (NotFoundError("x"), "NOT_FOUND"),
        (AlreadyExistsError("x"), "ALREADY_EXISTS"),
        (NetworkError("x"), "NETWORK_ERROR"),
        (ParseError("x"), "PARSE_ERROR"),
        (MigrationError("x"), "MIGRATION_ERROR"),
        (FeedInboxError("x"), "RUNTIME_ERROR"),
        (KeyError("boom"), "RUNTIME_ERROR"),
    ],
)
def test_error_envelope_codes(error, code) -> None:
    envelope = error_envelope(error)

    assert envelope["ok"] is False
    assert envelope["code"] == code
    assert envelope["error"]
