from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from feed_inbox.cli import app

from samples import RSS_THREE_ITEMS, make_response, make_session

runner = CliRunner()

FEED_URL = "https://example.com/feed.xml"


def _envelope(result) -> dict:
    """Last stdout line of a --json invocation."""
    return json.loads(result.stdout.strip().splitlines()[-1])


@pytest.fixture(autouse=True)
def isolated_home(home):
    return home


def test_add_and_list_json() -> None:
    added = runner.invoke(app, ["add", FEED_URL, "--name", "Example", "--json"])
    assert added.exit_code == 0
    assert _envelope(added)["id"] == 1

    listed = runner.invoke(app, ["list", "--json"])
    assert listed.exit_code == 0
    envelope = _envelope(listed)
    assert envelope["count"] == 1
    assert envelope["items"][0]["name"] == "Example"


def test_human_output() -> None:
    result = runner.invoke(app, ["add", FEED_URL])

    assert result.exit_code == 0
    assert "Added feed #1: example.com" in result.stdout


def test_fetch_unknown_feed_prints_error_envelope() -> None:
    result = runner.invoke(app, ["fetch", "nope", "--json"])

    assert result.exit_code == 1
    envelope = _envelope(result)
    assert envelope["ok"] is False
    assert envelope["code"] == "NOT_FOUND"


def test_duplicate_add_exits_nonzero() -> None:
    runner.invoke(app, ["add", FEED_URL])
    result = runner.invoke(app, ["add", FEED_URL, "--json"])

    assert result.exit_code == 1
    assert _envelope(result)["code"] == "ALREADY_EXISTS"


def test_fetch_with_no_feeds() -> None:
    result = runner.invoke(app, ["fetch", "--json"])

    assert result.exit_code == 0
    assert _envelope(result) == {"ok": True, "count": 0, "items": [], "failures": []}


def test_fetch_and_mark_read() -> None:
    session = make_session({FEED_URL: make_response(RSS_THREE_ITEMS, url=FEED_URL)})
    runner.invoke(app, ["add", FEED_URL, "--name", "Example"])

    with patch("feed_inbox.core.fetcher.requests.Session", return_value=session):
        fetched = runner.invoke(app, ["fetch", "Example", "--limit", "2", "--json"])

    assert fetched.exit_code == 0
    envelope = _envelope(fetched)
    assert envelope["count"] == 3
    assert len(envelope["items"]) == 2

    read = runner.invoke(app, ["read", str(envelope["items"][0]["id"]), "--json"])
    assert _envelope(read)["item"]["read"] is True

    marked = runner.invoke(app, ["mark-read", "Example", "--json"])
    assert _envelope(marked)["count"] == 2


def test_remove_by_name() -> None:
    runner.invoke(app, ["add", FEED_URL, "--name", "Example"])

    result = runner.invoke(app, ["remove", "Example", "--json"])

    assert result.exit_code == 0
    assert _envelope(result)["id"] == 1
    assert _envelope(runner.invoke(app, ["list", "--json"]))["count"] == 0


def test_export_opml() -> None:
    runner.invoke(app, ["add", FEED_URL, "--name", "Example"])

    result = runner.invoke(app, ["export", "--format", "opml"])

    assert result.exit_code == 0
    assert 'xmlUrl="https://example.com/feed.xml"' in result.stdout


def test_import_file(tmp_path) -> None:
    snapshot = tmp_path / "subscriptions.json"
    snapshot.write_text(json.dumps({"feeds": [{"name": "Example", "url": FEED_URL}, {"name": "No URL"}]}))

    result = runner.invoke(app, ["import", str(snapshot), "--json"])

    assert result.exit_code == 0
    envelope = _envelope(result)
    assert (envelope["added"], envelope["skipped"], envelope["malformed"]) == (1, 0, 1)


def test_info(home) -> None:
    result = runner.invoke(app, ["info", "--json"])

    assert result.exit_code == 0
    assert _envelope(result)["item"]["data_dir"] == str(home)


def test_config_example() -> None:
    result = runner.invoke(app, ["config", "--example"])

    assert result.exit_code == 0
    assert "timeout: 15" in result.stdout


def test_quiet_add_list_remove_print_bare_ids() -> None:
    added = runner.invoke(app, ["add", "--quiet", FEED_URL, "--name", "myfeed"])
    assert added.exit_code == 0
    assert added.stdout.strip() == "1"

    runner.invoke(app, ["add", "https://other.example.com/rss", "-q"])
    listed = runner.invoke(app, ["list", "--quiet"])
    assert listed.stdout.split() == ["1", "2"]

    removed = runner.invoke(app, ["remove", "--quiet", "myfeed"])
    assert removed.exit_code == 0
    assert removed.stdout.strip() == "1"


def test_quiet_fetch_prints_entry_ids() -> None:
    session = make_session({FEED_URL: make_response(RSS_THREE_ITEMS, url=FEED_URL)})
    runner.invoke(app, ["add", FEED_URL])

    with patch("feed_inbox.core.fetcher.requests.Session", return_value=session):
        fetched = runner.invoke(app, ["fetch", "1", "--quiet"])

    assert fetched.exit_code == 0
    assert fetched.stdout.split() == ["3", "2", "1"]

    marked = runner.invoke(app, ["mark-read", "1", "-q"])
    assert marked.stdout.strip() == "3"


def test_fetch_with_zero_limit_fails() -> None:
    runner.invoke(app, ["add", FEED_URL])

    result = runner.invoke(app, ["fetch", "1", "--limit", "0", "--json"])

    assert result.exit_code == 1
    assert _envelope(result)["code"] == "PARSE_ERROR"
