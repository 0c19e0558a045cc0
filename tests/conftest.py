from __future__ import annotations

import pytest

from feed_inbox.config import Config
from feed_inbox.main import FeedInboxApp
from feed_inbox.services.mirror import FeedMirror
from feed_inbox.services.store import FeedStore
from feed_inbox.core.registry import FeedRegistry

from samples import make_session


@pytest.fixture
def home(monkeypatch, tmp_path):
    """Isolated data directory; nothing touches the real ~/.local/share."""
    data_dir = tmp_path / "home"
    monkeypatch.setenv("FEED_INBOX_HOME", str(data_dir))
    return data_dir


@pytest.fixture
def store(tmp_path):
    with FeedStore.open(tmp_path / "feed.db") as opened:
        yield opened


@pytest.fixture
def mirror(tmp_path):
    return FeedMirror(tmp_path / "feeds.json")


@pytest.fixture
def registry(store, mirror):
    return FeedRegistry(store, mirror)


@pytest.fixture
def routes():
    """URL -> response (or exception) table consulted by the mock session."""
    return {}


@pytest.fixture
def app(home, routes):
    instance = FeedInboxApp(config=Config(data_dir=str(home), max_workers=2), session=make_session(routes))
    yield instance
    instance.close()
