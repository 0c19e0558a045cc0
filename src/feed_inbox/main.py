"""Main Feed Inbox application."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple, Union

import requests

from .config import Config, load_config
from .core.fetcher import FeedFetcher, FetchOutcome
from .core.opml import ExportFormat, export_feeds, import_outlines, parse_import
from .core.parser import parse_document
from .core.read_state import ReadStateTracker
from .core.registry import FeedRegistry
from .errors import ErrorKind, FeedInboxError, NetworkError, ParseError
from .models import Feed, FetchFailure, FetchReport, drop_none, dump
from .services.mirror import FeedMirror
from .services.store import FeedStore
from .utils.dates import utc_now, format_timestamp
from .utils.paths import ensure_data_dir, get_db_path, get_log_dir, get_mirror_path


Envelope = Dict[str, Any]


def error_envelope(error: BaseException) -> Envelope:
    """Convert an exception into the ``{ok: false, error, code}`` envelope."""
    code = error.code if isinstance(error, FeedInboxError) else ErrorKind.RUNTIME_ERROR
    return {"ok": False, "error": str(error) or error.__class__.__name__, "code": code.value}


class FeedInboxApp:
    """Main Feed Inbox application."""

    def __init__(
        self,
        config_file: Optional[Path] = None,
        *,
        config: Optional[Config] = None,
        session: Optional[requests.Session] = None,
        verbose: bool = False,
    ):
        """
        Initialize the Feed Inbox application.

        Args:
            config_file: Optional path to configuration file
            config: Already-loaded configuration, takes precedence over config_file
            session: Optional HTTP session for the fetcher
            verbose: Echo DEBUG logs to the console
        """
        self.config = config or load_config(config_file)
        self.data_dir = ensure_data_dir(self.config.data_dir)

        self._setup_logging(verbose)

        self.db_path = get_db_path(self.config.data_dir)
        self.mirror = FeedMirror(get_mirror_path(self.config.data_dir))
        self.fetcher = FeedFetcher(self.config, session=session)

        logging.debug(f"Feed Inbox initialized (data dir {self.data_dir})")

    def _setup_logging(self, verbose: bool = False) -> None:
        """Setup logging configuration."""
        log_file = get_log_dir(self.config.data_dir) / "feed-inbox.log"

        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)

        # Console stays quiet so structured output on stdout is not drowned out
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        console_handler.setFormatter(formatter)

        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG if verbose else log_level)
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)

    @contextmanager
    def _open(self) -> Iterator[Tuple[FeedStore, FeedRegistry]]:
        """Open the store for one command and release it on every exit path."""
        with FeedStore.open(self.db_path) as store:
            registry = FeedRegistry(store, self.mirror)
            registry.sync_mirror()
            yield store, registry

    # Registry verbs

    def add(self, url: str, name: Optional[str] = None) -> Envelope:
        with self._open() as (_, registry):
            feed = registry.add(url, name)
        return {"ok": True, "message": "Feed added", "id": feed.id, "item": dump(feed)}

    def list(self) -> Envelope:
        with self._open() as (_, registry):
            feeds = registry.list()
        return {"ok": True, "count": len(feeds), "items": [dump(feed) for feed in feeds]}

    def remove(self, ref: Union[int, str]) -> Envelope:
        with self._open() as (_, registry):
            feed_id = registry.remove(ref)
        return {"ok": True, "message": "Feed removed", "id": feed_id}

    # Fetching

    def fetch(
        self,
        ref: Union[int, str, None] = None,
        limit: Optional[int] = None,
        unread_only: bool = False,
    ) -> Envelope:
        """
        Fetch one feed (``ref``) or every feed, store new entries, list stored ones.

        ``count`` is the number of newly inserted entries; ``items`` lists the
        stored entries in scope, newest first. In a fetch-all batch a failing
        feed is reported in ``failures`` instead of aborting the batch; a
        single-feed fetch raises its error.
        """
        if limit is None:
            limit = self.config.default_limit
        elif limit < 1:
            raise ParseError(f"Invalid limit: {limit} (must be at least 1)")

        with self._open() as (store, registry):
            report = FetchReport()

            if ref is not None:
                feed = registry.resolve(ref)
                scope = feed.id
                try:
                    document = self.fetcher.fetch(feed)
                    report.inserted += self._store_document(store, feed, document.body, document.content_type)
                except (NetworkError, ParseError) as e:
                    self._record_failure(store, feed, e)
                    raise
                report.fetched = 1
            else:
                scope = None

                def handle(feed: Feed, outcome: FetchOutcome) -> None:
                    try:
                        if isinstance(outcome, FeedInboxError):
                            raise outcome
                        report.inserted += self._store_document(store, feed, outcome.body, outcome.content_type)
                        report.fetched += 1
                    except (NetworkError, ParseError) as e:
                        self._record_failure(store, feed, e)
                        report.failures.append(
                            FetchFailure(feed_id=feed.id, url=feed.url, error=str(e), code=e.code.value)
                        )

                self.fetcher.fetch_many(registry.list(), handle)

            items = store.list_entries(scope, unread_only=unread_only, limit=limit)

        logging.info(
            f"Fetch complete: {report.inserted} new entries from {report.fetched} feeds, "
            f"{len(report.failures)} failures"
        )
        return {
            "ok": True,
            "count": report.inserted,
            "items": [dump(item) for item in items],
            "failures": [dump(failure) for failure in report.failures],
        }

    def _store_document(self, store: FeedStore, feed: Feed, body: bytes, content_type: str) -> int:
        """Parse and upsert one feed's document as a single atomic unit."""
        fetched_at = utc_now()
        result = parse_document(body, content_type, fetched_at)

        with store.transaction():
            inserted = store.upsert(feed.id, result.entries)
            store.record_fetch(feed.id, format_timestamp(fetched_at))

        logging.info(
            f"Feed #{feed.id} ({result.format.value}): {inserted} new of {len(result.entries)} entries"
            + (f", {result.skipped} skipped" if result.skipped else "")
        )
        return inserted

    def _record_failure(self, store: FeedStore, feed: Feed, error: FeedInboxError) -> None:
        logging.error(f"Feed #{feed.id} ({feed.url}) failed: {error}")
        with store.transaction():
            store.record_fetch(feed.id, format_timestamp(utc_now()), str(error))

    # Read state

    def read(self, entry_id: int) -> Envelope:
        with self._open() as (store, _):
            entry = ReadStateTracker(store).mark_read(entry_id)
        return {"ok": True, "item": dump(entry)}

    def mark_read_all(self, ref: Union[int, str]) -> Envelope:
        with self._open() as (store, registry):
            feed = registry.resolve(ref)
            count = ReadStateTracker(store).mark_read_all(feed)
        return {"ok": True, "message": f"Marked {count} entries read", "id": feed.id, "count": count}

    # Import / export

    def export(self, fmt: Union[ExportFormat, str] = ExportFormat.JSON) -> Envelope:
        with self._open() as (_, registry):
            feeds = registry.list()
        document = export_feeds(feeds, fmt)
        return {"ok": True, "count": len(feeds), "format": ExportFormat(fmt).value, "document": document}

    def import_feeds(self, document: Union[str, bytes]) -> Envelope:
        outlines = parse_import(document)
        with self._open() as (_, registry):
            report = import_outlines(registry, outlines)
        return {"ok": True, "message": "Import complete", **report.model_dump()}

    def info(self) -> Envelope:
        """
        Get application information.

        Returns:
            Envelope with version, paths, schema version and counts
        """
        from . import __version__

        with self._open() as (store, registry):
            item = {
                "version": __version__,
                "data_dir": str(self.data_dir),
                "db_path": str(self.db_path),
                "mirror_path": str(self.mirror.mirror_file),
                "schema_version": store.schema_version(),
                "feeds": len(registry.list()),
                "entries": store.count_entries(),
                "unread": store.count_entries(unread_only=True),
                "timeout": self.config.timeout,
                "max_workers": self.config.max_workers,
            }
        return drop_none({"ok": True, "item": item})

    def close(self) -> None:
        self.fetcher.close()
