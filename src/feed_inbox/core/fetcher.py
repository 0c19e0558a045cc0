"""Network retrieval of feed documents."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, NamedTuple, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import Config
from ..errors import FeedInboxError, NetworkError
from ..models import Feed


logger = logging.getLogger(__name__)

ACCEPT = "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.9, */*;q=0.5"


class FetchedDocument(NamedTuple):
    """Raw result of one successful retrieval."""

    body: bytes
    content_type: str


FetchOutcome = Union[FetchedDocument, FeedInboxError]


class FeedFetcher:
    """
    Retrieves feed documents over HTTP.

    Every request is bounded by ``timeout`` seconds (30 by default) and
    follows at most ``max_redirects`` redirects (5 by default).
    """

    def __init__(self, config: Optional[Config] = None, session: Optional[requests.Session] = None):
        """
        Initialize the fetcher.

        Args:
            config: Application configuration, defaults used when omitted
            session: Optional pre-built session (tests inject a mock here)
        """
        self.config = config or Config()
        self.timeout = self.config.timeout
        self.max_workers = self.config.max_workers
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create HTTP session with retry strategy."""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.config.retry_attempts,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.max_redirects = self.config.max_redirects
        session.headers.update({
            'User-Agent': self.config.user_agent,
            'Accept': ACCEPT,
        })

        return session

    def fetch(self, feed: Feed) -> FetchedDocument:
        """
        Retrieve one feed document.

        Args:
            feed: Registered feed to retrieve

        Returns:
            The response body with its content type

        Raises:
            NetworkError: On timeout, connection failure, too many redirects
                or a non-2xx status
        """
        logger.info(f"Fetching feed #{feed.id}: {feed.name} ({feed.url})")

        try:
            response = self.session.get(feed.url, timeout=self.timeout, allow_redirects=True)
            response.raise_for_status()
        except requests.Timeout as e:
            raise NetworkError(f"Timed out after {self.timeout}s fetching {feed.url}") from e
        except requests.TooManyRedirects as e:
            raise NetworkError(f"Too many redirects fetching {feed.url}") from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "unknown"
            raise NetworkError(f"HTTP {status} fetching {feed.url}") from e
        except requests.RequestException as e:
            raise NetworkError(f"Failed fetching {feed.url}: {e}") from e

        content_type = response.headers.get('Content-Type', '')
        logger.debug(f"Fetched {len(response.content)} bytes ({content_type or 'no content type'}) from {response.url}")
        return FetchedDocument(response.content, content_type)

    def fetch_many(self, feeds: Iterable[Feed], handle: Callable[[Feed, FetchOutcome], None]) -> None:
        """
        Retrieve several feeds concurrently.

        Downloads run on a bounded worker pool; ``handle`` is called on the
        calling thread, one outcome at a time, with either the document or
        the error that feed failed with.
        """
        feeds = list(feeds)
        if not feeds:
            return

        workers = min(self.max_workers, len(feeds))
        logger.info(f"Fetching {len(feeds)} feeds with {workers} workers")

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(self.fetch, feed): feed for feed in feeds}
            for future in as_completed(futures):
                feed = futures[future]
                try:
                    outcome: FetchOutcome = future.result()
                except FeedInboxError as e:
                    outcome = e
                handle(feed, outcome)

    def close(self) -> None:
        self.session.close()
