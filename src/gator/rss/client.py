"""RSS/Atom feed fetcher."""

import calendar
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import unescape
from typing import List, Optional

import feedparser
import requests
from dateutil import parser as date_parser

from ..errors import FetchError
from ..logging import get_logger

logger = get_logger(__name__)


@dataclass
class FeedItem:
    """One <item>/<entry> of a feed.

    published_at is None when the feed carries no usable date.
    """
    title: str
    link: str
    description: str
    published_at: Optional[datetime] = None


@dataclass
class ParsedFeed:
    """Channel metadata plus items in document order."""
    title: str
    link: str
    description: str
    items: List[FeedItem] = field(default_factory=list)


class FeedFetcher:
    """Fetches and parses remote RSS/Atom feeds.

    Does not retry; a failed feed is simply fetched again on a later tick.
    The timeout bounds the whole download, not just each socket read.
    """

    DEFAULT_USER_AGENT = "gator/1.0 (RSS Feed Aggregator)"
    DEFAULT_TIMEOUT = 10.0
    CHUNK_SIZE = 8192
    ACCEPT = "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.8"

    def __init__(self, user_agent: str = None, timeout: float = None):
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': self.user_agent,
            'Accept': self.ACCEPT,
        })

    def _download(self, url: str, timeout: float) -> bytes:
        """Read the body within one overall deadline.

        The requests timeout only bounds each connect or read, so a server
        trickling bytes is cut off here once the whole fetch exceeds timeout.
        """
        deadline = time.monotonic() + timeout
        chunks = []
        try:
            response = self.session.get(url, timeout=timeout, stream=True)
            try:
                response.raise_for_status()
                for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
                    if time.monotonic() > deadline:
                        raise FetchError(url, f"no complete response within {timeout:g}s")
                    chunks.append(chunk)
            finally:
                response.close()
        except requests.exceptions.RequestException as e:
            raise FetchError(url, e) from e
        return b''.join(chunks)

    def _fetch_document(self, url: str, timeout: float) -> feedparser.FeedParserDict:
        document = feedparser.parse(self._download(url, timeout))
        if document.get('bozo') and not document.entries and not document.feed.get('title'):
            raise FetchError(url, document.get('bozo_exception') or "malformed feed document")
        return document

    def _clean(self, text: Optional[str]) -> str:
        return unescape(text or '').strip()

    def _parse_date(self, entry) -> Optional[datetime]:
        """Best-effort publish date; None rather than a guessed date."""
        for key in ('published_parsed', 'updated_parsed'):
            parsed = entry.get(key)
            if parsed:
                try:
                    return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
                except (TypeError, ValueError, OverflowError):
                    pass

        raw = entry.get('published') or entry.get('updated')
        if raw:
            try:
                value = date_parser.parse(raw)
            except (ValueError, OverflowError, TypeError):
                logger.debug(f"Unparsable publish date: {raw}")
                return None
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)

        return None

    def _parse_entry(self, entry) -> FeedItem:
        description = entry.get('summary') or entry.get('description') or ''
        if not description and entry.get('content'):
            description = entry.content[0].get('value', '')

        return FeedItem(
            title=self._clean(entry.get('title')),
            link=(entry.get('link') or '').strip(),
            description=self._clean(description),
            published_at=self._parse_date(entry),
        )

    def fetch(self, url: str, timeout: float = None) -> ParsedFeed:
        """Fetch and parse a feed.

        Args:
            url: Feed URL
            timeout: Request timeout in seconds (defaults to the fetcher's timeout)

        Returns:
            ParsedFeed with items in document order

        Raises:
            FetchError: On network failure, non-2xx status or malformed XML
        """
        document = self._fetch_document(url, timeout or self.timeout)
        channel = document.feed

        feed = ParsedFeed(
            title=self._clean(channel.get('title')),
            link=(channel.get('link') or '').strip(),
            description=self._clean(channel.get('description') or channel.get('subtitle')),
            items=[self._parse_entry(entry) for entry in document.entries],
        )
        logger.debug(f"Fetched {len(feed.items)} items from {url}")
        return feed
