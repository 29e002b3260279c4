"""APScheduler job that keeps feeds current."""

import os
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..database.models import Feed
from ..database.repository import FeedRepository
from ..errors import FetchError, GatorError, ValidationError
from ..ingest.pipeline import ingest
from ..logging import get_logger
from ..rss.client import FeedFetcher

logger = get_logger(__name__)

INTERVAL_PATTERN = re.compile(r'(\d+(?:\.\d+)?)(ms|h|m|s)')
INTERVAL_UNITS = {'h': 3600.0, 'm': 60.0, 's': 1.0, 'ms': 0.001}


def parse_interval(value: str) -> float:
    """Parse "30s", "1m", "1h30m" or a bare number of seconds.

    Raises:
        ValidationError: If the value is malformed or not positive
    """
    text = (value or '').strip().lower()
    try:
        seconds = float(text)
    except ValueError:
        if not text or INTERVAL_PATTERN.sub('', text):
            raise ValidationError(f"Invalid interval: {value!r} (use e.g. 30s, 1m, 1h30m)")
        seconds = sum(float(n) * INTERVAL_UNITS[unit] for n, unit in INTERVAL_PATTERN.findall(text))

    if seconds <= 0:
        raise ValidationError(f"Interval must be positive: {value!r}")
    return seconds


class FeedState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    INGESTING = "ingesting"
    FAILED_FETCH = "failed_fetch"


class AggregationScheduler:
    """Polls the least recently fetched feeds on a fixed interval."""

    JOB_ID = 'aggregate_feeds'

    def __init__(
        self,
        repo: FeedRepository,
        fetcher: FeedFetcher = None,
        interval_seconds: float = None,
        concurrency: int = None,
        fetch_timeout: float = None,
    ):
        """Initialize scheduler.

        Args:
            repo: Database repository
            fetcher: Feed fetcher (a default FeedFetcher if omitted)
            interval_seconds: Seconds between ticks
            concurrency: Feeds fetched per tick, in parallel
            fetch_timeout: Per-fetch timeout in seconds
        """
        self.repo = repo
        self.interval = interval_seconds or float(os.getenv('AGG_INTERVAL_SECONDS', '60'))
        self.concurrency = concurrency or int(os.getenv('AGG_CONCURRENCY', '1'))
        self.fetch_timeout = fetch_timeout or float(os.getenv('FETCH_TIMEOUT_SECONDS', '10'))
        self.fetcher = fetcher or FeedFetcher(timeout=self.fetch_timeout)

        if self.interval <= 0:
            raise ValidationError("Interval must be positive")
        if self.concurrency < 1:
            raise ValidationError("Concurrency must be at least 1")

        self._states: Dict[str, FeedState] = {}
        self._lock = threading.Lock()
        self._running = False

        self.scheduler = BackgroundScheduler(timezone='UTC')

    # ==================== Lifecycle ====================

    def start(self) -> None:
        """Start ticking; the first tick runs immediately."""
        self.scheduler.add_job(
            self.run_tick,
            IntervalTrigger(seconds=self.interval),
            id=self.JOB_ID,
            name='Fetch due feeds',
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self.scheduler.start()
        self._running = True
        logger.info(f"Aggregator started (every {self.interval:g}s, {self.concurrency} feeds per tick)")

    def stop(self) -> None:
        """Stop the scheduler."""
        self._running = False
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Aggregator stopped")

    def run_forever(self) -> None:
        """Start and block until interrupted."""
        self.start()
        try:
            while self._running:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Received interrupt, shutting down...")
        finally:
            self.stop()

    # ==================== Per-feed state ====================

    def state_of(self, feed_id: str) -> FeedState:
        with self._lock:
            return self._states.get(feed_id, FeedState.IDLE)

    def _claim(self, feed_id: str) -> bool:
        """Move a feed from IDLE to FETCHING; False if it is already in flight."""
        with self._lock:
            if self._states.get(feed_id, FeedState.IDLE) is not FeedState.IDLE:
                return False
            self._states[feed_id] = FeedState.FETCHING
            return True

    def _transition(self, feed_id: str, state: FeedState) -> None:
        with self._lock:
            if state is FeedState.IDLE:
                self._states.pop(feed_id, None)
            else:
                self._states[feed_id] = state

    # ==================== Jobs ====================

    def run_tick(self) -> Dict:
        """Fetch and ingest up to `concurrency` due feeds."""
        stats = {'selected': 0, 'processed': 0, 'failed': 0, 'busy': 0, 'inserted': 0, 'skipped': 0}

        try:
            feeds = self.repo.list_feeds_due_for_fetch(self.concurrency)
        except GatorError as e:
            logger.error(f"Could not select due feeds: {e}")
            return stats

        stats['selected'] = len(feeds)
        if not feeds:
            logger.info("No feeds to fetch")
            return stats

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix='gator-fetch') as pool:
            outcomes = list(pool.map(self.process_feed, feeds))

        for outcome in outcomes:
            if outcome is None:
                stats['busy'] += 1
            elif outcome is False:
                stats['failed'] += 1
            else:
                stats['processed'] += 1
                stats['inserted'] += outcome.inserted
                stats['skipped'] += outcome.skipped

        logger.info(
            f"Tick: {stats['processed']} feeds fetched, {stats['failed']} failed, "
            f"{stats['inserted']} new posts"
        )
        return stats

    def process_feed(self, feed: Feed):
        """Fetch then ingest one feed.

        Returns:
            IngestResult on success, False on failure, None if the feed was already in flight
        """
        if not self._claim(feed.id):
            logger.debug(f"Feed {feed.url} already in flight, skipping")
            return None

        try:
            try:
                parsed = self.fetcher.fetch(feed.url, timeout=self.fetch_timeout)
            except FetchError as e:
                self._transition(feed.id, FeedState.FAILED_FETCH)
                logger.warning(f"{e}")
                return False

            self._transition(feed.id, FeedState.INGESTING)
            try:
                return ingest(self.repo, feed, parsed)
            except GatorError as e:
                logger.error(f"Failed to ingest {feed.url}: {e}")
                return False
        except Exception:
            logger.exception(f"Unexpected error processing {feed.url}")
            return False
        finally:
            self._transition(feed.id, FeedState.IDLE)
