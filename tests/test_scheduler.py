"""Tests for the aggregation scheduler."""

import pytest
from dataclasses import dataclass
from unittest.mock import MagicMock, patch

from gator.database import FeedRepository, create_database_engine
from gator.errors import FetchError, StoreError, ValidationError
from gator.rss.client import FeedItem, ParsedFeed
from gator.scheduler.jobs import AggregationScheduler, FeedState, parse_interval


@dataclass
class MockFeed:
    """Mock feed record."""
    id: str
    url: str
    name: str = "Feed"


def _parsed(*links):
    return ParsedFeed(
        title="Feed",
        link="",
        description="",
        items=[FeedItem(f"Post {i}", link, "") for i, link in enumerate(links)],
    )


@pytest.fixture
def mock_repo():
    repo = MagicMock()
    repo.list_feeds_due_for_fetch.return_value = []
    repo.insert_post_if_new.return_value = (MagicMock(), True)
    return repo


@pytest.fixture
def mock_fetcher():
    return MagicMock()


@pytest.fixture
def scheduler(mock_repo, mock_fetcher):
    return AggregationScheduler(mock_repo, fetcher=mock_fetcher, interval_seconds=60, concurrency=2)


# =============================================================================
# Initialization Tests
# =============================================================================

class TestAggregationSchedulerInit:
    """Tests for AggregationScheduler initialization."""

    def test_init_with_defaults(self, mock_repo, monkeypatch):
        """Initializes with default settings."""
        for var in ('AGG_INTERVAL_SECONDS', 'AGG_CONCURRENCY', 'FETCH_TIMEOUT_SECONDS'):
            monkeypatch.delenv(var, raising=False)

        scheduler = AggregationScheduler(mock_repo)

        assert scheduler.repo is mock_repo
        assert scheduler.interval == 60
        assert scheduler.concurrency == 1
        assert scheduler.fetch_timeout == 10
        assert scheduler.fetcher.timeout == 10

    def test_init_from_env(self, mock_repo, monkeypatch):
        monkeypatch.setenv('AGG_INTERVAL_SECONDS', '30')
        monkeypatch.setenv('AGG_CONCURRENCY', '4')

        scheduler = AggregationScheduler(mock_repo)

        assert scheduler.interval == 30
        assert scheduler.concurrency == 4

    def test_rejects_bad_concurrency(self, mock_repo, monkeypatch):
        monkeypatch.setenv('AGG_CONCURRENCY', '0')
        with pytest.raises(ValidationError):
            AggregationScheduler(mock_repo)


class TestParseInterval:
    """Tests for interval parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("30s", 30),
        ("1m", 60),
        ("1h30m", 5400),
        ("500ms", 0.5),
        ("45", 45),
    ])
    def test_valid(self, value, expected):
        assert parse_interval(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["", "soon", "10x", "0s", "-5"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_interval(value)


# =============================================================================
# Start/Stop Tests
# =============================================================================

class TestAggregationSchedulerStartStop:
    """Tests for scheduler start/stop."""

    def test_start_adds_single_job(self, scheduler):
        """Start registers one non-overlapping interval job."""
        with patch.object(scheduler.scheduler, 'add_job') as mock_add, \
             patch.object(scheduler.scheduler, 'start') as mock_start:
            scheduler.start()

        mock_add.assert_called_once()
        kwargs = mock_add.call_args.kwargs
        assert kwargs['max_instances'] == 1
        assert kwargs['coalesce'] is True
        assert kwargs['next_run_time'] is not None
        mock_start.assert_called_once()

    def test_stop_shuts_down(self, scheduler):
        """Stop shuts down a running scheduler."""
        scheduler.scheduler = MagicMock(running=True)
        scheduler.stop()
        scheduler.scheduler.shutdown.assert_called_once_with(wait=False)


# =============================================================================
# Tick Tests
# =============================================================================

class TestRunTick:
    """Tests for run_tick."""

    def test_no_due_feeds(self, scheduler, mock_repo, mock_fetcher):
        """Returns zeros when there is nothing to fetch."""
        stats = scheduler.run_tick()

        assert stats['selected'] == 0
        assert stats['processed'] == 0
        mock_fetcher.fetch.assert_not_called()

    def test_selects_up_to_concurrency(self, scheduler, mock_repo):
        scheduler.run_tick()
        mock_repo.list_feeds_due_for_fetch.assert_called_once_with(2)

    def test_fetches_and_ingests(self, scheduler, mock_repo, mock_fetcher):
        """Successful fetches are ingested and marked fetched."""
        feed = MockFeed(id="feed-1", url="http://example.com/feed.xml")
        mock_repo.list_feeds_due_for_fetch.return_value = [feed]
        mock_fetcher.fetch.return_value = _parsed("http://example.com/1", "http://example.com/2")

        stats = scheduler.run_tick()

        assert stats['processed'] == 1
        assert stats['inserted'] == 2
        mock_fetcher.fetch.assert_called_once_with(feed.url, timeout=scheduler.fetch_timeout)
        mock_repo.mark_fetched.assert_called_once()

    def test_fetch_failure_keeps_feed_due(self, scheduler, mock_repo, mock_fetcher):
        """A failed fetch is skipped without advancing the watermark."""
        feed = MockFeed(id="feed-1", url="http://down.example.com/rss")
        mock_repo.list_feeds_due_for_fetch.return_value = [feed]
        mock_fetcher.fetch.side_effect = FetchError(feed.url, "connection refused")

        stats = scheduler.run_tick()

        assert stats['failed'] == 1
        assert stats['processed'] == 0
        mock_repo.mark_fetched.assert_not_called()
        assert scheduler.state_of(feed.id) is FeedState.IDLE

    def test_one_failure_does_not_abort_tick(self, scheduler, mock_repo, mock_fetcher):
        """Other feeds are processed when one fails."""
        bad = MockFeed(id="bad", url="http://bad.example.com/rss")
        good = MockFeed(id="good", url="http://good.example.com/rss")
        mock_repo.list_feeds_due_for_fetch.return_value = [bad, good]

        def fetch(url, timeout=None):
            if url == bad.url:
                raise FetchError(url, "timeout")
            return _parsed("http://good.example.com/1")

        mock_fetcher.fetch.side_effect = fetch

        stats = scheduler.run_tick()

        assert stats['failed'] == 1
        assert stats['processed'] == 1
        mock_repo.mark_fetched.assert_called_once()
        assert mock_repo.mark_fetched.call_args.args[0] == "good"

    def test_store_error_is_isolated(self, scheduler, mock_repo, mock_fetcher):
        """A store failure while ingesting one feed is logged, not raised."""
        mock_repo.list_feeds_due_for_fetch.return_value = [MockFeed(id="f", url="http://example.com/rss")]
        mock_repo.insert_post_if_new.side_effect = StoreError("disk full")
        mock_fetcher.fetch.return_value = _parsed("http://example.com/1")

        stats = scheduler.run_tick()

        assert stats['failed'] == 1

    def test_selection_error_returns_empty_stats(self, scheduler, mock_repo):
        mock_repo.list_feeds_due_for_fetch.side_effect = StoreError("connection lost")
        assert scheduler.run_tick()['selected'] == 0


class TestFeedState:
    """Tests for the per-feed state machine."""

    def test_state_transitions(self, scheduler, mock_repo, mock_fetcher):
        """A feed is FETCHING during fetch and INGESTING during ingest."""
        feed = MockFeed(id="feed-1", url="http://example.com/rss")
        seen = []

        def fetch(url, timeout=None):
            seen.append(scheduler.state_of(feed.id))
            return _parsed("http://example.com/1")

        def insert(feed_id, item):
            seen.append(scheduler.state_of(feed.id))
            return MagicMock(), True

        mock_fetcher.fetch.side_effect = fetch
        mock_repo.insert_post_if_new.side_effect = insert

        scheduler.process_feed(feed)

        assert seen == [FeedState.FETCHING, FeedState.INGESTING]
        assert scheduler.state_of(feed.id) is FeedState.IDLE

    def test_in_flight_feed_is_not_fetched_again(self, scheduler, mock_fetcher):
        """At most one fetch per feed is in flight."""
        feed = MockFeed(id="feed-1", url="http://example.com/rss")
        assert scheduler._claim(feed.id) is True

        assert scheduler.process_feed(feed) is None
        mock_fetcher.fetch.assert_not_called()
        assert scheduler.state_of(feed.id) is FeedState.FETCHING

    def test_unknown_feed_is_idle(self, scheduler):
        assert scheduler.state_of("never-seen") is FeedState.IDLE


# =============================================================================
# End-to-end Tick
# =============================================================================

class TestTickWithDatabase:
    """run_tick against a real SQLite database."""

    def test_least_recently_fetched_first(self, tmp_path, mock_fetcher):
        """A tick takes the stale feeds; the rest stay due for the next tick."""
        repo = FeedRepository(create_database_engine(f"sqlite:///{tmp_path / 'agg.db'}"))
        user = repo.create_user("alice")
        feeds = [
            repo.create_feed(f"Feed {i}", f"http://{i}.example.com/rss", user.id)
            for i in range(3)
        ]
        mock_fetcher.fetch.side_effect = lambda url, timeout=None: _parsed(f"{url}/post")

        scheduler = AggregationScheduler(repo, fetcher=mock_fetcher, interval_seconds=1, concurrency=2)
        stats = scheduler.run_tick()

        assert stats['processed'] == 2
        assert stats['inserted'] == 2
        first_tick = {c.args[0] for c in mock_fetcher.fetch.call_args_list}
        remaining = {f.url for f in feeds} - first_tick
        assert len(remaining) == 1
        assert repo.list_feeds_due_for_fetch(1)[0].url in remaining

        mock_fetcher.fetch.reset_mock()
        stats = scheduler.run_tick()

        second_tick = {c.args[0] for c in mock_fetcher.fetch.call_args_list}
        assert remaining <= second_tick
        assert stats['inserted'] == 1
