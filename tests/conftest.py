"""Shared fixtures for gator tests."""

import os
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock
from sqlalchemy import create_engine

# Keep the developer's real config and database out of the tests
os.environ.pop('GATOR_DB_URL', None)
os.environ.pop('GATOR_CONFIG', None)

from gator.config import Config
from gator.database.repository import FeedRepository
from gator.rss.client import FeedItem, ParsedFeed


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def repo():
    """Repository on an in-memory SQLite database."""
    return FeedRepository(create_engine("sqlite:///:memory:"))


@pytest.fixture
def alice(repo):
    return repo.create_user("alice")


@pytest.fixture
def bob(repo):
    return repo.create_user("bob")


@pytest.fixture
def blog_feed(repo, alice):
    """Feed owned and followed by alice."""
    feed, _ = repo.create_feed_with_follow("Blog", "http://example.com/feed.xml", alice.id)
    return feed


# =============================================================================
# Config Fixtures
# =============================================================================

@pytest.fixture
def config(tmp_path):
    """Config backed by a temporary file."""
    return Config(db_url="sqlite://", path=tmp_path / "gatorconfig.json")


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def mock_requests_session():
    """Mocked requests session for the fetcher."""
    mock = MagicMock()
    mock.headers = {}
    return mock


@pytest.fixture
def sample_items():
    return [
        FeedItem(
            title="First Post",
            link="http://example.com/posts/1",
            description="The first post",
            published_at=datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
        ),
        FeedItem(
            title="Second Post",
            link="http://example.com/posts/2",
            description="The second post",
            published_at=None,
        ),
    ]


@pytest.fixture
def sample_parsed_feed(sample_items):
    return ParsedFeed(
        title="Example Blog",
        link="http://example.com",
        description="An example blog",
        items=sample_items,
    )


@pytest.fixture
def sample_rss_xml():
    """RSS 2.0 document with three items."""
    return b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Tom &amp; Jerry's Blog</title>
    <link>http://example.com</link>
    <description>Posts about cats &amp; mice</description>
    <item>
      <title>First &amp; Foremost</title>
      <link>http://example.com/posts/1</link>
      <description>&lt;p&gt;Hello &amp;amp; welcome&lt;/p&gt;</description>
      <pubDate>Mon, 15 Jan 2024 12:00:00 GMT</pubDate>
    </item>
    <item>
      <title>No Date</title>
      <link>http://example.com/posts/2</link>
      <description>Undated post</description>
    </item>
    <item>
      <title>Bad Date</title>
      <link>http://example.com/posts/3</link>
      <description>Post with an unparsable date</description>
      <pubDate>unknown</pubDate>
    </item>
  </channel>
</rss>"""
