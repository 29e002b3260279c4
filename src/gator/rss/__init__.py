"""Remote feed fetching."""

from .client import FeedFetcher, FeedItem, ParsedFeed

__all__ = ["FeedFetcher", "FeedItem", "ParsedFeed"]
