"""Recurring aggregation of due feeds."""

from .jobs import AggregationScheduler, FeedState, parse_interval

__all__ = ["AggregationScheduler", "FeedState", "parse_interval"]
