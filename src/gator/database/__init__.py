"""Database models, engine and repository for gator."""

from .models import Base, User, Feed, FeedFollow, Post
from .engine import create_database_engine, enable_sqlite_foreign_keys
from .repository import FeedRepository

__all__ = [
    "Base",
    "User",
    "Feed",
    "FeedFollow",
    "Post",
    "create_database_engine",
    "enable_sqlite_foreign_keys",
    "FeedRepository",
]
