"""Database models for gator.

Users follow feeds through the feed_follows join table; posts are ingested
per feed and deduplicated on (feed_id, url).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    Text,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Registered user."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=_utc_now, nullable=False)
    updated_at = Column(DateTime, default=_utc_now, onupdate=_utc_now, nullable=False)

    feeds = relationship("Feed", back_populates="owner", cascade="all, delete-orphan")
    follows = relationship("FeedFollow", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(name={self.name})>"


class Feed(Base):
    """RSS/Atom feed added by a user."""

    __tablename__ = "feeds"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    url = Column(String(2000), unique=True, nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    last_fetched_at = Column(DateTime)
    created_at = Column(DateTime, default=_utc_now, nullable=False)
    updated_at = Column(DateTime, default=_utc_now, onupdate=_utc_now, nullable=False)

    owner = relationship("User", back_populates="feeds")
    follows = relationship("FeedFollow", back_populates="feed", cascade="all, delete-orphan")
    posts = relationship("Post", back_populates="feed", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_feeds_last_fetched', 'last_fetched_at'),
    )

    def __repr__(self):
        return f"<Feed(name={self.name}, url={self.url[:50]})>"


class FeedFollow(Base):
    """Subscription linking one user to one feed."""

    __tablename__ = "feed_follows"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    feed_id = Column(String(36), ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=_utc_now, nullable=False)
    updated_at = Column(DateTime, default=_utc_now, onupdate=_utc_now, nullable=False)

    user = relationship("User", back_populates="follows")
    feed = relationship("Feed", back_populates="follows")

    __table_args__ = (
        UniqueConstraint('user_id', 'feed_id', name='uq_feed_follows_user_feed'),
    )

    def __repr__(self):
        return f"<FeedFollow(user_id={self.user_id[:8]}, feed_id={self.feed_id[:8]})>"


class Post(Base):
    """Post ingested from a feed."""

    __tablename__ = "posts"

    id = Column(String(36), primary_key=True, default=_new_id)
    feed_id = Column(String(36), ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(1000))
    url = Column(String(2000), nullable=False)
    description = Column(Text)
    published_at = Column(DateTime)
    created_at = Column(DateTime, default=_utc_now, nullable=False)
    updated_at = Column(DateTime, default=_utc_now, nullable=False)

    feed = relationship("Feed", back_populates="posts")

    __table_args__ = (
        UniqueConstraint('feed_id', 'url', name='uq_posts_feed_url'),
        Index('idx_posts_published_at', 'published_at'),
    )

    def __repr__(self):
        return f"<Post(url={self.url[:50]})>"
