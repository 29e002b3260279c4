"""Gator database repository.

Every operation runs in its own session and returns detached rows. Uniqueness
and referential integrity are enforced by the database: IntegrityError
surfaces as Conflict, any other SQLAlchemy failure as StoreError.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from ..errors import Conflict, GatorError, NotFound, StoreError, ValidationError
from ..logging import get_logger
from .engine import enable_sqlite_foreign_keys
from .models import Base, User, Feed, FeedFollow, Post

logger = get_logger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to UTC; naive values are taken as UTC already.

    Timestamp columns carry no offset, so every stored value must be UTC.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)


class FeedRepository:
    """Repository for users, feeds, follows and posts."""

    def __init__(self, engine: Engine):
        """Initialize repository and create tables.

        Args:
            engine: SQLAlchemy engine (see create_database_engine())
        """
        self.engine = engine
        enable_sqlite_foreign_keys(engine)
        self.Session = sessionmaker(bind=engine)

        try:
            Base.metadata.create_all(engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not initialize database: {e}") from e

        logger.debug("Database repository initialized")

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.Session()

    @contextmanager
    def _transaction(self, conflict_message: str = None) -> Iterator[Session]:
        """Session scope that commits on success and maps database errors.

        Args:
            conflict_message: Message for the Conflict raised on IntegrityError
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise Conflict(conflict_message or f"Constraint violated: {e.orig}") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Database error: {e}") from e
        except GatorError:
            session.rollback()
            raise
        finally:
            session.close()

    # ==================== Users ====================

    def create_user(self, name: str) -> User:
        with self._transaction(f"User already exists: {name}") as session:
            user = User(name=name)
            session.add(user)
            session.flush()
            session.expunge(user)
        logger.info(f"Created user {name}")
        return user

    def get_user(self, name: str) -> User:
        with self._transaction() as session:
            user = session.query(User).filter_by(name=name).first()
            if not user:
                raise NotFound(f"User does not exist: {name}")
            session.expunge(user)
            return user

    def get_user_by_id(self, user_id: str) -> User:
        with self._transaction() as session:
            user = session.get(User, user_id)
            if not user:
                raise NotFound(f"User does not exist: {user_id}")
            session.expunge(user)
            return user

    def list_users(self) -> List[User]:
        with self._transaction() as session:
            users = session.query(User).order_by(User.name).all()
            for user in users:
                session.expunge(user)
            return users

    def reset(self) -> None:
        """Delete every post, follow, feed and user."""
        with self._transaction() as session:
            for model in (Post, FeedFollow, Feed, User):
                session.query(model).delete(synchronize_session=False)
        logger.warning("Database reset: all users, feeds, follows and posts deleted")

    # ==================== Feeds ====================

    def create_feed(self, name: str, url: str, owner_id: str) -> Feed:
        with self._transaction(f"Feed already registered: {url}") as session:
            feed = self._add_feed(session, name, url, owner_id)
            session.expunge(feed)
        logger.info(f"Created feed {name} ({url})")
        return feed

    def create_feed_with_follow(self, name: str, url: str, owner_id: str) -> Tuple[Feed, FeedFollow]:
        """Create a feed and subscribe its owner in one transaction.

        Either both rows are written or neither is.
        """
        with self._transaction(f"Feed already registered: {url}") as session:
            feed = self._add_feed(session, name, url, owner_id)
            follow = FeedFollow(user_id=owner_id, feed_id=feed.id)
            session.add(follow)
            session.flush()
            session.expunge(feed)
            session.expunge(follow)
        logger.info(f"Created feed {name} ({url}) followed by its owner")
        return feed, follow

    def _add_feed(self, session: Session, name: str, url: str, owner_id: str) -> Feed:
        if session.get(User, owner_id) is None:
            raise NotFound(f"User does not exist: {owner_id}")
        feed = Feed(name=name, url=url, user_id=owner_id)
        session.add(feed)
        session.flush()
        return feed

    def get_feed_by_url(self, url: str) -> Feed:
        with self._transaction() as session:
            feed = session.query(Feed).filter_by(url=url).first()
            if not feed:
                raise NotFound(f"Feed does not exist: {url}")
            session.expunge(feed)
            return feed

    def get_feed_by_id(self, feed_id: str) -> Feed:
        with self._transaction() as session:
            feed = session.get(Feed, feed_id)
            if not feed:
                raise NotFound(f"Feed does not exist: {feed_id}")
            session.expunge(feed)
            return feed

    def list_feeds(self) -> List[Tuple[Feed, str]]:
        """All feeds with their owner's name, ordered by feed name."""
        with self._transaction() as session:
            rows = (
                session.query(Feed, User.name)
                .join(User, Feed.user_id == User.id)
                .order_by(Feed.name, Feed.url)
                .all()
            )
            result = []
            for feed, owner_name in rows:
                session.expunge(feed)
                result.append((feed, owner_name))
            return result

    def list_feeds_due_for_fetch(self, limit: int) -> List[Feed]:
        """Least recently fetched feeds first; never-fetched feeds lead."""
        if limit < 1:
            return []
        with self._transaction() as session:
            feeds = (
                session.query(Feed)
                .order_by(Feed.last_fetched_at.asc().nulls_first(), Feed.created_at, Feed.id)
                .limit(limit)
                .all()
            )
            for feed in feeds:
                session.expunge(feed)
            return feeds

    def mark_fetched(self, feed_id: str, fetched_at: Optional[datetime] = None) -> None:
        """Advance a feed's last-fetched watermark."""
        fetched_at = _as_utc(fetched_at) or datetime.now(timezone.utc)
        with self._transaction() as session:
            feed = session.get(Feed, feed_id)
            if not feed:
                raise NotFound(f"Feed does not exist: {feed_id}")
            feed.last_fetched_at = fetched_at
            feed.updated_at = datetime.now(timezone.utc)

    def delete_feed(self, feed_id: str) -> None:
        """Delete a feed together with its follows and posts."""
        with self._transaction() as session:
            feed = session.get(Feed, feed_id)
            if not feed:
                raise NotFound(f"Feed does not exist: {feed_id}")
            session.delete(feed)
        logger.info(f"Deleted feed {feed_id} with its follows and posts")

    # ==================== Follows ====================

    def create_follow(self, user_id: str, feed_id: str) -> FeedFollow:
        with self._transaction("Already following this feed") as session:
            if session.get(User, user_id) is None:
                raise NotFound(f"User does not exist: {user_id}")
            if session.get(Feed, feed_id) is None:
                raise NotFound(f"Feed does not exist: {feed_id}")
            follow = FeedFollow(user_id=user_id, feed_id=feed_id)
            session.add(follow)
            session.flush()
            session.expunge(follow)
        return follow

    def delete_follow(self, user_id: str, feed_id: str) -> None:
        with self._transaction() as session:
            follow = session.query(FeedFollow).filter_by(user_id=user_id, feed_id=feed_id).first()
            if not follow:
                raise NotFound("Not following this feed")
            session.delete(follow)

    def list_follows_for_user(self, user_id: str) -> List[Tuple[str, str]]:
        """(feed name, feed url) for every feed the user follows."""
        with self._transaction() as session:
            rows = (
                session.query(Feed.name, Feed.url)
                .join(FeedFollow, FeedFollow.feed_id == Feed.id)
                .filter(FeedFollow.user_id == user_id)
                .order_by(Feed.name, Feed.url)
                .all()
            )
            return [(name, url) for name, url in rows]

    # ==================== Posts ====================

    def insert_post_if_new(self, feed_id: str, item) -> Tuple[Post, bool]:
        """Store a feed item unless (feed_id, link) is already present.

        Args:
            feed_id: Owning feed
            item: Object with link, title, description and published_at

        Returns:
            (post, inserted) where post is the existing row when inserted is False

        Raises:
            ValidationError: If the item has no link
        """
        link = (getattr(item, 'link', None) or '').strip()
        if not link:
            raise ValidationError("Post has no link")

        try:
            with self._transaction(f"Post already stored: {link}") as session:
                existing = session.query(Post).filter_by(feed_id=feed_id, url=link).first()
                if existing:
                    session.expunge(existing)
                    return existing, False

                if session.get(Feed, feed_id) is None:
                    raise NotFound(f"Feed does not exist: {feed_id}")

                post = Post(
                    feed_id=feed_id,
                    url=link,
                    title=getattr(item, 'title', None),
                    description=getattr(item, 'description', None),
                    published_at=_as_utc(getattr(item, 'published_at', None)),
                )
                session.add(post)
                session.flush()
                session.expunge(post)
                return post, True
        except Conflict:
            # A concurrent writer stored the same post first
            with self._transaction() as session:
                existing = session.query(Post).filter_by(feed_id=feed_id, url=link).first()
                if not existing:
                    raise
                session.expunge(existing)
                return existing, False

    def list_posts_for_user(self, user_id: str, limit: int = 2) -> List[Tuple[Post, str]]:
        """Newest posts from the feeds a user follows, with the feed name."""
        if limit < 1:
            return []
        with self._transaction() as session:
            rows = (
                session.query(Post, Feed.name)
                .join(Feed, Post.feed_id == Feed.id)
                .join(FeedFollow, FeedFollow.feed_id == Feed.id)
                .filter(FeedFollow.user_id == user_id)
                .order_by(Post.published_at.desc().nulls_last(), Post.created_at.desc())
                .limit(limit)
                .all()
            )
            result = []
            for post, feed_name in rows:
                session.expunge(post)
                result.append((post, feed_name))
            return result
