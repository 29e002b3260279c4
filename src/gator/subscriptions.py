"""Follow/unfollow orchestration over the repository."""

from typing import List, Tuple

from .database.models import Feed, FeedFollow
from .database.repository import FeedRepository
from .logging import get_logger

logger = get_logger(__name__)


class SubscriptionManager:
    """Manages which feeds a user follows."""

    def __init__(self, repo: FeedRepository):
        self.repo = repo

    def add_feed(self, user_id: str, name: str, url: str) -> Tuple[Feed, FeedFollow]:
        """Register a feed and subscribe its creator atomically."""
        return self.repo.create_feed_with_follow(name, url, user_id)

    def follow(self, user_id: str, url: str) -> FeedFollow:
        feed = self.repo.get_feed_by_url(url)
        follow = self.repo.create_follow(user_id, feed.id)
        logger.info(f"User {user_id[:8]} now follows {url}")
        return follow

    def unfollow(self, user_id: str, url: str) -> Feed:
        feed = self.repo.get_feed_by_url(url)
        self.repo.delete_follow(user_id, feed.id)
        logger.info(f"User {user_id[:8]} unfollowed {url}")
        return feed

    def following(self, user_id: str) -> List[Tuple[str, str]]:
        return self.repo.list_follows_for_user(user_id)
