"""Store the items of a fetched feed and advance its watermark."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..database.models import Feed
from ..database.repository import FeedRepository
from ..logging import get_logger
from ..rss.client import ParsedFeed

logger = get_logger(__name__)


@dataclass
class IngestResult:
    """Outcome of one ingestion.

    skipped counts every item not inserted; invalid is the subset that had no link.
    """
    inserted: int = 0
    skipped: int = 0
    invalid: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.skipped


def ingest(
    repo: FeedRepository,
    feed: Feed,
    parsed: ParsedFeed,
    now: Optional[datetime] = None,
) -> IngestResult:
    """Insert new posts from a parsed feed.

    Items without a link are skipped without aborting the batch. The feed is
    marked fetched exactly once, after all items, even when nothing was stored.

    Raises:
        StoreError: If the store fails; the watermark is left untouched
    """
    result = IngestResult()

    for item in parsed.items:
        if not (item.link or '').strip():
            logger.warning(f"Skipping item without link in {feed.url}: {item.title or 'untitled'}")
            result.invalid += 1
            result.skipped += 1
            continue

        _, inserted = repo.insert_post_if_new(feed.id, item)
        if inserted:
            result.inserted += 1
        else:
            result.skipped += 1

    repo.mark_fetched(feed.id, now or datetime.now(timezone.utc))

    logger.info(
        f"Ingested {feed.name}: {result.inserted} new, {result.skipped} skipped "
        f"({result.invalid} invalid)"
    )
    return result
