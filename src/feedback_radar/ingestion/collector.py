import asyncio
import logging
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field
from ..models.raw_item import RawItem
from ..errors import JobCancelledError
from .base import ContentSource

logger = logging.getLogger(__name__)

StopReason = Literal["limit", "date_boundary", "exhausted"]


class CollectionResult(BaseModel):
    items: List[RawItem] = Field(default_factory=list)
    posts_examined: int = 0
    pages_fetched: int = 0
    stop_reason: StopReason = "exhausted"


class ContentCollector:
    """Walks a newest-first listing and keeps the posts inside a date window."""

    def __init__(self, source: ContentSource):
        self.source = source

    async def collect(
        self,
        channel: str,
        start: datetime,
        end: datetime,
        max_items: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[RawItem]:
        result = await self.run(channel, start, end, max_items, cancel_event)
        return result.items

    async def run(
        self,
        channel: str,
        start: datetime,
        end: datetime,
        max_items: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CollectionResult:
        """
        Collect up to max_items posts created in [start, end].

        Pagination stops hard at the first post older than start: the listing
        is newest-first so nothing after it can qualify.

        Raises:
            JobCancelledError: if cancel_event is set before a page is requested
            SyncError subclasses from the source
        """
        result = CollectionResult()
        if max_items <= 0:
            result.stop_reason = "limit"
            return result

        seen: set[str] = set()
        cursor: Optional[str] = None

        logger.info(f"Fetching posts from r/{channel} between {start.isoformat()} and {end.isoformat()}")

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise JobCancelledError(f"Sync for r/{channel} was cancelled after {result.pages_fetched} pages")

            page = await self.source.fetch_page(channel, cursor)
            result.pages_fetched += 1

            if not page.items:
                logger.info("No more posts available")
                result.stop_reason = "exhausted"
                break

            for item in page.items:
                result.posts_examined += 1

                if item.created_at < start:
                    logger.info(f"Reached posts older than start date ({item.created_at.isoformat()})")
                    result.stop_reason = "date_boundary"
                    return self._finish(result, channel)

                if item.created_at > end or not item.is_text_post:
                    continue
                if item.external_id in seen:
                    continue

                seen.add(item.external_id)
                result.items.append(item)

                if len(result.items) >= max_items:
                    logger.info(f"Reached maximum post limit ({max_items})")
                    result.stop_reason = "limit"
                    return self._finish(result, channel)

            cursor = page.next_cursor
            if not cursor:
                logger.info("No more pages available")
                result.stop_reason = "exhausted"
                break

            logger.info(f"Page {result.pages_fetched} done, collected {len(result.items)} posts so far...")

        return self._finish(result, channel)

    def _finish(self, result: CollectionResult, channel: str) -> CollectionResult:
        logger.info(
            f"📡 Collected {len(result.items)} posts from r/{channel} "
            f"({result.posts_examined} examined, {result.pages_fetched} pages, stop={result.stop_reason})"
        )
        return result
