import redis.asyncio as redis
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, cast
import logging
import uuid

from ..errors import PersistenceError
from ..models.feedback_item import EngagementSnapshot, StoredFeedbackItem
from ..models.suggestion import ExistingWorkItem, Suggestion
from ..config import settings
from .store import FeedbackStore

logger = logging.getLogger(__name__)

ITEMS_KEY = "feedback:items"
CHANNEL_KEY = "feedback:channel:{channel}"
SNAPSHOTS_KEY = "feedback:snapshots:{item_id}"
SNAPSHOT_INDEX_KEY = "feedback:snapshot_index"
TICKETS_KEY = "work:tickets"
SUGGESTIONS_KEY = "work:suggestions"


class RedisFeedbackStore(FeedbackStore):
    """FeedbackStore on Redis hashes (documents) and sorted sets (snapshots)."""

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url or settings.redis_url
        self.client: Optional[redis.Redis] = client

    async def connect(self) -> None:
        self.client = redis.from_url(self.redis_url, decode_responses=True)  # type: ignore[no-untyped-call]
        logger.info(f"Connected to Redis at {self.redis_url}")

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()

    async def _redis(self) -> redis.Redis:
        if not self.client:
            await self.connect()
        return cast(redis.Redis, self.client)

    async def upsert_items(self, items: Sequence[StoredFeedbackItem]) -> int:
        if not items:
            return 0
        cl = await self._redis()
        try:
            async with cl.pipeline(transaction=True) as pipe:
                for item in items:
                    pipe.hset(ITEMS_KEY, item.id, item.model_dump_json())
                    pipe.sadd(CHANNEL_KEY.format(channel=item.channel), item.id)
                await pipe.execute()
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to store {len(items)} feedback items: {e}") from e
        return len(items)

    async def list_items(
        self,
        channel: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[StoredFeedbackItem]:
        cl = await self._redis()
        try:
            if channel:
                ids = sorted(await cl.smembers(CHANNEL_KEY.format(channel=channel)))
                raw = await cl.hmget(ITEMS_KEY, ids) if ids else []
            else:
                raw = list((await cl.hgetall(ITEMS_KEY)).values())
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to read feedback items: {e}") from e

        items = [StoredFeedbackItem.model_validate_json(doc) for doc in raw if doc]
        if since is not None:
            items = [item for item in items if item.created_at >= since]
        return sorted(items, key=lambda item: (item.created_at, item.id), reverse=True)

    async def add_snapshots(self, snapshots: Iterable[EngagementSnapshot]) -> int:
        snapshots = list(snapshots)
        if not snapshots:
            return 0
        cl = await self._redis()
        try:
            async with cl.pipeline(transaction=True) as pipe:
                for snap in snapshots:
                    pipe.zadd(
                        SNAPSHOTS_KEY.format(item_id=snap.item_id),
                        {snap.model_dump_json(): snap.taken_at.timestamp()},
                    )
                    pipe.sadd(SNAPSHOT_INDEX_KEY, snap.item_id)
                await pipe.execute()
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to append {len(snapshots)} snapshots: {e}") from e
        return len(snapshots)

    async def list_snapshots(
        self,
        item_ids: Optional[Iterable[str]] = None,
        since: Optional[datetime] = None,
    ) -> List[EngagementSnapshot]:
        cl = await self._redis()
        min_score = since.timestamp() if since is not None else "-inf"
        try:
            ids = sorted(item_ids) if item_ids is not None else sorted(await cl.smembers(SNAPSHOT_INDEX_KEY))
            snapshots = []
            for item_id in ids:
                members = await cl.zrangebyscore(SNAPSHOTS_KEY.format(item_id=item_id), min_score, "+inf")
                snapshots.extend(EngagementSnapshot.model_validate_json(m) for m in members)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to read snapshots: {e}") from e
        return snapshots

    async def add_work_item(self, item: ExistingWorkItem) -> None:
        cl = await self._redis()
        stored = item.model_copy(update={"id": item.id or uuid.uuid4().hex, "kind": "ticket"})
        try:
            await cl.hset(TICKETS_KEY, cast(str, stored.id), stored.model_dump_json())
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to store work item: {e}") from e

    async def list_existing_work(self) -> List[ExistingWorkItem]:
        cl = await self._redis()
        try:
            tickets = await cl.hgetall(TICKETS_KEY)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to read work items: {e}") from e

        work = [ExistingWorkItem.model_validate_json(doc) for doc in tickets.values()]
        for suggestion in await self.list_suggestions():
            work.append(ExistingWorkItem(
                id=suggestion.id,
                title=suggestion.title,
                theme=suggestion.theme,
                status=suggestion.status,
                kind="suggestion",
                source_refs=suggestion.source_refs,
            ))
        return work

    async def save_suggestions(self, suggestions: Sequence[Suggestion]) -> int:
        if not suggestions:
            return 0
        cl = await self._redis()
        try:
            async with cl.pipeline(transaction=True) as pipe:
                for suggestion in suggestions:
                    pipe.hset(SUGGESTIONS_KEY, suggestion.id, suggestion.model_dump_json())
                await pipe.execute()
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to store {len(suggestions)} suggestions: {e}") from e
        return len(suggestions)

    async def list_suggestions(self, status: Optional[str] = None) -> List[Suggestion]:
        cl = await self._redis()
        try:
            raw = await cl.hgetall(SUGGESTIONS_KEY)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to read suggestions: {e}") from e

        suggestions = [Suggestion.model_validate_json(doc) for doc in raw.values()]
        if status is not None:
            suggestions = [s for s in suggestions if s.status == status]
        return sorted(suggestions, key=lambda s: (-s.impact_score, -s.velocity_score, s.id))
