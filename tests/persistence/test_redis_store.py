"""Test the Redis-backed feedback store."""
import pytest
import fakeredis.aioredis
import redis.asyncio as redis
from datetime import timedelta
from unittest.mock import AsyncMock, patch

from feedback_radar.errors import PersistenceError
from feedback_radar.models.feedback_item import EngagementSnapshot
from feedback_radar.models.suggestion import ExistingWorkItem, Suggestion
from feedback_radar.persistence.redis_store import RedisFeedbackStore
from tests.fixtures.feedback import NOW, make_stored_item


@pytest.fixture
def mock_redis():
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def store(mock_redis):
    return RedisFeedbackStore(client=mock_redis)


def make_suggestion(sid: str, impact: int, status: str = "pending") -> Suggestion:
    return Suggestion(
        id=sid,
        title=f"[r/widgets] Suggestion {sid}",
        description="1 mention",
        theme="Bug",
        priority="medium",
        impact_score=impact,
        source_refs=["widgets:a"],
        status=status,
    )


@pytest.mark.asyncio
class TestFeedbackItems:

    async def test_upsert_is_idempotent(self, store):
        item = make_stored_item("a", "Export broken")
        assert await store.upsert_items([item]) == 1
        assert await store.upsert_items([item]) == 1

        items = await store.list_items()
        assert len(items) == 1
        assert items[0] == item

    async def test_upsert_replaces_by_id(self, store):
        await store.upsert_items([make_stored_item("a", "Export broken", engagement=5)])
        await store.upsert_items([make_stored_item("a", "Export broken", engagement=50)])

        items = await store.list_items()
        assert [i.engagement for i in items] == [50]

    async def test_same_external_id_in_two_channels(self, store):
        await store.upsert_items([
            make_stored_item("a", "One", channel="widgets"),
            make_stored_item("a", "Two", channel="gadgets"),
        ])
        assert len(await store.list_items()) == 2
        assert [i.title for i in await store.list_items(channel="gadgets")] == ["Two"]

    async def test_filters_and_orders_newest_first(self, store):
        await store.upsert_items([
            make_stored_item("old", "Old", created_at=NOW - timedelta(days=20)),
            make_stored_item("new", "New", created_at=NOW - timedelta(days=1)),
            make_stored_item("mid", "Mid", created_at=NOW - timedelta(days=5)),
        ])
        assert [i.external_id for i in await store.list_items()] == ["new", "mid", "old"]
        assert [i.external_id for i in await store.list_items(since=NOW - timedelta(days=7))] == ["new", "mid"]

    async def test_empty_upsert(self, store):
        assert await store.upsert_items([]) == 0

    async def test_redis_errors_become_persistence_errors(self, store, mock_redis):
        with patch.object(mock_redis, "hgetall", AsyncMock(side_effect=redis.ConnectionError("down"))):
            with pytest.raises(PersistenceError):
                await store.list_items()


@pytest.mark.asyncio
class TestSnapshots:

    async def test_append_only(self, store):
        first = EngagementSnapshot(item_id="widgets:a", engagement=10, discussion_count=1, taken_at=NOW - timedelta(hours=30))
        second = EngagementSnapshot(item_id="widgets:a", engagement=15, discussion_count=2, taken_at=NOW)
        await store.add_snapshots([first])
        await store.add_snapshots([second])

        snapshots = await store.list_snapshots()
        assert snapshots == [first, second]

    async def test_filter_by_item_and_time(self, store):
        await store.add_snapshots([
            EngagementSnapshot(item_id="widgets:a", engagement=1, taken_at=NOW - timedelta(hours=72)),
            EngagementSnapshot(item_id="widgets:a", engagement=2, taken_at=NOW - timedelta(hours=1)),
            EngagementSnapshot(item_id="widgets:b", engagement=3, taken_at=NOW - timedelta(hours=1)),
        ])
        recent = await store.list_snapshots(item_ids=["widgets:a"], since=NOW - timedelta(hours=48))
        assert [s.engagement for s in recent] == [2]


@pytest.mark.asyncio
class TestWorkItems:

    async def test_existing_work_includes_tickets_and_suggestions(self, store):
        await store.add_work_item(ExistingWorkItem(title="Fix export", theme="Bug", status="open"))
        await store.save_suggestions([make_suggestion("s1", 60)])

        work = await store.list_existing_work()
        kinds = sorted(w.kind for w in work)
        assert kinds == ["suggestion", "ticket"]
        ticket = next(w for w in work if w.kind == "ticket")
        assert ticket.id

    async def test_suggestions_upsert_and_order(self, store):
        await store.save_suggestions([make_suggestion("s1", 40), make_suggestion("s2", 90)])
        await store.save_suggestions([make_suggestion("s1", 40)])

        suggestions = await store.list_suggestions()
        assert [s.id for s in suggestions] == ["s2", "s1"]

    async def test_filter_by_status(self, store):
        await store.save_suggestions([make_suggestion("s1", 40), make_suggestion("s2", 90, status="approved")])
        assert [s.id for s in await store.list_suggestions(status="pending")] == ["s1"]


@pytest.mark.asyncio
async def test_connect_uses_redis_url(mock_redis):
    with patch("feedback_radar.persistence.redis_store.redis.from_url", return_value=mock_redis) as from_url:
        store = RedisFeedbackStore(redis_url="redis://example:6379/2")
        await store.upsert_items([make_stored_item("a", "Lazy connect")])

        from_url.assert_called_once_with("redis://example:6379/2", decode_responses=True)
        assert len(await store.list_items()) == 1
        await store.close()
