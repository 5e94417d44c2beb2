"""Test the suggestion and snapshot jobs against a fake Redis."""
import json
import pytest
import fakeredis.aioredis
from datetime import timedelta

from feedback_radar.agents.suggestion_scorer import SuggestionScorer
from feedback_radar.config import ScoringPolicy
from feedback_radar.models.suggestion import ExistingWorkItem
from feedback_radar.orchestration.snapshots import collect_engagement_snapshots
from feedback_radar.orchestration.suggestion_job import SuggestionJob, select_pool
from feedback_radar.persistence.redis_store import RedisFeedbackStore
from feedback_radar.utils.logging import JobAuditLogger
from tests.fixtures.feedback import NOW, make_stored_item


@pytest.fixture
def store():
    return RedisFeedbackStore(client=fakeredis.aioredis.FakeRedis(decode_responses=True))


@pytest.fixture
def feedback():
    return [
        make_stored_item("a", "App crashes on startup", engagement=300, key_points=["Fix crash on startup"]),
        make_stored_item("b", "Crashes on startup after update", engagement=250, key_points=["Fix startup crash"]),
        make_stored_item("c", "Please add dark mode", engagement=40, key_points=["Add dark mode option"]),
        make_stored_item("d", "Dark mode for the editor", engagement=30, key_points=["Add dark mode to editor"]),
    ]


class TestSelectPool:

    def test_union_of_recent_all_time_and_discussed(self):
        items = [
            make_stored_item("old", "Old favourite", created_at=NOW - timedelta(days=60), engagement=500, discussion_count=0),
            make_stored_item("new", "New and liked", created_at=NOW - timedelta(days=2), engagement=50, discussion_count=0),
            make_stored_item("chat", "Long thread", created_at=NOW - timedelta(days=3), engagement=10, discussion_count=40),
            make_stored_item("quiet", "Nobody cares", created_at=NOW - timedelta(days=90), engagement=5, discussion_count=5),
        ]
        pool = select_pool(items, NOW, recent_days=7, recent_top=1, all_time_top=1, discussed_top=1, min_comments=10)
        assert [i.external_id for i in pool] == ["new", "old", "chat"]

    def test_items_in_several_lists_appear_once(self, feedback):
        pool = select_pool(feedback, NOW, recent_top=10, all_time_top=10, discussed_top=10, min_comments=0)
        ids = [i.id for i in pool]
        assert len(ids) == len(set(ids)) == 4

    def test_discussed_requires_min_comments(self):
        items = [make_stored_item("x", "Few comments", created_at=NOW - timedelta(days=60), discussion_count=3)]
        assert select_pool(items, NOW, recent_top=0, all_time_top=0, discussed_top=5, min_comments=10) == []

    def test_empty(self):
        assert select_pool([], NOW) == []


@pytest.mark.asyncio
class TestSuggestionJob:

    async def test_generates_and_stores_suggestions(self, store, feedback):
        await store.upsert_items(feedback)
        suggestions = await SuggestionJob(store, SuggestionScorer(policy=ScoringPolicy())).run(NOW)

        assert [s.theme for s in suggestions] == ["Bug", "UX"]
        stored = await store.list_suggestions()
        assert [s.id for s in stored] == [s.id for s in suggestions]

    async def test_rerun_keeps_ids_and_creation_time(self, store, feedback):
        await store.upsert_items(feedback)
        job = SuggestionJob(store, SuggestionScorer(policy=ScoringPolicy()))

        first = await job.run(NOW)
        second = await job.run(NOW + timedelta(hours=1))

        assert [s.id for s in second] == [s.id for s in first]
        assert all(s.created_at == NOW for s in second)
        assert len(await store.list_suggestions()) == len(first)

    async def test_open_ticket_suppresses_theme(self, store, feedback):
        await store.upsert_items(feedback)
        await store.add_work_item(ExistingWorkItem(title="App crashes on startup", theme="Bug", status="open"))

        suggestions = await SuggestionJob(store, SuggestionScorer(policy=ScoringPolicy())).run(NOW)
        assert [s.theme for s in suggestions] == ["UX"]

    async def test_empty_store(self, store):
        assert await SuggestionJob(store).run(NOW) == []
        assert await store.list_suggestions() == []

    async def test_audit_event(self, store, feedback, tmp_path):
        await store.upsert_items(feedback)
        audit = JobAuditLogger("suggestions-test", log_dir=str(tmp_path))
        await SuggestionJob(store, SuggestionScorer(policy=ScoringPolicy()), audit=audit).run(NOW)

        events = [json.loads(line) for line in (tmp_path / "audit.jsonl").read_text().splitlines()]
        assert events[-1]["event_type"] == "SUGGESTIONS_GENERATED"
        assert events[-1]["pool_size"] == 4
        assert events[-1]["suggestions"] == 2


@pytest.mark.asyncio
class TestCollectSnapshots:

    async def test_snapshots_recent_items_only(self, store):
        await store.upsert_items([
            make_stored_item("fresh", "Fresh", created_at=NOW - timedelta(days=2), engagement=42, discussion_count=7),
            make_stored_item("stale", "Stale", created_at=NOW - timedelta(days=30)),
        ])

        written = await collect_engagement_snapshots(store, now=NOW, lookback_days=7)

        assert written == 1
        snapshots = await store.list_snapshots()
        assert [(s.item_id, s.engagement, s.discussion_count, s.taken_at) for s in snapshots] == [
            ("widgets:fresh", 42, 7, NOW),
        ]

    async def test_repeated_runs_append(self, store):
        await store.upsert_items([make_stored_item("fresh", "Fresh")])
        await collect_engagement_snapshots(store, now=NOW - timedelta(hours=24), lookback_days=7)
        await collect_engagement_snapshots(store, now=NOW, lookback_days=7)

        assert len(await store.list_snapshots(item_ids=["widgets:fresh"])) == 2

    async def test_nothing_to_snapshot(self, store):
        assert await collect_engagement_snapshots(store, now=NOW, lookback_days=7) == 0
