import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from ..agents.suggestion_scorer import SuggestionScorer
from ..config import settings
from ..models.feedback_item import StoredFeedbackItem
from ..models.suggestion import Suggestion
from ..persistence.store import FeedbackStore
from ..utils.logging import JobAuditLogger

logger = logging.getLogger(__name__)


def select_pool(
    items: Sequence[StoredFeedbackItem],
    now: datetime,
    recent_days: Optional[int] = None,
    recent_top: Optional[int] = None,
    all_time_top: Optional[int] = None,
    discussed_top: Optional[int] = None,
    min_comments: Optional[int] = None,
) -> List[StoredFeedbackItem]:
    """
    Candidate pool for suggestions, deduplicated by id:
    the most engaged recent items, the most engaged items overall, and the
    most discussed items with at least min_comments comments.
    """
    recent_days = recent_days if recent_days is not None else settings.pool_recent_days
    recent_top = recent_top if recent_top is not None else settings.pool_recent_top
    all_time_top = all_time_top if all_time_top is not None else settings.pool_all_time_top
    discussed_top = discussed_top if discussed_top is not None else settings.pool_discussed_top
    min_comments = min_comments if min_comments is not None else settings.pool_min_comments

    by_engagement = sorted(items, key=lambda i: (-i.engagement, i.id))
    cutoff = now - timedelta(days=recent_days)

    recent = [i for i in by_engagement if i.created_at >= cutoff][:recent_top]
    all_time = by_engagement[:all_time_top]
    discussed = sorted(
        (i for i in items if i.discussion_count >= min_comments),
        key=lambda i: (-i.discussion_count, i.id),
    )[:discussed_top]

    pool: Dict[str, StoredFeedbackItem] = {}
    for item in [*recent, *all_time, *discussed]:
        pool.setdefault(item.id, item)

    logger.info(
        f"Suggestion pool: {len(pool)} items "
        f"({len(recent)} recent, {len(all_time)} all-time, {len(discussed)} discussed)"
    )
    return list(pool.values())


class SuggestionJob:
    """Reads stored feedback, scores it and upserts the resulting suggestions."""

    def __init__(
        self,
        store: FeedbackStore,
        scorer: Optional[SuggestionScorer] = None,
        audit: Optional[JobAuditLogger] = None,
    ):
        self.store = store
        self.scorer = scorer or SuggestionScorer()
        self.audit = audit

    async def run(self, now: Optional[datetime] = None) -> List[Suggestion]:
        now = now or datetime.now(timezone.utc)

        items = await self.store.list_items()
        pool = select_pool(items, now)
        if not pool:
            logger.info("No feedback stored yet, skipping suggestions")
            return []

        window = timedelta(hours=self.scorer.policy.velocity_window_hours)
        snapshots = await self.store.list_snapshots(item_ids=[i.id for i in pool], since=now - window)
        existing_work = await self.store.list_existing_work()

        suggestions = await self.scorer.score_and_suggest(pool, snapshots, existing_work, now)

        # Refreshed suggestions keep their original creation time
        previous = {s.id: s for s in await self.store.list_suggestions(status="pending")}
        suggestions = [
            s.model_copy(update={"created_at": previous[s.id].created_at}) if s.id in previous else s
            for s in suggestions
        ]

        saved = await self.store.save_suggestions(suggestions)
        logger.info(f"✅ Saved {saved} suggestions ({len(pool)} items, {len(snapshots)} snapshots)")

        if self.audit:
            self.audit.log_event(
                "SUGGESTIONS_GENERATED",
                run_at=now.isoformat(),
                pool_size=len(pool),
                snapshots=len(snapshots),
                existing_work=len(existing_work),
                suggestions=saved,
                trending=sum(1 for s in suggestions if s.is_trending),
            )
        return suggestions
