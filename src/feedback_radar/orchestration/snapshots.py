import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..config import settings
from ..models.feedback_item import EngagementSnapshot
from ..persistence.store import FeedbackStore
from ..utils.logging import JobAuditLogger

logger = logging.getLogger(__name__)


async def collect_engagement_snapshots(
    store: FeedbackStore,
    now: Optional[datetime] = None,
    lookback_days: Optional[int] = None,
    audit: Optional[JobAuditLogger] = None,
) -> int:
    """
    Append one engagement snapshot per recently created stored item.

    Engagement values are whatever the last sync wrote, so run this after
    re-syncing active channels. Returns the number of snapshots written.
    """
    now = now or datetime.now(timezone.utc)
    lookback = lookback_days or settings.snapshot_lookback_days
    active = await store.list_items(since=now - timedelta(days=lookback))

    if not active:
        logger.info("No active feedback to snapshot")
        return 0

    snapshots = [
        EngagementSnapshot(
            item_id=item.id,
            engagement=item.engagement,
            discussion_count=item.discussion_count,
            taken_at=now,
        )
        for item in active
    ]
    written = await store.add_snapshots(snapshots)
    logger.info(f"📈 Created {written} engagement snapshots")

    if audit:
        audit.log_event("SNAPSHOTS_COLLECTED", snapshots=written, lookback_days=lookback)
    return written
