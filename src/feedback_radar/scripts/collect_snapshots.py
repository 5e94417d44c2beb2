#!/usr/bin/env python3
"""
Append engagement snapshots for recently created feedback.

Meant to run on a schedule (e.g. every 6 hours) so the suggestion scorer
has at least two readings per item inside its velocity window.

Usage:
    python -m feedback_radar.scripts.collect_snapshots --lookback-days 7
"""
import argparse
import asyncio
import logging
from dotenv import load_dotenv

from ..config import settings
from ..orchestration.snapshots import collect_engagement_snapshots
from ..persistence.redis_store import RedisFeedbackStore
from ..utils.logging import JobAuditLogger

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run(lookback_days: int) -> int:
    store = RedisFeedbackStore()
    await store.connect()
    try:
        return await collect_engagement_snapshots(
            store,
            lookback_days=lookback_days,
            audit=JobAuditLogger("snapshots"),
        )
    finally:
        await store.close()


def main() -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Record engagement snapshots for active feedback")
    parser.add_argument(
        "--lookback-days", type=int, default=settings.snapshot_lookback_days,
        help=f"Snapshot items created within this many days (default: {settings.snapshot_lookback_days})"
    )
    args = parser.parse_args()

    count = asyncio.run(run(args.lookback_days))
    logger.info(f"Done: {count} snapshots written")


if __name__ == "__main__":
    main()
