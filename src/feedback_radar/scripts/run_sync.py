#!/usr/bin/env python3
"""
One-shot channel sync for Feedback Radar.

Fetches posts from a subreddit inside a date window, summarizes them and
upserts them into the feedback store. Prints the job result as JSON.

Usage:
    python -m feedback_radar.scripts.run_sync widgets --start 2025-01-01 --end 2025-01-03
    python -m feedback_radar.scripts.run_sync r/widgets --start 2025-01-01 --end 2025-01-31 --limit 250
"""
import argparse
import asyncio
import json
import logging
import sys
from dotenv import load_dotenv

from ..agents.summarizer_agent import SummarizerAgent
from ..ingestion.reddit import RedditSource
from ..orchestration.sync_graph import SyncJobOrchestrator, handle_sync_request
from ..persistence.redis_store import RedisFeedbackStore
from ..utils.llm_client import LLMClient
from ..utils.logging import JobAuditLogger

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run_sync(channel: str, start: str, end: str, limit: int | None, job_id: str | None) -> dict:
    audit = JobAuditLogger("sync")
    store = RedisFeedbackStore()
    await store.connect()

    try:
        async with RedditSource() as source:
            summarizer = SummarizerAgent(LLMClient(role="summary"))
            orchestrator = SyncJobOrchestrator(source, summarizer, store, audit=audit)
            return await handle_sync_request({
                "channel": channel,
                "start_date": start,
                "end_date": end,
                "limit": limit,
                "job_id": job_id,
            }, orchestrator)
    finally:
        await store.close()


def main() -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Sync one subreddit into Feedback Radar")
    parser.add_argument("channel", help="Subreddit name, with or without the r/ prefix")
    parser.add_argument("--start", required=True, help="Start date, YYYY-MM-DD (inclusive)")
    parser.add_argument("--end", required=True, help="End date, YYYY-MM-DD (inclusive)")
    parser.add_argument(
        "--limit", type=int, default=None,
        help="Maximum posts to sync (default from config, clamped to max_post_limit)"
    )
    parser.add_argument("--job-id", default=None, help="Caller job id for the audit trail")

    args = parser.parse_args()

    logger.info(f"🚀 Starting sync for {args.channel}: {args.start} -> {args.end}")
    response = asyncio.run(run_sync(args.channel, args.start, args.end, args.limit, args.job_id))

    print(json.dumps(response, indent=2))
    if "error" in response:
        sys.exit(1)


if __name__ == "__main__":
    main()
