#!/usr/bin/env python3
"""
Generate ranked work-item suggestions from stored feedback.

Usage:
    python -m feedback_radar.scripts.run_suggestions
    python -m feedback_radar.scripts.run_suggestions --grouping llm --max 10
"""
import argparse
import asyncio
import logging
from dotenv import load_dotenv

from ..agents.suggestion_scorer import SuggestionScorer
from ..agents.theme_grouper import KeywordThemeGrouper, LLMThemeGrouper, ThemeGrouper
from ..config import settings
from ..models.suggestion import Suggestion
from ..orchestration.suggestion_job import SuggestionJob
from ..persistence.redis_store import RedisFeedbackStore
from ..utils.llm_client import LLMClient
from ..utils.logging import JobAuditLogger

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_grouper(mode: str) -> ThemeGrouper:
    if mode == "llm":
        return LLMThemeGrouper(LLMClient(role="grouping"))
    return KeywordThemeGrouper()


async def run_suggestions(grouping: str, max_suggestions: int) -> list[Suggestion]:
    store = RedisFeedbackStore()
    await store.connect()
    try:
        scorer = SuggestionScorer(grouper=build_grouper(grouping), max_suggestions=max_suggestions)
        job = SuggestionJob(store, scorer, audit=JobAuditLogger("suggestions"))
        return await job.run()
    finally:
        await store.close()


def main() -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Score stored feedback into work-item suggestions")
    parser.add_argument(
        "--grouping", choices=["keyword", "llm"], default=settings.grouping_mode,
        help=f"Theme grouping strategy (default: {settings.grouping_mode})"
    )
    parser.add_argument(
        "--max", type=int, default=settings.max_suggestions,
        help=f"Maximum suggestions to keep (default: {settings.max_suggestions})"
    )
    args = parser.parse_args()

    suggestions = asyncio.run(run_suggestions(args.grouping, args.max))

    print("\n" + "=" * 60)
    print(f"💡 {len(suggestions)} SUGGESTIONS")
    print("=" * 60)
    for s in suggestions:
        flag = " 🔥" if s.is_trending else ""
        print(f"[{s.priority.upper():6}] impact={s.impact_score:3} velocity={s.velocity_score:2}{flag}  {s.title}")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    main()
