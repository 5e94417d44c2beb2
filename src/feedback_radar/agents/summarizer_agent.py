"""
SummarizerAgent: batch summaries of collected posts.

One model call per batch of posts. The reply is parsed into a tagged
outcome (ParsedSummaries | MalformedResponse); anything the model did not
deliver cleanly gets a deterministic local summary instead.
"""
import asyncio
import json
import logging
import re
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from ..config import settings
from ..models.raw_item import RawItem
from ..models.summary import (
    MAX_KEY_POINTS,
    SENTIMENTS,
    BatchOutcome,
    MalformedResponse,
    ParsedSummaries,
    SummarizationResult,
    Summary,
)
from ..utils.llm_client import LLMClient
from ..utils.logging import JobAuditLogger

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a product analyst turning community forum posts into concise, actionable feedback. "
    "Reply with a JSON array only."
)

PROMPT_BODY_CHARS = 2000

_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def strip_json_fences(text: str) -> str:
    """Strip markdown code fences from a JSON reply."""
    return _FENCE.sub("", text).strip()


def build_batch_prompt(batch: Sequence[RawItem]) -> str:
    posts_text = "\n---\n\n".join(
        f"POST {idx} (ID: {item.external_id}):\n"
        f"Title: {item.title}\n"
        f"Content: {item.body[:PROMPT_BODY_CHARS] or '(No content)'}\n"
        f"Score: {item.engagement} | Comments: {item.discussion_count}\n"
        for idx, item in enumerate(batch, 1)
    )

    return f"""Analyze these posts and extract actionable product insights.

**POSTS TO ANALYZE:**
{posts_text}

**YOUR TASK:**
For each post, identify:
1. The core problem, request, or feedback
2. Specific actionable insights (features, fixes, improvements)
3. User pain points and their underlying causes

**OUTPUT FORMAT:**
Return a JSON array with one object per post:
- "id": the post ID exactly as given after "ID:"
- "summary": 2-3 sentences focused on the actionable feedback
- "key_points": array of 2-4 specific, actionable insights
- "sentiment": one of "positive", "negative", "neutral", "mixed"

Be specific: say WHAT should be built, fixed or improved, not "users want improvements".
Return ONLY the JSON array, no markdown formatting or code blocks."""


def parse_summary_response(text: str, batch_ids: Sequence[str]) -> BatchOutcome:
    """
    Parse a model reply for one batch.

    Returns MalformedResponse when the reply is not a JSON array or none of
    its entries match the batch; otherwise ParsedSummaries holding every entry
    that passed the schema (missing posts are left for the fallback path).
    """
    cleaned = strip_json_fences(text or "")
    if not cleaned:
        return MalformedResponse(reason="empty response")

    try:
        data = json.loads(cleaned)
    except (ValueError, RecursionError):
        # Some models wrap the array in prose
        start, end = cleaned.find("["), cleaned.rfind("]")
        if start == -1 or end <= start:
            return MalformedResponse(reason="response is not JSON")
        try:
            data = json.loads(cleaned[start:end + 1])
        except (ValueError, RecursionError):
            # Oversized integers and very deep nesting fail here too
            return MalformedResponse(reason="response is not JSON")

    if isinstance(data, dict):
        for key in ("summaries", "posts", "items", "results"):
            if isinstance(data.get(key), list):
                data = data[key]
                break

    if not isinstance(data, list):
        return MalformedResponse(reason=f"expected a JSON array, got {type(data).__name__}")

    wanted = set(batch_ids)
    summaries: Dict[str, Summary] = {}

    for entry in data:
        if not isinstance(entry, dict):
            continue
        raw_id = entry.get("id", entry.get("post_id"))
        if raw_id is None:
            continue
        item_id = str(raw_id).strip()
        if item_id not in wanted or item_id in summaries:
            continue

        summary_text = entry.get("summary")
        if not isinstance(summary_text, str) or not summary_text.strip():
            continue

        raw_points = entry.get("key_points")
        points: List[str] = []
        if isinstance(raw_points, list):
            points = [str(p).strip() for p in raw_points if isinstance(p, (str, int, float)) and str(p).strip()]

        sentiment = str(entry.get("sentiment") or "").strip().lower()
        if sentiment not in SENTIMENTS:
            sentiment = "neutral"

        summaries[item_id] = Summary(
            summary=summary_text.strip(),
            key_points=points[:MAX_KEY_POINTS],
            sentiment=sentiment,  # type: ignore[arg-type]
            provenance="model",
        )

    if not summaries:
        return MalformedResponse(reason="no entries matched the batch schema")

    return ParsedSummaries(summaries=summaries)


def fallback_summary(item: RawItem, max_chars: Optional[int] = None) -> Summary:
    """Deterministic summary built from the post itself."""
    limit = max_chars or settings.summary_fallback_chars
    full_text = f"{item.title}\n\n{item.body}".strip()
    text = full_text[:limit] + ("..." if len(full_text) > limit else "")
    return Summary(
        summary=text,
        key_points=[item.title] if item.title else [],
        sentiment="neutral",
        provenance="fallback",
    )


class SummarizerAgent:
    """Summarizes posts in fixed-size batches with bounded parallelism."""

    def __init__(
        self,
        llm_client: LLMClient,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        max_items: Optional[int] = None,
        concurrency: Optional[int] = None,
        fallback_chars: Optional[int] = None,
        audit: Optional[JobAuditLogger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.llm_client = llm_client
        self.batch_size = batch_size or settings.summary_batch_size
        self.batch_delay = batch_delay if batch_delay is not None else settings.summary_batch_delay
        self.max_items = max_items if max_items is not None else settings.summary_max_items
        self.concurrency = concurrency or settings.summary_concurrency
        self.fallback_chars = fallback_chars or settings.summary_fallback_chars
        self.audit = audit
        self._sleep = sleep

    async def summarize(
        self,
        items: Sequence[RawItem],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Dict[str, Summary]:
        """Summary per external id, in input order."""
        result = await self.run(items, cancel_event)
        return result.summaries

    async def run(
        self,
        items: Sequence[RawItem],
        cancel_event: Optional[asyncio.Event] = None,
        audit: Optional[JobAuditLogger] = None,
    ) -> SummarizationResult:
        """
        Summarize every item. Never raises for model trouble.

        Items past max_items skip the model entirely. Batches not yet started
        when cancel_event is set also get fallback summaries; the caller
        decides what cancellation means for the job.

        audit overrides the agent's own audit logger, e.g. with one bound to a job.
        """
        audit = audit or self.audit
        eligible = list(items[:self.max_items])
        capped = list(items[self.max_items:])
        batches = [eligible[i:i + self.batch_size] for i in range(0, len(eligible), self.batch_size)]

        logger.info(
            f"Starting summarization of {len(items)} posts "
            f"({len(batches)} batches, {len(capped)} over the cap) using {getattr(self.llm_client, 'model', 'llm')}..."
        )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(index: int, batch: List[RawItem]) -> BatchOutcome:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return MalformedResponse(reason="cancelled before start")
                outcome = await self._summarize_batch(batch, index, len(batches), audit)
                if self.batch_delay and index < len(batches) - 1:
                    await self._sleep(self.batch_delay)
                return outcome

        outcomes = await asyncio.gather(*(worker(i, b) for i, b in enumerate(batches)))

        result = SummarizationResult(
            cap_hit=len(capped) > 0,
            capped_items=len(capped),
        )

        for batch, outcome in zip(batches, outcomes):
            if isinstance(outcome, MalformedResponse):
                result.failed_batches += 1
                parsed: Dict[str, Summary] = {}
            else:
                parsed = outcome.summaries

            for item in batch:
                summary = parsed.get(item.external_id)
                if summary is None:
                    summary = fallback_summary(item, self.fallback_chars)
                self._record(result, item, summary)

        for item in capped:
            self._record(result, item, fallback_summary(item, self.fallback_chars))

        logger.info(
            f"✅ Summarized {len(result.summaries)} posts: {result.model_count} by model, "
            f"{result.fallback_count} fallback, {result.failed_batches} failed batches"
        )
        return result

    def _record(self, result: SummarizationResult, item: RawItem, summary: Summary) -> None:
        result.summaries[item.external_id] = summary
        if summary.provenance == "model":
            result.model_count += 1
        else:
            result.fallback_count += 1

    async def _summarize_batch(
        self,
        batch: List[RawItem],
        index: int,
        total: int,
        audit: Optional[JobAuditLogger],
    ) -> BatchOutcome:
        logger.info(f"Processing batch {index + 1}/{total} ({len(batch)} posts)")
        prompt = build_batch_prompt(batch)

        try:
            text = await self.llm_client.complete(
                prompt=prompt,
                system_prompt=SYSTEM_PROMPT,
                temperature=0.0,
            )
        except Exception as e:
            text = None
            outcome: BatchOutcome = MalformedResponse(reason=f"model call failed: {str(e)[:200]}")

        if text is not None:
            outcome = parse_summary_response(text, [item.external_id for item in batch])

        if isinstance(outcome, MalformedResponse):
            logger.warning(f"Batch {index + 1}/{total} falls back to local summaries: {outcome.reason}")

        if audit:
            audit.log_event(
                "SUMMARY_BATCH",
                "INFO" if outcome.kind == "parsed" else "WARN",
                prompt=prompt,
                batch=index + 1,
                size=len(batch),
                outcome=outcome.kind,
            )

        return outcome
