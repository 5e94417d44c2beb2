"""
Sync job workflow: validate -> check channel -> collect -> summarize -> persist.

Runs as a LangGraph state machine. Validation happens before any network
call; an empty collection ends the graph early with a successful result.
Every failure leaves run_sync as a typed SyncError.
"""
import asyncio
import logging
import re
import time
import uuid
from datetime import date, datetime, time as dt_time, timezone
from typing import Any, Dict, List, Optional, TypedDict, cast

from langgraph.graph import StateGraph, END
from pydantic import ValidationError as PydanticValidationError

from ..agents.summarizer_agent import SummarizerAgent, fallback_summary
from ..config import settings
from ..errors import (
    ChannelNotFoundError,
    InternalJobError,
    JobCancelledError,
    JobTimeoutError,
    PersistenceError,
    SyncError,
    ValidationError,
)
from ..formatting import format_content
from ..ingestion.base import ContentSource
from ..ingestion.collector import ContentCollector
from ..ingestion.reddit import clean_channel_name
from ..models.feedback_item import StoredFeedbackItem
from ..models.job import JobMetadata, JobResult, SyncRequest
from ..models.raw_item import RawItem
from ..models.summary import SummarizationResult
from ..persistence.store import FeedbackStore
from ..utils.logging import JobAuditLogger

logger = logging.getLogger(__name__)

CHANNEL_PATTERN = re.compile(r"^[a-z0-9_]{1,21}$")
DATE_FORMAT = "%Y-%m-%d"


class SyncState(TypedDict):
    request: SyncRequest
    cancel_event: Optional[asyncio.Event]
    audit: Optional[JobAuditLogger]
    job_id: str
    source_config_id: str
    channel: str
    start: Optional[datetime]
    end: Optional[datetime]
    range_days: int
    limit_requested: int
    limit_applied: int
    limit_capped: bool
    warnings: List[str]
    items: List[RawItem]
    posts_examined: int
    summarization: Optional[SummarizationResult]
    items_synced: int


def parse_day(value: Any, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f"{field} is required (YYYY-MM-DD)")
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError as e:
        raise ValidationError(f"Invalid {field} '{value}'. Use YYYY-MM-DD") from e


def resolve_limit(raw: Any, default: int) -> int:
    """Requested limit as an int >= 1. Clamping to the ceiling is the caller's job."""
    if raw is None:
        return default
    if isinstance(raw, bool):
        raise ValidationError(f"Limit must be a positive integer, got {raw!r}")
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    if isinstance(raw, str) and raw.strip().isdigit():
        raw = int(raw.strip())
    if not isinstance(raw, int) or raw < 1:
        raise ValidationError(f"Limit must be a positive integer, got {raw!r}")
    return raw


class SyncJobOrchestrator:
    """Top-level entry point for one on-demand channel sync."""

    def __init__(
        self,
        source: ContentSource,
        summarizer: SummarizerAgent,
        store: FeedbackStore,
        audit: Optional[JobAuditLogger] = None,
        max_post_limit: Optional[int] = None,
        default_post_limit: Optional[int] = None,
        max_range_days: Optional[int] = None,
        job_timeout: Optional[float] = None,
        persistence_batch_size: Optional[int] = None,
    ) -> None:
        self.source = source
        self.collector = ContentCollector(source)
        self.summarizer = summarizer
        self.store = store
        self.audit = audit
        self.max_post_limit = max_post_limit or settings.max_post_limit
        self.default_post_limit = default_post_limit or settings.default_post_limit
        self.max_range_days = max_range_days or settings.max_range_days
        self.job_timeout = job_timeout or settings.job_timeout_seconds
        self.persistence_batch_size = persistence_batch_size or settings.persistence_batch_size

        self.workflow = self._build_graph()

    def _build_graph(self) -> Any:
        workflow = StateGraph(SyncState)

        # Nodes
        workflow.add_node("validate", self.validate_node)
        workflow.add_node("check_channel", self.check_channel_node)
        workflow.add_node("collect", self.collect_node)
        workflow.add_node("summarize", self.summarize_node)
        workflow.add_node("persist", self.persist_node)

        # Edges
        workflow.set_entry_point("validate")
        workflow.add_edge("validate", "check_channel")
        workflow.add_edge("check_channel", "collect")

        workflow.add_conditional_edges(
            "collect",
            self.check_collected,
            {
                "collected": "summarize",
                "empty": END
            }
        )

        workflow.add_edge("summarize", "persist")
        workflow.add_edge("persist", END)

        return workflow.compile()

    def validate_node(self, state: SyncState) -> SyncState:
        """Fail-fast input checks. No network access."""
        request = state["request"]

        raw_channel = request.channel
        if not raw_channel or not isinstance(raw_channel, str) or not raw_channel.strip():
            raise ValidationError("Subreddit name is required")
        channel = clean_channel_name(raw_channel)
        if not CHANNEL_PATTERN.match(channel):
            raise ValidationError(
                f"Invalid subreddit name '{raw_channel}'. Use 1-21 letters, digits or underscores"
            )

        start_day = parse_day(request.start_date, "start date")
        end_day = parse_day(request.end_date, "end date")
        if start_day > end_day:
            raise ValidationError("Start date must be before end date")

        range_days = (end_day - start_day).days
        if range_days > self.max_range_days:
            raise ValidationError(
                f"Date range of {range_days} days exceeds the maximum of {self.max_range_days} days"
            )

        limit_requested = resolve_limit(request.limit, self.default_post_limit)
        limit_applied = min(limit_requested, self.max_post_limit)
        limit_capped = limit_applied < limit_requested

        warnings = list(state["warnings"])
        if limit_capped:
            warnings.append(
                f"Requested limit of {limit_requested} exceeds the maximum of {self.max_post_limit}; "
                f"only the {self.max_post_limit} newest posts will be synced"
            )
            logger.warning(f"Limit {limit_requested} clamped to {self.max_post_limit}")

        return {
            **state,
            "channel": channel,
            "source_config_id": request.source_config_id or f"reddit:{channel}",
            "start": datetime.combine(start_day, dt_time.min, tzinfo=timezone.utc),
            "end": datetime.combine(end_day, dt_time(23, 59, 59, 999999), tzinfo=timezone.utc),
            "range_days": range_days,
            "limit_requested": limit_requested,
            "limit_applied": limit_applied,
            "limit_capped": limit_capped,
            "warnings": warnings,
        }

    async def check_channel_node(self, state: SyncState) -> SyncState:
        channel = state["channel"]
        logger.info(f"Validating subreddit r/{channel}...")
        if not await self.source.channel_exists(channel):
            raise ChannelNotFoundError(f"Subreddit r/{channel} not found or is private")
        return state

    async def collect_node(self, state: SyncState) -> SyncState:
        result = await self.collector.run(
            state["channel"],
            cast(datetime, state["start"]),
            cast(datetime, state["end"]),
            state["limit_applied"],
            state["cancel_event"],
        )
        return {**state, "items": result.items, "posts_examined": result.posts_examined}

    async def summarize_node(self, state: SyncState) -> SyncState:
        items = state["items"]
        result = await self.summarizer.run(items, state["cancel_event"], audit=state["audit"])
        self._raise_if_cancelled(state, f"after summarizing {len(items)} posts")

        warnings = list(state["warnings"])
        if result.fallback_count:
            warnings.append(
                f"{result.fallback_count} of {len(items)} posts used fallback summaries "
                f"(AI summarization unavailable or incomplete)"
            )
        if result.cap_hit:
            warnings.append(
                f"Summarization cap of {self.summarizer.max_items} posts reached; "
                f"{result.capped_items} posts were summarized without AI"
            )
        return {**state, "summarization": result, "warnings": warnings}

    async def persist_node(self, state: SyncState) -> SyncState:
        """Upsert formatted items in bounded batches. A failed batch aborts the rest."""
        summaries = cast(SummarizationResult, state["summarization"]).summaries

        documents = []
        for item in state["items"]:
            summary = summaries.get(item.external_id) or fallback_summary(item, self.summarizer.fallback_chars)
            documents.append(StoredFeedbackItem.from_raw(
                item,
                summary,
                format_content(item, summary),
                job_id=state["job_id"],
                source_config_id=state["source_config_id"],
            ))

        synced = 0
        batches = [
            documents[i:i + self.persistence_batch_size]
            for i in range(0, len(documents), self.persistence_batch_size)
        ]
        for index, batch in enumerate(batches):
            self._raise_if_cancelled(state, f"after storing {synced} posts")
            logger.info(f"Committing batch {index + 1}/{len(batches)} of {len(batch)} documents...")
            try:
                synced += await self.store.upsert_items(batch)
            except SyncError:
                raise
            except Exception as e:
                raise PersistenceError(
                    f"Failed to store batch {index + 1}/{len(batches)} after {synced} posts: {e}"
                ) from e

        return {**state, "items_synced": synced}

    def check_collected(self, state: SyncState) -> str:
        return "collected" if state["items"] else "empty"

    def _raise_if_cancelled(self, state: SyncState, where: str) -> None:
        cancel_event = state["cancel_event"]
        if cancel_event is not None and cancel_event.is_set():
            raise JobCancelledError(f"Sync for r/{state['channel']} was cancelled {where}")

    async def run_sync(self, request: SyncRequest, cancel_event: Optional[asyncio.Event] = None) -> JobResult:
        """
        Run one sync job.

        Raises:
            SyncError: always typed; untyped failures become InternalJobError
        """
        started = time.monotonic()
        job_id = request.job_id or uuid.uuid4().hex
        audit = None
        if self.audit:
            channel = clean_channel_name(request.channel) if isinstance(request.channel, str) else ""
            audit = self.audit.bind(job_id=job_id, channel=channel or None)

        initial_state = SyncState(
            request=request,
            cancel_event=cancel_event,
            audit=audit,
            job_id=job_id,
            source_config_id="",
            channel="",
            start=None,
            end=None,
            range_days=0,
            limit_requested=0,
            limit_applied=0,
            limit_capped=False,
            warnings=[],
            items=[],
            posts_examined=0,
            summarization=None,
            items_synced=0,
        )

        if audit:
            audit.log_event(
                "SYNC_STARTED",
                start_date=str(request.start_date),
                end_date=str(request.end_date),
                limit=request.limit,
            )

        try:
            final_state = await asyncio.wait_for(self.workflow.ainvoke(initial_state), timeout=self.job_timeout)
        except asyncio.TimeoutError as e:
            error: SyncError = JobTimeoutError(
                f"Sync job exceeded {self.job_timeout:.0f}s. Retry with a smaller limit or date range"
            )
            self._fail(audit, job_id, error)
            raise error from e
        except SyncError as e:
            self._fail(audit, job_id, e)
            raise
        except Exception as e:
            logger.exception("Unexpected sync failure")
            error = InternalJobError(f"Failed to sync Reddit data: {e}")
            self._fail(audit, job_id, error)
            raise error from e

        result = self._build_result(cast(SyncState, final_state), request, started)
        if audit:
            audit.log_event(
                "SYNC_COMPLETED",
                items_synced=result.items_synced,
                posts_examined=result.metadata.posts_examined,
                fallback_summaries=result.metadata.fallback_summary_count,
                warnings=len(result.warnings),
            )
        return result

    def _build_result(self, state: SyncState, request: SyncRequest, started: float) -> JobResult:
        channel = state["channel"]
        summarization = state["summarization"]
        items_synced = state["items_synced"]

        if not state["items"]:
            message = f"No posts found in r/{channel} for the specified date range"
        else:
            message = f"Successfully synced {items_synced} posts from r/{channel}"
        logger.info(f"✅ {message}")

        metadata = JobMetadata(
            limit_requested=state["limit_requested"],
            limit_applied=state["limit_applied"],
            limit_capped=state["limit_capped"],
            ai_summary_count=summarization.model_count if summarization else 0,
            fallback_summary_count=summarization.fallback_count if summarization else 0,
            summarization_cap_hit=summarization.cap_hit if summarization else False,
            processing_time_ms=int((time.monotonic() - started) * 1000),
            posts_examined=state["posts_examined"],
            range_days=state["range_days"],
        )

        return JobResult(
            items_synced=items_synced,
            message=message,
            warnings=state["warnings"],
            metadata=metadata,
            channel=channel,
            job_id=state["job_id"],
            date_range={
                "start": cast(datetime, state["start"]).date().isoformat(),
                "end": cast(datetime, state["end"]).date().isoformat(),
            },
        )

    def _fail(self, audit: Optional[JobAuditLogger], job_id: str, error: SyncError) -> None:
        logger.error(f"❌ Sync {job_id} failed ({error.kind.value}): {error.message}")
        if audit:
            audit.log_failure("SYNC_FAILED", error)


async def handle_sync_request(payload: Dict[str, Any], orchestrator: SyncJobOrchestrator) -> Dict[str, Any]:
    """
    Job invocation surface: JSON-like payload in, JSON-like result out.

    Accepts the request either at the top level or under a "body" key.
    Errors come back as {"error": {"kind", "message"}}.
    """
    body = payload.get("body") if isinstance(payload.get("body"), dict) else payload
    try:
        request = SyncRequest.model_validate(body)
    except PydanticValidationError as e:
        return ValidationError(f"Invalid sync request: {e.errors()[0].get('msg', 'malformed payload')}").to_response()

    try:
        result = await orchestrator.run_sync(request)
    except SyncError as e:
        return e.to_response()
    return result.model_dump(mode="json")
