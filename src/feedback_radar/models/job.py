from pydantic import AliasChoices, BaseModel, Field
from typing import Any, Dict, List, Optional


class SyncRequest(BaseModel):
    """Job invocation payload as sent by the UI collaborator."""

    channel: Any = Field(
        default=None,
        validation_alias=AliasChoices("channel", "subreddit"),
        description="Channel name, e.g. 'widgets' or 'r/widgets'"
    )
    start_date: Any = Field(default=None, description="YYYY-MM-DD")
    end_date: Any = Field(default=None, description="YYYY-MM-DD")
    limit: Any = None
    job_id: Optional[str] = Field(default=None, description="Caller/job context id")
    source_config_id: Optional[str] = None


class JobMetadata(BaseModel):
    limit_requested: int
    limit_applied: int
    limit_capped: bool
    ai_summary_count: int = 0
    fallback_summary_count: int = 0
    summarization_cap_hit: bool = False
    processing_time_ms: int = 0
    posts_examined: int = 0
    range_days: int = 0


class JobResult(BaseModel):
    items_synced: int
    message: str
    warnings: List[str] = Field(default_factory=list)
    metadata: JobMetadata
    channel: str
    job_id: str
    date_range: Dict[str, str] = Field(default_factory=dict)
