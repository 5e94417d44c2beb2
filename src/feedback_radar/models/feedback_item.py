from pydantic import BaseModel, Field
from datetime import datetime, timezone

from .raw_item import RawItem
from .summary import Summary


def make_item_id(channel: str, external_id: str) -> str:
    """Storage key for a post: external ids are only unique within a channel."""
    return f"{channel}:{external_id}"


class StoredFeedbackItem(BaseModel):
    """A summarized post as persisted by a sync job."""

    id: str = Field(..., description="channel:external_id, the upsert key")
    external_id: str
    channel: str
    source: str = "reddit"
    title: str
    author: str
    content: str = Field(..., description="Formatted display string")
    summary: Summary
    engagement: int = 0
    discussion_count: int = 0
    created_at: datetime
    permalink: str
    url: str = ""
    job_id: str
    source_config_id: str
    ingested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_raw(
        cls,
        item: RawItem,
        summary: Summary,
        content: str,
        job_id: str,
        source_config_id: str,
    ) -> "StoredFeedbackItem":
        return cls(
            id=make_item_id(item.channel, item.external_id),
            external_id=item.external_id,
            channel=item.channel,
            title=item.title,
            author=item.author,
            content=content,
            summary=summary,
            engagement=item.engagement,
            discussion_count=item.discussion_count,
            created_at=item.created_at,
            permalink=item.permalink,
            url=item.url,
            job_id=job_id,
            source_config_id=source_config_id,
        )


class EngagementSnapshot(BaseModel):
    """Point-in-time engagement reading for a stored item. Append-only."""

    item_id: str
    engagement: int = 0
    discussion_count: int = 0
    taken_at: datetime
