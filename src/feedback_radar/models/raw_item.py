from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime


class RawItem(BaseModel):
    """One post as returned by the content API, before summarization."""

    model_config = ConfigDict(frozen=True)

    external_id: str = Field(..., description="Stable id from the source, unique within a channel")
    title: str
    body: str = Field(default="", description="Self-text of the post")
    author: str = Field(default="[deleted]")
    engagement: int = Field(default=0, description="Upvote score")
    discussion_count: int = Field(default=0, description="Number of comments")
    created_at: datetime
    permalink: str
    channel: str
    url: str = ""
    is_self: bool = Field(default=True, description="Text post rather than a link post")

    @property
    def has_content(self) -> bool:
        return bool(self.body.strip())

    @property
    def is_text_post(self) -> bool:
        """Self post with body text. Link posts are not feedback."""
        return self.is_self and self.has_content
