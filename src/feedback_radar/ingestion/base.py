from abc import ABC, abstractmethod
from typing import List, Optional
from pydantic import BaseModel, Field
from ..models.raw_item import RawItem


class Page(BaseModel):
    """One page of a newest-first listing."""

    items: List[RawItem] = Field(default_factory=list)
    next_cursor: Optional[str] = None


class ContentSource(ABC):
    """Abstract base class for read-only content APIs."""

    @abstractmethod
    async def fetch_page(self, channel: str, cursor: Optional[str] = None) -> Page:
        """
        Fetch one page of posts, newest first.

        Args:
            channel: Cleaned channel name
            cursor: Opaque pagination cursor, None for the first page

        Returns:
            Page with the items and the cursor for the next page (None when exhausted)

        Raises:
            ChannelNotFoundError, ChannelForbiddenError: configuration errors, never retried
            UpstreamError, UpstreamTimeoutError: once the retry budget is spent
        """
        pass

    @abstractmethod
    async def channel_exists(self, channel: str) -> bool:
        """
        Return True if the channel exists, False if it is unknown.

        Raises:
            ChannelForbiddenError: the channel exists but is private or restricted
        """
        pass
