"""Builders and fakes shared by the feedback pipeline tests."""
import json
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from feedback_radar.ingestion.base import ContentSource, Page
from feedback_radar.models.feedback_item import StoredFeedbackItem, make_item_id
from feedback_radar.models.raw_item import RawItem
from feedback_radar.models.summary import Summary

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

_PROMPT_ID = re.compile(r"\(ID: ([^)]+)\)")


def make_raw_item(
    external_id: str,
    created_at: datetime,
    title: Optional[str] = None,
    body: str = "The export button does nothing on large projects.",
    engagement: int = 10,
    discussion_count: int = 3,
    channel: str = "widgets",
) -> RawItem:
    return RawItem(
        external_id=external_id,
        title=title or f"Post {external_id}",
        body=body,
        author="someone",
        engagement=engagement,
        discussion_count=discussion_count,
        created_at=created_at,
        permalink=f"https://reddit.com/r/{channel}/comments/{external_id}/",
        channel=channel,
    )


def make_stored_item(
    external_id: str,
    title: str,
    created_at: datetime = NOW - timedelta(days=2),
    engagement: int = 100,
    discussion_count: int = 10,
    key_points: Optional[List[str]] = None,
    summary: str = "",
    channel: str = "widgets",
) -> StoredFeedbackItem:
    return StoredFeedbackItem(
        id=make_item_id(channel, external_id),
        external_id=external_id,
        channel=channel,
        title=title,
        author="someone",
        content=f"**{title}**",
        summary=Summary(
            summary=summary or title,
            key_points=key_points if key_points is not None else [title],
            sentiment="negative",
            provenance="model",
        ),
        engagement=engagement,
        discussion_count=discussion_count,
        created_at=created_at,
        permalink=f"https://reddit.com/r/{channel}/comments/{external_id}/",
        job_id="job-1",
        source_config_id=f"reddit:{channel}",
    )


def listing_post(external_id: str, created_at: datetime, **overrides) -> Dict:
    """One child of a Reddit /new listing."""
    data = {
        "id": external_id,
        "title": f"Post {external_id}",
        "selftext": "Sync keeps failing after the last update.",
        "author": "someone",
        "score": 12,
        "num_comments": 4,
        "created_utc": created_at.timestamp(),
        "permalink": f"/r/widgets/comments/{external_id}/post/",
        "url": f"https://www.reddit.com/r/widgets/comments/{external_id}/post/",
        "is_self": True,
    }
    data.update(overrides)
    return {"kind": "t3", "data": data}


def listing(children: List[Dict], after: Optional[str] = None) -> Dict:
    return {"kind": "Listing", "data": {"children": children, "after": after}}


class FakeSource(ContentSource):
    """In-memory content API serving pre-built pages in order."""

    def __init__(self, pages: List[List[RawItem]], exists: bool = True):
        self.pages = pages
        self.exists = exists
        self.fetch_calls: List[Optional[str]] = []
        self.exists_calls: List[str] = []

    async def fetch_page(self, channel: str, cursor: Optional[str] = None) -> Page:
        self.fetch_calls.append(cursor)
        index = int(cursor) if cursor else 0
        if index >= len(self.pages):
            return Page()
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return Page(items=self.pages[index], next_cursor=next_cursor)

    async def channel_exists(self, channel: str) -> bool:
        self.exists_calls.append(channel)
        return self.exists


class EchoLLMClient:
    """Answers every batch prompt with a well-formed summary per post id."""

    model = "echo"

    def __init__(self):
        self.calls = 0

    async def complete(self, prompt, system_prompt=None, temperature=None):
        self.calls += 1
        return json.dumps([
            {
                "id": post_id,
                "summary": f"Users report a problem in post {post_id}.",
                "key_points": [f"Fix issue {post_id}"],
                "sentiment": "negative",
            }
            for post_id in _PROMPT_ID.findall(prompt)
        ])


class BrokenLLMClient:
    """Model service that is down."""

    model = "broken"

    async def complete(self, prompt, system_prompt=None, temperature=None):
        raise RuntimeError("model service unavailable")
