from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional, Sequence
from ..models.feedback_item import EngagementSnapshot, StoredFeedbackItem
from ..models.suggestion import ExistingWorkItem, Suggestion


class FeedbackStore(ABC):
    """Document store used by the pipeline. Writes must be idempotent upserts by id."""

    @abstractmethod
    async def upsert_items(self, items: Sequence[StoredFeedbackItem]) -> int:
        """Insert or replace items keyed by id. Returns the number written."""

    @abstractmethod
    async def list_items(
        self,
        channel: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[StoredFeedbackItem]:
        """All stored items, optionally filtered by channel and minimum created_at."""

    @abstractmethod
    async def add_snapshots(self, snapshots: Iterable[EngagementSnapshot]) -> int:
        """Append snapshots. Never overwrites or deletes."""

    @abstractmethod
    async def list_snapshots(
        self,
        item_ids: Optional[Iterable[str]] = None,
        since: Optional[datetime] = None,
    ) -> List[EngagementSnapshot]:
        pass

    @abstractmethod
    async def add_work_item(self, item: ExistingWorkItem) -> None:
        """Record a ticket created outside this pipeline."""

    @abstractmethod
    async def list_existing_work(self) -> List[ExistingWorkItem]:
        """Tickets plus previously generated suggestions, as dedup context."""

    @abstractmethod
    async def save_suggestions(self, suggestions: Sequence[Suggestion]) -> int:
        """Upsert suggestions keyed by id. Returns the number written."""

    @abstractmethod
    async def list_suggestions(self, status: Optional[str] = None) -> List[Suggestion]:
        pass
