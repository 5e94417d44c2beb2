from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import List, Literal, Optional


class ExistingWorkItem(BaseModel):
    """Read-only projection of a ticket or suggestion that already exists."""

    id: Optional[str] = None
    title: str
    theme: str = "General"
    status: str = Field(default="pending", description="e.g. pending, open, in_progress, done, declined")
    kind: Literal["ticket", "suggestion"] = "ticket"
    source_refs: List[str] = Field(
        default_factory=list,
        description="Feedback item ids already used as evidence"
    )

    @property
    def blocks_duplicates(self) -> bool:
        """Tickets always count; suggestions only while still pending."""
        if self.kind == "ticket":
            return True
        return self.status == "pending"


class ItemScore(BaseModel):
    """Per-item scoring breakdown."""

    item_id: str
    days_old: int
    recency_multiplier: float
    base_urgency: float
    avg_growth_pct: float = 0.0
    velocity_score: float = Field(default=0.0, ge=0.0)
    velocity_multiplier: float = 1.0
    urgency_score: int = Field(..., ge=0)
    is_trending: bool = False


class ThemeCluster(BaseModel):
    """Items grouped under one candidate work item."""

    theme: str
    title: str
    item_ids: List[str]


class Suggestion(BaseModel):
    """Scored candidate work item."""

    id: str
    title: str = Field(..., max_length=80)
    description: str
    theme: str
    priority: Literal["low", "medium", "high"]
    impact_score: int = Field(..., ge=0, le=100)
    velocity_score: int = Field(default=0, ge=0, le=30)
    is_trending: bool = False
    source_refs: List[str] = Field(default_factory=list)
    status: str = "pending"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
