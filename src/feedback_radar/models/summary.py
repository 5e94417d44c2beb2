from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Literal, Union

Sentiment = Literal["positive", "negative", "neutral", "mixed"]
Provenance = Literal["model", "fallback"]

SENTIMENTS = ("positive", "negative", "neutral", "mixed")
MAX_KEY_POINTS = 6


class Summary(BaseModel):
    """Condensed, actionable view of a single RawItem."""

    model_config = ConfigDict(frozen=True)

    summary: str = Field(..., description="2-3 sentence narrative focused on the actionable feedback")
    key_points: List[str] = Field(default_factory=list, max_length=MAX_KEY_POINTS)
    sentiment: Sentiment = "neutral"
    provenance: Provenance


class ParsedSummaries(BaseModel):
    """Model output that parsed into at least a JSON array of summary entries."""

    kind: Literal["parsed"] = "parsed"
    summaries: Dict[str, Summary] = Field(default_factory=dict)


class MalformedResponse(BaseModel):
    """Model output (or call failure) that cannot be used for the batch."""

    kind: Literal["malformed"] = "malformed"
    reason: str


BatchOutcome = Union[ParsedSummaries, MalformedResponse]


class SummarizationResult(BaseModel):
    """Summaries for a whole run plus the counters the job result reports."""

    summaries: Dict[str, Summary] = Field(default_factory=dict)
    model_count: int = 0
    fallback_count: int = 0
    cap_hit: bool = False
    capped_items: int = 0
    failed_batches: int = 0
