"""
Centralized configuration for Feedback Radar.
All parameters in one place, overridable via environment variables.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field
from typing import Literal, Optional
import yaml
from pathlib import Path

# Load YAML config if exists
def _load_yaml_config() -> dict:
    """Load config.yaml if it exists, else return empty dict."""
    config_path = Path(__file__).parent.parent.parent / "config.yaml"
    if config_path.exists():
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}
    return {}

_yaml = _load_yaml_config()
_reddit = _yaml.get('reddit', {})
_summary = _yaml.get('summarization', {})
_sync = _yaml.get('sync', {})
_llm = _yaml.get('llm', {})
_suggestions = _yaml.get('suggestions', {})


class ScoringPolicy(BaseModel):
    """Weights and thresholds used by the suggestion scorer."""

    # Urgency components
    engagement_ceiling: float = Field(default=1000.0, gt=0)
    engagement_weight: float = Field(default=40.0, ge=0)
    recency_base: float = Field(default=25.0, ge=0)
    recent_days: int = Field(default=7, description="Posts this young get recent_multiplier")
    recent_multiplier: float = 1.5
    current_days: int = Field(default=30, description="Posts this young get current_multiplier")
    current_multiplier: float = 1.0
    stale_multiplier: float = 0.6
    discussion_ceiling: float = Field(default=50.0, gt=0)
    discussion_weight: float = Field(default=20.0, ge=0)
    max_urgency: float = 100.0

    # Velocity
    velocity_window_hours: int = 48
    max_velocity: float = 30.0
    moderate_growth_pct: float = 10.0
    moderate_growth_multiplier: float = 1.15
    strong_growth_pct: float = 20.0
    strong_growth_multiplier: float = 1.3
    trending_threshold: float = 15.0

    # Roll-up into suggestions
    impact_peak_weight: float = Field(default=0.7, ge=0.0, le=1.0)
    impact_frequency_bonus: float = 3.0
    impact_frequency_cap: int = 5
    high_priority_impact: int = 70
    medium_priority_impact: int = 40

    # Deduplication against existing work
    title_match_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    theme_match_threshold: float = Field(
        default=0.3, ge=0.0, le=1.0,
        description="Looser title overlap that still counts as a match within the same theme"
    )
    novelty_min_new_items: int = Field(
        default=3,
        description="New contributing items needed to re-suggest a theme that already exists"
    )


class Settings(BaseSettings):
    """Application configuration with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    # === LLM Configuration ===
    # Separate models for batch summaries (fast/cheap) vs theme grouping (quality)
    llm_summary_model: str = Field(
        default=_llm.get('summary_model', "gpt-5-nano"),
        description="Model for SummarizerAgent (fast, cheap)"
    )
    llm_grouping_model: str = Field(
        default=_llm.get('grouping_model', "gpt-5-mini"),
        description="Model for LLMThemeGrouper (quality)"
    )
    openai_api_key: str | None = Field(default=None)
    llm_base_url: str = Field(
        default=_llm.get('base_url', "http://localhost:11434/v1"),
        description="OpenAI-compatible endpoint for non-OpenAI models"
    )
    llm_temperature: float = Field(
        default=_llm.get('temperature', 0.0),
        ge=0.0,
        le=2.0,
        description="LLM temperature (0.0 = deterministic)"
    )
    llm_timeout: float = Field(
        default=_llm.get('timeout', 60.0),
        description="Per-call timeout for model requests (seconds)"
    )

    # === Content API (Reddit) ===
    reddit_base_url: str = Field(default=_reddit.get('base_url', "https://www.reddit.com"))
    reddit_oauth_base_url: str = Field(default=_reddit.get('oauth_base_url', "https://oauth.reddit.com"))
    reddit_user_agent: str = Field(
        default=_reddit.get('user_agent', "FeedbackRadar/1.0 (Feedback Aggregator)")
    )
    reddit_client_id: Optional[str] = Field(default=None)
    reddit_client_secret: Optional[str] = Field(default=None)
    reddit_page_size: int = Field(default=_reddit.get('page_size', 100), ge=1, le=100)
    request_timeout: float = Field(default=_reddit.get('request_timeout', 30.0))
    channel_check_timeout: float = Field(default=_reddit.get('channel_check_timeout', 10.0))
    request_delay_seconds: float = Field(
        default=_reddit.get('request_delay_seconds', 2.0),
        ge=0.0,
        description="Pause after each successful page before the next request"
    )
    backoff_base_seconds: float = Field(
        default=_reddit.get('backoff_base_seconds', 10.0),
        ge=0.0,
        description="First retry wait; doubles on every further retry"
    )
    max_retries: int = Field(default=_reddit.get('max_retries', 3), ge=0)

    # === Sync Job ===
    max_post_limit: int = Field(
        default=_sync.get('max_post_limit', 400),
        ge=1,
        description="Hard ceiling on posts per sync job"
    )
    default_post_limit: int = Field(default=_sync.get('default_post_limit', 100), ge=1)
    max_range_days: int = Field(default=_sync.get('max_range_days', 90), ge=1)
    job_timeout_seconds: float = Field(default=_sync.get('job_timeout_seconds', 540.0))
    persistence_batch_size: int = Field(default=_sync.get('persistence_batch_size', 500), ge=1)
    snapshot_lookback_days: int = Field(default=_sync.get('snapshot_lookback_days', 7), ge=1)

    # === Summarization ===
    summary_batch_size: int = Field(default=_summary.get('batch_size', 10), ge=1)
    summary_batch_delay: float = Field(default=_summary.get('batch_delay', 1.0), ge=0.0)
    summary_max_items: int = Field(
        default=_summary.get('max_items', 400),
        ge=0,
        description="Items beyond this count always get the fallback summary"
    )
    summary_concurrency: int = Field(default=_summary.get('concurrency', 5), ge=1)
    summary_fallback_chars: int = Field(default=_summary.get('fallback_chars', 500), ge=1)

    # === Suggestions ===
    max_suggestions: int = Field(default=_suggestions.get('max_suggestions', 12), ge=1)
    # Candidate pool: top recent, top all-time, and most discussed items
    pool_recent_days: int = Field(default=_suggestions.get('pool_recent_days', 7), ge=1)
    pool_recent_top: int = Field(default=_suggestions.get('pool_recent_top', 50), ge=0)
    pool_all_time_top: int = Field(default=_suggestions.get('pool_all_time_top', 30), ge=0)
    pool_discussed_top: int = Field(default=_suggestions.get('pool_discussed_top', 20), ge=0)
    pool_min_comments: int = Field(default=_suggestions.get('pool_min_comments', 10), ge=0)
    grouping_mode: Literal["keyword", "llm"] = Field(
        default=_suggestions.get('grouping_mode', "keyword"),
        description="'keyword' (deterministic) or 'llm'"
    )
    scoring: ScoringPolicy = Field(
        default_factory=lambda: ScoringPolicy(**_yaml.get('scoring', {}))
    )

    # === Data Storage ===
    redis_url: str = Field(default="redis://localhost:6379/0")
    audit_log_dir: str = Field(default="logs")


settings = Settings()
