"""
Deterministic urgency and velocity scoring for stored feedback.

urgency = (engagement part + recency part + discussion part) x velocity multiplier

- engagement: min(engagement / ceiling, 1) x 40
- recency: 25 x 1.5 (<= 7 days) | 1.0 (<= 30 days) | 0.6 (older)
- discussion: min(comments / ceiling, 1) x 20
- velocity multiplier: step function of average growth over the trailing
  window (1.3 above 20%, 1.15 above 10%, else 1.0)

All constants come from ScoringPolicy.
"""
import math
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from ..config import ScoringPolicy
from ..models.feedback_item import EngagementSnapshot, StoredFeedbackItem
from ..models.suggestion import ItemScore


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def days_old(created_at: datetime, now: datetime) -> int:
    return max(0, math.floor((now - created_at).total_seconds() / 86400))


def recency_multiplier(age_days: int, policy: ScoringPolicy) -> float:
    if age_days <= policy.recent_days:
        return policy.recent_multiplier
    if age_days <= policy.current_days:
        return policy.current_multiplier
    return policy.stale_multiplier


def growth_pct(old: int, new: int) -> Optional[float]:
    """Percentage change, or None when there is no baseline to grow from."""
    if old <= 0:
        return None
    return (new - old) * 100.0 / old


def average_growth(
    snapshots: Sequence[EngagementSnapshot],
    now: datetime,
    policy: ScoringPolicy,
) -> Optional[float]:
    """
    Mean growth of engagement and discussion volume between the oldest and
    newest snapshot inside the trailing window.

    Returns None with fewer than two snapshots in the window. A dimension
    with a zero baseline is left out of the mean; if neither has a baseline
    the growth is 0.
    """
    window_start = now - timedelta(hours=policy.velocity_window_hours)
    in_window = sorted(
        (s for s in snapshots if window_start <= s.taken_at <= now),
        key=lambda s: s.taken_at,
    )
    if len(in_window) < 2:
        return None

    oldest, newest = in_window[0], in_window[-1]
    growths: List[float] = [
        g for g in (
            growth_pct(oldest.engagement, newest.engagement),
            growth_pct(oldest.discussion_count, newest.discussion_count),
        )
        if g is not None
    ]
    if not growths:
        return 0.0
    return sum(growths) / len(growths)


def velocity_score(avg_growth: Optional[float], policy: ScoringPolicy) -> float:
    if avg_growth is None:
        return 0.0
    return min(max(avg_growth, 0.0), policy.max_velocity)


def velocity_multiplier(avg_growth: Optional[float], policy: ScoringPolicy) -> float:
    if avg_growth is None:
        return 1.0
    if avg_growth > policy.strong_growth_pct:
        return policy.strong_growth_multiplier
    if avg_growth > policy.moderate_growth_pct:
        return policy.moderate_growth_multiplier
    return 1.0


def base_urgency(item: StoredFeedbackItem, age_days: int, policy: ScoringPolicy) -> float:
    engagement_part = min(max(item.engagement, 0) / policy.engagement_ceiling, 1.0) * policy.engagement_weight
    recency_part = recency_multiplier(age_days, policy) * policy.recency_base
    discussion_part = min(max(item.discussion_count, 0) / policy.discussion_ceiling, 1.0) * policy.discussion_weight
    return engagement_part + recency_part + discussion_part


def score_item(
    item: StoredFeedbackItem,
    snapshots: Sequence[EngagementSnapshot],
    now: datetime,
    policy: ScoringPolicy,
) -> ItemScore:
    age = days_old(item.created_at, now)
    base = base_urgency(item, age, policy)
    growth = average_growth(snapshots, now, policy)
    velocity = velocity_score(growth, policy)
    multiplier = velocity_multiplier(growth, policy)
    urgency = min(round_half_up(base * multiplier), round_half_up(policy.max_urgency))

    return ItemScore(
        item_id=item.id,
        days_old=age,
        recency_multiplier=recency_multiplier(age, policy),
        base_urgency=round(base, 2),
        avg_growth_pct=round(growth or 0.0, 2),
        velocity_score=round(velocity, 2),
        velocity_multiplier=multiplier,
        urgency_score=urgency,
        is_trending=velocity > policy.trending_threshold,
    )
