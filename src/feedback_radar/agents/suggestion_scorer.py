"""
Turns a pool of stored feedback into ranked, deduplicated work-item suggestions.

Pipeline: score every item -> order by urgency -> group by theme ->
roll up each cluster into a Suggestion -> drop clusters that duplicate
existing work without new evidence -> sort and truncate.
"""
import hashlib
import logging
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from ..config import ScoringPolicy, settings
from ..models.feedback_item import EngagementSnapshot, StoredFeedbackItem
from ..models.suggestion import ExistingWorkItem, ItemScore, Suggestion, ThemeCluster
from .scoring_logic import round_half_up, score_item
from .theme_grouper import KeywordThemeGrouper, ThemeGrouper, compute_content_hash, jaccard, tokenize

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 80
MAX_IMPACT = 100
MAX_VELOCITY = 30
DESCRIPTION_KEY_POINTS = 5

_CHANNEL_PREFIX = re.compile(r"^\[r/[^\]]+\]\s*")


def suggestion_id(theme: str, source_refs: Sequence[str]) -> str:
    """Stable id: the same theme backed by the same items is the same suggestion."""
    key = theme.lower() + "|" + ",".join(sorted(source_refs))
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def strip_channel_prefix(title: str) -> str:
    return _CHANNEL_PREFIX.sub("", title).strip()


def priority_for(impact: int, policy: ScoringPolicy) -> str:
    if impact >= policy.high_priority_impact:
        return "high"
    if impact >= policy.medium_priority_impact:
        return "medium"
    return "low"


def impact_score(urgencies: Sequence[int], policy: ScoringPolicy) -> int:
    """
    Roll member urgencies up into one 0-100 impact.

    The most urgent item dominates, the mean keeps broad clusters honest and
    every extra mention adds a small capped bonus.
    """
    if not urgencies:
        return 0
    peak = max(urgencies)
    mean = sum(urgencies) / len(urgencies)
    bonus = policy.impact_frequency_bonus * min(len(urgencies) - 1, policy.impact_frequency_cap)
    raw = peak * policy.impact_peak_weight + mean * (1 - policy.impact_peak_weight) + bonus
    return max(0, min(round_half_up(raw), MAX_IMPACT))


class SuggestionScorer:
    """Scores a feedback pool and emits suggestions ordered by impact."""

    def __init__(
        self,
        grouper: Optional[ThemeGrouper] = None,
        policy: Optional[ScoringPolicy] = None,
        max_suggestions: Optional[int] = None,
    ):
        self.grouper = grouper or KeywordThemeGrouper()
        self.policy = policy or settings.scoring
        self.max_suggestions = max_suggestions or settings.max_suggestions

    def score_items(
        self,
        pool: Sequence[StoredFeedbackItem],
        snapshots: Sequence[EngagementSnapshot],
        now: datetime,
    ) -> Dict[str, ItemScore]:
        by_item: Dict[str, List[EngagementSnapshot]] = {}
        for snap in snapshots:
            by_item.setdefault(snap.item_id, []).append(snap)
        return {
            item.id: score_item(item, by_item.get(item.id, []), now, self.policy)
            for item in pool
        }

    async def score_and_suggest(
        self,
        pool: Sequence[StoredFeedbackItem],
        snapshots: Sequence[EngagementSnapshot],
        existing_work: Sequence[ExistingWorkItem],
        now: Optional[datetime] = None,
    ) -> List[Suggestion]:
        now = now or datetime.now(timezone.utc)

        unique: Dict[str, StoredFeedbackItem] = {}
        for item in pool:
            unique.setdefault(item.id, item)
        items = list(unique.values())
        if not items:
            logger.info("Empty feedback pool, nothing to suggest")
            return []

        scores = self.score_items(items, snapshots, now)
        items.sort(key=lambda i: (-scores[i.id].urgency_score, -i.engagement, i.id))

        trending = sum(1 for s in scores.values() if s.is_trending)
        logger.info(f"Scored {len(items)} items ({trending} trending)")

        clusters = await self.grouper.group(items)
        by_id = {item.id: item for item in items}

        candidates = []
        for cluster in clusters:
            members = [by_id[i] for i in cluster.item_ids if i in by_id]
            if members:
                candidates.append(self._build_suggestion(cluster, members, scores, now))

        kept: List[Suggestion] = []
        for suggestion in candidates:
            match = self._find_duplicate(suggestion, existing_work)
            if match is None:
                kept.append(suggestion)
                continue
            new_refs = set(suggestion.source_refs) - set(match.source_refs)
            if len(new_refs) >= self.policy.novelty_min_new_items:
                logger.info(f"Keeping '{suggestion.title}': {len(new_refs)} new items beyond '{match.title}'")
                kept.append(suggestion)
            else:
                logger.info(f"Suppressed '{suggestion.title}' as duplicate of {match.kind} '{match.title}'")

        kept.sort(key=lambda s: (-s.impact_score, -s.velocity_score, s.title, s.id))
        result = kept[:self.max_suggestions]

        logger.info(
            f"✅ {len(result)} suggestions from {len(clusters)} clusters "
            f"({len(candidates) - len(kept)} suppressed as duplicates)"
        )
        return result

    def _build_suggestion(
        self,
        cluster: ThemeCluster,
        members: List[StoredFeedbackItem],
        scores: Dict[str, ItemScore],
        now: datetime,
    ) -> Suggestion:
        member_scores = [scores[m.id] for m in members]
        impact = impact_score([s.urgency_score for s in member_scores], self.policy)
        velocity = min(round_half_up(max(s.velocity_score for s in member_scores)), MAX_VELOCITY)
        refs = [m.id for m in members]

        channel = Counter(m.channel for m in members).most_common(1)[0][0]
        title = f"[r/{channel}] {strip_channel_prefix(cluster.title) or members[0].title}"
        if len(title) > TITLE_MAX_CHARS:
            title = title[:TITLE_MAX_CHARS - 3].rstrip() + "..."

        return Suggestion(
            id=suggestion_id(cluster.theme, refs),
            title=title,
            description=self._describe(members, member_scores),
            theme=cluster.theme,
            priority=priority_for(impact, self.policy),
            impact_score=impact,
            velocity_score=velocity,
            is_trending=any(s.is_trending for s in member_scores),
            source_refs=refs,
            created_at=now,
        )

    def _describe(self, members: List[StoredFeedbackItem], member_scores: List[ItemScore]) -> str:
        channels = ", ".join(sorted({f"r/{m.channel}" for m in members}))
        mentions = "1 mention" if len(members) == 1 else f"{len(members)} mentions"
        lines = [
            f"{mentions} in {channels} • "
            f"{sum(m.engagement for m in members)} upvotes • "
            f"{sum(m.discussion_count for m in members)} comments"
        ]

        trending = [s for s in member_scores if s.is_trending]
        if trending:
            top = max(s.avg_growth_pct for s in trending)
            lines.append(f"🔥 Trending: engagement up {top:.0f}% in the last {self.policy.velocity_window_hours}h")

        points: List[str] = []
        seen = set()
        for member in members:
            for point in member.summary.key_points:
                key = point.strip().lower()
                if key and key not in seen:
                    seen.add(key)
                    points.append(point.strip())
        if points:
            lines.append("")
            lines.append("Key points:")
            lines.extend(f"- {p}" for p in points[:DESCRIPTION_KEY_POINTS])

        return "\n".join(lines)

    def _find_duplicate(
        self,
        suggestion: Suggestion,
        existing_work: Sequence[ExistingWorkItem],
    ) -> Optional[ExistingWorkItem]:
        title = strip_channel_prefix(suggestion.title)
        tokens = tokenize(title)
        title_hash = compute_content_hash(title)

        for work in existing_work:
            # Same id means same theme and evidence: refresh while pending, never reopen once decided
            if work.kind == "suggestion" and work.id == suggestion.id:
                if work.status == "pending":
                    continue
                return work
            if not work.blocks_duplicates:
                continue

            work_title = strip_channel_prefix(work.title)
            sim = jaccard(tokens, tokenize(work_title))
            if sim >= self.policy.title_match_threshold or compute_content_hash(work_title) == title_hash:
                return work
            if work.theme.lower() == suggestion.theme.lower() and sim >= self.policy.theme_match_threshold:
                return work
        return None
