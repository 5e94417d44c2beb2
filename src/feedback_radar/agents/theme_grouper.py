"""
Thematic grouping of feedback items into candidate work items.

KeywordThemeGrouper is deterministic: regex theme classification followed by
greedy title/key-point token overlap clustering inside each theme.
LLMThemeGrouper asks a model for the grouping and uses the keyword grouper
for anything the model does not deliver.
"""
import hashlib
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Set

from pydantic import BaseModel, Field

from ..models.feedback_item import StoredFeedbackItem
from ..models.suggestion import ThemeCluster
from ..utils.llm_client import LLMClient

logger = logging.getLogger(__name__)

STOPWORDS = {
    "the", "and", "for", "with", "that", "this", "from", "have", "has", "are", "was",
    "were", "but", "not", "you", "your", "our", "can", "cant", "could", "would", "should",
    "when", "what", "why", "how", "does", "doesnt", "dont", "its", "into", "about",
    "any", "all", "there", "they", "them", "just", "still", "really", "get", "got",
    "after", "before", "some", "more", "than", "then", "also", "been", "being", "only",
    "anyone", "else", "like", "need", "want", "make", "use", "using", "one", "out",
}

_TOKEN = re.compile(r"[a-z0-9]+")


def tokenize(text: str) -> Set[str]:
    """Significant lowercase tokens with a naive plural strip."""
    tokens = set()
    for token in _TOKEN.findall(text.lower().replace("'", "")):
        if len(token) < 3 or token in STOPWORDS:
            continue
        if len(token) > 4 and token.endswith("s") and not token.endswith("ss"):
            token = token[:-1]
        tokens.add(token)
    return tokens


def jaccard(a: Set[str], b: Set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def compute_content_hash(title: str) -> str:
    """Hash of the normalized title, equal for titles that differ only in case/punctuation."""
    normalized = " ".join(title.lower().split())
    normalized = "".join(c for c in normalized if c.isalnum() or c.isspace())
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


def item_text(item: StoredFeedbackItem) -> str:
    return " ".join([item.title, item.summary.summary, *item.summary.key_points])


class ThemeGrouper(ABC):
    """Contract: group(items) -> clusters. Every item lands in exactly one cluster."""

    @abstractmethod
    async def group(self, items: Sequence[StoredFeedbackItem]) -> List[ThemeCluster]:
        pass


class KeywordThemeGrouper(ThemeGrouper):
    """Deterministic grouping by theme keywords and title overlap."""

    # Order breaks ties between themes with the same number of hits
    THEMES: Dict[str, re.Pattern] = {
        "Bug": re.compile(r"""
            \b(
            crash\w* | bug\w* | broken | error\w* | fail\w* | glitch\w* | freez\w*
            | not\s+working | doesn'?t\s+work | stopped\s+working | regression
            )\b
        """, re.VERBOSE | re.IGNORECASE),
        "Performance": re.compile(r"""
            \b(
            slow\w* | lag\w* | latency | performance | load(ing)?\s+times? | takes\s+forever
            | memory | cpu | fps | battery\s+drain | timeout\w*
            )\b
        """, re.VERBOSE | re.IGNORECASE),
        "Mobile": re.compile(r"""
            \b(
            mobile | ios | android | iphone | ipad | tablet | app\s+store | play\s+store
            )\b
        """, re.VERBOSE | re.IGNORECASE),
        "Integration": re.compile(r"""
            \b(
            integrat\w* | api | webhook\w* | plugin\w* | export\w* | import\w*
            | zapier | slack | calendar\s+sync | third[- ]party
            )\b
        """, re.VERBOSE | re.IGNORECASE),
        "Pricing": re.compile(r"""
            \b(
            pric\w* | subscription\w* | billing | refund\w* | expensive | paywall
            | free\s+tier | premium | cancel\w*\s+subscription
            )\b
        """, re.VERBOSE | re.IGNORECASE),
        "UX": re.compile(r"""
            \b(
            ui | ux | design | confusing | layout | dark\s+mode | navigation | usability
            | button\w* | menu\w* | font\w* | onboarding | cluttered | intuitive
            )\b
        """, re.VERBOSE | re.IGNORECASE),
        "Documentation": re.compile(r"""
            \b(
            docs | documentation | tutorial\w* | guide\w* | example\w* | how[- ]to
            )\b
        """, re.VERBOSE | re.IGNORECASE),
        "Feature Request": re.compile(r"""
            \b(
            feature\s+request | would\s+love | wish | please\s+add | add\s+support
            | ability\s+to | option\s+to | support\s+for | suggestion | it\s+would\s+be\s+nice
            )\b
        """, re.VERBOSE | re.IGNORECASE),
    }
    DEFAULT_THEME = "General"

    def __init__(self, similarity_threshold: float = 0.25):
        self.similarity_threshold = similarity_threshold

    def classify(self, text: str) -> str:
        best_theme, best_hits = self.DEFAULT_THEME, 0
        for theme, pattern in self.THEMES.items():
            hits = len(pattern.findall(text))
            if hits > best_hits:
                best_theme, best_hits = theme, hits
        return best_theme

    async def group(self, items: Sequence[StoredFeedbackItem]) -> List[ThemeCluster]:
        # seed tokens per cluster; clusters keep the order their seeds arrived in
        clusters: List[ThemeCluster] = []
        seeds: List[Set[str]] = []

        for item in items:
            theme = self.classify(item_text(item))
            tokens = tokenize(" ".join([item.title, *item.summary.key_points]))

            best_idx: Optional[int] = None
            best_sim = 0.0
            for idx, cluster in enumerate(clusters):
                if cluster.theme != theme:
                    continue
                sim = jaccard(tokens, seeds[idx])
                if sim >= self.similarity_threshold and sim > best_sim:
                    best_idx, best_sim = idx, sim

            if best_idx is None:
                clusters.append(ThemeCluster(theme=theme, title=item.title, item_ids=[item.id]))
                seeds.append(tokens)
            else:
                clusters[best_idx].item_ids.append(item.id)

        logger.info(f"KeywordThemeGrouper: {len(items)} items -> {len(clusters)} clusters")
        return clusters


class ThemeGroup(BaseModel):
    theme: str = Field(..., description="Single category, e.g. Bug, Performance, UX, Feature Request, Integration, Mobile")
    title: str = Field(..., description="Action-oriented title: 'Fix ...', 'Add ...' or 'Improve ...' (max 70 chars)")
    item_refs: List[int] = Field(..., description="REF numbers of the feedback items in this group")


class ThemeGrouping(BaseModel):
    groups: List[ThemeGroup] = Field(default_factory=list)


class LLMThemeGrouper(ThemeGrouper):
    """Model-driven grouping with the keyword grouper as the safety net."""

    CONTENT_CHARS = 400

    def __init__(self, llm_client: LLMClient, fallback: Optional[ThemeGrouper] = None):
        self.llm_client = llm_client
        self.fallback = fallback or KeywordThemeGrouper()

    async def group(self, items: Sequence[StoredFeedbackItem]) -> List[ThemeCluster]:
        if not items:
            return []

        feedback_text = "\n\n---\n\n".join(
            f"[REF {ref}] Channel: {item.channel} | Engagement: {item.engagement} | Comments: {item.discussion_count}\n"
            f"Title: {item.title}\n"
            f"Summary: {item.summary.summary[:self.CONTENT_CHARS]}"
            for ref, item in enumerate(items)
        )
        prompt = f"""Group these feedback items into candidate product tickets.

**FEEDBACK DATA** (sorted by urgency, most urgent first):
{feedback_text}

**RULES:**
- Put items describing the same underlying problem or request in one group
- Every item belongs to exactly one group; a group may have a single item
- Use the REF numbers exactly as given"""

        try:
            grouping = await self.llm_client.extract(
                prompt=prompt,
                response_model=ThemeGrouping,
                system_prompt="You are a product manager clustering user feedback into actionable tickets.",
                temperature=0.0
            )
        except Exception as e:
            logger.error(f"LLMThemeGrouper error, using keyword grouping: {e}")
            return await self.fallback.group(items)

        assigned: Set[str] = set()
        clusters: List[ThemeCluster] = []
        for group in grouping.groups:
            members = []
            for ref in group.item_refs:
                if 0 <= ref < len(items) and items[ref].id not in assigned:
                    members.append(items[ref])
                    assigned.add(items[ref].id)
            if not members:
                continue
            clusters.append(ThemeCluster(
                theme=group.theme.strip() or KeywordThemeGrouper.DEFAULT_THEME,
                title=group.title.strip() or members[0].title,
                item_ids=[m.id for m in members],
            ))

        leftovers = [item for item in items if item.id not in assigned]
        if leftovers:
            logger.info(f"LLMThemeGrouper: {len(leftovers)} unassigned items go to keyword grouping")
            clusters.extend(await self.fallback.group(leftovers))

        return clusters
