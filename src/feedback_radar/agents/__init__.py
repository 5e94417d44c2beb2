from .summarizer_agent import SummarizerAgent, fallback_summary, parse_summary_response
from .theme_grouper import ThemeGrouper, KeywordThemeGrouper, LLMThemeGrouper
from .suggestion_scorer import SuggestionScorer

__all__ = [
    "SummarizerAgent", "fallback_summary", "parse_summary_response",
    "ThemeGrouper", "KeywordThemeGrouper", "LLMThemeGrouper",
    "SuggestionScorer"
]
