from .models.raw_item import RawItem
from .models.summary import Summary


def format_content(item: RawItem, summary: Summary) -> str:
    """Canonical display string for a summarized post. Pure and deterministic."""
    sections = [f"**{item.title}**", "", summary.summary]

    if summary.key_points:
        sections.append("")
        sections.append("**Key Points:**")
        sections.extend(f"• {point}" for point in summary.key_points)

    sections.append("")
    sections.append(f"📊 {item.engagement} upvotes • {item.discussion_count} comments")

    return "\n".join(sections)
