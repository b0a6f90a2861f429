"""
Digest Rendering

Compact, line-oriented text for the digest consumer: one block per
multi-member cluster (best cluster first), then singletons.
"""

from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from ..contracts.base import utc_now
from ..contracts.items import Digest, Item
from ..storage.items import ItemStore

RULE = "─" * 34


def _count(value: int, symbol: str) -> str:
    if value >= 1000:
        return f"{value / 1000:.1f}k{symbol}"
    return f"{value}{symbol}"


def _flatten(text: str, limit: int) -> str:
    return " ".join(text.split())[:limit]


def format_item(item: Item, max_chars: int = 200) -> str:
    engagement = (
        f"{_count(item.engagement_count('likes'), '❤')} "
        f"{_count(item.engagement_count('reposts'), '🔁')}"
    )
    return (
        f"@{item.source_id} [v{item.scores.velocity:.1f} T{item.scores.trust:g} "
        f"S{item.total:.2f}] \"{_flatten(item.text, max_chars)}\" [{engagement}]"
    )


def render(digest: Digest) -> str:
    header = f"── {digest.generated_at.strftime('%Y-%m-%d %H:%M')} {RULE}"
    lines = [header]
    if digest.is_empty:
        lines.append("  (no new items this cycle)")
        return "\n".join(lines)

    for cluster in digest.clusters:
        marker = "[BURST] " if cluster.is_burst else ""
        lines.append(f"{marker}{cluster.label} ({cluster.size} items)")
        for item in cluster.members:
            lines.append(f"  {format_item(item)}")

    if digest.singletons:
        lines.append("SINGLETONS")
        for item in digest.singletons:
            lines.append(f"  {format_item(item)}")
            if item.keywords:
                lines.append(f"    → {', '.join(item.keywords)}")

    if digest.burst_keywords:
        lines.append(f"BURSTING: {', '.join(sorted(digest.burst_keywords))}")
    return "\n".join(lines)


def summarize_topics(
    store: ItemStore,
    hours: float = 4,
    now: Optional[datetime] = None,
    keyword_limit: int = 20,
    item_limit: int = 10,
    deep_dives: int = 5
) -> str:
    """Topic summary of what the store indexed over the last `hours`."""
    now = now or utc_now()
    keywords = store.top_keywords(hours=hours, limit=keyword_limit, now=now)
    items = store.recent_items(hours=hours, limit=item_limit, now=now)

    lines: List[str] = [
        f"── topic summary (last {hours:g}h) {now.strftime('%Y-%m-%d %H:%M')} {RULE}",
        "",
    ]
    if not keywords:
        lines.append("  No data indexed yet.")
    else:
        lines.append("TOP TOPICS (by item frequency):")
        for stat in keywords[:15]:
            bar = "█" * min(stat.count, 10)
            lines.append(f"  {bar:<10} {stat.count}x  {stat.keyword}")

        lines.append("")
        lines.append(f"TOP ITEMS (by score, last {hours:g}h):")
        for item in items:
            lines.append(f"  {format_item(item, 140)}")
            if item.keywords:
                lines.append(f"    → {', '.join(item.keywords)}")

        lines.append("")
        lines.append(f"KEYWORD DEEP-DIVES (top {deep_dives} topics):")
        for stat in keywords[:deep_dives]:
            lines.append(f"  [{stat.keyword}] {stat.count} items")
            for related in store.items_by_keyword(stat.keyword, limit=3):
                lines.append(f"    @{related.source_id}: \"{_flatten(related.text, 100)}\"")

    lines.append("")
    lines.append(f"── end summary {RULE}")
    return "\n".join(lines)
