"""
Item Contracts

Immutable data structures for the ingestion pipeline.

BOUNDARY: Ingestion Layer
All stream data enters through RawItem and leaves as Item.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, FrozenSet, Mapping, Optional, Tuple

from .base import Error, ErrorCode, parse_timestamp, ensure_utc


# =============================================================================
# RAW INPUT (validated at the boundary)
# =============================================================================

@dataclass(frozen=True)
class RawItem:
    """
    One observation as supplied by the raw item source.

    Ids are opaque; the timestamp is authoritative for recency scoring.
    """
    item_id: str
    timestamp: datetime
    source_id: str
    text: str
    engagement: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)
    parent_id: Optional[str] = None
    display_name: Optional[str] = None

    def __post_init__(self):
        if not self.item_id or not isinstance(self.item_id, str):
            raise ValueError("item_id must be a non-empty string")
        if not self.source_id or not isinstance(self.source_id, str):
            raise ValueError("source_id must be a non-empty string")
        if not isinstance(self.text, str):
            raise ValueError("text must be a string")
        object.__setattr__(self, 'timestamp', ensure_utc(self.timestamp))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RawItem:
        """
        Build a RawItem from a source record.

        Accepts `{id, timestamp, source_id, text, engagement, parent_id}`
        and the scraper's short keys (`ts`, `u`, `likes`, `rts`, `replies`).
        Raises ValueError on missing or malformed fields.
        """
        if not isinstance(data, Mapping):
            raise ValueError("item record must be an object")

        item_id = data.get('id', data.get('item_id'))
        if item_id is None:
            raise ValueError("item record missing 'id'")

        raw_ts = data.get('timestamp', data.get('ts'))
        if raw_ts is None:
            raise ValueError("item record missing 'timestamp'")

        source_id = data.get('source_id', data.get('u'))
        if source_id is None:
            raise ValueError("item record missing 'source_id'")

        engagement = data.get('engagement')
        if engagement is None:
            engagement = {
                key: data[short]
                for key, short in (('likes', 'likes'), ('reposts', 'rts'), ('replies', 'replies'))
                if short in data
            }
        if not isinstance(engagement, Mapping):
            raise ValueError("engagement must be an object of counters")

        counters = []
        for name, value in engagement.items():
            try:
                counters.append((str(name), int(value or 0)))
            except (TypeError, ValueError, OverflowError):
                raise ValueError(f"engagement counter {name!r} is not numeric")

        parent_id = data.get('parent_id')
        return cls(
            item_id=str(item_id),
            timestamp=parse_timestamp(raw_ts),
            source_id=str(source_id),
            text=data.get('text') or "",
            engagement=tuple(sorted(counters)),
            parent_id=str(parent_id) if parent_id else None,
            display_name=data.get('display_name', data.get('dn')),
        )

    def engagement_dict(self) -> dict:
        return dict(self.engagement)


# =============================================================================
# SCORED ITEMS
# =============================================================================

@dataclass(frozen=True)
class ItemScores:
    """Derived scores; `total` already includes novelty once computed."""
    velocity: float = 0.0
    trust: float = 0.0
    alignment: float = 0.0
    novelty: float = 0.0
    total: float = 0.0


@dataclass(frozen=True)
class Item:
    """
    A scored item. Immutable once scored; re-observation is an upsert by id.
    """
    item_id: str
    timestamp: datetime
    source_id: str
    text: str
    engagement: Tuple[Tuple[str, int], ...]
    keywords: Tuple[str, ...]
    scores: ItemScores
    parent_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def total(self) -> float:
        return self.scores.total

    def engagement_count(self, name: str) -> int:
        return dict(self.engagement).get(name, 0)


@dataclass(frozen=True)
class KeywordIndexEntry:
    """(keyword, item id, score, observed_at) row of the inverted index."""
    keyword: str
    item_id: str
    score: float
    observed_at: datetime


@dataclass(frozen=True)
class KeywordStat:
    """Aggregate over the keyword index for a time window."""
    keyword: str
    count: int
    avg_score: float
    last_seen: datetime


# =============================================================================
# CLUSTERS AND DIGEST (ephemeral, recomputed each cycle)
# =============================================================================

@dataclass(frozen=True)
class Cluster:
    """Members are score-descending; the first member is the representative."""
    label: str
    members: Tuple[Item, ...]
    is_burst: bool = False

    @property
    def representative(self) -> Item:
        return self.members[0]

    @property
    def size(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class Digest:
    """Compact per-cycle digest handed to the digest consumer."""
    generated_at: datetime
    clusters: Tuple[Cluster, ...]
    singletons: Tuple[Item, ...]
    burst_keywords: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def item_count(self) -> int:
        return sum(c.size for c in self.clusters) + len(self.singletons)

    @property
    def is_empty(self) -> bool:
        return self.item_count == 0


@dataclass(frozen=True)
class CycleReport:
    """Outcome of one ingestion cycle."""
    started_at: datetime
    completed_at: datetime
    received: int
    already_seen: int
    sanitized_out: int
    duplicates_removed: int
    persisted: Tuple[str, ...]
    digest: Digest
    errors: Tuple[Error, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return not any(e.code is ErrorCode.STORE_UNAVAILABLE for e in self.errors)
