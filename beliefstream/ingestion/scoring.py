"""
Scorer

Composite relevance score per item:

    velocity  = engagement / (age_hours + 2) ^ 1.8
    trust     = source reputation clamped to [0, 10], 0 when unknown
    alignment = axis-label words (len > 3) present in the item text
    total     = velocity + trust * 0.5 + alignment * 0.3

Novelty is corpus-relative, so it is added in a second pass over the
selected batch: total += novelty * 0.4.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
import math
import re

from ..config import ScoringConfig
from ..contracts.items import Item, ItemScores, RawItem
from ..services.reputation import ReputationProvider

_WORD_SPLIT = re.compile(r"\W+", re.ASCII)


# =============================================================================
# COMPONENT SCORES (pure)
# =============================================================================

def engagement_total(counters: Mapping[str, int], weights: Mapping[str, float]) -> float:
    """Weighted sum of engagement counters; unweighted counters are ignored."""
    return sum(counters.get(name, 0) * weight for name, weight in weights.items())


def velocity(
    engagement: float,
    timestamp: datetime,
    now: datetime,
    exponent: float = 1.8,
    age_offset_hours: float = 2.0
) -> float:
    """HN-gravity decay. Future timestamps count as age zero."""
    age_hours = max(0.0, (now - timestamp).total_seconds() / 3600.0)
    return engagement / math.pow(age_hours + age_offset_hours, exponent)


def alignment(text: str, axis_labels: Iterable[str], min_word_length: int = 4) -> int:
    """Count of axis-label words literally present among the text's words."""
    words = set(_WORD_SPLIT.split(text.lower()))
    hits = 0
    for label in axis_labels:
        for word in _WORD_SPLIT.split(label.lower()):
            if len(word) >= min_word_length and word in words:
                hits += 1
    return hits


def trust(reputation: Optional[float], cap: float = 10.0) -> float:
    if reputation is None:
        return 0.0
    return max(0.0, min(cap, float(reputation)))


def composite(
    velocity_score: float,
    trust_score: float,
    alignment_score: float,
    config: ScoringConfig
) -> float:
    return (
        velocity_score
        + trust_score * config.trust_weight
        + alignment_score * config.alignment_weight
    )


# =============================================================================
# CORPUS NOVELTY
# =============================================================================

def compute_idf(corpus: Sequence[Sequence[str]]) -> Dict[str, float]:
    """Smoothed IDF over keyword lists: ln((N + 1) / (df + 1))."""
    n = len(corpus)
    if n == 0:
        return {}
    df: Dict[str, int] = {}
    for keywords in corpus:
        for kw in set(keywords):
            df[kw] = df.get(kw, 0) + 1
    return {kw: math.log((n + 1) / (count + 1)) for kw, count in df.items()}


def novelty(
    keywords: Sequence[str],
    idf: Mapping[str, float],
    corpus_size: int,
    cap: float = 5.0
) -> float:
    """Mean IDF of the keywords, capped. Unseen keywords score ln(N + 1)."""
    if not keywords:
        return 0.0
    max_idf = math.log(corpus_size + 1)
    total = sum(idf.get(kw, max_idf) for kw in keywords)
    return min(cap, total / len(keywords))


def apply_novelty(items: Sequence[Item], config: ScoringConfig) -> List[Item]:
    """Add corpus novelty to each item's total; returns new Item values."""
    corpus = [item.keywords for item in items]
    idf = compute_idf(corpus)
    result = []
    for item in items:
        boost = novelty(item.keywords, idf, len(corpus), config.novelty_cap)
        scores = replace(
            item.scores,
            novelty=boost,
            total=item.scores.total + boost * config.novelty_weight
        )
        result.append(replace(item, scores=scores))
    return result


# =============================================================================
# SCORER
# =============================================================================

class Scorer:
    """
    Scores raw items against the current axis labels and reputation source.

    Stateless apart from its configuration; safe to share across worker
    threads.
    """

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        reputation: Optional[ReputationProvider] = None,
        axis_labels: Sequence[str] = ()
    ):
        self._config = config or ScoringConfig()
        self._reputation = reputation
        self._axis_labels = tuple(axis_labels)

    @property
    def config(self) -> ScoringConfig:
        return self._config

    def score(self, raw: RawItem, keywords: Sequence[str], now: datetime) -> Item:
        cfg = self._config
        v = velocity(
            engagement_total(raw.engagement_dict(), cfg.engagement_weights),
            raw.timestamp,
            now,
            cfg.velocity_exponent,
            cfg.age_offset_hours,
        )
        rep = self._reputation.lookup(raw.source_id) if self._reputation else None
        t = trust(rep, cfg.trust_max)
        a = alignment(raw.text, self._axis_labels, cfg.min_label_word_length)
        return Item(
            item_id=raw.item_id,
            timestamp=raw.timestamp,
            source_id=raw.source_id,
            text=raw.text,
            engagement=raw.engagement,
            keywords=tuple(keywords),
            scores=ItemScores(
                velocity=v,
                trust=t,
                alignment=float(a),
                total=composite(v, t, a, cfg),
            ),
            parent_id=raw.parent_id,
            display_name=raw.display_name,
        )
