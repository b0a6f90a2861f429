"""
Deduplication, Clustering and Burst Detection

All similarity here is keyword-set Jaccard. Inputs are expected
score-descending: the first item of a near-duplicate group is the one
kept, and the first item of a cluster is its representative.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Collection, Dict, FrozenSet, Iterable, List, Sequence, Set

from ..contracts.items import Cluster, Item

CLUSTER_LABEL_SEPARATOR = " · "
CLUSTER_LABEL_KEYWORDS = 3
MISC_LABEL = "misc"


def jaccard_similarity(a: Collection[str], b: Collection[str]) -> float:
    """|A ∩ B| / |A ∪ B|; 0.0 when both sets are empty."""
    set_a, set_b = frozenset(a), frozenset(b)
    if not set_a and not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


# =============================================================================
# NEAR-DUPLICATE REMOVAL
# =============================================================================

class Deduplicator:
    """
    Order-sensitive near-duplicate filter.

    Items are checked against everything registered so far; an item
    without keywords is never a duplicate and never blocks another.
    """

    def __init__(self, threshold: float = 0.65):
        self._threshold = threshold
        self._kept: List[FrozenSet[str]] = []

    def is_duplicate(self, keywords: Collection[str]) -> bool:
        current = frozenset(keywords)
        if not current:
            return False
        return any(
            kept and jaccard_similarity(current, kept) >= self._threshold
            for kept in self._kept
        )

    def register(self, keywords: Collection[str]) -> None:
        self._kept.append(frozenset(keywords))


def deduplicate(items: Sequence[Item], threshold: float = 0.65) -> List[Item]:
    """Drop near-duplicates from a score-descending sequence, keeping order."""
    detector = Deduplicator(threshold)
    accepted = []
    for item in items:
        if detector.is_duplicate(item.keywords):
            continue
        detector.register(item.keywords)
        accepted.append(item)
    return accepted


# =============================================================================
# CLUSTERING
# =============================================================================

def cluster_label(keywords: Sequence[str]) -> str:
    return CLUSTER_LABEL_SEPARATOR.join(keywords[:CLUSTER_LABEL_KEYWORDS]) or MISC_LABEL


def cluster_items(items: Sequence[Item], threshold: float = 0.25) -> List[Cluster]:
    """
    Greedy single-linkage clustering against each cluster's representative.

    The first cluster whose representative reaches `threshold` absorbs
    the item; otherwise the item seeds a new cluster. Clusters are
    returned ordered by their top member's score, descending.
    """
    groups: List[List[Item]] = []
    for item in items:
        placed = False
        if item.keywords:
            for group in groups:
                rep = group[0]
                if rep.keywords and jaccard_similarity(item.keywords, rep.keywords) >= threshold:
                    group.append(item)
                    placed = True
                    break
        if not placed:
            groups.append([item])

    clusters = [Cluster(label=cluster_label(g[0].keywords), members=tuple(g)) for g in groups]
    clusters.sort(key=lambda c: c.representative.total, reverse=True)
    return clusters


# =============================================================================
# BURSTS
# =============================================================================

def build_freq_map(keyword_lists: Iterable[Sequence[str]]) -> Dict[str, int]:
    freq: Dict[str, int] = {}
    for keywords in keyword_lists:
        for kw in keywords:
            freq[kw] = freq.get(kw, 0) + 1
    return freq


def detect_bursts(
    current_window: Iterable[Sequence[str]],
    previous_window: Iterable[Sequence[str]],
    min_count: int = 2,
    ratio: float = 2.0
) -> Set[str]:
    """Keywords seen at least `min_count` times and more than `ratio`x the previous window."""
    current = build_freq_map(current_window)
    previous = build_freq_map(previous_window)
    return {
        kw for kw, count in current.items()
        if count >= min_count and count > previous.get(kw, 0) * ratio
    }


def tag_cluster_bursts(clusters: Sequence[Cluster], burst_keywords: Collection[str]) -> List[Cluster]:
    bursting = set(burst_keywords)
    return [
        replace(c, is_burst=True) if any(kw in bursting for kw in c.representative.keywords) else c
        for c in clusters
    ]
