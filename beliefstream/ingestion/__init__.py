"""
Ingestion Layer

Turns a noisy batch of raw items into a bounded, ranked, clustered set.

BOUNDARY ENFORCEMENT:
=====================
- Input: raw item records (mappings or RawItem)
- Output: persisted Items + CycleReport
- Never touches the belief store
"""

from .keywords import extract_keywords, STOP_WORDS
from .sanitize import sanitize, clean_text, SanitizeVerdict
from .scoring import Scorer, compute_idf, novelty, apply_novelty
from .clustering import (
    jaccard_similarity, Deduplicator, deduplicate, cluster_items,
    build_freq_map, detect_bursts, tag_cluster_bursts,
)
from .pipeline import IngestionPipeline
from .digest import render, summarize_topics
from .sources import ItemSource, JsonlItemSource, StaticItemSource

__all__ = [
    'extract_keywords', 'STOP_WORDS',
    'sanitize', 'clean_text', 'SanitizeVerdict',
    'Scorer', 'compute_idf', 'novelty', 'apply_novelty',
    'jaccard_similarity', 'Deduplicator', 'deduplicate', 'cluster_items',
    'build_freq_map', 'detect_bursts', 'tag_cluster_bursts',
    'IngestionPipeline',
    'render', 'summarize_topics',
    'ItemSource', 'JsonlItemSource', 'StaticItemSource',
]
