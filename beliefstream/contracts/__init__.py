"""
Contracts: immutable data shared by every layer.

Layers import types from here and never from each other's internals.
"""

from .base import (
    ErrorCode, Error, StoreError, BeliefStoreError,
    utc_now, ensure_utc, parse_timestamp, to_iso, content_hash,
)
from .items import (
    RawItem, Item, ItemScores, KeywordIndexEntry, KeywordStat,
    Cluster, Digest, CycleReport,
)
from .beliefs import (
    PoleAlignment, DriftDirection, EvidenceEntry, EvidenceRecord,
    BeliefAxis, NewAxisProposal, AxisStats, DriftState, DriftAlert,
    MergeProposal, MergeResult, DeltaReport, DriftReport, RedundancyReport,
)

__all__ = [
    'ErrorCode', 'Error', 'StoreError', 'BeliefStoreError',
    'utc_now', 'ensure_utc', 'parse_timestamp', 'to_iso', 'content_hash',
    'RawItem', 'Item', 'ItemScores', 'KeywordIndexEntry', 'KeywordStat',
    'Cluster', 'Digest', 'CycleReport',
    'PoleAlignment', 'DriftDirection', 'EvidenceEntry', 'EvidenceRecord',
    'BeliefAxis', 'NewAxisProposal', 'AxisStats', 'DriftState', 'DriftAlert',
    'MergeProposal', 'MergeResult', 'DeltaReport', 'DriftReport', 'RedundancyReport',
]
