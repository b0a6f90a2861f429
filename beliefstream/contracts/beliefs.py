"""
Belief Contracts

Immutable data structures for belief axes, their evidence logs,
drift detection and redundancy proposals.

INVARIANTS:
===========
- Evidence logs only grow (append-only)
- Axis score/confidence are recomputed from the whole log
- Axes are never deleted; an absorbed axis keeps a redirect
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from .base import Error, ensure_utc, parse_timestamp, utc_now


class PoleAlignment(Enum):
    """Which pole of an axis a piece of evidence supports."""
    LEFT = "left"
    RIGHT = "right"

    @property
    def sign(self) -> int:
        return 1 if self is PoleAlignment.RIGHT else -1


class DriftDirection(Enum):
    LEFT = "left"
    RIGHT = "right"


# =============================================================================
# EVIDENCE
# =============================================================================

@dataclass(frozen=True)
class EvidenceEntry:
    """One appended observation on an axis. Never mutated or removed."""
    source: str
    text: str
    timestamp: datetime
    pole_alignment: PoleAlignment
    trust_weight: float = 1.0
    stance_confidence: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, 'timestamp', ensure_utc(self.timestamp))
        if self.stance_confidence is not None and not 0.0 <= self.stance_confidence <= 1.0:
            raise ValueError("stance_confidence must be between 0.0 and 1.0")

    @property
    def sign(self) -> int:
        return self.pole_alignment.sign


@dataclass(frozen=True)
class EvidenceRecord:
    """
    Evidence as handed over in a delta, validated at the boundary.

    Malformed records raise ValueError in from_dict and never reach
    the aggregator.
    """
    axis_id: str
    pole_alignment: PoleAlignment
    source: str = ""
    text: str = ""
    timestamp: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EvidenceRecord:
        if not isinstance(data, Mapping):
            raise ValueError("evidence record must be an object")
        axis_id = data.get('axis_id')
        alignment = data.get('pole_alignment')
        if not axis_id or not alignment:
            raise ValueError("evidence record missing axis_id or pole_alignment")
        try:
            pole = PoleAlignment(str(alignment).lower())
        except ValueError:
            raise ValueError(f"invalid pole_alignment {alignment!r}")
        raw_ts = data.get('timestamp')
        return cls(
            axis_id=str(axis_id),
            pole_alignment=pole,
            source=str(data.get('source') or ""),
            text=str(data.get('content', data.get('text')) or ""),
            timestamp=parse_timestamp(raw_ts) if raw_ts else None,
        )


# =============================================================================
# AXES
# =============================================================================

@dataclass(frozen=True)
class BeliefAxis:
    """A named belief dimension with two opposing poles."""
    axis_id: str
    label: str
    left_pole: str
    right_pole: str
    score: float = 0.0
    confidence: float = 0.0
    topics: Tuple[str, ...] = field(default_factory=tuple)
    created_at: datetime = field(default_factory=utc_now)
    last_updated: datetime = field(default_factory=utc_now)
    evidence: Tuple[EvidenceEntry, ...] = field(default_factory=tuple)
    merged_into: Optional[str] = None

    def __post_init__(self):
        if not self.axis_id:
            raise ValueError("axis_id must be a non-empty string")
        if not -1.0 <= self.score <= 1.0:
            raise ValueError("score must be between -1.0 and 1.0")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence must be between 0.0 and 1.0")

    @property
    def evidence_count(self) -> int:
        return len(self.evidence)

    def canonical_text(self) -> str:
        """Text used for embedding-based redundancy checks."""
        return f"{self.label}: {self.left_pole} vs {self.right_pole}"


@dataclass(frozen=True)
class NewAxisProposal:
    """A validated new-axis request from a delta."""
    axis_id: str
    label: str
    left_pole: str
    right_pole: str
    topics: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NewAxisProposal:
        if not isinstance(data, Mapping):
            raise ValueError("new axis must be an object")
        required = ('id', 'label', 'left_pole', 'right_pole')
        missing = [k for k in required if not data.get(k)]
        if missing:
            raise ValueError(f"new axis missing fields: {', '.join(missing)}")
        topics = data.get('topics') or ()
        if not isinstance(topics, (list, tuple)):
            topics = ()
        return cls(
            axis_id=str(data['id']),
            label=str(data['label']),
            left_pole=str(data['left_pole']),
            right_pole=str(data['right_pole']),
            topics=tuple(str(t) for t in topics),
        )


@dataclass(frozen=True)
class AxisStats:
    """Pure recompute output."""
    score: float
    confidence: float
    total_weight: float


# =============================================================================
# DRIFT
# =============================================================================

@dataclass(frozen=True)
class DriftState:
    """Per-axis CUSUM memory; the sole record of processed evidence count."""
    processed_count: int = 0
    c_pos: float = 0.0
    c_neg: float = 0.0

    def __post_init__(self):
        if self.c_pos < 0 or self.c_neg < 0:
            raise ValueError("CUSUM accumulators must be non-negative")


@dataclass(frozen=True)
class DriftAlert:
    axis_id: str
    axis_label: str
    direction: DriftDirection
    cusum_value: float
    evidence_index: int
    current_score: float
    confidence: float
    detected_at: datetime


# =============================================================================
# REDUNDANCY
# =============================================================================

@dataclass(frozen=True)
class MergeProposal:
    """A pair of axes flagged as semantically redundant."""
    axis_a: str
    axis_b: str
    label_a: str
    label_b: str
    similarity: float
    evidence_count_a: int
    evidence_count_b: int
    proposed_at: datetime


@dataclass(frozen=True)
class MergeResult:
    survivor_id: str
    absorbed_id: str
    moved_evidence: int


# =============================================================================
# REPORTS
# =============================================================================

@dataclass(frozen=True)
class DeltaReport:
    evidence_added: int = 0
    evidence_rejected: int = 0
    evidence_unvalidated: int = 0
    axes_added: int = 0
    merges_applied: int = 0
    updated_axes: Tuple[str, ...] = field(default_factory=tuple)
    errors: Tuple[Error, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DriftReport:
    axes_checked: int
    alerts: Tuple[DriftAlert, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RedundancyReport:
    axes_checked: int
    axes_skipped: Tuple[str, ...] = field(default_factory=tuple)
    proposals: Tuple[MergeProposal, ...] = field(default_factory=tuple)
