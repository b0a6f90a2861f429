"""
Belief Layer

Evidence aggregation, drift detection and redundancy detection over
the axes held in a BeliefStore.

BOUNDARY ENFORCEMENT:
=====================
- Input: validated deltas (never raw stream items)
- Mutations go through EvidenceAggregator and BeliefStore.merge_axes
- Detectors only append alerts/proposals; they never change axes
"""

from .aggregation import recompute, trust_weight, EvidenceAggregator, AppendResult
from .deltas import OntologyDelta, DeltaApplier, AxisCreationGuard, axis_text_similarity
from .drift import cusum_step, run_cusum, DriftDetector
from .redundancy import AxisRedundancyDetector, render_proposals

__all__ = [
    'recompute', 'trust_weight', 'EvidenceAggregator', 'AppendResult',
    'OntologyDelta', 'DeltaApplier', 'AxisCreationGuard', 'axis_text_similarity',
    'cusum_step', 'run_cusum', 'DriftDetector',
    'AxisRedundancyDetector', 'render_proposals',
]
