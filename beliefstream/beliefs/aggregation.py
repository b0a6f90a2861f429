"""
Evidence Aggregator

Trust-weighted aggregation over an axis's full evidence log:

    score      = Σ wᵢ·signᵢ / Σ wᵢ          (0.0 for an empty log)
    confidence = min(0.95, Σ wᵢ · 0.025)

with signᵢ = +1 for the right pole, -1 for the left pole and wᵢ the
entry's trust weight clamped to [0.5, 2.0].

INVARIANTS:
===========
- recompute() is pure: same log → same result, no I/O
- Score and confidence are always recomputed from the whole log,
  never incrementally
- Confidence never decreases on append (weights are positive)
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Optional, Sequence
import logging

from ..config import EvidenceConfig
from ..contracts.base import Error, ErrorCode, utc_now
from ..contracts.beliefs import AxisStats, BeliefAxis, EvidenceEntry, EvidenceRecord
from ..services.reputation import ReputationProvider
from ..services.stance import StanceQuery, StanceValidator, StanceVerdict
from ..storage.beliefs import BeliefStore

logger = logging.getLogger(__name__)

_DEFAULTS = EvidenceConfig()


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def recompute(
    evidence: Sequence[EvidenceEntry],
    config: EvidenceConfig = _DEFAULTS
) -> AxisStats:
    weighted_sum = 0.0
    total_weight = 0.0
    for entry in evidence:
        weight = entry.trust_weight if entry.trust_weight is not None else config.default_weight
        weight = clamp(weight, config.min_weight, config.max_weight)
        weighted_sum += weight * entry.sign
        total_weight += weight

    if total_weight == 0:
        return AxisStats(score=0.0, confidence=0.0, total_weight=0.0)

    return AxisStats(
        score=clamp(weighted_sum / total_weight, -1.0, 1.0),
        confidence=min(config.max_confidence, total_weight * config.confidence_per_weight),
        total_weight=total_weight,
    )


def trust_weight(reputation: Optional[float], config: EvidenceConfig = _DEFAULTS) -> float:
    """Reputation → weight normalised so the neutral prior maps to 1.0."""
    score = config.neutral_reputation if reputation is None else reputation
    return clamp(score / config.neutral_reputation, config.min_weight, config.max_weight)


@dataclass(frozen=True)
class AppendResult:
    accepted: bool
    axis: Optional[BeliefAxis] = None
    verdict: Optional[StanceVerdict] = None
    error: Optional[Error] = None
    unvalidated: bool = False

    @property
    def validated(self) -> bool:
        return self.verdict is not None


class EvidenceAggregator:
    """
    Appends vetted evidence to axes.

    Evidence text long enough to judge goes through the stance
    validator first; an unavailable validator means accept unvalidated,
    an explicit low-confidence verdict means reject.
    """

    def __init__(
        self,
        store: BeliefStore,
        validator: Optional[StanceValidator] = None,
        reputation: Optional[ReputationProvider] = None,
        config: Optional[EvidenceConfig] = None
    ):
        self._store = store
        self._validator = validator
        self._reputation = reputation
        self._config = config or EvidenceConfig()
        self.stats_fn = partial(recompute, config=self._config)

    def weight_for(self, source: str) -> float:
        reputation = self._reputation.lookup(source) if self._reputation and source else None
        return trust_weight(reputation, self._config)

    def append(
        self,
        axis_id: str,
        record: EvidenceRecord,
        now: Optional[datetime] = None
    ) -> AppendResult:
        now = now or utc_now()
        axis = self._store.get_axis(axis_id, resolve=True)
        if axis is None:
            logger.info("unknown axis %r; evidence skipped", axis_id)
            return AppendResult(accepted=False, error=Error.create(
                ErrorCode.UNKNOWN_AXIS, f"unknown axis {axis_id}", axis_id=axis_id
            ))

        needs_validation = (
            self._validator is not None
            and len(record.text) >= self._config.stance_min_chars
        )
        verdict = self._validate(axis, record) if needs_validation else None
        if verdict is not None and verdict.confidence < self._config.stance_min_confidence:
            logger.info("stance rejected (conf=%.2f) on %r: %.60r (%s)",
                        verdict.confidence, axis.label, record.text, verdict.reasoning)
            return AppendResult(accepted=False, axis=axis, verdict=verdict, error=Error.create(
                ErrorCode.STANCE_REJECTED,
                f"stance confidence {verdict.confidence:.2f} below threshold",
                axis_id=axis.axis_id, reasoning=verdict.reasoning
            ))

        entry = EvidenceEntry(
            source=record.source,
            text=record.text,
            timestamp=record.timestamp or now,
            pole_alignment=record.pole_alignment,
            trust_weight=self.weight_for(record.source),
            stance_confidence=verdict.confidence if verdict else None,
        )
        updated = self._store.append_evidence(axis.axis_id, entry, self.stats_fn, now)
        return AppendResult(
            accepted=True, axis=updated, verdict=verdict,
            unvalidated=needs_validation and verdict is None
        )

    def _validate(self, axis: BeliefAxis, record: EvidenceRecord) -> Optional[StanceVerdict]:
        verdict = self._validator.validate(StanceQuery(
            label=axis.label,
            left_pole=axis.left_pole,
            right_pole=axis.right_pole,
            text=record.text,
            alignment=record.pole_alignment,
        ))
        if verdict is None:
            logger.info("stance validator unavailable; accepting evidence on %s unvalidated",
                        axis.axis_id)
        return verdict
