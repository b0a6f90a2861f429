"""
Ontology Delta Application

A delta is the digest consumer's answer to a cycle:

    {
        "new_axes": [{"id", "label", "left_pole", "right_pole", "topics"}],
        "evidence": [{"axis_id", "source", "content", "timestamp", "pole_alignment"}],
        "merges":   [{"axis_ids": ["a", "b"]}]
    }

New axes are applied first so evidence in the same delta may target
them; merges are applied last.

GUARANTEES:
===========
1. A malformed record is skipped, logged and reported; the rest applies
2. Duplicate axis ids are rejected and the existing axis is untouched
3. BeliefStoreError propagates: a corrupt store stops the belief step
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union
import json
import logging
import re

from ..config import EvidenceConfig
from ..contracts.base import Error, ErrorCode, utc_now
from ..contracts.beliefs import BeliefAxis, DeltaReport, EvidenceRecord, NewAxisProposal
from ..storage.beliefs import BeliefStore
from .aggregation import EvidenceAggregator

logger = logging.getLogger(__name__)

GUARD_STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "of", "in", "is", "are", "that", "to", "for", "with",
    "on", "by", "at", "from", "as", "this", "it", "its", "which", "vs", "versus",
})

_NON_ALNUM = re.compile(r"[^a-z0-9 ]")


@dataclass(frozen=True)
class OntologyDelta:
    """Raw delta sections; each record is validated when applied."""
    evidence: Tuple[Mapping[str, Any], ...] = field(default_factory=tuple)
    new_axes: Tuple[Mapping[str, Any], ...] = field(default_factory=tuple)
    merges: Tuple[Mapping[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OntologyDelta:
        if not isinstance(data, Mapping):
            raise ValueError("delta must be a JSON object")
        sections = {}
        for name in ('evidence', 'new_axes', 'merges'):
            value = data.get(name) or []
            if not isinstance(value, list):
                raise ValueError(f"delta section {name!r} must be a list")
            sections[name] = tuple(value)
        return cls(**sections)

    @classmethod
    def load(cls, path: Union[str, Path]) -> OntologyDelta:
        with open(path, 'r', encoding='utf-8') as f:
            return cls.from_dict(json.load(f))

    @property
    def is_empty(self) -> bool:
        return not (self.evidence or self.new_axes or self.merges)


# =============================================================================
# AXIS CREATION GUARD
# =============================================================================

def token_set(text: str) -> FrozenSet[str]:
    cleaned = _NON_ALNUM.sub(" ", (text or "").lower())
    return frozenset(w for w in cleaned.split() if len(w) > 2 and w not in GUARD_STOP_WORDS)


def axis_text_similarity(a: str, b: str) -> float:
    """Token-set Jaccard of two axis descriptions; two empty sets count as identical."""
    set_a, set_b = token_set(a), token_set(b)
    if not set_a and not set_b:
        return 1.0
    return len(set_a & set_b) / len(set_a | set_b)


def _description(label: str, left_pole: str, right_pole: str) -> str:
    return f"{label} {left_pole} {right_pole}"


class AxisCreationGuard:
    """
    Limits ontology growth: a daily creation cap and a textual
    near-duplicate check against existing active axes.
    """

    def __init__(self, store: BeliefStore, config: Optional[EvidenceConfig] = None):
        self._store = store
        self._config = config or EvidenceConfig()

    def check(
        self,
        proposal: NewAxisProposal,
        existing: List[BeliefAxis],
        now: datetime
    ) -> Optional[Error]:
        created_today = self._store.axes_created_on(now.date())
        if created_today >= self._config.max_new_axes_per_day:
            return Error.create(
                ErrorCode.CREATION_CAP_REACHED,
                f"daily limit of {self._config.max_new_axes_per_day} new axes reached",
                axis_id=proposal.axis_id
            )

        candidate = _description(proposal.label, proposal.left_pole, proposal.right_pole)
        for axis in existing:
            similarity = axis_text_similarity(
                _description(axis.label, axis.left_pole, axis.right_pole), candidate
            )
            if similarity >= self._config.axis_similarity_threshold:
                return Error.create(
                    ErrorCode.NEAR_DUPLICATE_AXIS,
                    f"too similar to existing axis {axis.axis_id} ({similarity:.2f})",
                    axis_id=proposal.axis_id, similar_to=axis.axis_id
                )
        return None


# =============================================================================
# APPLIER
# =============================================================================

class DeltaApplier:

    def __init__(
        self,
        store: BeliefStore,
        aggregator: EvidenceAggregator,
        guard: Optional[AxisCreationGuard] = None
    ):
        self._store = store
        self._aggregator = aggregator
        self._guard = guard

    def apply(self, delta: OntologyDelta, now: Optional[datetime] = None) -> DeltaReport:
        now = now or utc_now()
        errors: List[Error] = []
        updated: Dict[str, None] = {}
        counts = {'added': 0, 'rejected': 0, 'unvalidated': 0, 'axes': 0, 'merges': 0}

        for raw in delta.new_axes:
            if self._create_axis(raw, now, errors):
                counts['axes'] += 1

        for raw in delta.evidence:
            try:
                record = EvidenceRecord.from_dict(raw)
            except ValueError as e:
                logger.info("skipping malformed evidence entry: %s", e)
                errors.append(Error.create(ErrorCode.MALFORMED_EVIDENCE, str(e)))
                continue
            result = self._aggregator.append(record.axis_id, record, now)
            if result.accepted:
                counts['added'] += 1
                counts['unvalidated'] += int(result.unvalidated)
                updated[result.axis.axis_id] = None
            else:
                if result.error.code is ErrorCode.STANCE_REJECTED:
                    counts['rejected'] += 1
                errors.append(result.error)

        for raw in delta.merges:
            survivor = self._merge(raw, now, errors)
            if survivor is not None:
                counts['merges'] += 1
                updated[survivor] = None

        report = DeltaReport(
            evidence_added=counts['added'],
            evidence_rejected=counts['rejected'],
            evidence_unvalidated=counts['unvalidated'],
            axes_added=counts['axes'],
            merges_applied=counts['merges'],
            updated_axes=tuple(updated),
            errors=tuple(errors),
        )
        logger.info("delta applied: +%d evidence, %d rejected, %d unvalidated, "
                    "+%d axes, %d merges, %d errors",
                    report.evidence_added, report.evidence_rejected,
                    report.evidence_unvalidated, report.axes_added,
                    report.merges_applied, len(report.errors))
        return report

    def _create_axis(self, raw: Mapping[str, Any], now: datetime, errors: List[Error]) -> bool:
        try:
            proposal = NewAxisProposal.from_dict(raw)
        except ValueError as e:
            logger.info("skipping malformed new axis: %s", e)
            errors.append(Error.create(ErrorCode.MALFORMED_AXIS, str(e)))
            return False

        if self._store.get_axis(proposal.axis_id) is not None:
            logger.info("axis %r already exists; new axis rejected", proposal.axis_id)
            errors.append(Error.create(
                ErrorCode.DUPLICATE_AXIS, "axis id already exists", axis_id=proposal.axis_id
            ))
            return False

        if self._guard is not None:
            error = self._guard.check(proposal, self._store.list_axes(), now)
            if error is not None:
                logger.info("axis creation guard rejected %r: %s", proposal.axis_id, error.message)
                errors.append(error)
                return False

        if self._store.create_axis(proposal, now) is None:
            errors.append(Error.create(
                ErrorCode.DUPLICATE_AXIS, "axis id already exists", axis_id=proposal.axis_id
            ))
            return False
        logger.info("created axis %s (%s)", proposal.axis_id, proposal.label)
        return True

    def _merge(self, raw: Mapping[str, Any], now: datetime, errors: List[Error]) -> Optional[str]:
        ids = raw.get('axis_ids') if isinstance(raw, Mapping) else None
        if not isinstance(ids, list) or len(ids) != 2 or not all(isinstance(i, str) for i in ids):
            errors.append(Error.create(ErrorCode.MERGE_FAILED, "merge needs axis_ids: [a, b]"))
            return None

        resolved = [self._store.resolve_id(i) for i in ids]
        if None in resolved:
            errors.append(Error.create(
                ErrorCode.UNKNOWN_AXIS, "merge references an unknown axis",
                axis_ids=",".join(ids)
            ))
            return None
        if resolved[0] == resolved[1]:
            logger.info("axes %s already merged into %s", ids, resolved[0])
            return None

        try:
            result = self._store.merge_axes(
                resolved[0], resolved[1], self._aggregator.stats_fn, now
            )
        except ValueError as e:
            errors.append(Error.create(ErrorCode.MERGE_FAILED, str(e), axis_ids=",".join(ids)))
            return None
        return result.survivor_id
