"""
Drift Detector (two-sided CUSUM)

For each new evidence entry with sign s (+1 right, -1 left):

    c_pos = max(0, c_pos + s - k)
    c_neg = max(0, c_neg - s - k)

An accumulator reaching h raises a directional alert and is reset to
zero; the other accumulator keeps its value. k = 0.5, h = 4.0.

The stored processed count is the only record of which entries have
been seen, so every entry is processed exactly once across cycles.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple
import logging

from ..config import DriftConfig
from ..contracts.base import utc_now
from ..contracts.beliefs import BeliefAxis, DriftAlert, DriftDirection, DriftReport, DriftState
from ..storage.beliefs import BeliefStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CusumSignal:
    direction: DriftDirection
    value: float
    evidence_index: int


def cusum_step(
    c_pos: float,
    c_neg: float,
    sign: int,
    slack: float = 0.5
) -> Tuple[float, float]:
    return max(0.0, c_pos + sign - slack), max(0.0, c_neg - sign - slack)


def run_cusum(
    signs: Sequence[int],
    state: DriftState,
    slack: float = 0.5,
    threshold: float = 4.0
) -> Tuple[DriftState, List[CusumSignal]]:
    """
    Feed the signs of entries beyond state.processed_count through CUSUM.

    `signs` is the sign of every entry in the log, oldest first.
    Evidence indexes in the returned signals are 1-based.
    """
    c_pos, c_neg = state.c_pos, state.c_neg
    signals: List[CusumSignal] = []
    for index in range(state.processed_count, len(signs)):
        c_pos, c_neg = cusum_step(c_pos, c_neg, signs[index], slack)
        if c_pos >= threshold:
            signals.append(CusumSignal(DriftDirection.RIGHT, c_pos, index + 1))
            c_pos = 0.0
        if c_neg >= threshold:
            signals.append(CusumSignal(DriftDirection.LEFT, c_neg, index + 1))
            c_neg = 0.0
    return DriftState(processed_count=len(signs), c_pos=c_pos, c_neg=c_neg), signals


class DriftDetector:
    """Runs CUSUM over unprocessed evidence and persists state and alerts."""

    def __init__(self, store: BeliefStore, config: Optional[DriftConfig] = None):
        self._store = store
        self._config = config or DriftConfig()

    def detect(
        self,
        axis_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> DriftReport:
        now = now or utc_now()
        if axis_id is not None:
            axis = self._store.get_axis(axis_id, resolve=True)
            axes = [axis] if axis is not None else []
        else:
            axes = self._store.list_axes()

        alerts: List[DriftAlert] = []
        for axis in axes:
            alerts.extend(self._check_axis(axis, now))

        return DriftReport(axes_checked=len(axes), alerts=tuple(alerts))

    def _check_axis(self, axis: BeliefAxis, now: datetime) -> List[DriftAlert]:
        if axis.evidence_count < self._config.min_evidence:
            return []
        state = self._store.get_drift_state(axis.axis_id)
        if state.processed_count >= axis.evidence_count:
            return []

        new_state, signals = run_cusum(
            [e.sign for e in axis.evidence], state,
            self._config.slack, self._config.threshold
        )
        alerts = [
            DriftAlert(
                axis_id=axis.axis_id,
                axis_label=axis.label,
                direction=s.direction,
                cusum_value=s.value,
                evidence_index=s.evidence_index,
                current_score=axis.score,
                confidence=axis.confidence,
                detected_at=now,
            )
            for s in signals
        ]
        self._store.save_drift_state(axis.axis_id, new_state, alerts, now)
        for alert in alerts:
            logger.warning("drift on %s (%s) toward %s pole, cusum %.2f at entry %d",
                           axis.axis_id, axis.label, alert.direction.value,
                           alert.cusum_value, alert.evidence_index)
        return alerts
