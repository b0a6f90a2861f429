"""
Axis Redundancy Detector

Flags pairs of active axes whose canonical texts embed close together.
Proposals are append-only advice; merging is a separate, external
decision applied through BeliefStore.merge_axes.

An axis whose embedding cannot be obtained this cycle is skipped and
retried next cycle; it never appears in a proposal.
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional, Sequence
import logging

from ..config import RedundancyConfig
from ..contracts.base import content_hash, utc_now
from ..contracts.beliefs import BeliefAxis, MergeProposal, RedundancyReport
from ..services.embedding import EmbeddingService, similarity_matrix
from ..storage.beliefs import BeliefStore
from ..storage.embeddings import EmbeddingCache

logger = logging.getLogger(__name__)

AXIS_ENTITY = "axis"


class AxisRedundancyDetector:

    def __init__(
        self,
        store: BeliefStore,
        embeddings: EmbeddingService,
        cache: Optional[EmbeddingCache] = None,
        config: Optional[RedundancyConfig] = None
    ):
        self._store = store
        self._embeddings = embeddings
        self._cache = cache or EmbeddingCache(store.database)
        self._config = config or RedundancyConfig()

    def axis_vector(self, axis: BeliefAxis) -> Optional[List[float]]:
        """Cached embedding of the axis's canonical text, computing it on a miss."""
        text = axis.canonical_text()
        digest = content_hash(text)
        cached = self._cache.get(
            AXIS_ENTITY, axis.axis_id, digest, self._embeddings.model_id
        )
        if cached is not None:
            return cached
        vector = self._embeddings.embed(text)
        if vector is None:
            logger.warning("could not embed axis %s (%r); skipped this cycle",
                           axis.axis_id, axis.label)
            return None
        self._cache.put(AXIS_ENTITY, axis.axis_id, digest, vector.to_list(), vector.model_id)
        return vector.to_list()

    def detect(self, now: Optional[datetime] = None) -> RedundancyReport:
        now = now or utc_now()
        axes = self._store.list_axes()

        embedded: List[BeliefAxis] = []
        vectors: List[List[float]] = []
        skipped: List[str] = []
        for axis in axes:
            vector = self.axis_vector(axis)
            if vector is None:
                skipped.append(axis.axis_id)
            else:
                embedded.append(axis)
                vectors.append(vector)

        proposals = self._proposals(embedded, vectors, now)
        self._store.append_merge_proposals(proposals)
        logger.info("%d axes checked, %d skipped, %d merge proposals (threshold %.2f)",
                    len(axes), len(skipped), len(proposals), self._config.similarity_threshold)
        return RedundancyReport(
            axes_checked=len(axes),
            axes_skipped=tuple(skipped),
            proposals=tuple(proposals),
        )

    def _proposals(
        self,
        axes: Sequence[BeliefAxis],
        vectors: Sequence[Sequence[float]],
        now: datetime
    ) -> List[MergeProposal]:
        if len(axes) < 2:
            return []

        by_dimension: Dict[int, List[int]] = {}
        for index, vector in enumerate(vectors):
            by_dimension.setdefault(len(vector), []).append(index)

        proposals = []
        for indexes in by_dimension.values():
            if len(indexes) < 2:
                continue
            sims = similarity_matrix([vectors[i] for i in indexes])
            for a in range(len(indexes)):
                for b in range(a + 1, len(indexes)):
                    similarity = float(sims[a, b])
                    if similarity < self._config.similarity_threshold:
                        continue
                    axis_a, axis_b = axes[indexes[a]], axes[indexes[b]]
                    proposals.append(MergeProposal(
                        axis_a=axis_a.axis_id,
                        axis_b=axis_b.axis_id,
                        label_a=axis_a.label,
                        label_b=axis_b.label,
                        similarity=similarity,
                        evidence_count_a=axis_a.evidence_count,
                        evidence_count_b=axis_b.evidence_count,
                        proposed_at=now,
                    ))
        proposals.sort(key=lambda p: p.similarity, reverse=True)
        return proposals


def render_proposals(proposals: Sequence[MergeProposal], threshold: float) -> str:
    if not proposals:
        return f"no similar axis pairs (threshold={threshold:g})"
    lines = [f"── axis merge proposals (similarity threshold: {threshold:g}) ──"]
    for p in proposals:
        lines.append(f"PROPOSED MERGE (sim={p.similarity:.3f}):")
        lines.append(f"  A: [{p.axis_a}] \"{p.label_a}\" ({p.evidence_count_a} entries)")
        lines.append(f"  B: [{p.axis_b}] \"{p.label_b}\" ({p.evidence_count_b} entries)")
    return "\n".join(lines)
