"""
Engine Orchestration Module

Wires the stores, the ingestion pipeline and the belief components
together from one EngineConfig.

DESIGN PRINCIPLES:
==================
1. Components communicate only through contracts
2. Stores are explicit handles, opened once and passed down
3. The item store and the belief store fail independently: a corrupt
   beliefs.db stops belief updates but never ingestion
4. External services are built from config unless injected
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence, Tuple, Union
import logging

from .beliefs import (
    AxisCreationGuard, AxisRedundancyDetector, DeltaApplier, DriftDetector,
    EvidenceAggregator, OntologyDelta,
)
from .config import EngineConfig
from .contracts.base import BeliefStoreError
from .contracts.beliefs import DeltaReport, DriftReport, RedundancyReport
from .contracts.items import CycleReport, RawItem
from .ingestion import IngestionPipeline, ItemSource, Scorer, summarize_topics
from .services import (
    EmbeddingService, OllamaStanceValidator, ReputationProvider, StanceValidator,
    TrustGraph, create_embedding_service,
)
from .storage import BeliefStore, ItemStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeliefCycleReport:
    """Outcome of one belief-update step."""
    delta: Optional[DeltaReport]
    drift: DriftReport
    redundancy: Optional[RedundancyReport]


class BeliefStreamEngine:
    """
    Unified entry point for ingestion and belief updates.

    FLOW:
    =====
    1. run_ingestion_cycle: raw batch → persisted items + digest
    2. apply_delta: consumer's delta → evidence / new axes / merges
    3. detect_drift: CUSUM over new evidence → alerts
    4. propose_merges: embedding similarity → merge proposals
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        item_store: Optional[ItemStore] = None,
        belief_store: Optional[BeliefStore] = None,
        reputation: Optional[ReputationProvider] = None,
        validator: Optional[StanceValidator] = None,
        embeddings: Optional[EmbeddingService] = None
    ):
        self._config = config or EngineConfig()
        self._items = item_store
        self._beliefs = belief_store
        self._reputation = reputation
        self._validator = validator
        self._embeddings = embeddings

        if self._reputation is None and self._config.services.trust_graph_path:
            self._reputation = TrustGraph.load(self._config.services.trust_graph_path)
        if self._validator is None and self._config.services.stance_validation:
            services = self._config.services
            self._validator = OllamaStanceValidator(
                base_url=services.ollama_url,
                model=services.stance_model,
                timeout=services.stance_timeout_seconds,
            )

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def items(self) -> ItemStore:
        if self._items is None:
            self._items = ItemStore(self._config.storage.items_path)
        return self._items

    @property
    def beliefs(self) -> BeliefStore:
        """Opened on first use; raises BeliefStoreError if the file is corrupt."""
        if self._beliefs is None:
            self._beliefs = BeliefStore(self._config.storage.beliefs_path)
        return self._beliefs

    @property
    def embeddings(self) -> EmbeddingService:
        if self._embeddings is None:
            services = self._config.services
            self._embeddings = create_embedding_service(
                services.embedding_backend,
                services.ollama_url,
                services.embedding_model,
                services.embedding_timeout_seconds,
            )
        return self._embeddings

    # =========================================================================
    # INGESTION
    # =========================================================================

    def axis_labels(self) -> Tuple[str, ...]:
        """Labels of active axes; empty when the belief store is unusable."""
        try:
            return tuple(a.label for a in self.beliefs.list_axes())
        except BeliefStoreError as e:
            logger.error("belief store unavailable, scoring without alignment: %s", e)
            return ()

    def pipeline(self) -> IngestionPipeline:
        scorer = Scorer(self._config.scoring, self._reputation, self.axis_labels())
        return IngestionPipeline(
            self.items, scorer, self._config.pipeline, self._config.clustering
        )

    def run_ingestion_cycle(
        self,
        records: Sequence[Union[RawItem, Mapping[str, Any]]],
        now: Optional[datetime] = None
    ) -> CycleReport:
        return self.pipeline().run_cycle(records, now)

    def ingest_source(self, source: ItemSource, now: Optional[datetime] = None) -> CycleReport:
        return self.run_ingestion_cycle(source.fetch_batch(), now)

    def topic_summary(self, hours: float = 4, now: Optional[datetime] = None) -> str:
        return summarize_topics(self.items, hours=hours, now=now)

    def prune(self, now: Optional[datetime] = None) -> dict:
        return self.items.prune(self._config.storage.prune_days, now)

    # =========================================================================
    # BELIEFS (BeliefStoreError propagates)
    # =========================================================================

    def aggregator(self) -> EvidenceAggregator:
        return EvidenceAggregator(
            self.beliefs, self._validator, self._reputation, self._config.evidence
        )

    def apply_delta(
        self,
        delta: Union[OntologyDelta, Mapping[str, Any]],
        now: Optional[datetime] = None
    ) -> DeltaReport:
        if not isinstance(delta, OntologyDelta):
            delta = OntologyDelta.from_dict(delta)
        guard = None
        if self._config.evidence.enforce_creation_guard:
            guard = AxisCreationGuard(self.beliefs, self._config.evidence)
        return DeltaApplier(self.beliefs, self.aggregator(), guard).apply(delta, now)

    def detect_drift(
        self,
        axis_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> DriftReport:
        return DriftDetector(self.beliefs, self._config.drift).detect(axis_id, now)

    def propose_merges(self, now: Optional[datetime] = None) -> RedundancyReport:
        detector = AxisRedundancyDetector(
            self.beliefs, self.embeddings, config=self._config.redundancy
        )
        return detector.detect(now)

    def run_belief_cycle(
        self,
        delta: Optional[Union[OntologyDelta, Mapping[str, Any]]] = None,
        now: Optional[datetime] = None,
        check_redundancy: bool = False
    ) -> BeliefCycleReport:
        delta_report = self.apply_delta(delta, now) if delta is not None else None
        drift = self.detect_drift(now=now)
        redundancy = self.propose_merges(now) if check_redundancy else None
        return BeliefCycleReport(delta=delta_report, drift=drift, redundancy=redundancy)

    def close(self) -> None:
        for service in (self._validator, self._embeddings):
            close = getattr(service, 'close', None)
            if close is not None:
                close()
