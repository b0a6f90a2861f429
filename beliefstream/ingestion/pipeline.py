"""
Ingestion Pipeline

One bounded batch per cycle:

    seen-filter → sanitize → extract + score → dedup → top-K
    → novelty → re-select top-K → cluster + bursts → persist → digest

GUARANTEES:
===========
1. Idempotent by item id: an identical batch re-run persists nothing new
2. A single bad record is skipped and reported, never fatal
3. If the item store is unusable the cycle reports zero items
4. Score-descending order is restored before any order-sensitive step
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional, Sequence, Set, Tuple, Union
import logging

from ..config import ClusteringConfig, PipelineConfig
from ..contracts.base import Error, ErrorCode, StoreError, utc_now
from ..contracts.items import Cluster, CycleReport, Digest, Item, RawItem
from ..storage.items import ItemStore
from .clustering import cluster_items, deduplicate, detect_bursts, tag_cluster_bursts
from .keywords import extract_keywords
from .sanitize import sanitize
from .scoring import Scorer, apply_novelty

logger = logging.getLogger(__name__)

RawRecord = Union[RawItem, Mapping[str, Any]]


@dataclass(frozen=True)
class _Scored:
    item: Optional[Item] = None
    error: Optional[Error] = None


def by_score(items: Sequence[Item]) -> List[Item]:
    """Score-descending; ties keep their incoming order."""
    return sorted(items, key=lambda i: i.total, reverse=True)


class IngestionPipeline:
    """
    Runs ingestion cycles against one item store.

    The scorer carries the axis labels used for alignment; the engine
    builds a fresh scorer whenever the ontology changes.
    """

    def __init__(
        self,
        store: ItemStore,
        scorer: Scorer,
        config: Optional[PipelineConfig] = None,
        clustering: Optional[ClusteringConfig] = None
    ):
        self._store = store
        self._scorer = scorer
        self._config = config or PipelineConfig()
        self._clustering = clustering or ClusteringConfig()

    @property
    def scorer(self) -> Scorer:
        return self._scorer

    def run_cycle(
        self,
        records: Sequence[RawRecord],
        now: Optional[datetime] = None
    ) -> CycleReport:
        started_at = utc_now()
        now = now or started_at
        errors: List[Error] = []

        batch = list(records)
        if len(batch) > self._config.max_batch_size:
            logger.warning("batch of %d exceeds max_batch_size %d; truncating",
                           len(batch), self._config.max_batch_size)
            batch = batch[:self._config.max_batch_size]

        raws, duplicates = self._parse(batch, errors)

        try:
            seen = self._store.seen_ids(r.item_id for r in raws)
        except StoreError as e:
            return self._failed(started_at, now, len(batch), e, errors)

        fresh = [r for r in raws if r.item_id not in seen]
        processed_ids = [r.item_id for r in fresh]

        # 1b. noise filter
        sanitized_out = 0
        if self._config.sanitize:
            kept = []
            for raw in fresh:
                verdict = sanitize(raw.text)
                if verdict.keep:
                    kept.append(raw)
                    continue
                sanitized_out += 1
                logger.debug("item %s dropped by sanitizer: %s", raw.item_id, verdict.reason)
                errors.append(Error.create(
                    ErrorCode.SANITIZE_REJECTED, verdict.reason,
                    item_id=raw.item_id
                ))
            fresh = kept

        # 2-3. extract + score
        scored = by_score(self._extract_and_score(fresh, now, errors))

        # 4-7. dedup, top-K, novelty, re-select
        deduped = deduplicate(scored, self._clustering.dedup_threshold)
        top_k = self._config.top_k
        selected = apply_novelty(deduped[:top_k], self._scorer.config)
        final = by_score(selected)[:top_k]

        # 8. clusters and bursts
        clusters = cluster_items(final, self._clustering.cluster_threshold)
        try:
            bursts = self._bursts(final, now)
        except StoreError as e:
            return self._failed(started_at, now, len(batch), e, errors)
        clusters = tag_cluster_bursts(clusters, bursts)

        # 9. persist, then mark everything processed as seen
        persisted: List[str] = []
        failed: Set[str] = set()
        for item in final:
            try:
                self._store.upsert_item(item, scraped_at=started_at)
                persisted.append(item.item_id)
            except StoreError as e:
                failed.add(item.item_id)
                logger.error("failed to persist item %s: %s", item.item_id, e)
                errors.append(Error.create(
                    ErrorCode.PERSIST_FAILED, str(e), item_id=item.item_id
                ))

        if final and not persisted:
            return self._failed(
                started_at, now, len(batch),
                StoreError("no item of the batch could be persisted"), errors
            )

        try:
            self._store.mark_seen(
                [i for i in processed_ids if i not in failed],
                self._config.max_seen_ids
            )
        except StoreError as e:
            return self._failed(started_at, now, len(batch), e, errors)

        digest = self._digest(clusters, failed, bursts, now)
        logger.info(
            "cycle: %d received, %d already seen, %d sanitized out, %d persisted, %d clusters",
            len(batch), len(raws) - len(processed_ids), sanitized_out,
            len(persisted), len(digest.clusters)
        )
        return CycleReport(
            started_at=started_at,
            completed_at=utc_now(),
            received=len(batch),
            already_seen=len(raws) - len(processed_ids),
            sanitized_out=sanitized_out,
            duplicates_removed=duplicates + (len(scored) - len(deduped)),
            persisted=tuple(persisted),
            digest=digest,
            errors=tuple(errors),
        )

    # =========================================================================
    # STEPS
    # =========================================================================

    def _parse(self, batch: Sequence[RawRecord], errors: List[Error]) -> Tuple[List[RawItem], int]:
        """Validate records; first occurrence of an id wins."""
        raws: List[RawItem] = []
        ids: Set[str] = set()
        duplicates = 0
        for position, record in enumerate(batch):
            if isinstance(record, RawItem):
                raw = record
            else:
                try:
                    raw = RawItem.from_dict(record)
                except ValueError as e:
                    logger.info("skipping malformed record at position %d: %s", position, e)
                    errors.append(Error.create(
                        ErrorCode.MALFORMED_ITEM, str(e), position=position
                    ))
                    continue
            if raw.item_id in ids:
                duplicates += 1
                errors.append(Error.create(
                    ErrorCode.DUPLICATE_IN_BATCH, "duplicate id in batch", item_id=raw.item_id
                ))
                continue
            ids.add(raw.item_id)
            raws.append(raw)
        return raws, duplicates

    def _score_one(self, raw: RawItem, now: datetime) -> _Scored:
        try:
            keywords = extract_keywords(raw.text, self._config.keywords_per_item)
            return _Scored(item=self._scorer.score(raw, keywords, now))
        except Exception as e:
            logger.exception("extraction/scoring failed for item %s", raw.item_id)
            return _Scored(error=Error.create(
                ErrorCode.EXTRACTION_FAILED, str(e), item_id=raw.item_id
            ))

    def _extract_and_score(
        self,
        raws: Sequence[RawItem],
        now: datetime,
        errors: List[Error]
    ) -> List[Item]:
        if self._config.workers > 1 and len(raws) > 1:
            with ThreadPoolExecutor(max_workers=self._config.workers) as pool:
                results = list(pool.map(lambda r: self._score_one(r, now), raws))
        else:
            results = [self._score_one(r, now) for r in raws]

        items = []
        for result in results:
            if result.error is not None:
                errors.append(result.error)
            else:
                items.append(result.item)
        return items

    def _bursts(self, final: Sequence[Item], now: datetime) -> Set[str]:
        window = timedelta(hours=self._clustering.burst_window_hours)
        final_ids = [i.item_id for i in final]
        current = [i.keywords for i in final if i.parent_id is None]
        current += self._store.keywords_in_window(now - window, now, exclude_ids=final_ids)
        previous = self._store.keywords_in_window(now - 2 * window, now - window)
        return detect_bursts(
            current, previous,
            min_count=self._clustering.burst_min_count,
            ratio=self._clustering.burst_ratio
        )

    @staticmethod
    def _digest(
        clusters: Sequence[Cluster],
        failed: Set[str],
        bursts: Set[str],
        now: datetime
    ) -> Digest:
        multi: List[Cluster] = []
        singletons: List[Item] = []
        for cluster in clusters:
            members = tuple(m for m in cluster.members if m.item_id not in failed)
            if not members:
                continue
            if len(members) > 1:
                multi.append(Cluster(cluster.label, members, cluster.is_burst))
            else:
                singletons.append(members[0])
        return Digest(
            generated_at=now,
            clusters=tuple(multi),
            singletons=tuple(singletons),
            burst_keywords=frozenset(bursts),
        )

    @staticmethod
    def _failed(
        started_at: datetime,
        now: datetime,
        received: int,
        cause: StoreError,
        errors: List[Error]
    ) -> CycleReport:
        logger.error("ingestion cycle aborted, item store unavailable: %s", cause)
        errors.append(Error.create(ErrorCode.STORE_UNAVAILABLE, str(cause)))
        return CycleReport(
            started_at=started_at,
            completed_at=utc_now(),
            received=received,
            already_seen=0,
            sanitized_out=0,
            duplicates_removed=0,
            persisted=(),
            digest=Digest(generated_at=now, clusters=(), singletons=()),
            errors=tuple(errors),
        )
