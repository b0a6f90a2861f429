"""
BeliefStream: Read API Server
=============================

Read-only view over the item store and the belief store.

Endpoints:
- GET /health                   -> store status
- GET /api/v1/axes              -> active belief axes
- GET /api/v1/axes/{axis_id}    -> one axis with its evidence log
- GET /api/v1/drift-alerts      -> recent drift alerts
- GET /api/v1/merge-proposals   -> recent merge proposals
- GET /api/v1/keywords/top      -> keyword frequencies over a window
- GET /api/v1/items/recent      -> top-scored recent items
- GET /api/v1/search?q=         -> full-text item search

Usage:
    uvicorn beliefstream.api.server:app
"""

from __future__ import annotations
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional
import logging
import os

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..config import EngineConfig
from ..contracts.base import BeliefStoreError, StoreError
from ..contracts.beliefs import BeliefAxis, DriftAlert, EvidenceEntry, MergeProposal
from ..contracts.items import Item, KeywordStat
from ..engine import BeliefStreamEngine

logger = logging.getLogger(__name__)


# =============================================================================
# DTOs
# =============================================================================

class EvidenceDTO(BaseModel):
    source: str
    text: str
    timestamp: datetime
    pole_alignment: str
    trust_weight: float
    stance_confidence: Optional[float] = None


class AxisDTO(BaseModel):
    id: str
    label: str
    left_pole: str
    right_pole: str
    score: float
    confidence: float
    topics: List[str]
    created_at: datetime
    last_updated: datetime
    evidence_count: int
    merged_into: Optional[str] = None


class AxisDetailDTO(AxisDTO):
    evidence: List[EvidenceDTO]


class DriftAlertDTO(BaseModel):
    axis_id: str
    axis_label: str
    direction: str
    cusum_value: float
    evidence_index: int
    current_score: float
    confidence: float
    detected_at: datetime


class MergeProposalDTO(BaseModel):
    axis_a: str
    axis_b: str
    label_a: str
    label_b: str
    similarity: float
    evidence_count_a: int
    evidence_count_b: int
    proposed_at: datetime


class KeywordStatDTO(BaseModel):
    keyword: str
    count: int
    avg_score: float
    last_seen: datetime


class ItemDTO(BaseModel):
    id: str
    timestamp: datetime
    source_id: str
    display_name: Optional[str] = None
    text: str
    keywords: List[str]
    engagement: dict
    velocity: float
    trust: float
    alignment: float
    novelty: float
    score: float
    parent_id: Optional[str] = None


def _evidence_dto(entry: EvidenceEntry) -> EvidenceDTO:
    return EvidenceDTO(
        source=entry.source,
        text=entry.text,
        timestamp=entry.timestamp,
        pole_alignment=entry.pole_alignment.value,
        trust_weight=entry.trust_weight,
        stance_confidence=entry.stance_confidence,
    )


def _axis_fields(axis: BeliefAxis) -> dict:
    return dict(
        id=axis.axis_id,
        label=axis.label,
        left_pole=axis.left_pole,
        right_pole=axis.right_pole,
        score=axis.score,
        confidence=axis.confidence,
        topics=list(axis.topics),
        created_at=axis.created_at,
        last_updated=axis.last_updated,
        evidence_count=axis.evidence_count,
        merged_into=axis.merged_into,
    )


def _alert_dto(alert: DriftAlert) -> DriftAlertDTO:
    return DriftAlertDTO(
        axis_id=alert.axis_id,
        axis_label=alert.axis_label,
        direction=alert.direction.value,
        cusum_value=alert.cusum_value,
        evidence_index=alert.evidence_index,
        current_score=alert.current_score,
        confidence=alert.confidence,
        detected_at=alert.detected_at,
    )


def _proposal_dto(p: MergeProposal) -> MergeProposalDTO:
    return MergeProposalDTO(
        axis_a=p.axis_a, axis_b=p.axis_b, label_a=p.label_a, label_b=p.label_b,
        similarity=p.similarity, evidence_count_a=p.evidence_count_a,
        evidence_count_b=p.evidence_count_b, proposed_at=p.proposed_at,
    )


def _keyword_dto(stat: KeywordStat) -> KeywordStatDTO:
    return KeywordStatDTO(
        keyword=stat.keyword, count=stat.count,
        avg_score=stat.avg_score, last_seen=stat.last_seen,
    )


def _item_dto(item: Item) -> ItemDTO:
    return ItemDTO(
        id=item.item_id,
        timestamp=item.timestamp,
        source_id=item.source_id,
        display_name=item.display_name,
        text=item.text,
        keywords=list(item.keywords),
        engagement=dict(item.engagement),
        velocity=item.scores.velocity,
        trust=item.scores.trust,
        alignment=item.scores.alignment,
        novelty=item.scores.novelty,
        score=item.scores.total,
        parent_id=item.parent_id,
    )


# =============================================================================
# APP
# =============================================================================

def default_engine() -> BeliefStreamEngine:
    config = EngineConfig.load(os.environ.get("BELIEFSTREAM_CONFIG"))
    # read-only: nothing here ever appends evidence
    config.services.stance_validation = False
    logger.info("serving data directory %s", config.storage.data_dir)
    return BeliefStreamEngine(config)


def create_app(engine: Optional[BeliefStreamEngine] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.engine = engine or default_engine()
        yield
        app.state.engine.close()
        app.state.engine = None

    app = FastAPI(
        title="BeliefStream API",
        version="0.1.0",
        description="Read-only view of ingested items and belief axes",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    def get_engine(request: Request) -> BeliefStreamEngine:
        current = getattr(request.app.state, 'engine', None)
        if current is None:
            raise HTTPException(status_code=503, detail="Engine not initialized")
        return current

    @app.get("/health")
    def health_check(request: Request):
        engine_ = get_engine(request)
        status = {"status": "online"}
        try:
            status["items"] = engine_.items.count_items()
        except StoreError as e:
            status["status"] = "degraded"
            status["items_error"] = str(e)
        try:
            status["belief_version"] = engine_.beliefs.version()
        except BeliefStoreError as e:
            status["status"] = "degraded"
            status["beliefs_error"] = str(e)
        return status

    @app.get("/api/v1/axes", response_model=List[AxisDTO])
    def list_axes(request: Request, include_merged: bool = False):
        try:
            axes = get_engine(request).beliefs.list_axes(include_merged=include_merged)
        except BeliefStoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return [AxisDTO(**_axis_fields(a)) for a in axes]

    @app.get("/api/v1/axes/{axis_id}", response_model=AxisDetailDTO)
    def get_axis(request: Request, axis_id: str, resolve: bool = True):
        try:
            axis = get_engine(request).beliefs.get_axis(axis_id, resolve=resolve)
        except BeliefStoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        if axis is None:
            raise HTTPException(status_code=404, detail=f"Axis {axis_id} not found")
        return AxisDetailDTO(
            **_axis_fields(axis),
            evidence=[_evidence_dto(e) for e in axis.evidence],
        )

    @app.get("/api/v1/drift-alerts", response_model=List[DriftAlertDTO])
    def drift_alerts(
        request: Request,
        axis_id: Optional[str] = None,
        limit: int = Query(100, ge=1, le=1000)
    ):
        try:
            alerts = get_engine(request).beliefs.list_drift_alerts(axis_id, limit)
        except BeliefStoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return [_alert_dto(a) for a in alerts]

    @app.get("/api/v1/merge-proposals", response_model=List[MergeProposalDTO])
    def merge_proposals(request: Request, limit: int = Query(100, ge=1, le=1000)):
        try:
            proposals = get_engine(request).beliefs.list_merge_proposals(limit)
        except BeliefStoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return [_proposal_dto(p) for p in proposals]

    @app.get("/api/v1/keywords/top", response_model=List[KeywordStatDTO])
    def top_keywords(
        request: Request,
        hours: float = Query(24, gt=0),
        limit: int = Query(30, ge=1, le=500)
    ):
        try:
            stats = get_engine(request).items.top_keywords(hours=hours, limit=limit)
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return [_keyword_dto(s) for s in stats]

    @app.get("/api/v1/items/recent", response_model=List[ItemDTO])
    def recent_items(
        request: Request,
        hours: float = Query(24, gt=0),
        limit: int = Query(50, ge=1, le=500)
    ):
        try:
            items = get_engine(request).items.recent_items(hours=hours, limit=limit)
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return [_item_dto(i) for i in items]

    @app.get("/api/v1/search", response_model=List[ItemDTO])
    def search(
        request: Request,
        q: str = Query(..., min_length=1),
        limit: int = Query(20, ge=1, le=200)
    ):
        try:
            items = get_engine(request).items.search(q, limit)
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return [_item_dto(i) for i in items]

    return app


app = create_app()
