"""
Shared fixtures: isolated stores, fixed clocks and in-process fakes for
the external services.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest

from beliefstream.config import EngineConfig
from beliefstream.contracts.items import Item, ItemScores
from beliefstream.services.embedding import EmbeddingService, EmbeddingVector
from beliefstream.services.stance import StanceQuery, StanceValidator, StanceVerdict
from beliefstream.storage import BeliefStore, ItemStore


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeEmbeddings(EmbeddingService):
    """Vectors looked up by a substring of the embedded text."""

    def __init__(self, vectors: Dict[str, Sequence[float]]):
        self._vectors = vectors
        self.calls: List[str] = []

    @property
    def model_id(self) -> str:
        return "fake-embed"

    def embed(self, text: str) -> Optional[EmbeddingVector]:
        self.calls.append(text)
        for needle, vector in self._vectors.items():
            if needle in text:
                return EmbeddingVector.from_list(vector, self.model_id)
        return None


class FakeValidator(StanceValidator):
    """Returns a fixed verdict (or None to simulate an outage)."""

    def __init__(self, confidence: Optional[float]):
        self._confidence = confidence
        self.queries: List[StanceQuery] = []

    def validate(self, query: StanceQuery) -> Optional[StanceVerdict]:
        self.queries.append(query)
        if self._confidence is None:
            return None
        return StanceVerdict(confidence=self._confidence, reasoning="fixed")


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def item_store(tmp_path):
    return ItemStore(tmp_path / "items.db")


@pytest.fixture
def belief_store(tmp_path):
    return BeliefStore(tmp_path / "beliefs.db")


@pytest.fixture
def engine_config(tmp_path):
    config = EngineConfig()
    config.storage.data_dir = str(tmp_path / "state")
    config.services.stance_validation = False
    return config


@pytest.fixture
def fake_embeddings():
    return FakeEmbeddings


@pytest.fixture
def fake_validator():
    return FakeValidator


@pytest.fixture
def make_record():
    """Raw item record as a source would deliver it."""
    def _make(item_id, text, likes=10, reposts=0, hours_ago=1.0, source="alice",
              parent_id=None, at=NOW):
        record = {
            'id': item_id,
            'timestamp': (at - timedelta(hours=hours_ago)).isoformat(),
            'source_id': source,
            'text': text,
            'engagement': {'likes': likes, 'reposts': reposts, 'replies': 0},
        }
        if parent_id:
            record['parent_id'] = parent_id
        return record
    return _make


@pytest.fixture
def make_item():
    """Scored item with explicit keywords and total."""
    def _make(item_id, keywords, total=1.0, text=None, hours_ago=1.0, parent_id=None,
              source="alice"):
        return Item(
            item_id=item_id,
            timestamp=NOW - timedelta(hours=hours_ago),
            source_id=source,
            text=text or f"text of {item_id} about {' '.join(keywords)}",
            engagement=(('likes', 5), ('replies', 0), ('reposts', 1)),
            keywords=tuple(keywords),
            scores=ItemScores(velocity=total, total=total),
            parent_id=parent_id,
        )
    return _make
