"""
Embedding Service
=================

Text → vector for axis redundancy checks.

ML FENCE POST:
==============
Services return raw vectors (or None). Thresholds live in the
redundancy detector, never here.

DEGRADATION:
- Service unreachable, timeout, bad payload → None, logged
- Callers skip the entity and retry next cycle
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging

import httpx
import numpy as np

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 2048


@dataclass(frozen=True)
class EmbeddingVector:
    """Geometry in embedding space, tagged with the model that produced it."""
    values: Tuple[float, ...]
    model_id: str

    def __post_init__(self):
        if not self.values:
            raise ValueError("embedding must have at least one dimension")

    @classmethod
    def from_list(cls, values: Sequence[float], model_id: str) -> EmbeddingVector:
        return cls(values=tuple(float(v) for v in values), model_id=model_id)

    @property
    def dimension(self) -> int:
        return len(self.values)

    def to_list(self) -> List[float]:
        return list(self.values)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0.0 if either is zero."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        raise ValueError(f"dimension mismatch: {va.shape} vs {vb.shape}")
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def similarity_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Pairwise cosine similarities of equal-length vectors."""
    matrix = np.asarray(vectors, dtype=float)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    unit = matrix / norms
    return unit @ unit.T


class EmbeddingService(ABC):
    """
    GUARANTEES:
    - embed() never raises for service-side failures; it returns None
    - Same text + same model → same vector (model permitting)
    """

    @property
    @abstractmethod
    def model_id(self) -> str:
        pass

    @abstractmethod
    def embed(self, text: str) -> Optional[EmbeddingVector]:
        pass


class OllamaEmbeddingService(EmbeddingService):
    """Embeddings from an Ollama server's /api/embeddings endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None
    ):
        self._url = base_url.rstrip('/') + "/api/embeddings"
        self._model = model
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def model_id(self) -> str:
        return self._model

    def embed(self, text: str) -> Optional[EmbeddingVector]:
        if not text or not text.strip():
            return None
        try:
            response = self._client.post(
                self._url,
                json={'model': self._model, 'prompt': text[:MAX_PROMPT_CHARS]}
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning("embedding request to %s failed: %s", self._url, e)
            return None
        except ValueError as e:
            logger.warning("embedding response from %s is not JSON: %s", self._url, e)
            return None

        if not isinstance(data, dict):
            logger.warning("embedding response from %s is not a JSON object", self._url)
            return None
        values = data.get('embedding')
        if not isinstance(values, list) or not values:
            logger.warning("embedding response from %s has no vector", self._url)
            return None
        try:
            return EmbeddingVector.from_list(values, self._model)
        except (TypeError, ValueError) as e:
            logger.warning("embedding vector from %s is malformed: %s", self._url, e)
            return None

    def close(self) -> None:
        self._client.close()


class SentenceTransformerEmbeddingService(EmbeddingService):
    """
    Local embeddings via sentence-transformers.

    The model loads lazily on first use; if the package or model is
    unavailable every call returns None.
    """

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        device: str = "cpu",
        max_sequence_length: int = 256
    ):
        self._model_name = model_name
        self._device = device
        self._max_chars = max_sequence_length * 4
        self._model = None
        self._load_failed = False

    @property
    def model_id(self) -> str:
        return self._model_name

    def _ensure_model_loaded(self) -> bool:
        if self._model is not None:
            return True
        if self._load_failed:
            return False
        try:
            from sentence_transformers import SentenceTransformer
            self._model = SentenceTransformer(self._model_name, device=self._device)
            return True
        except ImportError:
            logger.warning("sentence-transformers is not installed; embeddings disabled")
        except (OSError, RuntimeError, ValueError) as e:
            logger.warning("could not load embedding model %s: %s", self._model_name, e)
        self._load_failed = True
        return False

    def is_available(self) -> bool:
        return self._ensure_model_loaded()

    def embed(self, text: str) -> Optional[EmbeddingVector]:
        if not text or not text.strip():
            return None
        if not self._ensure_model_loaded():
            return None
        try:
            vector = self._model.encode(
                text[:self._max_chars],
                convert_to_numpy=True,
                normalize_embeddings=True
            )
        except (RuntimeError, ValueError) as e:
            logger.warning("embedding with %s failed: %s", self._model_name, e)
            return None
        return EmbeddingVector.from_list(vector.tolist(), self._model_name)


def create_embedding_service(
    backend: str,
    base_url: str,
    model: str,
    timeout: float = 30.0
) -> EmbeddingService:
    if backend == "ollama":
        return OllamaEmbeddingService(base_url=base_url, model=model, timeout=timeout)
    if backend == "sentence-transformers":
        return SentenceTransformerEmbeddingService(model_name=model)
    raise ValueError(f"unknown embedding backend: {backend}")
