"""
External Collaborators

Interfaces plus concrete HTTP/local implementations. Every call is
bounded by a timeout and degrades to None instead of raising.
"""

from .embedding import (
    EmbeddingVector, EmbeddingService, OllamaEmbeddingService,
    SentenceTransformerEmbeddingService, create_embedding_service,
    cosine_similarity, similarity_matrix,
)
from .stance import (
    StanceQuery, StanceVerdict, StanceValidator, OllamaStanceValidator, parse_verdict,
)
from .reputation import ReputationProvider, StaticReputation, TrustGraph, source_identity

__all__ = [
    'EmbeddingVector', 'EmbeddingService', 'OllamaEmbeddingService',
    'SentenceTransformerEmbeddingService', 'create_embedding_service',
    'cosine_similarity', 'similarity_matrix',
    'StanceQuery', 'StanceVerdict', 'StanceValidator', 'OllamaStanceValidator', 'parse_verdict',
    'ReputationProvider', 'StaticReputation', 'TrustGraph', 'source_identity',
]
