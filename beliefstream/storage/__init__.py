"""
Storage Layer

Two SQLite files: items.db for ingestion output and beliefs.db for the
ontology. A corrupt belief store never blocks ingestion.
"""

from .database import SQLiteDatabase
from .items import ItemStore
from .beliefs import BeliefStore
from .embeddings import EmbeddingCache

__all__ = ['SQLiteDatabase', 'ItemStore', 'BeliefStore', 'EmbeddingCache']
