"""
Embedding Cache

Vectors keyed by (entity_type, entity_id, content_hash) and tagged with
the model that produced them. The hash is taken over the embedded text,
so editing an axis label or pole misses the cache and triggers a fresh
embedding; so does switching the embedding model.
"""

from __future__ import annotations
from typing import List, Optional
import json

from ..contracts.base import to_iso, utc_now
from .database import SQLiteDatabase

_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS embeddings (
        entity_type  TEXT NOT NULL,
        entity_id    TEXT NOT NULL,
        content_hash TEXT NOT NULL,
        model        TEXT NOT NULL DEFAULT '',
        vector       TEXT NOT NULL,
        created_at   TEXT NOT NULL,
        PRIMARY KEY (entity_type, entity_id, content_hash)
    );
'''


class EmbeddingCache:
    """Shares the belief store's database file."""

    def __init__(self, database: SQLiteDatabase):
        self._db = database
        self._db.executescript(_SCHEMA)

    def get(
        self,
        entity_type: str,
        entity_id: str,
        content_hash: str,
        model: str = ""
    ) -> Optional[List[float]]:
        """Cached vector, only if it was produced by `model`."""
        with self._db.snapshot() as conn:
            row = conn.execute('''
                SELECT vector FROM embeddings
                WHERE entity_type = ? AND entity_id = ? AND content_hash = ? AND model = ?
            ''', (entity_type, entity_id, content_hash, model)).fetchone()
        return json.loads(row['vector']) if row else None

    def put(
        self,
        entity_type: str,
        entity_id: str,
        content_hash: str,
        vector: List[float],
        model: str = ""
    ) -> None:
        with self._db.transaction() as conn:
            conn.execute('''
                INSERT OR REPLACE INTO embeddings
                    (entity_type, entity_id, content_hash, model, vector, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (entity_type, entity_id, content_hash, model,
                  json.dumps([float(v) for v in vector]), to_iso(utc_now())))

    def count(self, entity_type: Optional[str] = None) -> int:
        query = "SELECT COUNT(*) FROM embeddings"
        params = ()
        if entity_type is not None:
            query += " WHERE entity_type = ?"
            params = (entity_type,)
        with self._db.snapshot() as conn:
            return conn.execute(query, params).fetchone()[0]
