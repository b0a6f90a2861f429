"""
Item Store

Persistent storage for scored items, the keyword inverted index and the
rolling seen-id set.

PRINCIPLES:
===========
1. An item row and its keyword rows are written in ONE transaction
2. Re-observation is an upsert by item id
3. The keyword index is keyed by (keyword, item id) so re-ingesting
   the same item never grows it
4. items_fts mirrors items through triggers for full-text search
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union
import json
import logging
import re

from ..contracts.base import StoreError, utc_now
from ..contracts.items import Item, ItemScores, KeywordIndexEntry, KeywordStat
from .database import SQLiteDatabase

logger = logging.getLogger(__name__)

KEYWORD_SEPARATOR = ", "

_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS items (
        item_id      TEXT    NOT NULL PRIMARY KEY,
        ts           INTEGER NOT NULL,
        ts_iso       TEXT    NOT NULL,
        source_id    TEXT    NOT NULL,
        display_name TEXT,
        text         TEXT    NOT NULL,
        engagement   TEXT    NOT NULL DEFAULT '{}',
        keywords     TEXT    NOT NULL DEFAULT '',
        velocity     REAL    NOT NULL DEFAULT 0,
        trust        REAL    NOT NULL DEFAULT 0,
        alignment    REAL    NOT NULL DEFAULT 0,
        novelty      REAL    NOT NULL DEFAULT 0,
        score        REAL    NOT NULL DEFAULT 0,
        parent_id    TEXT    DEFAULT NULL,
        scraped_at   INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_items_ts     ON items(ts DESC);
    CREATE INDEX IF NOT EXISTS idx_items_source ON items(source_id);
    CREATE INDEX IF NOT EXISTS idx_items_score  ON items(score DESC);
    CREATE INDEX IF NOT EXISTS idx_items_parent ON items(parent_id);

    CREATE TABLE IF NOT EXISTS keywords (
        keyword     TEXT    NOT NULL,
        item_id     TEXT    NOT NULL,
        score       REAL    NOT NULL DEFAULT 0,
        observed_at INTEGER NOT NULL,
        PRIMARY KEY (keyword, item_id)
    );

    CREATE INDEX IF NOT EXISTS idx_kw_keyword  ON keywords(keyword);
    CREATE INDEX IF NOT EXISTS idx_kw_observed ON keywords(observed_at DESC);
    CREATE INDEX IF NOT EXISTS idx_kw_item     ON keywords(item_id);

    CREATE TABLE IF NOT EXISTS seen_ids (
        seq     INTEGER PRIMARY KEY AUTOINCREMENT,
        item_id TEXT    NOT NULL UNIQUE
    );
'''

_FTS_SCHEMA = '''
    CREATE VIRTUAL TABLE IF NOT EXISTS items_fts USING fts5(
        item_id UNINDEXED,
        source_id,
        text,
        keywords,
        content  = 'items',
        tokenize = 'unicode61 remove_diacritics 1'
    );

    CREATE TRIGGER IF NOT EXISTS items_ai AFTER INSERT ON items BEGIN
        INSERT INTO items_fts(rowid, item_id, source_id, text, keywords)
        VALUES (new.rowid, new.item_id, new.source_id, new.text, new.keywords);
    END;

    CREATE TRIGGER IF NOT EXISTS items_au AFTER UPDATE ON items BEGIN
        INSERT INTO items_fts(items_fts, rowid, item_id, source_id, text, keywords)
        VALUES ('delete', old.rowid, old.item_id, old.source_id, old.text, old.keywords);
        INSERT INTO items_fts(rowid, item_id, source_id, text, keywords)
        VALUES (new.rowid, new.item_id, new.source_id, new.text, new.keywords);
    END;

    CREATE TRIGGER IF NOT EXISTS items_ad AFTER DELETE ON items BEGIN
        INSERT INTO items_fts(items_fts, rowid, item_id, source_id, text, keywords)
        VALUES ('delete', old.rowid, old.item_id, old.source_id, old.text, old.keywords);
    END;
'''

_UPSERT_ITEM = '''
    INSERT INTO items
        (item_id, ts, ts_iso, source_id, display_name, text, engagement, keywords,
         velocity, trust, alignment, novelty, score, parent_id, scraped_at)
    VALUES
        (:item_id, :ts, :ts_iso, :source_id, :display_name, :text, :engagement, :keywords,
         :velocity, :trust, :alignment, :novelty, :score, :parent_id, :scraped_at)
    ON CONFLICT(item_id) DO UPDATE SET
        ts           = excluded.ts,
        ts_iso       = excluded.ts_iso,
        source_id    = excluded.source_id,
        display_name = excluded.display_name,
        text         = excluded.text,
        engagement   = excluded.engagement,
        keywords     = excluded.keywords,
        velocity     = excluded.velocity,
        trust        = excluded.trust,
        alignment    = excluded.alignment,
        novelty      = excluded.novelty,
        score        = excluded.score,
        parent_id    = excluded.parent_id
'''


def to_ms(value: datetime) -> int:
    return int(round(value.timestamp() * 1000))


def from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)


def split_keywords(value: str) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(k for k in value.split(KEYWORD_SEPARATOR) if k)


class ItemStore:
    """
    Persistent storage for ingestion output.

    Single writer (the pipeline); readers (digest queries, the API)
    may run concurrently and only ever observe committed rows.
    """

    def __init__(self, path: Union[str, Path]):
        self._db = SQLiteDatabase(path, error_cls=StoreError)
        self._db.executescript(_SCHEMA)
        self._fts_enabled = self._db.supports_fts5()
        if self._fts_enabled:
            self._db.executescript(_FTS_SCHEMA)

    @property
    def path(self) -> Path:
        return self._db.path

    # =========================================================================
    # WRITES
    # =========================================================================

    def upsert_item(self, item: Item, scraped_at: Optional[datetime] = None) -> None:
        """Write an item and its keyword rows atomically."""
        observed_at = to_ms(item.timestamp)
        row = {
            'item_id': item.item_id,
            'ts': observed_at,
            'ts_iso': item.timestamp.isoformat(),
            'source_id': item.source_id,
            'display_name': item.display_name,
            'text': item.text,
            'engagement': json.dumps(dict(item.engagement), sort_keys=True),
            'keywords': KEYWORD_SEPARATOR.join(item.keywords),
            'velocity': item.scores.velocity,
            'trust': item.scores.trust,
            'alignment': item.scores.alignment,
            'novelty': item.scores.novelty,
            'score': item.scores.total,
            'parent_id': item.parent_id,
            'scraped_at': to_ms(scraped_at or utc_now()),
        }
        with self._db.transaction() as conn:
            conn.execute(_UPSERT_ITEM, row)
            conn.execute("DELETE FROM keywords WHERE item_id = ?", (item.item_id,))
            conn.executemany(
                "INSERT OR REPLACE INTO keywords (keyword, item_id, score, observed_at) "
                "VALUES (?, ?, ?, ?)",
                [(kw, item.item_id, item.scores.total, observed_at)
                 for kw in dict.fromkeys(item.keywords)]
            )

    def mark_seen(self, item_ids: Iterable[str], max_size: int) -> None:
        """Add ids to the rolling seen-set, evicting the oldest beyond max_size."""
        ids = list(dict.fromkeys(item_ids))
        with self._db.transaction() as conn:
            conn.executemany(
                "INSERT OR IGNORE INTO seen_ids (item_id) VALUES (?)",
                [(i,) for i in ids]
            )
            conn.execute(
                "DELETE FROM seen_ids WHERE seq NOT IN "
                "(SELECT seq FROM seen_ids ORDER BY seq DESC LIMIT ?)",
                (max_size,)
            )

    def prune(self, days: int = 7, now: Optional[datetime] = None) -> Dict[str, int]:
        """Drop items and keyword rows older than `days`."""
        cutoff = to_ms((now or utc_now()) - timedelta(days=days))
        with self._db.transaction() as conn:
            items = conn.execute("DELETE FROM items WHERE ts < ?", (cutoff,)).rowcount
            keywords = conn.execute(
                "DELETE FROM keywords WHERE observed_at < ?", (cutoff,)
            ).rowcount
        logger.info("pruned %d items and %d keyword rows older than %d days",
                    items, keywords, days)
        return {'items': items, 'keywords': keywords}

    # =========================================================================
    # READS
    # =========================================================================

    def seen_ids(self, item_ids: Iterable[str]) -> Set[str]:
        ids = list(item_ids)
        if not ids:
            return set()
        found: Set[str] = set()
        with self._db.snapshot() as conn:
            for start in range(0, len(ids), 500):
                chunk = ids[start:start + 500]
                placeholders = ",".join("?" * len(chunk))
                rows = conn.execute(
                    f"SELECT item_id FROM seen_ids WHERE item_id IN ({placeholders})",
                    chunk
                ).fetchall()
                found.update(r['item_id'] for r in rows)
        return found

    def seen_count(self) -> int:
        with self._db.snapshot() as conn:
            return conn.execute("SELECT COUNT(*) FROM seen_ids").fetchone()[0]

    def get_item(self, item_id: str) -> Optional[Item]:
        with self._db.snapshot() as conn:
            row = conn.execute("SELECT * FROM items WHERE item_id = ?", (item_id,)).fetchone()
        return self._row_to_item(row) if row else None

    def count_items(self) -> int:
        with self._db.snapshot() as conn:
            return conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]

    def keyword_index(self, item_id: Optional[str] = None) -> List[KeywordIndexEntry]:
        query = "SELECT * FROM keywords"
        params: Tuple = ()
        if item_id is not None:
            query += " WHERE item_id = ?"
            params = (item_id,)
        query += " ORDER BY keyword, item_id"
        with self._db.snapshot() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            KeywordIndexEntry(
                keyword=r['keyword'],
                item_id=r['item_id'],
                score=r['score'],
                observed_at=from_ms(r['observed_at'])
            )
            for r in rows
        ]

    def top_keywords(
        self,
        hours: float = 24,
        limit: int = 30,
        now: Optional[datetime] = None
    ) -> List[KeywordStat]:
        """Most frequent keywords observed in the last `hours`."""
        since = to_ms((now or utc_now()) - timedelta(hours=hours))
        with self._db.snapshot() as conn:
            rows = conn.execute('''
                SELECT keyword,
                       COUNT(*)         AS count,
                       AVG(score)       AS avg_score,
                       MAX(observed_at) AS last_seen
                FROM   keywords
                WHERE  observed_at > ?
                GROUP  BY keyword
                ORDER  BY count DESC, avg_score DESC, keyword ASC
                LIMIT  ?
            ''', (since, limit)).fetchall()
        return [
            KeywordStat(
                keyword=r['keyword'],
                count=r['count'],
                avg_score=r['avg_score'],
                last_seen=from_ms(r['last_seen'])
            )
            for r in rows
        ]

    def recent_items(
        self,
        hours: float = 24,
        limit: int = 50,
        now: Optional[datetime] = None
    ) -> List[Item]:
        """Top-scored top-level items (no replies) in the last `hours`."""
        since = to_ms((now or utc_now()) - timedelta(hours=hours))
        with self._db.snapshot() as conn:
            rows = conn.execute('''
                SELECT * FROM items
                WHERE  ts > ? AND parent_id IS NULL
                ORDER  BY score DESC, item_id ASC
                LIMIT  ?
            ''', (since, limit)).fetchall()
        return [self._row_to_item(r) for r in rows]

    def items_by_keyword(self, keyword: str, limit: int = 20) -> List[Item]:
        with self._db.snapshot() as conn:
            rows = conn.execute('''
                SELECT i.*
                FROM   keywords k
                JOIN   items i ON i.item_id = k.item_id
                WHERE  k.keyword = ?
                ORDER  BY k.score DESC, i.ts DESC
                LIMIT  ?
            ''', (keyword, limit)).fetchall()
        return [self._row_to_item(r) for r in rows]

    def keywords_in_window(
        self,
        start: datetime,
        end: datetime,
        exclude_ids: Sequence[str] = ()
    ) -> List[Tuple[str, ...]]:
        """Keyword tuples of top-level items with start < ts <= end."""
        excluded = set(exclude_ids)
        with self._db.snapshot() as conn:
            rows = conn.execute('''
                SELECT item_id, keywords FROM items
                WHERE  ts > ? AND ts <= ? AND parent_id IS NULL
            ''', (to_ms(start), to_ms(end))).fetchall()
        return [split_keywords(r['keywords']) for r in rows if r['item_id'] not in excluded]

    def search(self, query: str, limit: int = 20) -> List[Item]:
        """Full-text search, best match first."""
        terms = re.sub(r'["*()\-:^]', " ", query).split()
        if not terms:
            return []
        with self._db.snapshot() as conn:
            if self._fts_enabled:
                match = " ".join(f'"{t}"' for t in terms)
                rows = conn.execute('''
                    SELECT i.*, bm25(items_fts) AS relevance
                    FROM   items_fts
                    JOIN   items i ON i.rowid = items_fts.rowid
                    WHERE  items_fts MATCH ?
                    ORDER  BY relevance
                    LIMIT  ?
                ''', (match, limit)).fetchall()
            else:
                clauses = " AND ".join("(text LIKE ? OR keywords LIKE ?)" for _ in terms)
                params: List = []
                for t in terms:
                    params.extend([f"%{t}%", f"%{t}%"])
                params.append(limit)
                rows = conn.execute(
                    f"SELECT * FROM items WHERE {clauses} ORDER BY score DESC LIMIT ?",
                    params
                ).fetchall()
        return [self._row_to_item(r) for r in rows]

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _row_to_item(row) -> Item:
        engagement = json.loads(row['engagement'] or '{}')
        return Item(
            item_id=row['item_id'],
            timestamp=from_ms(row['ts']),
            source_id=row['source_id'],
            text=row['text'],
            engagement=tuple(sorted((k, int(v)) for k, v in engagement.items())),
            keywords=split_keywords(row['keywords']),
            scores=ItemScores(
                velocity=row['velocity'],
                trust=row['trust'],
                alignment=row['alignment'],
                novelty=row['novelty'],
                total=row['score'],
            ),
            parent_id=row['parent_id'],
            display_name=row['display_name'],
        )
