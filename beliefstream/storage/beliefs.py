"""
Belief Store

Persistent ontology state: belief axes, their append-only evidence logs,
per-axis CUSUM state, drift alerts, merge proposals and the axis
creation guard counters.

BOUNDARY ENFORCEMENT:
=====================
- The store is an explicit handle passed to each component (no globals)
- Axis rows change only through append_evidence and merge_axes
- Evidence, alerts and proposals are append-only
- Every committed mutation increments `version`

Any sqlite failure (including a corrupt file) raises BeliefStoreError.
"""

from __future__ import annotations
from datetime import date, datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union
import json
import logging
import sqlite3

from ..contracts.base import BeliefStoreError, parse_timestamp, to_iso, utc_now
from ..contracts.beliefs import (
    AxisStats, BeliefAxis, DriftAlert, DriftDirection, DriftState,
    EvidenceEntry, MergeProposal, MergeResult, NewAxisProposal, PoleAlignment,
)
from .database import SQLiteDatabase

logger = logging.getLogger(__name__)

StatsFn = Callable[[Sequence[EvidenceEntry]], AxisStats]

_SCHEMA = '''
    CREATE TABLE IF NOT EXISTS meta (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );

    INSERT OR IGNORE INTO meta (key, value) VALUES ('version', '0');

    CREATE TABLE IF NOT EXISTS axes (
        axis_id      TEXT PRIMARY KEY,
        label        TEXT NOT NULL,
        left_pole    TEXT NOT NULL,
        right_pole   TEXT NOT NULL,
        score        REAL NOT NULL DEFAULT 0,
        confidence   REAL NOT NULL DEFAULT 0,
        topics       TEXT NOT NULL DEFAULT '[]',
        created_at   TEXT NOT NULL,
        last_updated TEXT NOT NULL,
        merged_into  TEXT DEFAULT NULL
    );

    CREATE TABLE IF NOT EXISTS evidence (
        seq               INTEGER PRIMARY KEY AUTOINCREMENT,
        axis_id           TEXT NOT NULL REFERENCES axes(axis_id),
        source            TEXT NOT NULL DEFAULT '',
        text              TEXT NOT NULL DEFAULT '',
        timestamp         TEXT NOT NULL,
        pole_alignment    TEXT NOT NULL,
        trust_weight      REAL NOT NULL DEFAULT 1.0,
        stance_confidence REAL DEFAULT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_evidence_axis ON evidence(axis_id, seq);

    CREATE TABLE IF NOT EXISTS drift_state (
        axis_id         TEXT PRIMARY KEY,
        processed_count INTEGER NOT NULL DEFAULT 0,
        c_pos           REAL NOT NULL DEFAULT 0,
        c_neg           REAL NOT NULL DEFAULT 0,
        updated_at      TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS drift_alerts (
        alert_id       INTEGER PRIMARY KEY AUTOINCREMENT,
        axis_id        TEXT NOT NULL,
        axis_label     TEXT NOT NULL,
        direction      TEXT NOT NULL,
        cusum_value    REAL NOT NULL,
        evidence_index INTEGER NOT NULL,
        current_score  REAL NOT NULL,
        confidence     REAL NOT NULL,
        detected_at    TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS merge_proposals (
        proposal_id      INTEGER PRIMARY KEY AUTOINCREMENT,
        axis_a           TEXT NOT NULL,
        axis_b           TEXT NOT NULL,
        label_a          TEXT NOT NULL,
        label_b          TEXT NOT NULL,
        similarity       REAL NOT NULL,
        evidence_count_a INTEGER NOT NULL,
        evidence_count_b INTEGER NOT NULL,
        proposed_at      TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS guard_state (
        day           TEXT PRIMARY KEY,
        created_count INTEGER NOT NULL DEFAULT 0
    );
'''


class BeliefStore:
    """
    Handle to the belief-axis database.

    Constructing the store validates the file; a corrupt database
    raises BeliefStoreError immediately.
    """

    def __init__(self, path: Union[str, Path]):
        self._db = SQLiteDatabase(path, error_cls=BeliefStoreError)
        self._db.executescript(_SCHEMA)

    @property
    def path(self) -> Path:
        return self._db.path

    @property
    def database(self) -> SQLiteDatabase:
        return self._db

    def version(self) -> int:
        with self._db.snapshot() as conn:
            row = conn.execute("SELECT value FROM meta WHERE key = 'version'").fetchone()
        return int(row['value']) if row else 0

    # =========================================================================
    # AXES
    # =========================================================================

    def create_axis(
        self,
        proposal: NewAxisProposal,
        now: Optional[datetime] = None
    ) -> Optional[BeliefAxis]:
        """
        Create a new axis with an empty evidence log.

        Returns None when the id already exists; the existing axis is
        left untouched.
        """
        now = now or utc_now()
        with self._db.transaction() as conn:
            cursor = conn.execute('''
                INSERT OR IGNORE INTO axes
                    (axis_id, label, left_pole, right_pole, topics, created_at, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', (
                proposal.axis_id, proposal.label, proposal.left_pole, proposal.right_pole,
                json.dumps(list(proposal.topics)), to_iso(now), to_iso(now)
            ))
            if cursor.rowcount == 0:
                return None
            conn.execute('''
                INSERT INTO guard_state (day, created_count) VALUES (?, 1)
                ON CONFLICT(day) DO UPDATE SET created_count = created_count + 1
            ''', (now.date().isoformat(),))
            self._bump_version(conn)
        return self.get_axis(proposal.axis_id)

    def get_axis(self, axis_id: str, resolve: bool = False) -> Optional[BeliefAxis]:
        """Load an axis with its evidence; optionally follow merge redirects."""
        with self._db.snapshot() as conn:
            row = self._axis_row(conn, axis_id)
            seen = {axis_id}
            while resolve and row is not None and row['merged_into']:
                target = row['merged_into']
                if target in seen:
                    raise BeliefStoreError(f"merge redirect cycle at axis {target}")
                seen.add(target)
                row = self._axis_row(conn, target)
            if row is None:
                return None
            return self._row_to_axis(row, self._evidence(conn, row['axis_id']))

    def resolve_id(self, axis_id: str) -> Optional[str]:
        axis = self.get_axis(axis_id, resolve=True)
        return axis.axis_id if axis else None

    def list_axes(self, include_merged: bool = False) -> List[BeliefAxis]:
        query = "SELECT * FROM axes"
        if not include_merged:
            query += " WHERE merged_into IS NULL"
        query += " ORDER BY created_at, axis_id"
        with self._db.snapshot() as conn:
            rows = conn.execute(query).fetchall()
            return [self._row_to_axis(r, self._evidence(conn, r['axis_id'])) for r in rows]

    def axes_created_on(self, day: date) -> int:
        with self._db.snapshot() as conn:
            row = conn.execute(
                "SELECT created_count FROM guard_state WHERE day = ?", (day.isoformat(),)
            ).fetchone()
        return row['created_count'] if row else 0

    # =========================================================================
    # EVIDENCE
    # =========================================================================

    def append_evidence(
        self,
        axis_id: str,
        entry: EvidenceEntry,
        stats_fn: StatsFn,
        now: Optional[datetime] = None
    ) -> Optional[BeliefAxis]:
        """
        Append one entry and recompute the axis, atomically.

        Returns the updated axis, or None if the axis does not exist.
        """
        now = now or utc_now()
        with self._db.transaction() as conn:
            if self._axis_row(conn, axis_id) is None:
                return None
            self._insert_evidence(conn, axis_id, entry)
            self._recompute(conn, axis_id, stats_fn, now)
            self._bump_version(conn)
        return self.get_axis(axis_id)

    def merge_axes(
        self,
        a_id: str,
        b_id: str,
        stats_fn: StatsFn,
        now: Optional[datetime] = None
    ) -> MergeResult:
        """
        Merge two axes; the earlier-created id survives.

        The absorbed axis's evidence is appended to the survivor in
        timestamp order and the absorbed axis becomes a redirect.
        Raises ValueError for unknown, identical or already merged axes.
        """
        if a_id == b_id:
            raise ValueError("cannot merge an axis with itself")
        now = now or utc_now()
        with self._db.transaction() as conn:
            rows = {}
            for axis_id in (a_id, b_id):
                row = self._axis_row(conn, axis_id)
                if row is None:
                    raise ValueError(f"unknown axis: {axis_id}")
                if row['merged_into']:
                    raise ValueError(f"axis {axis_id} already merged into {row['merged_into']}")
                rows[axis_id] = row

            survivor, absorbed = sorted(
                (a_id, b_id),
                key=lambda i: (parse_timestamp(rows[i]['created_at']), i)
            )
            moved = sorted(self._evidence(conn, absorbed), key=lambda e: e.timestamp)
            for entry in moved:
                self._insert_evidence(conn, survivor, entry)
            self._recompute(conn, survivor, stats_fn, now)
            conn.execute(
                "UPDATE axes SET merged_into = ?, last_updated = ? WHERE axis_id = ?",
                (survivor, to_iso(now), absorbed)
            )
            self._bump_version(conn)

        logger.info("merged axis %s into %s (%d evidence entries moved)",
                    absorbed, survivor, len(moved))
        return MergeResult(survivor_id=survivor, absorbed_id=absorbed, moved_evidence=len(moved))

    # =========================================================================
    # DRIFT
    # =========================================================================

    def get_drift_state(self, axis_id: str) -> DriftState:
        with self._db.snapshot() as conn:
            row = conn.execute(
                "SELECT * FROM drift_state WHERE axis_id = ?", (axis_id,)
            ).fetchone()
        if row is None:
            return DriftState()
        return DriftState(
            processed_count=row['processed_count'],
            c_pos=row['c_pos'],
            c_neg=row['c_neg'],
        )

    def save_drift_state(
        self,
        axis_id: str,
        state: DriftState,
        alerts: Sequence[DriftAlert] = (),
        now: Optional[datetime] = None
    ) -> None:
        """Persist CUSUM state and any new alerts in one transaction."""
        now = now or utc_now()
        with self._db.transaction() as conn:
            conn.execute('''
                INSERT INTO drift_state (axis_id, processed_count, c_pos, c_neg, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(axis_id) DO UPDATE SET
                    processed_count = excluded.processed_count,
                    c_pos           = excluded.c_pos,
                    c_neg           = excluded.c_neg,
                    updated_at      = excluded.updated_at
            ''', (axis_id, state.processed_count, state.c_pos, state.c_neg, to_iso(now)))
            conn.executemany('''
                INSERT INTO drift_alerts
                    (axis_id, axis_label, direction, cusum_value, evidence_index,
                     current_score, confidence, detected_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''', [
                (a.axis_id, a.axis_label, a.direction.value, a.cusum_value, a.evidence_index,
                 a.current_score, a.confidence, to_iso(a.detected_at))
                for a in alerts
            ])
            self._bump_version(conn)

    def list_drift_alerts(
        self,
        axis_id: Optional[str] = None,
        limit: int = 100
    ) -> List[DriftAlert]:
        query = "SELECT * FROM drift_alerts"
        params: Tuple = ()
        if axis_id is not None:
            query += " WHERE axis_id = ?"
            params = (axis_id,)
        query += " ORDER BY alert_id DESC LIMIT ?"
        with self._db.snapshot() as conn:
            rows = conn.execute(query, params + (limit,)).fetchall()
        return [
            DriftAlert(
                axis_id=r['axis_id'],
                axis_label=r['axis_label'],
                direction=DriftDirection(r['direction']),
                cusum_value=r['cusum_value'],
                evidence_index=r['evidence_index'],
                current_score=r['current_score'],
                confidence=r['confidence'],
                detected_at=parse_timestamp(r['detected_at']),
            )
            for r in rows
        ]

    # =========================================================================
    # MERGE PROPOSALS
    # =========================================================================

    def append_merge_proposals(self, proposals: Sequence[MergeProposal]) -> None:
        if not proposals:
            return
        with self._db.transaction() as conn:
            conn.executemany('''
                INSERT INTO merge_proposals
                    (axis_a, axis_b, label_a, label_b, similarity,
                     evidence_count_a, evidence_count_b, proposed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''', [
                (p.axis_a, p.axis_b, p.label_a, p.label_b, p.similarity,
                 p.evidence_count_a, p.evidence_count_b, to_iso(p.proposed_at))
                for p in proposals
            ])
            self._bump_version(conn)

    def list_merge_proposals(self, limit: int = 100) -> List[MergeProposal]:
        with self._db.snapshot() as conn:
            rows = conn.execute(
                "SELECT * FROM merge_proposals ORDER BY proposal_id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [
            MergeProposal(
                axis_a=r['axis_a'],
                axis_b=r['axis_b'],
                label_a=r['label_a'],
                label_b=r['label_b'],
                similarity=r['similarity'],
                evidence_count_a=r['evidence_count_a'],
                evidence_count_b=r['evidence_count_b'],
                proposed_at=parse_timestamp(r['proposed_at']),
            )
            for r in rows
        ]

    # =========================================================================
    # INTERNALS (all take an open connection)
    # =========================================================================

    @staticmethod
    def _axis_row(conn: sqlite3.Connection, axis_id: str) -> Optional[sqlite3.Row]:
        return conn.execute("SELECT * FROM axes WHERE axis_id = ?", (axis_id,)).fetchone()

    @staticmethod
    def _evidence(conn: sqlite3.Connection, axis_id: str) -> List[EvidenceEntry]:
        rows = conn.execute(
            "SELECT * FROM evidence WHERE axis_id = ? ORDER BY seq", (axis_id,)
        ).fetchall()
        return [
            EvidenceEntry(
                source=r['source'],
                text=r['text'],
                timestamp=parse_timestamp(r['timestamp']),
                pole_alignment=PoleAlignment(r['pole_alignment']),
                trust_weight=r['trust_weight'],
                stance_confidence=r['stance_confidence'],
            )
            for r in rows
        ]

    @staticmethod
    def _insert_evidence(conn: sqlite3.Connection, axis_id: str, entry: EvidenceEntry) -> None:
        conn.execute('''
            INSERT INTO evidence
                (axis_id, source, text, timestamp, pole_alignment, trust_weight, stance_confidence)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        ''', (
            axis_id, entry.source, entry.text, to_iso(entry.timestamp),
            entry.pole_alignment.value, entry.trust_weight, entry.stance_confidence
        ))

    def _recompute(
        self,
        conn: sqlite3.Connection,
        axis_id: str,
        stats_fn: StatsFn,
        now: datetime
    ) -> AxisStats:
        stats = stats_fn(self._evidence(conn, axis_id))
        conn.execute(
            "UPDATE axes SET score = ?, confidence = ?, last_updated = ? WHERE axis_id = ?",
            (stats.score, stats.confidence, to_iso(now), axis_id)
        )
        return stats

    @staticmethod
    def _bump_version(conn: sqlite3.Connection) -> None:
        conn.execute(
            "UPDATE meta SET value = CAST(CAST(value AS INTEGER) + 1 AS TEXT) "
            "WHERE key = 'version'"
        )

    @staticmethod
    def _row_to_axis(row: sqlite3.Row, evidence: List[EvidenceEntry]) -> BeliefAxis:
        try:
            topics = tuple(json.loads(row['topics'] or '[]'))
        except ValueError as e:
            raise BeliefStoreError(f"axis {row['axis_id']} has unreadable topics: {e}") from e
        return BeliefAxis(
            axis_id=row['axis_id'],
            label=row['label'],
            left_pole=row['left_pole'],
            right_pole=row['right_pole'],
            score=row['score'],
            confidence=row['confidence'],
            topics=topics,
            created_at=parse_timestamp(row['created_at']),
            last_updated=parse_timestamp(row['last_updated']),
            evidence=tuple(evidence),
            merged_into=row['merged_into'],
        )
