"""
SQLite Connection Management

Shared by the item store and the belief store.

GUARANTEES:
===========
1. WAL journal: one writer, readers see the last committed snapshot
2. Every write unit runs in a single BEGIN IMMEDIATE transaction
3. Any sqlite failure surfaces as the store's own error type
"""

from __future__ import annotations
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Type, Union
import logging
import sqlite3

from ..contracts.base import StoreError

logger = logging.getLogger(__name__)


class SQLiteDatabase:
    """
    Thin wrapper around a SQLite file.

    Connections are short-lived: each transaction opens and closes its own,
    so a handle can be shared between the pipeline and read-only API code.
    """

    def __init__(
        self,
        path: Union[str, Path],
        error_cls: Type[StoreError] = StoreError,
        timeout: float = 30.0
    ):
        self._path = Path(path)
        self._error_cls = error_cls
        self._timeout = timeout
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise error_cls(f"cannot create data directory {self._path.parent}: {e}") from e

    @property
    def path(self) -> Path:
        return self._path

    def _open(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self._path, timeout=self._timeout, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")
            return conn
        except sqlite3.DatabaseError as e:
            raise self._error_cls(f"cannot open {self._path}: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Write unit: commits on success, rolls back on any exception."""
        conn = self._open()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        except sqlite3.DatabaseError as e:
            raise self._error_cls(f"write to {self._path} failed: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def snapshot(self) -> Iterator[sqlite3.Connection]:
        """Read unit: all queries see one consistent snapshot."""
        conn = self._open()
        try:
            conn.execute("BEGIN")
            try:
                yield conn
            finally:
                conn.execute("COMMIT")
        except sqlite3.DatabaseError as e:
            raise self._error_cls(f"read from {self._path} failed: {e}") from e
        finally:
            conn.close()

    def executescript(self, script: str) -> None:
        conn = self._open()
        try:
            conn.executescript(script)
        except sqlite3.DatabaseError as e:
            raise self._error_cls(f"schema setup on {self._path} failed: {e}") from e
        finally:
            conn.close()

    def supports_fts5(self) -> bool:
        conn = self._open()
        try:
            conn.execute("CREATE VIRTUAL TABLE IF NOT EXISTS temp._fts5_probe USING fts5(x)")
            conn.execute("DROP TABLE IF EXISTS temp._fts5_probe")
            return True
        except sqlite3.OperationalError:
            logger.warning("SQLite build has no FTS5; full-text search falls back to LIKE")
            return False
        finally:
            conn.close()
