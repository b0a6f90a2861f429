"""
Base Contracts and Shared Types

Foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- All types are frozen dataclasses
- Errors are data: they are collected into reports, not raised
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Optional, Tuple
import hashlib


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for per-record failures.
    Every skipped or rejected record carries one of these.
    """
    # Ingestion errors
    MALFORMED_ITEM = auto()
    DUPLICATE_IN_BATCH = auto()
    SANITIZE_REJECTED = auto()
    EXTRACTION_FAILED = auto()
    PERSIST_FAILED = auto()
    STORE_UNAVAILABLE = auto()

    # Belief errors
    MALFORMED_EVIDENCE = auto()
    MALFORMED_AXIS = auto()
    UNKNOWN_AXIS = auto()
    DUPLICATE_AXIS = auto()
    STANCE_REJECTED = auto()
    CREATION_CAP_REACHED = auto()
    NEAR_DUPLICATE_AXIS = auto()
    MERGE_FAILED = auto()

    # External service errors
    VALIDATOR_UNAVAILABLE = auto()
    EMBEDDING_UNAVAILABLE = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def create(code: ErrorCode, message: str, **context: str) -> Error:
        return Error(
            code=code,
            message=message,
            timestamp=utc_now(),
            context=tuple(sorted((k, str(v)) for k, v in context.items()))
        )

    def context_value(self, key: str) -> Optional[str]:
        for k, v in self.context:
            if k == key:
                return v
        return None


class StoreError(Exception):
    """Raised when a persistent store cannot be opened or written."""


class BeliefStoreError(StoreError):
    """
    Raised when the belief-axis store is unreadable or corrupt.

    Fatal for the belief-update step only; the item store is a
    separate database and stays operable.
    """


# =============================================================================
# TEMPORAL HELPERS (All timestamps are UTC)
# =============================================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value) -> datetime:
    """
    Parse an ISO-8601 string, epoch milliseconds or datetime into UTC.

    Raises ValueError for anything else.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        raise ValueError(f"invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"timestamp out of range: {value!r}") from e
    if isinstance(value, str) and value.strip():
        dt = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        return ensure_utc(dt)
    raise ValueError(f"invalid timestamp: {value!r}")


def to_iso(value: datetime) -> str:
    return ensure_utc(value).isoformat()


def content_hash(text: str) -> str:
    """Deterministic content hash used for cache keys."""
    return hashlib.sha256(text.encode('utf-8')).hexdigest()
