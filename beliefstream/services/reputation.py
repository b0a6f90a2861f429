"""
Reputation Provider

Source credibility lookup. The ingestion scorer uses the raw score
(0 when unknown); the evidence aggregator turns it into a trust weight
(neutral prior when unknown).

Trust graph file layout:
    {"accounts": {"alice": {"trust_score": 4}, "bob": {"score": 2}}}
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Mapping, Optional, Union
import json
import logging
import re

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_SCORE = 3.0

_STATUS_URL = re.compile(r"(?:x|twitter)\.com/([^/?\s]+)/status/", re.IGNORECASE)
_HANDLE = re.compile(r"^@?([A-Za-z0-9_]{1,50})$")


def source_identity(ref: Optional[str]) -> Optional[str]:
    """
    Map a source reference to a lowercase account name.

    Accepts a status URL, an @handle or a bare handle; anything else
    (other URLs, free text) has no identity.
    """
    if not ref:
        return None
    ref = ref.strip()
    match = _STATUS_URL.search(ref)
    if match:
        return match.group(1).lower()
    match = _HANDLE.match(ref)
    if match:
        return match.group(1).lower()
    return None


class ReputationProvider(ABC):
    """Returns a reputation score for a source, or None when unknown."""

    @abstractmethod
    def lookup(self, source_ref: str) -> Optional[float]:
        pass


class StaticReputation(ReputationProvider):
    """In-memory mapping; handy for tests and fixed allow-lists."""

    def __init__(self, scores: Mapping[str, float]):
        self._scores = {k.lower(): float(v) for k, v in scores.items()}

    def lookup(self, source_ref: str) -> Optional[float]:
        identity = source_identity(source_ref)
        return self._scores.get(identity) if identity else None


class TrustGraph(ReputationProvider):
    """Reputation loaded from a trust-graph JSON file."""

    def __init__(self, accounts: Dict[str, float]):
        self._accounts = accounts

    @classmethod
    def load(cls, path: Union[str, Path]) -> TrustGraph:
        """Missing or unreadable files yield an empty graph."""
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.info("no trust graph at %s; all sources unknown", path)
            return cls({})
        except (OSError, ValueError) as e:
            logger.warning("trust graph %s unreadable (%s); all sources unknown", path, e)
            return cls({})
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Mapping) -> TrustGraph:
        accounts: Dict[str, float] = {}
        if not isinstance(data, Mapping):
            logger.warning("trust graph is not a JSON object; all sources unknown")
            return cls(accounts)
        raw_accounts = data.get('accounts') or {}
        if not isinstance(raw_accounts, Mapping):
            logger.warning("trust graph 'accounts' is not an object; all sources unknown")
            return cls(accounts)
        for name, account in raw_accounts.items():
            if isinstance(account, Mapping):
                raw = account.get('trust_score', account.get('score', DEFAULT_ACCOUNT_SCORE))
            else:
                raw = account
            try:
                accounts[name.lower()] = float(raw)
            except (TypeError, ValueError):
                logger.warning("trust graph entry %r has non-numeric score %r", name, raw)
        return cls(accounts)

    def lookup(self, source_ref: str) -> Optional[float]:
        identity = source_identity(source_ref)
        if identity is None:
            return None
        return self._accounts.get(identity)

    def __len__(self) -> int:
        return len(self._accounts)
