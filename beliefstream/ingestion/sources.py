"""
Raw Item Sources

Where batches come from. Live-feed scraping is out of scope; sources
here read records that something else already collected.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union
import json
import logging

logger = logging.getLogger(__name__)


class ItemSource(ABC):
    """Supplies one batch of raw item records per call."""

    @abstractmethod
    def fetch_batch(self) -> List[Dict[str, Any]]:
        pass


class StaticItemSource(ItemSource):
    def __init__(self, records: Sequence[Dict[str, Any]]):
        self._records = list(records)

    def fetch_batch(self) -> List[Dict[str, Any]]:
        return list(self._records)


class JsonlItemSource(ItemSource):
    """
    One JSON object per line. Blank lines are ignored; lines that are not
    JSON objects are logged and skipped.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self.skipped_lines = 0

    def fetch_batch(self) -> List[Dict[str, Any]]:
        records = []
        self.skipped_lines = 0
        with open(self._path, 'r', encoding='utf-8') as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except ValueError as e:
                    logger.warning("%s:%d: not JSON (%s); skipped", self._path, line_no, e)
                    self.skipped_lines += 1
                    continue
                if not isinstance(record, dict):
                    logger.warning("%s:%d: not a JSON object; skipped", self._path, line_no)
                    self.skipped_lines += 1
                    continue
                records.append(record)
        return records
