"""
Stance Validator

Asks an external classifier whether a piece of evidence really supports
the pole it claims. Verdicts are advisory: the aggregator rejects only
on an explicit low-confidence verdict, and treats None (unavailable,
timeout, unparseable reply) as accept-without-validation.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import json
import logging
import re

import httpx

from ..contracts.beliefs import PoleAlignment

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

PROMPT_TEMPLATE = """You are a fact-checker for an ontological belief system.

Axis: "{label}"
Left pole: "{left_pole}"
Right pole: "{right_pole}"

Evidence: "{text}"
Claimed alignment: "{alignment}" ({claimed_pole})

Does this evidence genuinely support the claimed pole alignment?
Reply with JSON only, no other text:
{{"confidence":0.0,"reasoning":"one sentence"}}

confidence is 0.0-1.0 (1.0 = clearly supports the claimed alignment)."""


@dataclass(frozen=True)
class StanceQuery:
    label: str
    left_pole: str
    right_pole: str
    text: str
    alignment: PoleAlignment

    @property
    def claimed_pole(self) -> str:
        return self.left_pole if self.alignment is PoleAlignment.LEFT else self.right_pole

    def to_prompt(self) -> str:
        return PROMPT_TEMPLATE.format(
            label=self.label,
            left_pole=self.left_pole,
            right_pole=self.right_pole,
            text=self.text,
            alignment=self.alignment.value,
            claimed_pole=self.claimed_pole,
        )


@dataclass(frozen=True)
class StanceVerdict:
    confidence: float
    reasoning: str = ""

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence must be between 0.0 and 1.0")


def parse_verdict(reply: str) -> Optional[StanceVerdict]:
    """Extract the JSON verdict from a model reply (fences and chatter allowed)."""
    match = _JSON_OBJECT.search(reply or "")
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    confidence = data.get('confidence')
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return None
    return StanceVerdict(
        confidence=max(0.0, min(1.0, float(confidence))),
        reasoning=str(data.get('reasoning') or ""),
    )


class StanceValidator(ABC):

    @abstractmethod
    def validate(self, query: StanceQuery) -> Optional[StanceVerdict]:
        """Return a verdict, or None when the validator is unavailable."""


class OllamaStanceValidator(StanceValidator):
    """Stance validation through an Ollama /api/generate model."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:7b",
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None
    ):
        self._url = base_url.rstrip('/') + "/api/generate"
        self._model = model
        self._client = client or httpx.Client(timeout=timeout)

    def validate(self, query: StanceQuery) -> Optional[StanceVerdict]:
        payload = {
            'model': self._model,
            'prompt': query.to_prompt(),
            'stream': False,
            'options': {'temperature': 0.0, 'num_predict': 80},
        }
        try:
            response = self._client.post(self._url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning("stance validator at %s unavailable: %s", self._url, e)
            return None
        except ValueError as e:
            logger.warning("stance validator reply is not JSON: %s", e)
            return None

        if not isinstance(data, dict):
            logger.warning("stance validator reply is not a JSON object")
            return None
        reply = data.get('response', '')

        verdict = parse_verdict(reply if isinstance(reply, str) else "")
        if verdict is None:
            logger.warning("stance validator reply had no usable verdict: %.80r", reply)
        return verdict

    def close(self) -> None:
        self._client.close()
