"""
Noise Filter

Drops items that carry no usable signal before any scoring work is
spent on them. Each rejection names its reason so the cycle report can
count them.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass
from typing import Optional
import re

MIN_CONTENT_CHARS = 20
EMOJI_SHORT_TEXT_CHARS = 80
EMOJI_MAX_DENSITY = 0.35
MIN_WORD_CHARS_FOR_LANGUAGE = 10
MIN_ASCII_RATIO = 0.4
REPETITION_TEXT_CHARS = 100
MAX_WORD_REPEATS = 5
EMOJI_CODEPOINT_FLOOR = 0x1F300

_HANDLE = re.compile(r"@\w+", re.ASCII)
_URL = re.compile(r"https?://\S+")
_HASHTAG = re.compile(r"#\w+", re.ASCII)
_WHITESPACE = re.compile(r"\s+")
_NOT_LETTER = re.compile(r"[^a-zA-ZÀ-ɏ]")
_NOT_ASCII_LETTER = re.compile(r"[^a-zA-Z]")
_WORD_SPLIT = re.compile(r"\W+", re.ASCII)


@dataclass(frozen=True)
class SanitizeVerdict:
    keep: bool
    reason: Optional[str] = None


KEEP = SanitizeVerdict(keep=True)


def clean_text(text: str) -> str:
    """Text without handles, URLs and hashtags, whitespace collapsed."""
    cleaned = _HANDLE.sub("", text)
    cleaned = _URL.sub("", cleaned)
    cleaned = _HASHTAG.sub("", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


def count_emoji(text: str) -> int:
    return sum(1 for ch in text if ord(ch) >= EMOJI_CODEPOINT_FLOOR)


def sanitize(text: str) -> SanitizeVerdict:
    """Decide whether an item's text is worth scoring."""
    if not text:
        return SanitizeVerdict(False, "no_text")

    if text.endswith("\nPromoted"):
        return SanitizeVerdict(False, "ad")

    content = clean_text(text)
    if len(content) < MIN_CONTENT_CHARS:
        return SanitizeVerdict(False, "too_short")

    emoji = count_emoji(content)
    if emoji and len(content) < EMOJI_SHORT_TEXT_CHARS:
        if emoji / len(content) > EMOJI_MAX_DENSITY:
            return SanitizeVerdict(False, "emoji_spam")

    letters = _NOT_LETTER.sub("", content)
    ascii_letters = _NOT_ASCII_LETTER.sub("", content)
    if len(letters) > MIN_WORD_CHARS_FOR_LANGUAGE and len(ascii_letters) / len(letters) < MIN_ASCII_RATIO:
        return SanitizeVerdict(False, "non_english")

    if len(text) < REPETITION_TEXT_CHARS:
        words = [w for w in _WORD_SPLIT.split(text.lower()) if w]
        if any(c > MAX_WORD_REPEATS for c in Counter(words).values()):
            return SanitizeVerdict(False, "repetition")

    return KEEP
