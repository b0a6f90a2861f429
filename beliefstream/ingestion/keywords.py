"""
Keyword Extraction (RAKE)

Rapid Automatic Keyword Extraction: candidate phrases are the runs of
content words between stop words; each word is scored by
(degree + frequency) / frequency and a phrase scores the sum of its
words. Deterministic and dependency-free.
"""

from __future__ import annotations
from typing import Dict, List
import re

STOP_WORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "from", "is", "are", "was", "were", "be", "been", "being", "have", "has", "had", "do",
    "does", "did", "will", "would", "could", "should", "may", "might", "this", "that",
    "these", "those", "it", "its", "he", "she", "they", "we", "you", "i", "my", "your",
    "our", "their", "not", "no", "so", "if", "as", "up", "out", "about", "just", "also",
    "than", "then", "when", "where", "who", "what", "how", "all", "more", "most", "some",
    "can", "into", "over", "after", "before", "between", "such", "even", "very", "only",
    "well", "still", "here", "there", "now", "get", "got", "like", "never", "one",
    "two", "re", "s", "t", "ve", "ll", "d", "m", "don", "isn", "aren", "wasn", "weren",
    "because", "them", "him", "her", "us", "which", "while", "through", "down", "each",
})

DEFAULT_TOP_N = 8

_URL = re.compile(r"https?://\S+")
_MENTION_OR_TAG = re.compile(r"[@#]\w+", re.ASCII)
_NON_WORD = re.compile(r"[^\w\s]", re.ASCII)
_NUMERIC = re.compile(r"^\d+$")


def tokenize(text: str) -> List[str]:
    """Lowercased content tokens longer than two characters."""
    cleaned = _URL.sub("", text.lower())
    cleaned = _MENTION_OR_TAG.sub("", cleaned)
    cleaned = _NON_WORD.sub(" ", cleaned)
    return [w for w in cleaned.split() if len(w) > 2]


def candidate_phrases(words: List[str]) -> List[List[str]]:
    phrases: List[List[str]] = []
    current: List[str] = []
    for word in words:
        if word in STOP_WORDS or _NUMERIC.match(word):
            if current:
                phrases.append(current)
                current = []
        else:
            current.append(word)
    if current:
        phrases.append(current)
    return phrases


def extract_keywords(text: str, top_n: int = DEFAULT_TOP_N) -> List[str]:
    """
    Top-N keyphrases of `text`, best first.

    Ties keep first-occurrence order (sorted() is stable).
    """
    if not text:
        return []
    phrases = candidate_phrases(tokenize(text))

    freq: Dict[str, int] = {}
    degree: Dict[str, int] = {}
    for phrase in phrases:
        for word in phrase:
            freq[word] = freq.get(word, 0) + 1
            degree[word] = degree.get(word, 0) + len(phrase) - 1

    word_score = {w: (degree[w] + freq[w]) / freq[w] for w in freq}

    scored = []
    seen = set()
    for phrase in phrases:
        joined = " ".join(phrase)
        if joined in seen:
            continue
        seen.add(joined)
        if len(joined) <= 2:
            continue
        scored.append((joined, sum(word_score[w] for w in phrase)))

    scored.sort(key=lambda p: p[1], reverse=True)
    return [phrase for phrase, _ in scored[:top_n]]
