"""
Keyword Extraction and Noise Filter Tests
=========================================

Both steps are pure functions of the item text; these tests pin
their outputs on small, hand-checked inputs.
"""

import pytest

from beliefstream.ingestion.keywords import (
    STOP_WORDS, candidate_phrases, extract_keywords, tokenize,
)
from beliefstream.ingestion.sanitize import clean_text, count_emoji, sanitize


class TestTokenize:

    def test_strips_urls_mentions_and_hashtags(self):
        tokens = tokenize("Read https://example.com/x now @bob #breaking inflation report")
        assert "https" not in tokens
        assert "bob" not in tokens
        assert "breaking" not in tokens
        assert tokens[-2:] == ["inflation", "report"]

    def test_drops_short_words_and_lowercases(self):
        assert tokenize("An OK Budget Deal") == ["budget", "deal"]


class TestCandidatePhrases:

    def test_stop_words_and_numbers_split_phrases(self):
        words = ["housing", "market", "and", "election", "2026", "results"]
        assert candidate_phrases(words) == [["housing", "market"], ["election"], ["results"]]

    def test_common_function_words_are_stop_words(self):
        for word in ("the", "and", "with", "because"):
            assert word in STOP_WORDS


class TestExtractKeywords:

    def test_multi_word_phrases_score_higher(self):
        keywords = extract_keywords("inflation and the housing market and the election")
        assert keywords == ["housing market", "inflation", "election"]

    def test_top_n_limits_output(self):
        text = "alpha and bravo and charlie and delta and echo and foxtrot"
        assert len(extract_keywords(text, top_n=3)) == 3

    def test_repeated_phrase_counted_once(self):
        keywords = extract_keywords("rate cuts and more rate cuts and the rate cuts")
        assert keywords.count("rate cuts") == 1

    def test_empty_text(self):
        assert extract_keywords("") == []

    def test_deterministic(self):
        text = "central bank policy and the labour market outlook with wage growth"
        assert extract_keywords(text) == extract_keywords(text)


class TestSanitize:

    def test_keeps_ordinary_post(self):
        verdict = sanitize("The central bank held rates steady again this morning")
        assert verdict.keep is True
        assert verdict.reason is None

    @pytest.mark.parametrize("text,reason", [
        ("", "no_text"),
        ("Buy the new phone today, limited offer for everyone\nPromoted", "ad"),
        ("@bob @carol short one", "too_short"),
        ("🔥" * 15 + " hot take today", "emoji_spam"),
        ("ééééé ààààà ççççç ôôôôô êêêêê", "non_english"),
        ("wow wow wow wow wow wow what a game", "repetition"),
    ])
    def test_rejection_reasons(self, text, reason):
        verdict = sanitize(text)
        assert verdict.keep is False
        assert verdict.reason == reason

    def test_repetition_only_checked_on_short_text(self):
        long_text = "wow " * 6 + "this is a much longer post " * 5
        assert len(long_text) >= 100
        assert sanitize(long_text).keep is True

    def test_clean_text_collapses_whitespace(self):
        assert clean_text("  hello   @bob  world #tag https://x.io/a ") == "hello world"

    def test_count_emoji(self):
        assert count_emoji("ok 🔥🔥 fine") == 2
