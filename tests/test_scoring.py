"""
Scoring Tests
=============

Velocity decay, trust clamping, axis alignment and corpus novelty.
"""

import math
from datetime import timedelta

import pytest

from beliefstream.config import ScoringConfig
from beliefstream.contracts.items import RawItem
from beliefstream.ingestion.scoring import (
    Scorer, alignment, apply_novelty, compute_idf, engagement_total, novelty, trust, velocity,
)
from beliefstream.services.reputation import StaticReputation


class TestVelocity:

    def test_hn_gravity_formula(self, now):
        ts = now - timedelta(hours=2)
        assert velocity(100, ts, now) == pytest.approx(100 / math.pow(4, 1.8))

    def test_future_timestamp_counts_as_age_zero(self, now):
        ts = now + timedelta(hours=5)
        assert velocity(10, ts, now) == pytest.approx(10 / math.pow(2, 1.8))

    def test_decays_with_age(self, now):
        fresh = velocity(50, now - timedelta(hours=1), now)
        stale = velocity(50, now - timedelta(hours=10), now)
        assert fresh > stale

    def test_weighted_engagement(self):
        weights = ScoringConfig().engagement_weights
        assert engagement_total({'likes': 3, 'reposts': 2, 'replies': 1}, weights) == 8.0
        assert engagement_total({'views': 1000}, weights) == 0.0


class TestTrustAndAlignment:

    def test_unknown_source_scores_zero(self):
        assert trust(None) == 0.0

    def test_trust_is_clamped(self):
        assert trust(25) == 10.0
        assert trust(-3) == 0.0
        assert trust(4.5) == 4.5

    def test_alignment_counts_label_words(self):
        labels = ["Monetary policy direction", "Climate action"]
        text = "Monetary tightening and climate worries dominate"
        assert alignment(text, labels) == 2

    def test_alignment_ignores_short_label_words(self):
        assert alignment("the war on tax", ["War on tax"]) == 0


class TestNovelty:

    def test_idf_is_smoothed(self):
        idf = compute_idf([["a", "b"], ["a"]])
        assert idf["a"] == pytest.approx(math.log(3 / 3))
        assert idf["b"] == pytest.approx(math.log(3 / 2))

    def test_empty_keywords_have_no_novelty(self):
        assert novelty([], {}, 5) == 0.0

    def test_novelty_is_capped(self):
        assert novelty(["x"], {}, 10 ** 6, cap=5.0) == 5.0

    def test_rare_keywords_get_larger_boost(self, make_item):
        items = [
            make_item("1", ["common"], total=1.0),
            make_item("2", ["common"], total=1.0),
            make_item("3", ["rare"], total=1.0),
        ]
        boosted = apply_novelty(items, ScoringConfig())
        assert boosted[2].scores.novelty > boosted[0].scores.novelty
        assert boosted[2].total == pytest.approx(1.0 + boosted[2].scores.novelty * 0.4)


class TestScorer:

    def test_composite_score(self, now):
        raw = RawItem(
            item_id="1",
            timestamp=now - timedelta(hours=2),
            source_id="alice",
            text="Monetary tightening continues across economies",
            engagement=(('likes', 40), ('reposts', 5)),
        )
        scorer = Scorer(
            reputation=StaticReputation({"alice": 4}),
            axis_labels=["Monetary policy direction"],
        )
        item = scorer.score(raw, ["monetary tightening"], now)

        expected_velocity = 50 / math.pow(4, 1.8)
        assert item.scores.velocity == pytest.approx(expected_velocity)
        assert item.scores.trust == 4.0
        assert item.scores.alignment == 1.0
        assert item.total == pytest.approx(expected_velocity + 4.0 * 0.5 + 1.0 * 0.3)
        assert item.keywords == ("monetary tightening",)
