"""
Axis Redundancy Tests
=====================

ML FENCE POST VERIFICATION:
===========================
- Proposals only ever name axes that were embedded this cycle
- Detection appends proposals and never changes an axis
- Cached vectors are reused until the axis text changes
"""

import numpy as np
import pytest

from beliefstream.beliefs import AxisRedundancyDetector, render_proposals
from beliefstream.config import RedundancyConfig
from beliefstream.contracts.base import content_hash
from beliefstream.contracts.beliefs import NewAxisProposal
from beliefstream.services.embedding import cosine_similarity, similarity_matrix
from beliefstream.storage import EmbeddingCache


@pytest.fixture
def store(belief_store, now):
    for axis_id, label in [("a", "Monetary policy"), ("b", "Interest rates"),
                           ("c", "Climate action"), ("d", "Unembeddable topic")]:
        belief_store.create_axis(NewAxisProposal(axis_id, label, "Left", "Right"), now)
    return belief_store


VECTORS = {
    "Monetary policy": [1.0, 0.0, 0.0],
    "Interest rates": [0.95, 0.1, 0.0],
    "Climate action": [0.0, 0.0, 1.0],
}


class TestSimilarity:

    def test_cosine(self):
        assert cosine_similarity([1, 0], [0, 1]) == 0.0
        assert cosine_similarity([1, 1], [2, 2]) == pytest.approx(1.0)
        assert cosine_similarity([0, 0], [1, 0]) == 0.0

    def test_cosine_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1, 0], [1, 0, 0])

    def test_matrix_is_symmetric_with_unit_diagonal(self):
        sims = similarity_matrix([[1, 0], [0.6, 0.8], [0, 1]])
        assert np.allclose(sims, sims.T)
        assert np.allclose(np.diag(sims), 1.0)
        assert sims[0, 1] == pytest.approx(0.6)


class TestDetector:

    def test_proposes_similar_pair_only(self, store, now, fake_embeddings):
        detector = AxisRedundancyDetector(store, fake_embeddings(VECTORS))
        report = detector.detect(now)

        assert report.axes_checked == 4
        assert report.axes_skipped == ("d",)
        assert [(p.axis_a, p.axis_b) for p in report.proposals] == [("a", "b")]
        assert report.proposals[0].similarity >= 0.88
        assert store.list_merge_proposals() == list(report.proposals)

    def test_skipped_axis_never_in_proposals(self, store, now, fake_embeddings):
        vectors = dict(VECTORS, **{"Unembeddable": [1.0, 0.0, 0.0]})
        vectors.pop("Monetary policy")
        report = AxisRedundancyDetector(store, fake_embeddings(vectors)).detect(now)
        named = {p.axis_a for p in report.proposals} | {p.axis_b for p in report.proposals}
        assert "a" in report.axes_skipped
        assert "a" not in named

    def test_does_not_modify_axes(self, store, now, fake_embeddings):
        before = store.list_axes()
        AxisRedundancyDetector(store, fake_embeddings(VECTORS)).detect(now)
        assert store.list_axes() == before

    def test_vectors_cached_between_cycles(self, store, now, fake_embeddings):
        embeddings = fake_embeddings(VECTORS)
        detector = AxisRedundancyDetector(store, embeddings)
        detector.detect(now)
        first_calls = len(embeddings.calls)
        detector.detect(now)

        # only the unembeddable axis is retried
        assert len(embeddings.calls) == first_calls + 1
        assert EmbeddingCache(store.database).count("axis") == 3

    def test_model_switch_reembeds_cached_axes(self, store, now, fake_embeddings):
        AxisRedundancyDetector(store, fake_embeddings(VECTORS)).detect(now)

        class OtherModel(fake_embeddings):
            @property
            def model_id(self):
                return "other-embed"

        switched = OtherModel(VECTORS)
        report = AxisRedundancyDetector(store, switched).detect(now)

        assert len(switched.calls) == 4
        assert [(p.axis_a, p.axis_b) for p in report.proposals] == [("a", "b")]
        cache = EmbeddingCache(store.database)
        axis = store.get_axis("a")
        digest = content_hash(axis.canonical_text())
        assert cache.get("axis", "a", digest, "other-embed") is not None
        assert cache.get("axis", "a", digest, "fake-embed") is None

    def test_mixed_dimensions_compared_within_dimension(self, store, now, fake_embeddings):
        vectors = {
            "Monetary policy": [1.0, 0.0],
            "Interest rates": [1.0, 0.0, 0.0],
            "Climate action": [1.0, 0.0, 0.0],
        }
        report = AxisRedundancyDetector(store, fake_embeddings(vectors)).detect(now)
        assert [(p.axis_a, p.axis_b) for p in report.proposals] == [("b", "c")]

    def test_threshold_is_configurable(self, store, now, fake_embeddings):
        detector = AxisRedundancyDetector(
            store, fake_embeddings(VECTORS), config=RedundancyConfig(similarity_threshold=0.999)
        )
        assert detector.detect(now).proposals == ()


class TestRender:

    def test_no_proposals(self):
        assert "no similar axis pairs" in render_proposals([], 0.88)

    def test_lists_pairs(self, store, now, fake_embeddings):
        report = AxisRedundancyDetector(store, fake_embeddings(VECTORS)).detect(now)
        text = render_proposals(report.proposals, 0.88)
        assert "PROPOSED MERGE" in text
        assert "[a] \"Monetary policy\"" in text
