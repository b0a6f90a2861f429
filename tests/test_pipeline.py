"""
Ingestion Pipeline Tests
========================

GUARANTEES VERIFIED:
====================
1. Re-running an identical batch persists nothing new
2. A bad record is reported and skipped; the rest of the batch lands
3. An unusable item store yields zero items, not a crash
4. Bursts compare against stored items in the previous window
"""

from datetime import timedelta

import pytest

from beliefstream.config import ClusteringConfig, PipelineConfig
from beliefstream.contracts.base import ErrorCode, StoreError
from beliefstream.contracts.items import RawItem
from beliefstream.ingestion import IngestionPipeline, Scorer
from beliefstream.storage import ItemStore


TEXTS = {
    "rates": "Central bank signals interest rate cuts amid cooling inflation data",
    "fire": "Wildfire smoke blankets coastal towns as evacuation orders expand",
    "code": "New open source compiler release improves build performance dramatically",
}


def _codes(report):
    return [e.code for e in report.errors]


@pytest.fixture
def pipeline(item_store):
    return IngestionPipeline(item_store, Scorer())


class TestCycle:

    def test_persists_scored_items(self, pipeline, item_store, make_record, now):
        records = [make_record(k, t, likes=10 * (n + 1)) for n, (k, t) in enumerate(TEXTS.items())]
        report = pipeline.run_cycle(records, now)

        assert report.success
        assert report.received == 3
        assert sorted(report.persisted) == ["code", "fire", "rates"]
        assert item_store.count_items() == 3
        assert report.digest.item_count == 3
        stored = item_store.get_item("code")
        assert stored.keywords
        assert stored.scores.novelty > 0

    def test_identical_rerun_persists_nothing(self, pipeline, item_store, make_record, now):
        records = [make_record(k, t) for k, t in TEXTS.items()]
        first = pipeline.run_cycle(records, now)
        second = pipeline.run_cycle(records, now)

        assert len(first.persisted) == 3
        assert second.persisted == ()
        assert second.already_seen == 3
        assert second.digest.is_empty
        assert item_store.count_items() == 3

    def test_exact_duplicates_keep_higher_score(self, pipeline, make_record, now):
        text = TEXTS["rates"]
        records = [
            make_record("quiet", text, likes=1),
            make_record("loud", text, likes=500),
        ]
        report = pipeline.run_cycle(records, now)
        assert report.persisted == ("loud",)
        assert report.duplicates_removed == 1

    def test_top_k_bounds_output(self, item_store, make_record, now):
        pipeline = IngestionPipeline(item_store, Scorer(), PipelineConfig(top_k=2))
        records = [make_record(k, t) for k, t in TEXTS.items()]
        report = pipeline.run_cycle(records, now)
        assert len(report.persisted) == 2

    def test_batch_truncated_to_max_size(self, item_store, make_record, now):
        pipeline = IngestionPipeline(item_store, Scorer(), PipelineConfig(max_batch_size=1))
        records = [make_record(k, t) for k, t in TEXTS.items()]
        report = pipeline.run_cycle(records, now)
        assert report.received == 1
        assert report.persisted == ("rates",)

    def test_parallel_scoring_matches_sequential(self, tmp_path, make_record, now):
        records = [make_record(k, t, likes=n) for n, (k, t) in enumerate(TEXTS.items())]
        seq = IngestionPipeline(ItemStore(tmp_path / "a.db"), Scorer())
        par = IngestionPipeline(ItemStore(tmp_path / "b.db"), Scorer(), PipelineConfig(workers=3))
        assert seq.run_cycle(records, now).persisted == par.run_cycle(records, now).persisted


class TestFailureIsolation:

    def test_malformed_record_skipped(self, pipeline, make_record, now):
        records = [
            {'text': "no id, no timestamp"},
            make_record("good", TEXTS["fire"]),
        ]
        report = pipeline.run_cycle(records, now)
        assert report.persisted == ("good",)
        assert ErrorCode.MALFORMED_ITEM in _codes(report)

    @pytest.mark.parametrize("field,value", [
        ('timestamp', 10 ** 20),
        ('timestamp', float('inf')),
        ('engagement', {'likes': float('inf')}),
    ])
    def test_out_of_range_values_skip_only_that_record(
        self, pipeline, make_record, now, field, value
    ):
        bad = make_record("bad", TEXTS["rates"])
        bad[field] = value
        report = pipeline.run_cycle([bad, make_record("good", TEXTS["fire"])], now)
        assert report.persisted == ("good",)
        assert _codes(report) == [ErrorCode.MALFORMED_ITEM]

    def test_duplicate_id_in_batch_first_wins(self, pipeline, make_record, now):
        records = [make_record("x", TEXTS["fire"]), make_record("x", TEXTS["code"])]
        report = pipeline.run_cycle(records, now)
        assert report.persisted == ("x",)
        assert ErrorCode.DUPLICATE_IN_BATCH in _codes(report)

    def test_sanitized_items_reported(self, pipeline, make_record, now):
        records = [make_record("spam", "wow wow wow wow wow wow wow so good"),
                   make_record("ok", TEXTS["code"])]
        report = pipeline.run_cycle(records, now)
        assert report.sanitized_out == 1
        assert report.persisted == ("ok",)
        assert ErrorCode.SANITIZE_REJECTED in _codes(report)

    def test_scoring_failure_isolated(self, item_store, make_record, now):
        class FlakyScorer(Scorer):
            def score(self, raw, keywords, now):
                if raw.item_id == "bad":
                    raise RuntimeError("boom")
                return super().score(raw, keywords, now)

        pipeline = IngestionPipeline(item_store, FlakyScorer())
        records = [make_record("bad", TEXTS["fire"]), make_record("good", TEXTS["code"])]
        report = pipeline.run_cycle(records, now)
        assert report.persisted == ("good",)
        assert ErrorCode.EXTRACTION_FAILED in _codes(report)

    def test_store_outage_yields_zero_items(self, tmp_path, make_record, now):
        class BrokenStore(ItemStore):
            def upsert_item(self, item, scraped_at=None):
                raise StoreError("disk full")

        store = BrokenStore(tmp_path / "items.db")
        pipeline = IngestionPipeline(store, Scorer())
        report = pipeline.run_cycle([make_record("a", TEXTS["fire"])], now)

        assert report.persisted == ()
        assert report.success is False
        assert report.digest.is_empty
        assert store.seen_ids(["a"]) == set()

    def test_unreadable_seen_set_yields_zero_items(self, tmp_path, make_record, now):
        class BrokenStore(ItemStore):
            def seen_ids(self, item_ids):
                raise StoreError("locked")

        pipeline = IngestionPipeline(BrokenStore(tmp_path / "items.db"), Scorer())
        report = pipeline.run_cycle([make_record("a", TEXTS["fire"])], now)
        assert report.persisted == ()
        assert ErrorCode.STORE_UNAVAILABLE in _codes(report)

    def test_raw_items_accepted_directly(self, pipeline, now):
        raw = RawItem(
            item_id="r1",
            timestamp=now - timedelta(hours=1),
            source_id="bob",
            text=TEXTS["code"],
        )
        assert pipeline.run_cycle([raw], now).persisted == ("r1",)


class TestBursts:

    def test_keyword_recurring_across_cycles_bursts(self, item_store, make_record, now):
        pipeline = IngestionPipeline(
            item_store, Scorer(), clustering=ClusteringConfig(burst_window_hours=2)
        )
        earlier = make_record(
            "t1", "inflation and the housing market and the election", hours_ago=1
        )
        pipeline.run_cycle([earlier], now - timedelta(minutes=30))

        later = make_record(
            "t2", "inflation and the football season and the weather", hours_ago=0.1
        )
        report = pipeline.run_cycle([later], now)

        assert "inflation" in report.digest.burst_keywords
        assert [i.item_id for i in report.digest.singletons] == ["t2"]
