"""
Read-Only API Tests
===================

The FastAPI app serves a view over the two stores; it never mutates.
Requests go through fastapi.testclient against an engine on tmp_path.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from beliefstream import BeliefStreamEngine
from beliefstream.api import create_app
from beliefstream.contracts.base import utc_now

AXES = [
    {'id': "rates", 'label': "Interest rate policy", 'left_pole': "Cut", 'right_pole': "Hike"},
    {'id': "rates2", 'label': "Rate outlook", 'left_pole': "Lower", 'right_pole': "Higher"},
]


@pytest.fixture
def engine(engine_config, make_record):
    engine = BeliefStreamEngine(engine_config)
    now = utc_now()
    engine.run_ingestion_cycle([
        make_record("1", "Central bank signals interest rate cuts amid cooling inflation",
                    likes=40, at=now),
        make_record("2", "Wildfire smoke blankets coastal towns as evacuation orders expand",
                    likes=5, at=now),
    ], now)
    engine.apply_delta({'new_axes': AXES[:1]}, now - timedelta(days=1))
    engine.apply_delta({
        'new_axes': AXES[1:],
        'evidence': [{'axis_id': "rates", 'pole_alignment': "right", 'content': f"hike {i}"}
                     for i in range(8)],
    }, now)
    engine.detect_drift(now=now)
    return engine


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as client:
        yield client


class TestHealth:

    def test_online(self, client):
        body = client.get("/health").json()
        assert body["status"] == "online"
        assert body["items"] == 2
        assert body["belief_version"] > 0


class TestAxes:

    def test_list(self, client):
        axes = client.get("/api/v1/axes").json()
        assert [a["id"] for a in axes] == ["rates", "rates2"]
        assert axes[0]["evidence_count"] == 8
        assert axes[0]["score"] == 1.0

    def test_detail_includes_evidence(self, client):
        axis = client.get("/api/v1/axes/rates").json()
        assert len(axis["evidence"]) == 8
        assert axis["evidence"][0]["pole_alignment"] == "right"

    def test_missing_axis(self, client):
        assert client.get("/api/v1/axes/nope").status_code == 404

    def test_merged_axis_redirects(self, engine, client):
        engine.apply_delta({'merges': [{'axis_ids': ["rates", "rates2"]}]})
        assert client.get("/api/v1/axes/rates2").json()["id"] == "rates"
        raw = client.get("/api/v1/axes/rates2", params={'resolve': False}).json()
        assert raw["merged_into"] == "rates"
        listed = client.get("/api/v1/axes").json()
        assert [a["id"] for a in listed] == ["rates"]
        everything = client.get("/api/v1/axes", params={'include_merged': True}).json()
        assert len(everything) == 2


class TestAlertsAndProposals:

    def test_drift_alerts(self, client):
        alerts = client.get("/api/v1/drift-alerts").json()
        assert [(a["axis_id"], a["direction"], a["evidence_index"]) for a in alerts] == [
            ("rates", "right", 8)
        ]
        assert client.get("/api/v1/drift-alerts", params={'axis_id': "rates2"}).json() == []

    def test_no_proposals_yet(self, client):
        assert client.get("/api/v1/merge-proposals").json() == []

    def test_limit_validated(self, client):
        assert client.get("/api/v1/drift-alerts", params={'limit': 0}).status_code == 422


class TestItems:

    def test_top_keywords(self, client):
        stats = client.get("/api/v1/keywords/top").json()
        assert stats
        assert all(s["count"] >= 1 for s in stats)

    def test_recent_items_by_score(self, client):
        items = client.get("/api/v1/items/recent").json()
        assert [i["id"] for i in items] == ["1", "2"]
        assert items[0]["engagement"]["likes"] == 40

    def test_search(self, client):
        hits = client.get("/api/v1/search", params={'q': "wildfire"}).json()
        assert [h["id"] for h in hits] == ["2"]

    def test_search_requires_query(self, client):
        assert client.get("/api/v1/search").status_code == 422


class TestReadOnly:

    def test_post_not_allowed(self, client):
        assert client.post("/api/v1/axes", json={}).status_code == 405
