"""
Command Line Tests
==================

Each command runs through main() against a data directory on tmp_path,
with stance validation switched off in a JSON config file.
"""

import json

import pytest

from beliefstream.cli import main
from beliefstream.contracts.base import utc_now

RATES = "Central bank signals interest rate cuts amid cooling inflation data"
FIRE = "Wildfire smoke blankets coastal towns as evacuation orders expand"


@pytest.fixture
def run(tmp_path):
    config = tmp_path / "config.json"
    config.write_text(json.dumps({'services': {'stance_validation': False}}))
    data_dir = tmp_path / "state"

    def _run(*argv):
        return main(['--config', str(config), '--data-dir', str(data_dir),
                     '--log-level', 'ERROR', *argv])
    _run.data_dir = data_dir
    return _run


@pytest.fixture
def batch(tmp_path, make_record):
    now = utc_now()
    path = tmp_path / "batch.jsonl"
    records = [make_record("1", RATES, at=now), make_record("2", FIRE, at=now)]
    path.write_text("\n".join(json.dumps(r) for r in records) + "\n")
    return path


def write_delta(tmp_path, data):
    path = tmp_path / "delta.json"
    path.write_text(json.dumps(data))
    return str(path)


DELTA = {
    'new_axes': [{'id': "rates", 'label': "Interest rate policy",
                  'left_pole': "Cut", 'right_pole': "Hike"}],
    'evidence': [{'axis_id': "rates", 'pole_alignment': "left", 'content': f"cut {i}"}
                 for i in range(8)],
}


class TestIngest:

    def test_prints_digest_and_counts(self, run, batch, capsys):
        assert run('ingest', str(batch)) == 0
        out = capsys.readouterr().out
        assert "persisted=2" in out
        assert "received=2" in out

    def test_second_run_sees_everything(self, run, batch, capsys):
        run('ingest', str(batch))
        capsys.readouterr()
        run('ingest', str(batch))
        out = capsys.readouterr().out
        assert "seen=2" in out
        assert "persisted=0" in out
        assert "(no new items this cycle)" in out


class TestQueries:

    def test_search(self, run, batch, capsys):
        run('ingest', str(batch))
        capsys.readouterr()
        assert run('search', "wildfire") == 0
        assert "@alice" in capsys.readouterr().out

    def test_search_no_hits(self, run, batch, capsys):
        run('ingest', str(batch))
        capsys.readouterr()
        run('search', "volcano")
        assert "no items matching 'volcano'" in capsys.readouterr().out

    def test_summary(self, run, batch, capsys):
        run('ingest', str(batch))
        capsys.readouterr()
        assert run('summary', '--hours', '24') == 0
        assert "TOP TOPICS" in capsys.readouterr().out

    def test_prune(self, run, batch, capsys):
        run('ingest', str(batch))
        capsys.readouterr()
        assert run('prune') == 0
        assert "pruned 0 items" in capsys.readouterr().out


class TestBeliefCommands:

    def test_apply_delta_reports_drift(self, run, tmp_path, capsys):
        assert run('apply-delta', write_delta(tmp_path, DELTA)) == 0
        out = capsys.readouterr().out
        assert "evidence added=8" in out
        assert "axes added=1" in out
        assert "DRIFT LEFT [rates] Interest rate policy" in out

    def test_apply_delta_lists_errors(self, run, tmp_path, capsys):
        run('apply-delta', '--no-drift', write_delta(tmp_path, {
            'evidence': [{'axis_id': "ghost", 'pole_alignment': "left"}]
        }))
        assert "! UNKNOWN_AXIS" in capsys.readouterr().out

    def test_detect_drift_after_delta(self, run, tmp_path, capsys):
        run('apply-delta', '--no-drift', write_delta(tmp_path, DELTA))
        capsys.readouterr()
        run('detect-drift', '--axis', 'rates')
        assert "DRIFT LEFT [rates]" in capsys.readouterr().out
        run('detect-drift')
        assert "no drift (1 axes checked)" in capsys.readouterr().out

    def test_corrupt_belief_store_exits_nonzero(self, run, tmp_path, capsys):
        run.data_dir.mkdir()
        (run.data_dir / "beliefs.db").write_bytes(b"garbage " * 500)
        assert run('detect-drift') == 1
        assert run('apply-delta', write_delta(tmp_path, DELTA)) == 1
