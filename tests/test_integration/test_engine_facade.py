"""End-to-end tests for the Engine facade: analyze, repair, re-analyze."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from codesigma.core.config import AnalyzeOptions, CodeSigmaConfig, RepairOptions
from codesigma.core.errors import EnvironmentFatal
from codesigma.core.models import RepairOutcome, RunState
from codesigma.engine import Engine


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "lib.rs").write_text("unsafe { do_it() }\n\n// TODO: remove\n")
    return tmp_path


@pytest.fixture
def messy(tmp_path: Path) -> Path:
    (tmp_path / "settings.py").write_text(
        'import os\n'
        'API_KEY = "abcd1234efgh"   \n'
        'DEBUG = True\n'
    )
    return tmp_path


def _options(**kwargs) -> AnalyzeOptions:
    return AnalyzeOptions(include_performance=False, include_complexity=False, **kwargs)


class TestAnalyze:
    def test_small_tree_reports_expected_issues(self, project: Path):
        report = Engine().analyze(project, _options())
        assert [(i.check_id, i.line) for i in report.issues] == [("SEC-001", 1), ("QUAL-001", 3)]
        assert report.total_lines == 3
        assert report.score.value < 100.0

    def test_second_analysis_hits_cache(self, project: Path):
        engine = Engine()
        first = engine.analyze(project, _options())
        second = engine.analyze(project, _options())
        assert second.cache_stats.hits > first.cache_stats.hits
        assert second.issues == first.issues

    def test_missing_root_is_fatal(self, tmp_path: Path):
        with pytest.raises(EnvironmentFatal):
            Engine().analyze(tmp_path / "does-not-exist")

    def test_single_file_root(self, project: Path):
        report = Engine().analyze(project / "lib.rs", _options())
        assert {i.path for i in report.issues} == {"lib.rs"}

    def test_config_file_is_honoured(self, project: Path):
        (project / "codesigma.toml").write_text('[analyze]\nignore = ["QUAL-001"]\n')
        report = Engine().analyze(project)
        assert "QUAL-001" not in {i.check_id for i in report.issues}


class TestRepair:
    def test_repair_then_reanalyze(self, messy: Path):
        engine = Engine()
        before = engine.analyze(messy)
        fixable = [i for i in before.issues if i.is_auto_fixable]
        assert {i.check_id for i in fixable} == {"SEC-003", "QUAL-004"}

        result = engine.repair(fixable)
        assert result.state == RunState.COMPLETED
        assert all(s.outcome == RepairOutcome.SUCCESS for s in result.steps)
        assert all(s.resolved is True for s in result.steps)
        assert (messy / "settings.py").read_text() == (
            'import os\nAPI_KEY = os.environ["API_KEY"]\nDEBUG = True\n'
        )

        after = engine.analyze(messy)
        assert after.score.value > before.score.value

    def test_repair_needs_a_root(self):
        with pytest.raises(ValueError):
            Engine().repair([])

    def test_dry_run_writes_nothing(self, messy: Path):
        engine = Engine()
        report = engine.analyze(messy)
        original = (messy / "settings.py").read_text()
        result = engine.repair(
            [i for i in report.issues if i.is_auto_fixable],
            RepairOptions(dry_run=True),
        )
        assert all(s.outcome == RepairOutcome.SKIPPED for s in result.steps)
        assert (messy / "settings.py").read_text() == original


class TestMetrics:
    def test_counts_runs(self, messy: Path):
        engine = Engine()
        report = engine.analyze(messy)
        engine.repair([i for i in report.issues if i.is_auto_fixable])
        snapshot = engine.metrics()
        assert snapshot["runs"] == {"analyze": 1, "repair": 1}
        assert snapshot["last_run"]["repairs_succeeded"] == 2
        assert "hit_rate" in snapshot["cache"]

    def test_cache_counters_survive_detector_change(self, project: Path):
        """Switching the detector set starts a new cache without losing counts."""
        engine = Engine(persist_metrics=False)
        engine.analyze(project, _options(persist_cache=False))
        engine.analyze(project, _options(persist_cache=False))
        first_cache = engine.cache

        engine.analyze(project, AnalyzeOptions(persist_cache=False))
        assert engine.cache is not first_cache

        cache = engine.metrics()["cache"]
        assert (cache["hits"], cache["misses"]) == (1, 2)
        assert cache["entries"] == 1

    def test_persisted_to_jsonl(self, project: Path):
        engine = Engine()
        engine.analyze(project)
        engine.analyze(project)
        path = project / ".codesigma" / "metrics" / "runs.jsonl"
        records = [json.loads(line) for line in path.read_text().splitlines()]
        assert [r["command"] for r in records] == ["analyze", "analyze"]

    def test_persistence_can_be_disabled(self, project: Path):
        Engine(CodeSigmaConfig(), persist_metrics=False).analyze(project)
        assert not (project / ".codesigma" / "metrics").exists()
