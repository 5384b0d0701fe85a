"""Tests for run metrics and sinks."""

from __future__ import annotations

import json
from pathlib import Path

from codesigma.core.models import CacheStats, RepairReport, RunState
from codesigma.metrics.collector import JsonlMetricsSink, MetricsCollector, RunMetrics


class ListSink:
    def __init__(self):
        self.records = []

    def emit(self, record):
        self.records.append(record)


class BrokenSink:
    def emit(self, record):
        raise OSError("disk gone")


class TestRunMetrics:
    def test_from_repair(self):
        report = RepairReport(state=RunState.COMPLETED, duration=1.23456)
        metrics = RunMetrics.from_repair(report, "/tmp/project")
        assert metrics.command == "repair"
        assert metrics.repair_state == "completed"
        assert metrics.duration == 1.2346
        assert metrics.root == "/tmp/project"

    def test_run_ids_are_unique(self):
        assert RunMetrics("analyze").run_id != RunMetrics("analyze").run_id


class TestMetricsCollector:
    def test_record_reaches_every_sink(self):
        first, second = ListSink(), ListSink()
        collector = MetricsCollector([first])
        collector.record(RunMetrics("analyze"), [second])
        assert len(first.records) == 1
        assert second.records == first.records

    def test_failing_sink_is_not_fatal(self):
        good = ListSink()
        collector = MetricsCollector([BrokenSink(), good])
        collector.record(RunMetrics("analyze"))
        assert len(good.records) == 1

    def test_snapshot_counts_runs(self):
        collector = MetricsCollector()
        collector.record(RunMetrics("analyze"))
        collector.record(RunMetrics("analyze"))
        collector.record(RunMetrics("repair"))
        snapshot = collector.snapshot(CacheStats(hits=3, misses=1))
        assert snapshot["runs"] == {"analyze": 2, "repair": 1}
        assert snapshot["last_run"]["command"] == "repair"
        assert snapshot["cache"]["hit_rate"] == 0.75

    def test_empty_snapshot(self):
        snapshot = MetricsCollector().snapshot()
        assert snapshot == {"runs": {}, "last_run": None}


class TestJsonlMetricsSink:
    def test_appends_one_line_per_run(self, tmp_path: Path):
        sink = JsonlMetricsSink.for_project(tmp_path)
        sink.emit({"command": "analyze"})
        sink.emit({"command": "repair"})
        lines = sink.path.read_text().splitlines()
        assert [json.loads(line)["command"] for line in lines] == ["analyze", "repair"]
        assert sink.path == tmp_path / ".codesigma" / "metrics" / "runs.jsonl"

    def test_read_with_limit(self, tmp_path: Path):
        sink = JsonlMetricsSink(tmp_path / "runs.jsonl")
        for n in range(5):
            sink.emit({"n": n})
        assert [r["n"] for r in sink.read(limit=2)] == [3, 4]

    def test_read_skips_malformed_lines(self, tmp_path: Path):
        path = tmp_path / "runs.jsonl"
        path.write_text('{"n": 1}\nnot json\n\n{"n": 2}\n')
        assert [r["n"] for r in JsonlMetricsSink(path).read()] == [1, 2]

    def test_read_missing_file(self, tmp_path: Path):
        assert JsonlMetricsSink(tmp_path / "none.jsonl").read() == []
