"""Tests for the shared data models."""

from __future__ import annotations

from pathlib import Path

from codesigma.core.models import (
    AnalysisResult,
    CacheStats,
    Category,
    Issue,
    QualityScore,
    RepairOutcome,
    RepairReport,
    RepairStep,
    ScanReport,
    Severity,
)


def _issue(**overrides) -> Issue:
    fields = dict(
        path="src/lib.rs",
        line=3,
        category=Category.SECURITY,
        severity=Severity.WARNING,
        message="Unsafe code block",
        check_id="SEC-001",
    )
    fields.update(overrides)
    return Issue(**fields)


class TestIssue:
    def test_file_level_issue(self):
        """Line 0 marks a file-level issue."""
        assert _issue(line=0).is_file_level
        assert not _issue().is_file_level

    def test_auto_fixable_requires_fix_id(self):
        """Only issues with a suggested fix are auto-fixable."""
        assert not _issue().is_auto_fixable
        assert _issue(fix_id="redact-secret").is_auto_fixable

    def test_dict_form_uses_enum_values(self):
        """Serialized issues carry plain strings and survive a reload."""
        issue = _issue(fix_id="redact-secret")
        data = issue.to_dict()

        assert data["category"] == "security"
        assert data["severity"] == "warning"
        assert Issue.from_dict(data) == issue

    def test_sort_key_orders_by_line_then_category(self):
        """Issues sort by line, then category name, then detector order."""
        a = _issue(line=2, category=Category.SECURITY)
        b = _issue(line=2, category=Category.QUALITY)
        c = _issue(line=1, category=Category.SECURITY)
        ordered = sorted([(0, a), (1, b), (2, c)], key=lambda p: p[1].sort_key(p[0]))
        assert [i for _, i in ordered] == [c, b, a]


class TestAnalysisResult:
    def test_for_path_rebinds_issue_paths(self):
        """A shared content result is rebound to each file's path."""
        result = AnalysisResult(
            fingerprint="ab" * 32,
            issues=(_issue(path="a.rs"), _issue(path="a.rs", line=5)),
            lines_scanned=10,
            detector_version="v1",
        )
        rebound = result.for_path("b.rs")

        assert {i.path for i in rebound.issues} == {"b.rs"}
        assert [i.line for i in rebound.issues] == [3, 5]
        assert result.for_path("a.rs") is result


class TestCacheStats:
    def test_hit_rate(self):
        """Hit rate is hits over lookups, 0 with no lookups."""
        assert CacheStats().hit_rate == 0.0
        assert CacheStats(hits=3, misses=1).hit_rate == 0.75
        assert CacheStats(hits=3, misses=1).to_dict()["hit_rate"] == 0.75


class TestReports:
    def test_scan_report_counts(self):
        """Counts by severity and category cover every enum member."""
        report = ScanReport(
            root=Path("."),
            results={},
            issues=[
                _issue(severity=Severity.CRITICAL),
                _issue(severity=Severity.INFO, category=Category.QUALITY),
                _issue(fix_id="redact-secret"),
            ],
            score=QualityScore(value=90.0, dpmo=0.0, sigma_level=7.5,
                               weighted_defects=0.0, lines_scanned=10),
        )

        assert report.critical_count == 1
        assert report.warning_count == 1
        assert report.info_count == 1
        assert report.auto_fixable_count == 1
        assert report.counts_by_category() == {
            "security": 2, "performance": 0, "quality": 1, "complexity": 0,
        }
        assert report.counts_by_severity() == {"critical": 1, "warning": 1, "info": 1}

    def test_repair_report_counts(self):
        """Repair counts are derived from the step outcomes."""
        report = RepairReport(steps=[
            RepairStep(_issue(), "a", RepairOutcome.SUCCESS),
            RepairStep(_issue(), "b", RepairOutcome.SKIPPED),
            RepairStep(_issue(), "c", RepairOutcome.SKIPPED),
            RepairStep(_issue(), "d", RepairOutcome.FAILED),
        ])
        assert (report.success_count, report.failure_count, report.skipped_count) == (1, 1, 2)
