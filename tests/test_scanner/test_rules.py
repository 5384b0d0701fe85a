"""Tests for the rule engine."""

from __future__ import annotations

from pathlib import Path

from codesigma.core.config import AnalyzeOptions
from codesigma.core.models import Category, FileRecord, Severity
from codesigma.scanner.checks.base import BaseCheck, DetectorKind
from codesigma.scanner.checks.quality import QUAL001TodoMarker
from codesigma.scanner.checks.security import SEC001UnsafeBlock, SEC002AbortingCall
from codesigma.scanner.rules import DETECTOR_ERROR_ID, RuleEngine, build_checks


def _record(name: str = "lib.rs") -> FileRecord:
    return FileRecord(path=Path(name), rel_path=name, size=0, mtime=0.0)


class Boom(BaseCheck):
    check_id = "BOOM-001"
    kind = DetectorKind.UNSAFE_BLOCK
    category = Category.SECURITY

    def run(self, record, content, lines):
        raise RuntimeError("kaboom")


class TestEvaluate:
    def test_issues_ordered_by_line_then_category(self):
        """Quality sorts before security on the same line."""
        engine = RuleEngine(checks=[SEC001UnsafeBlock(), SEC002AbortingCall(), QUAL001TodoMarker()])
        issues = engine.evaluate(_record(), "unsafe { x.unwrap() } // TODO\n")
        assert [i.check_id for i in issues] == ["QUAL-001", "SEC-001", "SEC-002"]

    def test_earlier_lines_first(self):
        engine = RuleEngine(checks=[SEC001UnsafeBlock(), QUAL001TodoMarker()])
        issues = engine.evaluate(_record(), "// TODO\nunsafe { f() }\n")
        assert [(i.line, i.check_id) for i in issues] == [(1, "QUAL-001"), (2, "SEC-001")]

    def test_faulting_detector_is_isolated(self):
        """A detector that raises yields one INFO issue; others still report."""
        engine = RuleEngine(checks=[Boom(), QUAL001TodoMarker()])
        issues = engine.evaluate(_record(), "# TODO\n")
        errors = [i for i in issues if i.check_id == DETECTOR_ERROR_ID]
        assert len(errors) == 1
        assert errors[0].line == 0
        assert errors[0].severity == Severity.INFO
        assert "BOOM-001" in errors[0].message
        assert any(i.check_id == "QUAL-001" for i in issues)

    def test_analyze_counts_lines(self):
        engine = RuleEngine(checks=[QUAL001TodoMarker()])
        result = engine.analyze(_record(), "a\nb\n# TODO\n")
        assert result.lines_scanned == 3
        assert result.detector_version == engine.version
        assert len(result.fingerprint) == 64

    def test_evaluate_is_deterministic(self):
        engine = RuleEngine()
        code = "fn main() {\n    let v = data.clone();\n    x.unwrap();\n} // TODO\n"
        assert engine.evaluate(_record(), code) == engine.evaluate(_record(), code)


class TestBuildChecks:
    def test_disabled_categories_are_excluded(self):
        checks = build_checks(AnalyzeOptions(include_performance=False, include_complexity=False))
        assert {c.category for c in checks} == {Category.SECURITY, Category.QUALITY}

    def test_ignore_list(self):
        checks = build_checks(AnalyzeOptions(ignore=["QUAL-001"]))
        assert "QUAL-001" not in [c.check_id for c in checks]

    def test_thresholds_are_applied(self):
        checks = build_checks(AnalyzeOptions(max_file_lines=42))
        file_length = next(c for c in checks if c.check_id == "CPLX-001")
        assert file_length.max_lines == 42


class TestVersion:
    def test_same_options_same_version(self):
        assert RuleEngine(AnalyzeOptions()).version == RuleEngine(AnalyzeOptions()).version

    def test_threshold_changes_version(self):
        assert (
            RuleEngine(AnalyzeOptions(max_branches=5)).version
            != RuleEngine(AnalyzeOptions()).version
        )

    def test_category_set_changes_version(self):
        assert (
            RuleEngine(AnalyzeOptions(include_security=False)).version
            != RuleEngine(AnalyzeOptions()).version
        )
