"""Score computation for analysis results."""

from __future__ import annotations

from collections.abc import Iterable
from statistics import NormalDist

from codesigma.core.config import ScoreConfig
from codesigma.core.models import Category, Issue, QualityScore

# Conventional long-term drift added to the short-term sigma level
SIGMA_SHIFT = 1.5
MAX_SIGMA = 6.0 + SIGMA_SHIFT

_NORMAL = NormalDist()


class Scorer:
    """Maps issues and scanned lines onto a 0-100 quality score."""

    def __init__(self, config: ScoreConfig | None = None):
        self.config = config or ScoreConfig()

    def weighted_defects(self, issues: Iterable[Issue]) -> float:
        weights = self.config.weights
        return sum(weights.get(issue.severity, 0.0) for issue in issues)

    def value_for(self, weighted: float, lines: int) -> tuple[float, float]:
        """Return ``(value, dpmo)`` for a weighted defect count.

        The score is 100 at zero density and halves at ``half_score_dpmo``.
        """
        if lines <= 0 or weighted <= 0:
            return 100.0, 0.0
        dpmo = weighted / lines * 1_000_000
        value = 100.0 / (1.0 + dpmo / self.config.half_score_dpmo)
        return value, dpmo

    def score(self, issues: Iterable[Issue], total_lines_scanned: int) -> QualityScore:
        """
        Compute the aggregate score and per-category breakdown.

        Each category is scored with the same density mapping against the
        total lines scanned.
        """
        issues = list(issues)
        weighted = self.weighted_defects(issues)
        value, dpmo = self.value_for(weighted, total_lines_scanned)

        by_category: dict[Category, list[Issue]] = {c: [] for c in Category}
        for issue in issues:
            by_category[issue.category].append(issue)

        category_scores: dict[str, float] = {}
        for category, cat_issues in by_category.items():
            cat_value, _ = self.value_for(
                self.weighted_defects(cat_issues), total_lines_scanned
            )
            category_scores[category.value] = round(cat_value, 2)

        return QualityScore(
            value=round(value, 2),
            dpmo=round(dpmo, 2),
            sigma_level=round(sigma_level(dpmo), 2),
            weighted_defects=weighted,
            lines_scanned=max(total_lines_scanned, 0),
            category_scores=category_scores,
        )


def sigma_level(dpmo: float) -> float:
    """Short-term sigma level for a defect density, clamped to [0, 7.5]."""
    yield_fraction = 1.0 - dpmo / 1_000_000
    if yield_fraction >= 1.0:
        return MAX_SIGMA
    if yield_fraction <= 0.0:
        return 0.0
    level = _NORMAL.inv_cdf(yield_fraction) + SIGMA_SHIFT
    return min(max(level, 0.0), MAX_SIGMA)


def compute_score(
    issues: Iterable[Issue],
    total_lines_scanned: int,
    config: ScoreConfig | None = None,
) -> QualityScore:
    """Convenience wrapper around :class:`Scorer`."""
    return Scorer(config).score(issues, total_lines_scanned)
