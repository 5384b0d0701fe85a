"""Scanner checks: the closed set of built-in detectors.

``ALL_CHECKS`` is in detector-declared order: it breaks ties when two issues
share a line and a category.
"""

from codesigma.scanner.checks.base import BaseCheck, DetectorKind
from codesigma.scanner.checks.complexity import (
    CPLX001FileLength,
    CPLX002FunctionLength,
    CPLX003Branching,
)
from codesigma.scanner.checks.performance import (
    PERF001LargeCopy,
    PERF002ConcatInLoop,
    PERF003NestedSameIteration,
)
from codesigma.scanner.checks.quality import (
    QUAL001TodoMarker,
    QUAL002DeprecatedApi,
    QUAL003DuplicateBlock,
    QUAL004TrailingWhitespace,
)
from codesigma.scanner.checks.security import (
    SEC001UnsafeBlock,
    SEC002AbortingCall,
    SEC003HardcodedSecret,
)

ALL_CHECKS: tuple[type[BaseCheck], ...] = (
    SEC001UnsafeBlock,
    SEC002AbortingCall,
    SEC003HardcodedSecret,
    PERF001LargeCopy,
    PERF002ConcatInLoop,
    PERF003NestedSameIteration,
    QUAL001TodoMarker,
    QUAL002DeprecatedApi,
    QUAL003DuplicateBlock,
    QUAL004TrailingWhitespace,
    CPLX001FileLength,
    CPLX002FunctionLength,
    CPLX003Branching,
)

CHECKS_BY_KIND: dict[DetectorKind, type[BaseCheck]] = {c.kind: c for c in ALL_CHECKS}

_missing = set(DetectorKind) - set(CHECKS_BY_KIND)
if _missing or len(CHECKS_BY_KIND) != len(ALL_CHECKS):
    raise RuntimeError(
        "Every DetectorKind needs exactly one check; missing: "
        + ", ".join(sorted(k.value for k in _missing))
    )

__all__ = [
    "ALL_CHECKS",
    "CHECKS_BY_KIND",
    "BaseCheck",
    "DetectorKind",
]
