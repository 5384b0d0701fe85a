"""codesigma: defect analysis, quality scoring and automated repair for source trees."""

from codesigma._version import __version__
from codesigma.core.config import AnalyzeOptions, RepairOptions, load_config
from codesigma.engine import Engine

__all__ = [
    "__version__",
    "AnalyzeOptions",
    "Engine",
    "RepairOptions",
    "load_config",
]
