"""Error taxonomy.

Everything below ``EnvironmentFatal`` is isolated where it happens and turned
into a recorded issue, diagnostic or repair step. ``EnvironmentFatal`` is the
only error that ends a run.
"""

from __future__ import annotations

from pathlib import Path


class CodeSigmaError(Exception):
    """Base class for codesigma errors."""


class IoError(CodeSigmaError):
    """A file could not be read or written."""

    def __init__(self, path: Path | str, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class EncodingError(CodeSigmaError):
    """A file is not valid text."""

    def __init__(self, path: Path | str, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class DetectorError(CodeSigmaError):
    """A single detector raised while scanning a file."""

    def __init__(self, check_id: str, cause: BaseException):
        self.check_id = check_id
        self.cause = cause
        super().__init__(f"{check_id} failed: {type(cause).__name__}: {cause}")


class CacheCorruption(CodeSigmaError):
    """A persisted cache entry could not be decoded."""


class FixerFailure(CodeSigmaError):
    """A fixer could not complete."""

    def __init__(self, fixer_id: str, reason: str):
        self.fixer_id = fixer_id
        self.reason = reason
        super().__init__(f"{fixer_id}: {reason}")


class EnvironmentFatal(CodeSigmaError):
    """The run cannot proceed (missing root, unwritable tree)."""
