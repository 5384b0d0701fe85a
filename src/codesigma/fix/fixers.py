"""Fixers: rule-based rewrites, external commands, and the registry."""

from __future__ import annotations

import enum
import logging
import re
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from codesigma.core.config import ExternalFixerSpec, RepairOptions
from codesigma.core.errors import FixerFailure, IoError
from codesigma.core.models import Category, Issue, RepairOutcome
from codesigma.scanner.checks.security import PLACEHOLDER_VALUES, SECRET_ASSIGNMENT_RE

if TYPE_CHECKING:
    from codesigma.fix.applier import FixApplier

logger = logging.getLogger(__name__)


class FixPhase(enum.IntEnum):
    """Execution priority. Lower phases finish before higher ones start."""

    FORMATTING = 0
    STRUCTURAL = 1
    DEPENDENCY = 2


@dataclass(frozen=True)
class FixContext:
    project_path: Path
    applier: FixApplier

    def resolve(self, rel_path: str) -> Path:
        path = Path(rel_path)
        if path.is_absolute():
            return path
        return self.project_path / path


@dataclass(frozen=True)
class FixOutcome:
    outcome: RepairOutcome
    message: str = ""
    touched: tuple[str, ...] = ()


class Fixer(ABC):
    """A repair action for issues of one category."""

    fixer_id: str = ""
    category: Category = Category.QUALITY
    phase: FixPhase = FixPhase.STRUCTURAL
    description: str = ""
    # One invocation covers every issue routed to this fixer in a run
    batch: bool = False

    def applies_to(self, issue: Issue) -> bool:
        return issue.fix_id == self.fixer_id

    def target(self, issue: Issue) -> str:
        """Key of the resource this fix mutates; equal keys run serially."""
        return issue.path

    @abstractmethod
    def apply(self, issue: Issue, context: FixContext) -> FixOutcome:
        ...


class RuleFixer(Fixer):
    """A pure source-to-source rewrite written back through the applier."""

    @abstractmethod
    def rewrite(self, issue: Issue, source: str) -> str | None:
        """Return the new file content, or ``None`` if the fix does not apply."""
        ...

    def apply(self, issue: Issue, context: FixContext) -> FixOutcome:
        path = context.resolve(issue.path)
        try:
            source = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FixerFailure(self.fixer_id, f"cannot read {issue.path}: {exc}") from exc

        new_source = self.rewrite(issue, source)
        if new_source is None:
            return FixOutcome(RepairOutcome.SKIPPED, "not applicable")
        if new_source == source:
            return FixOutcome(RepairOutcome.SKIPPED, "nothing to change")

        try:
            context.applier.write(path, new_source, source, label=f"{issue.check_id}:{issue.line}")
        except IoError as exc:
            raise FixerFailure(self.fixer_id, str(exc)) from exc
        return FixOutcome(
            RepairOutcome.SUCCESS,
            self.success_message(issue, source),
            touched=(issue.path,),
        )

    def success_message(self, issue: Issue, source: str) -> str:
        return self.description


class StripTrailingWhitespaceFixer(RuleFixer):
    """Strip trailing spaces and tabs from every line, keeping line endings."""

    fixer_id = "strip-trailing-whitespace"
    category = Category.QUALITY
    phase = FixPhase.FORMATTING
    description = "Stripped trailing whitespace"

    def rewrite(self, issue: Issue, source: str) -> str | None:
        out = []
        for line in source.splitlines(keepends=True):
            body = line.rstrip("\r\n")
            out.append(body.rstrip(" \t") + line[len(body):])
        return "".join(out)


# Language by extension, for fixes whose replacement text is language specific
LANGUAGES = {
    ".py": "python",
    ".rs": "rust",
}


def language_of(path: str) -> str | None:
    return LANGUAGES.get(Path(path).suffix)


class RedactSecretFixer(RuleFixer):
    """Replace a hardcoded secret literal with an environment lookup."""

    fixer_id = "redact-secret"
    category = Category.SECURITY
    phase = FixPhase.STRUCTURAL
    description = "Moved hardcoded secret to an environment variable"

    def env_name(self, name: str) -> str:
        return re.sub(r"\W+", "_", name).upper()

    def replacement(self, language: str, env: str) -> str | None:
        if language == "python":
            return f'os.environ["{env}"]'
        if language == "rust":
            return f'std::env::var("{env}").unwrap_or_default()'
        return None

    def rewrite(self, issue: Issue, source: str) -> str | None:
        language = language_of(issue.path)
        if language is None:
            return None
        lines = source.splitlines(keepends=True)
        if not 1 <= issue.line <= len(lines):
            return None

        line = lines[issue.line - 1]
        match = SECRET_ASSIGNMENT_RE.search(line)
        if not match or match.group("value").strip().lower() in PLACEHOLDER_VALUES:
            return None

        replacement = self.replacement(language, self.env_name(match.group("name")))
        if replacement is None:
            return None
        # Closing quote sits right after the value group
        lines[issue.line - 1] = (
            line[: match.start("quote")] + replacement + line[match.end("value") + 1 :]
        )
        return "".join(lines)

    def success_message(self, issue: Issue, source: str) -> str:
        match = SECRET_ASSIGNMENT_RE.search(source.splitlines()[issue.line - 1])
        env = self.env_name(match.group("name")) if match else "the variable"
        message = f"{self.description}; set {env} in the environment"
        if language_of(issue.path) == "python" and not re.search(
            r"^\s*import os\b", source, re.MULTILINE
        ):
            message += " and add 'import os'"
        return message


class ExternalFixer(Fixer):
    """Runs a configured command and reports its exit status.

    ``{path}`` in the command is replaced by the issue path; such a fixer runs
    once per file. Without it the command runs once per repair run.
    """

    def __init__(self, spec: ExternalFixerSpec):
        self.spec = spec
        self.fixer_id = spec.id
        self.category = spec.category
        self.phase = FixPhase[spec.phase.upper()]
        self.description = f"Ran {' '.join(spec.command)}"
        self.batch = not self.per_file

    @property
    def per_file(self) -> bool:
        return any("{path}" in arg for arg in self.spec.command)

    def target(self, issue: Issue) -> str:
        if self.per_file:
            return issue.path
        return f"external:{self.fixer_id}"

    def command_for(self, issue: Issue) -> list[str]:
        return [arg.replace("{path}", issue.path) for arg in self.spec.command]

    def apply(self, issue: Issue, context: FixContext) -> FixOutcome:
        command = self.command_for(issue)
        logger.debug("Running external fixer %s: %s", self.fixer_id, command)
        try:
            result = subprocess.run(
                command,
                cwd=context.project_path,
                capture_output=True,
                text=True,
                timeout=self.spec.timeout,
            )
        except subprocess.TimeoutExpired:
            return FixOutcome(
                RepairOutcome.FAILED,
                f"{self.fixer_id} timed out after {self.spec.timeout:g}s",
            )
        except OSError as exc:
            raise FixerFailure(self.fixer_id, f"cannot run {command[0]}: {exc}") from exc

        if result.returncode != 0:
            stderr = result.stderr.strip().splitlines()
            detail = stderr[-1] if stderr else "no output"
            return FixOutcome(
                RepairOutcome.FAILED,
                f"{self.fixer_id} exited with {result.returncode}: {detail}",
            )
        touched = (issue.path,) if self.per_file else ()
        return FixOutcome(RepairOutcome.SUCCESS, self.description, touched=touched)


class FixerRegistry:
    """Fixers keyed by the category of issue they repair."""

    def __init__(self, fixers: list[Fixer] | None = None):
        self._by_category: dict[Category, list[Fixer]] = {}
        for fixer in fixers or []:
            self.register(fixer)

    def register(self, fixer: Fixer) -> None:
        registered = self._by_category.setdefault(fixer.category, [])
        if any(f.fixer_id == fixer.fixer_id for f in registered):
            raise ValueError(
                f"Fixer '{fixer.fixer_id}' already registered for {fixer.category.value}"
            )
        registered.append(fixer)

    def resolve(self, issue: Issue) -> Fixer | None:
        """Find the fixer for *issue*, by suggested fix id first."""
        candidates = self._by_category.get(issue.category, [])
        if issue.fix_id is not None:
            for fixer in candidates:
                if fixer.fixer_id == issue.fix_id:
                    return fixer
        for fixer in candidates:
            if fixer.applies_to(issue):
                return fixer
        return None

    def fixers(self) -> list[Fixer]:
        return [f for fixers in self._by_category.values() for f in fixers]

    def __contains__(self, fixer_id: str) -> bool:
        return any(f.fixer_id == fixer_id for f in self.fixers())

    def __len__(self) -> int:
        return sum(len(fixers) for fixers in self._by_category.values())


BUILTIN_FIXERS: tuple[type[RuleFixer], ...] = (
    StripTrailingWhitespaceFixer,
    RedactSecretFixer,
)


def default_registry(options: RepairOptions | None = None) -> FixerRegistry:
    """Registry with the built-in fixers plus any configured external ones."""
    registry = FixerRegistry([cls() for cls in BUILTIN_FIXERS])
    if options is not None:
        for spec in options.external:
            registry.register(ExternalFixer(spec))
    return registry
