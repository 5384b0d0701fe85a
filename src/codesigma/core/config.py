"""Configuration management for codesigma (codesigma.toml parsing + defaults)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from codesigma.core.models import Category, Severity

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]


STATE_DIR_NAME = ".codesigma"
CONFIG_FILE_NAME = "codesigma.toml"


@dataclass
class AnalyzeOptions:
    include_performance: bool = True
    include_security: bool = True
    include_quality: bool = True
    include_complexity: bool = True
    # Function length, in lines, above which CPLX-002 fires
    multiline_threshold: int = 80
    max_file_lines: int = 1000
    max_branches: int = 15
    min_duplicate_lines: int = 6
    parallelism: int | str = "auto"
    cache_ttl_seconds: int = 300
    use_cache: bool = True
    persist_cache: bool = True
    timeout_seconds: float | None = None
    ignore: list[str] = field(default_factory=list)
    # CLI exits non-zero below this score; 0 disables
    fail_under: float = 0

    def categories(self) -> set[Category]:
        enabled = set()
        if self.include_security:
            enabled.add(Category.SECURITY)
        if self.include_performance:
            enabled.add(Category.PERFORMANCE)
        if self.include_quality:
            enabled.add(Category.QUALITY)
        if self.include_complexity:
            enabled.add(Category.COMPLEXITY)
        return enabled

    def worker_count(self) -> int:
        return resolve_parallelism(self.parallelism)


@dataclass
class ScoreConfig:
    """Scoring policy.

    ``weights`` is the defect weight per severity; ``half_score_dpmo`` is the
    weighted defect density (per million lines) at which the score is 50.
    """

    weights: dict[Severity, float] = field(
        default_factory=lambda: {
            Severity.CRITICAL: 50.0,
            Severity.WARNING: 10.0,
            Severity.INFO: 2.0,
        }
    )
    half_score_dpmo: float = 250_000.0


@dataclass
class ExternalFixerSpec:
    """An external command declared in ``[[repair.external]]``."""

    id: str
    command: list[str]
    category: Category = Category.QUALITY
    phase: str = "dependency"
    timeout: float = 300.0


@dataclass
class RepairOptions:
    dry_run: bool = False
    confirm: bool = True
    parallelism: int | str = "auto"
    backup: bool = True
    external: list[ExternalFixerSpec] = field(default_factory=list)

    def worker_count(self) -> int:
        return resolve_parallelism(self.parallelism)


@dataclass
class CodeSigmaConfig:
    """Complete codesigma configuration."""

    exclude: list[str] = field(
        default_factory=lambda: [
            "venv/",
            ".venv/",
            "__pycache__/",
            ".codesigma/",
            "node_modules/",
            "target/",
            ".git/",
        ]
    )
    extensions: list[str] = field(
        default_factory=lambda: [
            ".rs", ".py", ".js", ".ts", ".go", ".java", ".c", ".h",
            ".cpp", ".hpp", ".cs", ".rb", ".kt", ".swift",
        ]
    )
    max_file_size: int = 1024 * 1024
    analyze: AnalyzeOptions = field(default_factory=AnalyzeOptions)
    score: ScoreConfig = field(default_factory=ScoreConfig)
    repair: RepairOptions = field(default_factory=RepairOptions)


def resolve_parallelism(value: int | str | None) -> int:
    """Turn ``"auto"`` / ``None`` / an int into a positive worker count."""
    if value is None or value == "auto":
        return os.cpu_count() or 1
    count = int(value)
    if count < 1:
        raise ValueError(f"parallelism must be >= 1 or 'auto', got {value!r}")
    return count


def _positive(key: str, value) -> float:
    number = float(value)
    if not number > 0:
        raise ValueError(f"{key} must be > 0, got {value!r}")
    return number


def load_config(project_path: Path | None = None) -> CodeSigmaConfig:
    """Load configuration from codesigma.toml if present, otherwise return defaults."""
    config = CodeSigmaConfig()

    if project_path is None:
        project_path = Path.cwd()

    config_file = project_path / CONFIG_FILE_NAME
    if not config_file.exists():
        return config

    with open(config_file, "rb") as f:
        data = tomllib.load(f)

    if "general" in data:
        gen = data["general"]
        for attr in ("exclude", "extensions", "max_file_size"):
            if attr in gen:
                setattr(config, attr, gen[attr])

    if "analyze" in data:
        a = data["analyze"]
        for attr in (
            "include_performance",
            "include_security",
            "include_quality",
            "include_complexity",
            "multiline_threshold",
            "max_file_lines",
            "max_branches",
            "min_duplicate_lines",
            "parallelism",
            "cache_ttl_seconds",
            "use_cache",
            "persist_cache",
            "timeout_seconds",
            "ignore",
            "fail_under",
        ):
            if attr in a:
                setattr(config.analyze, attr, a[attr])

    if "score" in data:
        s = data["score"]
        weights = s.get("weights", {})
        for name, weight in weights.items():
            config.score.weights[Severity(name)] = _positive(f"score.weights.{name}", weight)
        if "half_score_dpmo" in s:
            config.score.half_score_dpmo = _positive("score.half_score_dpmo", s["half_score_dpmo"])

    if "repair" in data:
        r = data["repair"]
        for attr in ("dry_run", "confirm", "parallelism", "backup"):
            if attr in r:
                setattr(config.repair, attr, r[attr])
        for ext in r.get("external", []):
            command = ext["command"]
            if isinstance(command, str):
                command = command.split()
            config.repair.external.append(ExternalFixerSpec(
                id=ext["id"],
                command=list(command),
                category=Category(ext.get("category", "quality")),
                phase=ext.get("phase", "dependency"),
                timeout=float(ext.get("timeout", 300.0)),
            ))

    return config


def get_state_dir(project_path: Path | None = None) -> Path:
    """Get or create the .codesigma directory."""
    if project_path is None:
        project_path = Path.cwd()
    state_dir = project_path / STATE_DIR_NAME
    state_dir.mkdir(exist_ok=True)
    return state_dir


def ensure_gitignore(project_path: Path | None = None) -> None:
    """Add .codesigma/ to .gitignore if not already present."""
    if project_path is None:
        project_path = Path.cwd()
    gitignore = project_path / ".gitignore"
    entry = f"{STATE_DIR_NAME}/"

    if gitignore.exists():
        content = gitignore.read_text()
        if entry in content:
            return
        if not content.endswith("\n"):
            content += "\n"
        content += f"{entry}\n"
        gitignore.write_text(content)
    else:
        gitignore.write_text(f"{entry}\n")
