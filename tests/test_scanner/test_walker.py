"""Tests for the file walker."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from codesigma.core.errors import EnvironmentFatal
from codesigma.scanner.walker import FileWalker, IgnoreSpec


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    """Create a small mixed-language tree."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.rs").write_text("fn main() {}\n")
    (tmp_path / "src" / "util.py").write_text("x = 1\n")
    (tmp_path / "README.md").write_text("# readme\n")
    (tmp_path / "target").mkdir()
    (tmp_path / "target" / "build.rs").write_text("fn build() {}\n")
    (tmp_path / "app.py").write_text("print('hi')\n")
    return tmp_path


class TestFileWalker:
    def test_yields_sorted_relative_paths(self, tree: Path):
        """Files come out in a stable, name-sorted order."""
        walker = FileWalker(tree, IgnoreSpec(extensions=[".py", ".rs"]))
        paths = [r.rel_path for r in walker]
        assert paths == ["app.py", "src/main.rs", "src/util.py", "target/build.rs"]

    def test_directory_patterns_prune_subtrees(self, tree: Path):
        """A trailing-slash pattern skips the whole directory."""
        walker = FileWalker(tree, IgnoreSpec(patterns=["target/"], extensions=[".rs"]))
        assert [r.rel_path for r in walker] == ["src/main.rs"]

    def test_file_patterns_match_names(self, tree: Path):
        """Plain patterns are matched against file names and relative paths."""
        walker = FileWalker(tree, IgnoreSpec(patterns=["util.*", "target/*"]))
        assert "src/util.py" not in [r.rel_path for r in walker]
        assert "target/build.rs" not in [r.rel_path for r in walker]

    def test_records_carry_size_and_no_fingerprint(self, tree: Path):
        """Walker records size but leaves fingerprinting to the workers."""
        record = next(iter(FileWalker(tree, IgnoreSpec(extensions=[".py"]))))
        assert record.size == len("print('hi')\n")
        assert record.fingerprint is None
        assert record.path.is_absolute()

    def test_oversize_files_are_summarised(self, tree: Path):
        """Files above the size limit are skipped with one diagnostic."""
        (tree / "big.py").write_text("x" * 200)
        walker = FileWalker(tree, IgnoreSpec(extensions=[".py"], max_file_size=100))
        paths = [r.rel_path for r in walker]

        assert "big.py" not in paths
        oversize = [d for d in walker.diagnostics if d.kind == "skipped-oversize"]
        assert len(oversize) == 1
        assert oversize[0].paths == ("big.py",)

    def test_missing_root_is_fatal(self, tmp_path: Path):
        """A missing root ends the run."""
        with pytest.raises(EnvironmentFatal):
            list(FileWalker(tmp_path / "nope"))

    def test_single_file_root(self, tree: Path):
        """A file root yields just that file."""
        records = list(FileWalker(tree / "app.py"))
        assert [r.rel_path for r in records] == ["app.py"]

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_symlink_cycle_is_reported_not_followed(self, tree: Path):
        """A directory link back to an ancestor is visited once."""
        os.symlink(tree, tree / "src" / "loop", target_is_directory=True)
        walker = FileWalker(tree, IgnoreSpec(extensions=[".py"]))
        paths = [r.rel_path for r in walker]

        assert paths == ["app.py", "src/util.py"]
        assert any(d.kind == "symlink-cycle" for d in walker.diagnostics)

    def test_each_walk_is_fresh(self, tree: Path):
        """Walking twice yields the same records and resets diagnostics."""
        walker = FileWalker(tree, IgnoreSpec(extensions=[".py"]))
        first = [r.rel_path for r in walker.walk()]
        second = [r.rel_path for r in walker.walk()]
        assert first == second
