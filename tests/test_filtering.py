"""Tests for the file filter."""

import os
import warnings

import pytest

from workspace_snapshots.config import FileHandlingSettings, FilterSettings
from workspace_snapshots.filtering import FileFilter, FilterDecision, FilterReason


@pytest.fixture
def file_filter():
    return FileFilter()


class TestExclusions:
    """Default exclusion patterns."""

    @pytest.mark.parametrize("path", [
        "node_modules/package/index.js",
        ".git/config",
        "__pycache__/mod.cpython-311.pyc",
        "pkg/__pycache__/mod.pyc",
        "venv/lib/python3.11/site-packages/pip.py",
        "build/out.o",
        ".DS_Store",
        "logs/server.log",
        ".env",
        ".env.local",
        "notes.txt~",
    ])
    def test_excluded(self, file_filter, path):
        decision = file_filter.should_include(path, 100)
        assert decision == FilterDecision(False, FilterReason.EXCLUDED_BY_PATTERN)

    @pytest.mark.parametrize("path", ["src/main.py", "README.md", "data/file.csv", "docs/build.md"])
    def test_included(self, file_filter, path):
        assert file_filter.should_include(path, 100) == FilterDecision(True, FilterReason.INCLUDED)

    def test_is_excluded(self, file_filter):
        assert file_filter.is_excluded(".git/HEAD")
        assert not file_filter.is_excluded("logo.png")  # binary, not a pattern match

    def test_extra_exclusions(self):
        file_filter = FileFilter(extra_exclusions=["secrets/"])
        assert not file_filter.should_include("secrets/key.txt", 10).include
        assert file_filter.should_include("public/key.txt", 10).include

    def test_native_separators(self, file_filter, monkeypatch):
        monkeypatch.setattr("os.altsep", "\\")
        assert not file_filter.should_include("node_modules\\pkg\\index.js", 10).include
        assert file_filter.should_include("src\\main.py", 10).include

    @pytest.mark.skipif(os.name != "posix", reason="backslash is a separator on Windows")
    def test_backslash_is_part_of_the_name(self, file_filter):
        assert file_filter.should_include("..\\evil.txt", 10).include
        assert file_filter.should_include("node_modules\\index.js", 10).include

    def test_escaping_path_rejected(self, file_filter):
        with pytest.raises(ValueError):
            file_filter.should_include("../outside.txt", 10)


class TestInclusions:
    """Inclusion patterns narrow the candidate set."""

    def test_not_in_inclusion_set(self):
        file_filter = FileFilter(FilterSettings(default_inclusions=["src/**"]))
        assert file_filter.should_include("src/a/b.py", 10).include
        decision = file_filter.should_include("README.md", 10)
        assert decision == FilterDecision(False, FilterReason.NOT_IN_INCLUSION_SET)

    def test_exclusion_wins_over_inclusion(self):
        file_filter = FileFilter(FilterSettings(default_inclusions=["*.log", "*.py"]))
        decision = file_filter.should_include("app.log", 10)
        assert decision.reason == FilterReason.EXCLUDED_BY_PATTERN


class TestBinaryAndSize:

    def test_binary_excluded_by_default(self, file_filter):
        decision = file_filter.should_include("assets/logo.png", 10)
        assert decision == FilterDecision(False, FilterReason.BINARY)

    def test_binary_extension_case_insensitive(self, file_filter):
        assert file_filter.is_binary("LOGO.PNG")
        assert not file_filter.should_include("LOGO.PNG", 10).include

    def test_binary_placeholder_when_included(self):
        file_filter = FileFilter(file_handling=FileHandlingSettings(binary_file_handling="include"))
        decision = file_filter.should_include("logo.png", 10)
        assert decision.include
        assert decision.binary
        assert decision.reason == FilterReason.BINARY

    def test_binary_rule_precedes_size(self):
        """Placeholders hold no content, so size does not apply to them."""
        file_filter = FileFilter(file_handling=FileHandlingSettings(
            binary_file_handling="include", max_file_size=1024,
        ))
        assert file_filter.should_include("video.mp4", 10_000_000).binary

    def test_too_large(self):
        file_filter = FileFilter(file_handling=FileHandlingSettings(max_file_size=2048))
        assert file_filter.should_include("a.txt", 2048).include
        decision = file_filter.should_include("a.txt", 2049)
        assert decision == FilterDecision(False, FilterReason.TOO_LARGE)

    def test_no_extension(self, file_filter):
        assert not file_filter.is_binary("Makefile")
        assert not file_filter.is_binary(".bashrc")


class TestTraversal:

    @pytest.mark.parametrize("dirpath", ["node_modules", ".git", "venv", "__pycache__", "src/__pycache__"])
    def test_pruned(self, file_filter, dirpath):
        assert not file_filter.should_traverse(dirpath)

    @pytest.mark.parametrize("dirpath", ["src", "src/pkg", "data"])
    def test_walked(self, file_filter, dirpath):
        assert file_filter.should_traverse(dirpath)

    def test_inclusions_do_not_prune(self):
        file_filter = FileFilter(FilterSettings(default_inclusions=["**/*.py"]))
        assert file_filter.should_traverse("docs")


class TestDeterminism:

    def test_same_inputs_same_decision(self):
        paths = ["src/a.py", "node_modules/x.js", "logo.png", "big.txt"]
        first = FileFilter()
        second = FileFilter()
        for path in paths:
            assert first.should_include(path, 20_000_000) == first.should_include(path, 20_000_000)
            assert first.should_include(path, 20_000_000) == second.should_include(path, 20_000_000)

    def test_test_paths(self, file_filter):
        results = file_filter.test_paths(["src/a.py", ".git/HEAD", "img.jpg"])
        assert results == {"included": ["src/a.py"], "excluded": [".git/HEAD", "img.jpg"]}

    def test_stats(self, file_filter):
        stats = file_filter.stats()
        assert stats["inclusion_patterns"] == 0
        assert stats["exclusion_patterns"] == len(file_filter.exclusions)
        assert stats["binary_file_handling"] == "exclude"

    def test_no_deprecation_warnings(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            file_filter = FileFilter(FilterSettings(default_inclusions=["src/**"]))
            assert file_filter.should_include("src/a.py", 10).include


class TestRuntimePatterns:

    def test_add_and_remove(self, file_filter):
        assert file_filter.should_include("notes/todo.md", 10).include

        assert file_filter.add_exclusion_pattern("notes/")
        assert not file_filter.should_include("notes/todo.md", 10).include
        assert not file_filter.should_traverse("notes")
        assert "notes/" in file_filter.active_patterns()

        assert file_filter.remove_exclusion_pattern("notes/")
        assert file_filter.should_include("notes/todo.md", 10).include

    def test_add_existing_pattern(self, file_filter):
        assert not file_filter.add_exclusion_pattern("node_modules/")
        assert file_filter.stats()["custom_exclusion_patterns"] == 0

    def test_defaults_cannot_be_removed(self, file_filter):
        assert not file_filter.remove_exclusion_pattern("node_modules/")
        assert file_filter.is_excluded("node_modules/x.js")
