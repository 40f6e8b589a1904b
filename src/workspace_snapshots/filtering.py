"""Gitignore-style file filtering for snapshot capture."""

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Dict, Iterable, List, Optional

from pathspec import GitIgnoreSpec

from .config import FileHandlingSettings, FilterSettings
from .utils import file_extension, normalize_relpath


logger = logging.getLogger(__name__)


class FilterReason(str, Enum):
    """Why a path was included or excluded."""

    INCLUDED = "included"
    EXCLUDED_BY_PATTERN = "excluded-by-pattern"
    NOT_IN_INCLUSION_SET = "not-in-inclusion-set"
    BINARY = "binary"
    TOO_LARGE = "too-large"


@dataclass(frozen=True)
class FilterDecision:
    """Include/exclude verdict for one path."""

    include: bool
    reason: FilterReason
    binary: bool = False  # Included as a placeholder without content


class FileFilter:
    """Decides per path whether a file belongs in a snapshot.

    Rules are applied in order and the first match wins:

    1. exclusion patterns
    2. inclusion patterns (only when any are configured)
    3. binary extensions (excluded, or kept as placeholders)
    4. size ceiling

    Decisions depend only on the path, the size and the settings the filter
    was built with.
    """

    def __init__(
        self,
        filters: Optional[FilterSettings] = None,
        file_handling: Optional[FileHandlingSettings] = None,
        extra_exclusions: Iterable[str] = (),
    ):
        """Compile patterns once.

        Args:
            filters: Pattern and extension settings
            file_handling: Size ceiling and binary handling policy
            extra_exclusions: Additional exclusion patterns
        """
        self.filters = filters or FilterSettings()
        self.file_handling = file_handling or FileHandlingSettings()

        self.custom_exclusions: List[str] = list(extra_exclusions)
        self.exclusions: List[str] = list(self.filters.default_exclusions) + self.custom_exclusions
        self.inclusions: List[str] = list(self.filters.default_inclusions)
        self.binary_extensions = frozenset(self.filters.binary_extensions)
        self.max_file_size = self.file_handling.max_file_size
        self.keep_binary = self.file_handling.binary_file_handling == "include"

        self._exclude_spec = GitIgnoreSpec.from_lines(self.exclusions)
        self._include_spec = GitIgnoreSpec.from_lines(self.inclusions) if self.inclusions else None

        logger.debug(
            "FileFilter initialized: %d exclusions, %d inclusions, max size %d, binary=%s",
            len(self.exclusions), len(self.inclusions), self.max_file_size,
            self.file_handling.binary_file_handling,
        )

    def is_excluded(self, relpath: str) -> bool:
        """Check if a workspace-relative path matches an exclusion pattern."""
        return self._exclude_spec.match_file(normalize_relpath(relpath))

    def is_binary(self, relpath: str) -> bool:
        """Check if a path has a binary extension."""
        return file_extension(relpath) in self.binary_extensions

    def should_include(self, relpath: str, size: int) -> FilterDecision:
        """Decide whether a file belongs in a snapshot.

        Args:
            relpath: Workspace-relative path (any separator style)
            size: File size in bytes

        Returns:
            FilterDecision with the first matching rule's reason
        """
        path = normalize_relpath(relpath)

        if self._exclude_spec.match_file(path):
            return FilterDecision(False, FilterReason.EXCLUDED_BY_PATTERN)

        if self._include_spec is not None and not self._include_spec.match_file(path):
            return FilterDecision(False, FilterReason.NOT_IN_INCLUSION_SET)

        if self.is_binary(path):
            if not self.keep_binary:
                return FilterDecision(False, FilterReason.BINARY)
            return FilterDecision(True, FilterReason.BINARY, binary=True)

        if size > self.max_file_size:
            return FilterDecision(False, FilterReason.TOO_LARGE)

        return FilterDecision(True, FilterReason.INCLUDED)

    def should_traverse(self, dirpath: str) -> bool:
        """Check if a directory should be walked during capture.

        Only exclusion patterns prune directories; inclusion patterns are
        checked per file because "src/**/*.py" needs "src/" walked.

        Args:
            dirpath: Workspace-relative directory path

        Returns:
            True if the directory should be traversed
        """
        path = normalize_relpath(dirpath)
        # Trailing slash so directory-only patterns ("build/") match
        return not self._exclude_spec.match_file(path + "/")

    def test_paths(self, paths: Iterable[str], size: int = 1024) -> Dict[str, List[str]]:
        """Sort paths into included/excluded buckets assuming a fixed size."""
        results: Dict[str, List[str]] = {"included": [], "excluded": []}
        for path in paths:
            decision = self.should_include(path, size)
            results["included" if decision.include else "excluded"].append(path)
        return results

    def stats(self) -> Dict[str, object]:
        """Summarize the active filter configuration."""
        return {
            "exclusion_patterns": len(self.exclusions),
            "custom_exclusion_patterns": len(self.custom_exclusions),
            "inclusion_patterns": len(self.inclusions),
            "binary_extensions": len(self.binary_extensions),
            "max_file_size": self.max_file_size,
            "binary_file_handling": self.file_handling.binary_file_handling,
        }

    # ---- Runtime pattern changes -------------------------------------------

    def add_exclusion_pattern(self, pattern: str) -> bool:
        """Exclude another pattern from now on.

        Returns:
            False if the pattern was already active
        """
        if pattern in self.exclusions:
            return False
        self.custom_exclusions.append(pattern)
        self.exclusions.append(pattern)
        self._exclude_spec = GitIgnoreSpec.from_lines(self.exclusions)
        logger.debug("Added exclusion pattern %r", pattern)
        return True

    def remove_exclusion_pattern(self, pattern: str) -> bool:
        """Drop a pattern added with ``add_exclusion_pattern``.

        Configured default exclusions cannot be removed at runtime.

        Returns:
            False if no custom pattern matched
        """
        if pattern not in self.custom_exclusions:
            return False
        self.custom_exclusions.remove(pattern)
        self.exclusions = list(self.filters.default_exclusions) + self.custom_exclusions
        self._exclude_spec = GitIgnoreSpec.from_lines(self.exclusions)
        logger.debug("Removed exclusion pattern %r", pattern)
        return True

    def active_patterns(self) -> List[str]:
        return list(self.exclusions)
