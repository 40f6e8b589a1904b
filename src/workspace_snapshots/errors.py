"""Custom exceptions for workspace-snapshots.

This module defines typed exceptions for better error handling and clearer
error messages throughout the snapshot engine.
"""

from typing import List, Optional, Sequence


class SnapshotError(RuntimeError):
    """Base class for all snapshot engine errors."""
    pass


# Configuration Errors
class ConfigurationError(SnapshotError):
    """Settings failed validation when the engine was constructed."""

    def __init__(self, problems: Sequence[str]):
        self.problems: List[str] = list(problems)
        details = "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(f"Invalid snapshot configuration:\n{details}")


# Capacity Errors
class CapacityError(SnapshotError):
    """Snapshot cannot fit in the store even after maximal eviction."""

    def __init__(self, snapshot_id: str, size: int, limit: int):
        self.snapshot_id = snapshot_id
        self.size = size
        self.limit = limit
        super().__init__(
            f"Snapshot {snapshot_id} needs {size} bytes but the store "
            f"holds at most {limit} bytes. Raise storage.max_memory_mb or "
            f"tighten the file filters."
        )


# Lookup Errors
class NotFoundError(SnapshotError):
    """No snapshot matches the requested id."""

    def __init__(self, snapshot_id: str, message: Optional[str] = None):
        self.snapshot_id = snapshot_id
        super().__init__(message or f"Snapshot not found: {snapshot_id}")


class AmbiguousSnapshotIdError(NotFoundError):
    """An id prefix matches more than one snapshot."""

    def __init__(self, snapshot_id: str, matches: Sequence[str]):
        self.matches = list(matches)
        super().__init__(
            snapshot_id,
            f'Ambiguous snapshot ID "{snapshot_id}". '
            f"Multiple matches found: {', '.join(self.matches)}"
        )


# Filesystem Errors
class FileSystemError(SnapshotError):
    """Read, write or permission failure against the workspace."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


# Integrity Errors
class IntegrityError(SnapshotError):
    """Base class for data integrity errors."""
    pass


class ChecksumMismatchError(IntegrityError):
    """Captured content no longer matches its recorded checksum."""

    def __init__(self, path: str, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum verification failed for {path}\n"
            f"  Expected: {expected}\n"
            f"  Got:      {actual}\n"
            f"The snapshot content has been corrupted in memory."
        )


# Cancellation
class OperationCancelledError(SnapshotError):
    """A capture or restore was cancelled between file operations."""

    def __init__(self, operation: str, processed: int):
        self.operation = operation
        self.processed = processed
        super().__init__(f"{operation} cancelled after {processed} files")
