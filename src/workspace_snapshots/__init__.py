"""In-memory workspace snapshots with filtered capture and safe restore."""

from .config import SnapshotSettings, load_settings
from .core import RestoreOptions, RestoreResult, Snapshot, StorageStats
from .manager import SnapshotManager

__all__ = [
    "RestoreOptions",
    "RestoreResult",
    "Snapshot",
    "SnapshotManager",
    "SnapshotSettings",
    "StorageStats",
    "load_settings",
]
