"""Core data models for workspace-snapshots.

Snapshot Lifecycle:
-------------------
A Snapshot is assembled by FileBackup.capture(), handed to the SnapshotStore,
and owned by the store until it is deleted or evicted. Snapshots and their
entries are frozen: nothing mutates them after capture, and every read path
re-verifies entry checksums before content leaves the store.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from .constants import BYTES_PER_MB
from .hashing import verify_digest
from .utils import humanize_size


# ============= File Entries =============

class EntryState(str, Enum):
    """What a FileEntry holds."""

    CAPTURED = "captured"  # Raw bytes held in memory
    BINARY = "binary"      # Binary placeholder, bytes not kept


class FileEntry(BaseModel):
    """One file's captured state inside a snapshot."""

    model_config = {"frozen": True}

    path: str                          # Workspace-relative POSIX path
    state: EntryState
    checksum: str                      # sha256:...
    size: int                          # Bytes on disk at capture time
    content: Optional[bytes] = None    # Only for CAPTURED entries
    permissions: Optional[int] = None  # POSIX mode bits, if preserved

    @model_validator(mode="after")
    def check_state(self):
        """Content must be present exactly when the entry is CAPTURED."""
        if self.state == EntryState.CAPTURED and self.content is None:
            raise ValueError(f"captured entry without content: {self.path}")
        if self.state == EntryState.BINARY and self.content is not None:
            raise ValueError(f"binary placeholder must not carry content: {self.path}")
        return self

    @property
    def is_binary(self) -> bool:
        return self.state == EntryState.BINARY

    @property
    def stored_size(self) -> int:
        """Bytes this entry occupies in the store."""
        return len(self.content) if self.content is not None else 0

    def verify(self) -> None:
        """Recompute the checksum of held content and compare."""
        if self.content is not None:
            verify_digest(self.path, self.content, self.checksum)


class SkippedFile(BaseModel):
    """A file left out of a capture or restore, with the reason."""

    model_config = {"frozen": True}

    path: str
    reason: str


# ============= Snapshots =============

class SnapshotTrigger(str, Enum):
    """Why a snapshot was taken."""

    MANUAL = "manual"
    BACKUP = "backup"  # Safety net taken before a restore


class Snapshot(BaseModel):
    """Immutable point-in-time capture of a workspace."""

    model_config = {"frozen": True}

    id: str
    description: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    base_path: str
    trigger: SnapshotTrigger = SnapshotTrigger.MANUAL
    entries: Tuple[FileEntry, ...] = ()
    skipped: Tuple[SkippedFile, ...] = ()
    capture_seconds: float = 0.0
    total_size: int = 0
    file_count: int = 0

    @model_validator(mode="after")
    def check_entries(self):
        """Validate description and paths, then cache derived totals."""
        if not self.description or not self.description.strip():
            raise ValueError("snapshot description must not be empty")
        seen = set()
        for entry in self.entries:
            if entry.path in seen:
                raise ValueError(f"duplicate path in snapshot: {entry.path}")
            seen.add(entry.path)
        # Frozen model: derived totals are written once, here
        object.__setattr__(self, "total_size", sum(e.stored_size for e in self.entries))
        object.__setattr__(self, "file_count", len(self.entries))
        return self

    def entry(self, path: str) -> Optional[FileEntry]:
        """Look up an entry by path."""
        for e in self.entries:
            if e.path == path:
                return e
        return None

    @property
    def paths(self) -> List[str]:
        return [e.path for e in self.entries]

    def verify(self) -> None:
        """Verify every entry checksum; raises ChecksumMismatchError."""
        for e in self.entries:
            e.verify()

    def summary(self) -> "SnapshotSummary":
        return SnapshotSummary(
            id=self.id,
            description=self.description,
            created_at=self.created_at,
            trigger=self.trigger,
            file_count=self.file_count,
            total_size=self.total_size,
            base_path=self.base_path,
        )


class SnapshotSummary(BaseModel):
    """Listing view of a snapshot (no file content)."""

    id: str
    description: str
    created_at: datetime
    trigger: SnapshotTrigger
    file_count: int
    total_size: int
    base_path: str


class StorageStats(BaseModel):
    """Live store utilization."""

    snapshot_count: int
    max_snapshots: int
    total_bytes: int
    memory_usage_mb: float
    max_memory_mb: int
    utilization_percent: float

    @classmethod
    def compute(cls, count: int, total_bytes: int, max_snapshots: int, max_memory_mb: int) -> "StorageStats":
        """Build stats from raw totals; utilization is the fuller of the two bounds."""
        by_count = count / max_snapshots * 100
        by_bytes = total_bytes / (max_memory_mb * BYTES_PER_MB) * 100
        return cls(
            snapshot_count=count,
            max_snapshots=max_snapshots,
            total_bytes=total_bytes,
            memory_usage_mb=total_bytes / BYTES_PER_MB,
            max_memory_mb=max_memory_mb,
            utilization_percent=round(max(by_count, by_bytes), 2),
        )


# ============= Restore =============

class RestoreOptions(BaseModel):
    """Restore switches; None means "use the configured default"."""

    create_backup: Optional[bool] = None
    overwrite_existing: Optional[bool] = None
    preserve_permissions: Optional[bool] = None
    rollback_on_failure: Optional[bool] = None
    paths: Optional[List[str]] = None  # Restore only these snapshot paths


class FileFailure(BaseModel):
    """A file that could not be restored or rolled back."""

    path: str
    error: str


class RestoreResult(BaseModel):
    """Outcome of a restore."""

    snapshot_id: str
    success: bool = True
    restored: List[str] = Field(default_factory=list)   # Written to disk
    unchanged: List[str] = Field(default_factory=list)  # Already identical, not rewritten
    skipped: List[SkippedFile] = Field(default_factory=list)  # Left alone by policy
    failed: List[FileFailure] = Field(default_factory=list)
    rolled_back: bool = False
    rollback_errors: List[FileFailure] = Field(default_factory=list)
    backup_snapshot_id: Optional[str] = None

    @property
    def files_restored(self) -> int:
        return len(self.restored) + len(self.unchanged)

    @property
    def files_skipped(self) -> int:
        return len(self.skipped)

    def summary(self) -> str:
        """Get human-readable summary."""
        if self.rolled_back:
            parts = [f"✗ Restore failed on {len(self.failed)} file(s), changes rolled back"]
            if self.rollback_errors:
                parts.append(f"⚠ {len(self.rollback_errors)} file(s) could not be rolled back")
            return ", ".join(parts)
        parts = [f"{'✓' if self.success else '⚠'} Restored {self.files_restored} files"]
        if self.unchanged:
            parts.append(f"{len(self.unchanged)} already up to date")
        if self.skipped:
            parts.append(f"{len(self.skipped)} skipped")
        if self.failed:
            parts.append(f"{len(self.failed)} failed")
        return ", ".join(parts)


class RestorePreview(BaseModel):
    """What a restore would do, without touching the workspace."""

    snapshot_id: str
    will_create: List[str] = Field(default_factory=list)
    will_modify: List[str] = Field(default_factory=list)
    unchanged: List[str] = Field(default_factory=list)
    binary_placeholders: List[str] = Field(default_factory=list)
    total_restore_size: int = 0

    @property
    def impacted_files(self) -> int:
        return len(self.will_create) + len(self.will_modify)

    def summary(self) -> str:
        """Get human-readable summary."""
        parts = [
            f"{len(self.will_create)} to create",
            f"{len(self.will_modify)} to modify ({humanize_size(self.total_restore_size)})",
            f"{len(self.unchanged)} unchanged",
        ]
        if self.binary_placeholders:
            parts.append(f"{len(self.binary_placeholders)} binary placeholders")
        return ", ".join(parts)
