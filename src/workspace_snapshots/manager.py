"""High-level facade over filter, store and backup."""

import contextlib
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from .backup import FileBackup
from .config import SnapshotSettings
from .core import (
    RestoreOptions,
    RestorePreview,
    RestoreResult,
    Snapshot,
    SnapshotSummary,
    SnapshotTrigger,
    StorageStats,
)
from .errors import AmbiguousSnapshotIdError, NotFoundError
from .filtering import FileFilter
from .store import SnapshotStore
from .workspace import Workspace


logger = logging.getLogger(__name__)


class SnapshotManager:
    """Create, list, restore and delete snapshots of one workspace.

    The manager owns one FileFilter, one SnapshotStore and one FileBackup,
    all built from the same validated settings. Create, restore and delete
    run one at a time: a second caller blocks until the first finishes.
    Listing and stats read the store directly and never block on a capture.
    """

    def __init__(
        self,
        settings: Union[SnapshotSettings, Mapping[str, Any], None] = None,
        root: Union[str, Path] = ".",
        workspace: Optional[Workspace] = None,
    ):
        """Validate settings and wire up the engine.

        Args:
            settings: SnapshotSettings, or a raw mapping to validate
            root: Workspace directory (ignored when ``workspace`` is given)
            workspace: Pre-built Workspace (tests inject failing ones)

        Raises:
            ConfigurationError: If the settings are invalid
        """
        if settings is None:
            settings = SnapshotSettings()
        elif not isinstance(settings, SnapshotSettings):
            settings = SnapshotSettings.from_mapping(settings)
        self.settings = settings

        self.workspace = workspace if workspace is not None else Workspace(root)
        self.file_filter = FileFilter(settings.filters, settings.file_handling)
        self.store = SnapshotStore(settings.storage)
        self.backup = FileBackup(self.workspace, self.file_filter, self.store, settings.file_handling)

        self._operation_lock = threading.Lock()
        self._counter_lock = threading.Lock()
        self._active_operations = 0

        logger.debug("SnapshotManager ready for %s", self.workspace.root)

    @contextlib.contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        with self._counter_lock:
            self._active_operations += 1
        try:
            with self._operation_lock:
                logger.debug("Starting %s", name)
                yield
        finally:
            with self._counter_lock:
                self._active_operations -= 1

    @property
    def active_operations(self) -> int:
        """Operations running or waiting for the lock."""
        with self._counter_lock:
            return self._active_operations

    # ============= Snapshots =============

    def create_snapshot(self, description: str, cancel: Optional[threading.Event] = None) -> Snapshot:
        """Capture the workspace and store the result.

        Args:
            description: Non-empty description
            cancel: Checked between files

        Returns:
            The stored Snapshot

        Raises:
            ValueError: Empty or whitespace-only description
            CapacityError: Snapshot larger than the whole store
            FileSystemError: No file in the workspace could be read
            OperationCancelledError: ``cancel`` was set; nothing stored
        """
        if not description or not description.strip():
            raise ValueError("Snapshot description must not be empty")
        description = description.strip()

        with self._operation("create"):
            snapshot = self.backup.capture(description, cancel=cancel)
            evicted = self.store.add(snapshot)

        logger.info(
            "Created snapshot %s: %d files, %d bytes%s",
            snapshot.id, snapshot.file_count, snapshot.total_size,
            f" (evicted {len(evicted)})" if evicted else "",
        )
        return snapshot

    def list_snapshots(
        self,
        limit: Optional[int] = None,
        *,
        trigger: Union[SnapshotTrigger, str, None] = None,
        description: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        oldest_first: bool = False,
    ) -> List[SnapshotSummary]:
        """Stored snapshots, newest first unless ``oldest_first``.

        Filters combine: a snapshot is listed only if it passes all of them.
        See ``SnapshotStore.list``.
        """
        return self.store.list(
            limit,
            trigger=trigger,
            description=description,
            since=since,
            until=until,
            oldest_first=oldest_first,
        )

    def resolve_snapshot_id(self, snapshot_id: str) -> str:
        """Resolve an exact id or a unique id prefix.

        Raises:
            NotFoundError: Nothing matches
            AmbiguousSnapshotIdError: The prefix matches more than one snapshot
        """
        snapshot_id = (snapshot_id or "").strip()
        if not snapshot_id:
            raise NotFoundError(snapshot_id, "Snapshot ID must not be empty")
        if snapshot_id in self.store:
            return snapshot_id

        matches = [sid for sid in self.store.ids() if sid.startswith(snapshot_id)]
        if not matches:
            raise NotFoundError(snapshot_id)
        if len(matches) > 1:
            raise AmbiguousSnapshotIdError(snapshot_id, matches)
        return matches[0]

    def get_snapshot(self, snapshot_id: str) -> Snapshot:
        """Fetch a snapshot with verified content.

        Raises:
            NotFoundError: Unknown or ambiguous id
            ChecksumMismatchError: Stored content is corrupt
        """
        resolved = self.resolve_snapshot_id(snapshot_id)
        snapshot = self.store.get(resolved)
        if snapshot is None:
            # Evicted between resolve and get
            raise NotFoundError(snapshot_id)
        return snapshot

    def restore_snapshot(
        self,
        snapshot_id: str,
        options: Optional[RestoreOptions] = None,
        cancel: Optional[threading.Event] = None,
    ) -> RestoreResult:
        """Restore a stored snapshot onto the workspace.

        Unset options fall back to ``restoration.*_by_default`` settings.

        Raises:
            NotFoundError: Unknown or ambiguous id
            ValueError: ``options.paths`` names a file the snapshot does not hold
            IntegrityError: Stored content is corrupt
            CapacityError: The backup snapshot cannot be stored
            OperationCancelledError: ``cancel`` was set
        """
        options = options or RestoreOptions()
        defaults = self.settings.restoration

        def pick(value: Optional[bool], default: bool) -> bool:
            return default if value is None else value

        with self._operation("restore"):
            snapshot = self.get_snapshot(snapshot_id)
            result = self.backup.restore(
                snapshot,
                create_backup=pick(options.create_backup, defaults.create_backup_by_default),
                overwrite_existing=pick(options.overwrite_existing, defaults.overwrite_existing_by_default),
                preserve_permissions=pick(options.preserve_permissions, defaults.preserve_permissions_by_default),
                rollback_on_failure=pick(options.rollback_on_failure, defaults.rollback_on_failure_by_default),
                paths=options.paths,
                cancel=cancel,
            )

        log = logger.info if result.success else logger.warning
        log("Restore of %s finished: %s", snapshot.id, result.summary())
        return result

    def preview_restore(self, snapshot_id: str, paths: Optional[Sequence[str]] = None) -> RestorePreview:
        """Show what restoring a snapshot (or only ``paths`` from it) would change."""
        return self.backup.preview(self.get_snapshot(snapshot_id), paths)

    def delete_snapshot(self, snapshot_id: str) -> bool:
        """Delete a snapshot by id or unique prefix.

        Returns:
            True if a snapshot was removed, False if none matched
        """
        with self._operation("delete"):
            try:
                resolved = self.resolve_snapshot_id(snapshot_id)
            except AmbiguousSnapshotIdError as e:
                logger.warning("Not deleting: %s", e)
                return False
            except NotFoundError:
                logger.debug("Snapshot %s not found for deletion", snapshot_id)
                return False
            removed = self.store.remove(resolved)

        if removed:
            logger.info("Deleted snapshot %s", resolved)
        return removed

    # ============= Filter =============

    def add_exclusion_pattern(self, pattern: str) -> bool:
        """Exclude a gitignore-style pattern from later captures.

        Waits for a running capture or restore, so one operation never sees
        two pattern sets.
        """
        with self._operation("add-exclusion"):
            return self.file_filter.add_exclusion_pattern(pattern)

    def remove_exclusion_pattern(self, pattern: str) -> bool:
        """Drop a pattern added with ``add_exclusion_pattern``."""
        with self._operation("remove-exclusion"):
            return self.file_filter.remove_exclusion_pattern(pattern)

    # ============= Stats =============

    def get_storage_stats(self) -> StorageStats:
        return self.store.stats()

    def get_system_stats(self) -> Dict[str, Any]:
        """Storage, filter and configuration summary in one mapping."""
        storage = self.settings.storage
        file_handling = self.settings.file_handling
        return {
            "storage": self.get_storage_stats().model_dump(),
            "filter": self.file_filter.stats(),
            "active_operations": self.active_operations,
            "configuration": {
                "workspace": str(self.workspace.root),
                "max_snapshots": storage.max_snapshots,
                "max_memory_mb": storage.max_memory_mb,
                "cleanup_threshold": storage.cleanup_threshold,
                "max_file_size": file_handling.max_file_size,
                "binary_file_handling": file_handling.binary_file_handling,
                "preserve_permissions": file_handling.preserve_permissions,
                "encoding": file_handling.encoding,
            },
        }
