"""Workspace capture and restore.

Restore Safety:
---------------
There is no cross-file transaction on a filesystem, so restore approximates
atomicity with a backup snapshot:

1. Capture the current workspace into an ordinary snapshot before writing
   anything (admitted to the store when ``create_backup`` is set)
2. Write each entry atomically (temp file + rename), then apply permissions
3. On the first failure, put every touched file back from the backup,
   delete files the restore created, then any directories it created

Rollback failures are reported next to the original failure and never
replace it.
"""

import errno
import logging
import threading
import time
from typing import List, Optional, Sequence, Tuple

from .config import FileHandlingSettings
from .core import (
    EntryState,
    FileEntry,
    FileFailure,
    RestorePreview,
    RestoreResult,
    SkippedFile,
    Snapshot,
    SnapshotTrigger,
)
from .errors import (
    FileSystemError,
    IntegrityError,
    OperationCancelledError,
    SnapshotError,
)
from .filtering import FileFilter, FilterDecision
from .hashing import compute_digest
from .store import SnapshotStore
from .utils import generate_snapshot_id, normalize_relpath
from .workspace import Workspace


logger = logging.getLogger(__name__)


def _describe(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


def _check_cancelled(cancel: Optional[threading.Event], operation: str, processed: int) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError(operation, processed)


class FileBackup:
    """Reads a workspace into snapshots and writes snapshots back."""

    def __init__(
        self,
        workspace: Workspace,
        file_filter: FileFilter,
        store: SnapshotStore,
        file_handling: Optional[FileHandlingSettings] = None,
    ):
        self.workspace = workspace
        self.file_filter = file_filter
        self.store = store
        self.file_handling = file_handling or FileHandlingSettings()

    # ============= Capture =============

    def capture(
        self,
        description: str,
        trigger: SnapshotTrigger = SnapshotTrigger.MANUAL,
        cancel: Optional[threading.Event] = None,
    ) -> Snapshot:
        """Capture the workspace into a new (not yet stored) snapshot.

        Files are visited depth-first in sorted order. A file that cannot be
        read is recorded in ``Snapshot.skipped`` and the capture continues.

        Args:
            description: Snapshot description
            trigger: Why the snapshot is being taken
            cancel: Checked between files

        Returns:
            The captured Snapshot

        Raises:
            FileSystemError: Files were found but none could be read
            OperationCancelledError: ``cancel`` was set mid-capture
        """
        started = time.monotonic()
        entries: List[FileEntry] = []
        skipped: List[SkippedFile] = []

        logger.debug("Capturing %s", self.workspace.root)

        for relpath in self.workspace.walk(self.file_filter.should_traverse):
            _check_cancelled(cancel, "capture", len(entries))
            try:
                size = self.workspace.stat(relpath).st_size
            except (OSError, SnapshotError) as e:
                skipped.append(SkippedFile(path=relpath, reason=_describe(e)))
                logger.warning("Skipping %s: %s", relpath, e)
                continue

            decision = self.file_filter.should_include(relpath, size)
            if not decision.include:
                logger.debug("Excluded %s (%s)", relpath, decision.reason.value)
                continue

            try:
                entry = self._capture_entry(relpath, decision)
            except (OSError, SnapshotError) as e:
                skipped.append(SkippedFile(path=relpath, reason=_describe(e)))
                logger.warning("Skipping %s: %s", relpath, e)
                continue
            if entry is not None:
                entries.append(entry)

        if not entries and skipped:
            raise FileSystemError(
                str(self.workspace.root),
                f"no files could be read ({len(skipped)} skipped, first: {skipped[0].reason})",
            )

        snapshot = Snapshot(
            id=generate_snapshot_id(),
            description=description,
            base_path=str(self.workspace.root),
            trigger=trigger,
            entries=tuple(entries),
            skipped=tuple(skipped),
            capture_seconds=time.monotonic() - started,
        )
        logger.debug(
            "Captured %d files (%d bytes, %d skipped) in %.3fs",
            snapshot.file_count, snapshot.total_size, len(skipped), snapshot.capture_seconds,
        )
        return snapshot

    def _capture_entry(self, relpath: str, decision: FilterDecision) -> Optional[FileEntry]:
        permissions = (
            self.workspace.mode(relpath) if self.file_handling.preserve_permissions else None
        )

        if decision.binary:
            return FileEntry(
                path=relpath,
                state=EntryState.BINARY,
                checksum=self.workspace.digest(relpath),
                size=self.workspace.stat(relpath).st_size,
                permissions=permissions,
            )

        data = self.workspace.read_bytes(relpath)
        # The file may have grown between stat and read
        if not self.file_filter.should_include(relpath, len(data)).include:
            logger.debug("Excluded %s after read (%d bytes)", relpath, len(data))
            return None

        return FileEntry(
            path=relpath,
            state=EntryState.CAPTURED,
            checksum=compute_digest(data),
            size=len(data),
            content=data,
            permissions=permissions,
        )

    # ============= Restore =============

    @staticmethod
    def _select(snapshot: Snapshot, paths: Optional[Sequence[str]]) -> Tuple[FileEntry, ...]:
        """Entries to restore, in snapshot order.

        Raises:
            ValueError: A requested path is not in the snapshot
        """
        if paths is None:
            return snapshot.entries
        wanted = {normalize_relpath(p) for p in paths}
        missing = sorted(wanted.difference(snapshot.paths))
        if missing:
            raise ValueError(f"Not in snapshot {snapshot.id}: {', '.join(missing)}")
        return tuple(e for e in snapshot.entries if e.path in wanted)

    def restore(
        self,
        snapshot: Snapshot,
        *,
        create_backup: bool = True,
        overwrite_existing: bool = True,
        preserve_permissions: bool = True,
        rollback_on_failure: bool = True,
        paths: Optional[Sequence[str]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> RestoreResult:
        """Write a snapshot's files back onto the workspace.

        Args:
            snapshot: Snapshot to restore (already integrity-checked by the store)
            create_backup: Capture the current state and admit it to the store first
            overwrite_existing: Replace files that already exist
            preserve_permissions: Apply captured mode bits after writing
            rollback_on_failure: Undo touched files on the first failure
            paths: Restore only these snapshot paths (default: all)
            cancel: Checked between files; cancellation counts as a failure

        Returns:
            RestoreResult. ``success`` is False if any file failed.

        Raises:
            ValueError: ``paths`` names a file the snapshot does not hold
            IntegrityError: An entry failed verification (after rollback)
            OperationCancelledError: ``cancel`` was set (after rollback)
            CapacityError: The backup snapshot could not be admitted; nothing written
        """
        entries = self._select(snapshot, paths)
        result = RestoreResult(snapshot_id=snapshot.id)

        backup: Optional[Snapshot] = None
        if create_backup or rollback_on_failure:
            backup = self.capture(
                f"Backup before restoring {snapshot.id}",
                trigger=SnapshotTrigger.BACKUP,
                cancel=cancel,
            )
            if create_backup:
                self.store.add(backup)
                result.backup_snapshot_id = backup.id
                logger.info("Backup snapshot %s taken before restore", backup.id)

        # (path, existed before restore) for every file this restore changed
        touched: List[Tuple[str, bool]] = []
        created_dirs: List[str] = []
        fatal: Optional[SnapshotError] = None

        for entry in entries:
            try:
                _check_cancelled(cancel, "restore", len(touched))
            except OperationCancelledError as e:
                fatal = e
                result.failed.append(FileFailure(path=entry.path, error=_describe(e)))
                break

            if entry.is_binary:
                result.skipped.append(SkippedFile(path=entry.path, reason="binary"))
                continue

            try:
                existed = self.workspace.exists(entry.path)
                if existed and not overwrite_existing:
                    result.skipped.append(SkippedFile(path=entry.path, reason="exists"))
                    continue
                self._restore_entry(entry, existed, preserve_permissions, touched, created_dirs, result)
            except (OSError, SnapshotError) as e:
                result.failed.append(FileFailure(path=entry.path, error=_describe(e)))
                logger.warning("Failed to restore %s: %s", entry.path, e)
                if isinstance(e, IntegrityError):
                    fatal = e
                if rollback_on_failure or fatal is not None:
                    break

        if result.failed:
            result.success = False
            if rollback_on_failure:
                self._rollback(touched, created_dirs, backup, result)

        if fatal is not None:
            fatal.restore_result = result
            raise fatal

        logger.info("Restore of %s: %s", snapshot.id, result.summary())
        return result

    def _restore_entry(
        self,
        entry: FileEntry,
        existed: bool,
        preserve_permissions: bool,
        touched: List[Tuple[str, bool]],
        created_dirs: List[str],
        result: RestoreResult,
    ) -> None:
        entry.verify()
        wants_mode = preserve_permissions and entry.permissions is not None

        if existed and self.workspace.digest(entry.path) == entry.checksum:
            # Same bytes already on disk; only permissions may differ
            if wants_mode and self.workspace.mode(entry.path) != entry.permissions:
                touched.append((entry.path, True))
                self.workspace.chmod(entry.path, entry.permissions)
            result.unchanged.append(entry.path)
            return

        if not existed:
            created_dirs.extend(self.workspace.missing_dirs(entry.path))
        touched.append((entry.path, existed))
        self.workspace.write_bytes(entry.path, entry.content)
        if wants_mode:
            self.workspace.chmod(entry.path, entry.permissions)
        result.restored.append(entry.path)
        logger.debug("Restored %s (%d bytes)", entry.path, entry.size)

    def _rollback(
        self,
        touched: List[Tuple[str, bool]],
        created_dirs: List[str],
        backup: Optional[Snapshot],
        result: RestoreResult,
    ) -> None:
        """Put every touched file back to its pre-restore state (best-effort).

        Directories the restore created are removed afterwards, deepest
        first, when they are empty again.
        """
        logger.warning("Rolling back %d file(s)", len(touched))
        for path, existed in reversed(touched):
            try:
                prior = backup.entry(path) if backup is not None else None
                if prior is not None and prior.content is not None:
                    prior.verify()
                    self.workspace.write_bytes(path, prior.content)
                    if prior.permissions is not None:
                        self.workspace.chmod(path, prior.permissions)
                elif not existed:
                    if self.workspace.exists(path):
                        self.workspace.unlink(path)
                else:
                    raise FileSystemError(path, "not in backup snapshot, cannot roll back")
            except (OSError, SnapshotError) as e:
                result.rollback_errors.append(FileFailure(path=path, error=_describe(e)))
                logger.warning("Rollback failed for %s: %s", path, e)

        for reldir in reversed(created_dirs):
            try:
                self.workspace.rmdir(reldir)
            except FileNotFoundError:
                continue
            except OSError as e:
                if e.errno in (errno.ENOTEMPTY, errno.EEXIST):
                    logger.debug("Leaving %s: not empty", reldir)
                    continue
                result.rollback_errors.append(FileFailure(path=reldir, error=_describe(e)))
                logger.warning("Rollback failed for %s: %s", reldir, e)
            except SnapshotError as e:
                result.rollback_errors.append(FileFailure(path=reldir, error=_describe(e)))
                logger.warning("Rollback failed for %s: %s", reldir, e)
        result.rolled_back = True

    # ============= Preview =============

    def preview(self, snapshot: Snapshot, paths: Optional[Sequence[str]] = None) -> RestorePreview:
        """Compare a snapshot (or some of its paths) against the workspace without writing."""
        preview = RestorePreview(snapshot_id=snapshot.id)
        for entry in self._select(snapshot, paths):
            if entry.is_binary:
                preview.binary_placeholders.append(entry.path)
            elif not self.workspace.exists(entry.path):
                preview.will_create.append(entry.path)
                preview.total_restore_size += entry.size
            elif self.workspace.digest(entry.path) == entry.checksum:
                preview.unchanged.append(entry.path)
            else:
                preview.will_modify.append(entry.path)
                preview.total_restore_size += entry.size
        return preview
