"""In-memory, capacity-bounded snapshot store.

Admission Policy:
-----------------
The store enforces two hard bounds on every ``add``: snapshot count
(``max_snapshots``) and captured bytes (``max_memory_mb``, decimal MB).
When an admission would cross either bound, the oldest snapshots are evicted
until the projected totals fall to ``cleanup_threshold`` of capacity, so the
next snapshot usually fits without another eviction round. A snapshot that
is larger than the whole byte budget is rejected with CapacityError before
anything is evicted.

Snapshots are ordered by creation time, ties broken by insertion order.
"""

from datetime import datetime, timezone
import itertools
import logging
import math
import threading
from typing import Dict, List, Optional, Tuple, Union

from .config import StorageSettings
from .constants import BYTES_PER_MB
from .core import Snapshot, SnapshotSummary, SnapshotTrigger, StorageStats
from .errors import CapacityError, ConfigurationError


logger = logging.getLogger(__name__)


class SnapshotStore:
    """Owns every admitted Snapshot until it is removed or evicted.

    Thread Safety:
        An internal re-entrant lock guards the snapshot map and the running
        totals, so ``stats()`` and ``list()`` never see a half-applied
        eviction even while a mutating call is in progress elsewhere.
    """

    def __init__(self, settings: Optional[StorageSettings] = None):
        self.settings = settings or StorageSettings()
        _check_bounds(self.settings)

        self.max_snapshots = self.settings.max_snapshots
        self.max_bytes = self.settings.max_memory_mb * BYTES_PER_MB

        # id -> (insertion sequence, snapshot)
        self._snapshots: Dict[str, Tuple[int, Snapshot]] = {}
        self._total_bytes = 0
        self._sequence = itertools.count()
        self._lock = threading.RLock()

        logger.debug(
            "SnapshotStore initialized: max %d snapshots, %d bytes, threshold %.2f",
            self.max_snapshots, self.max_bytes, self.settings.cleanup_threshold,
        )

    # ---- Admission ---------------------------------------------------------

    def add(self, snapshot: Snapshot) -> List[str]:
        """Admit a snapshot, evicting oldest snapshots if needed.

        Args:
            snapshot: Fully captured snapshot

        Returns:
            Ids of snapshots evicted to make room, oldest first

        Raises:
            CapacityError: Snapshot alone exceeds the byte budget; store unchanged
            ValueError: A snapshot with the same id is already stored
        """
        size = snapshot.total_size
        if size > self.max_bytes:
            raise CapacityError(snapshot.id, size, self.max_bytes)

        with self._lock:
            if snapshot.id in self._snapshots:
                raise ValueError(f"Snapshot with ID {snapshot.id} already exists")

            evicted: List[str] = []
            if self._would_overflow(size):
                evicted = self._evict_for(size)

            self._snapshots[snapshot.id] = (next(self._sequence), snapshot)
            self._total_bytes += size

            logger.debug(
                "Stored snapshot %s (%d bytes); %d snapshots, %d bytes total",
                snapshot.id, size, len(self._snapshots), self._total_bytes,
            )
            return evicted

    def _would_overflow(self, size: int) -> bool:
        return (
            len(self._snapshots) + 1 > self.max_snapshots
            or self._total_bytes + size > self.max_bytes
        )

    def _eviction_targets(self) -> Tuple[int, float]:
        threshold = self.settings.cleanup_threshold
        # Count target rounds up so small stores still keep their capacity
        count_target = max(1, math.ceil(threshold * self.max_snapshots))
        bytes_target = threshold * self.max_bytes
        return count_target, bytes_target

    def _evict_for(self, size: int) -> List[str]:
        """Evict oldest-first until the new snapshot fits under the targets."""
        count_target, bytes_target = self._eviction_targets()
        evicted = []
        for snapshot_id in self._ids_oldest_first():
            if (len(self._snapshots) + 1 <= count_target
                    and self._total_bytes + size <= bytes_target):
                break
            self._drop(snapshot_id)
            evicted.append(snapshot_id)

        if evicted:
            logger.info(
                "Evicted %d snapshot(s) to admit %d bytes: %s",
                len(evicted), size, ", ".join(evicted),
            )
        return evicted

    def _ids_oldest_first(self) -> List[str]:
        ordered = sorted(
            self._snapshots.items(),
            key=lambda item: (item[1][1].created_at, item[1][0]),
        )
        return [snapshot_id for snapshot_id, _ in ordered]

    def _drop(self, snapshot_id: str) -> Snapshot:
        _, snapshot = self._snapshots.pop(snapshot_id)
        self._total_bytes -= snapshot.total_size
        return snapshot

    # ---- Lookup ------------------------------------------------------------

    def get(self, snapshot_id: str) -> Optional[Snapshot]:
        """Return a snapshot after verifying every entry checksum.

        Raises:
            ChecksumMismatchError: If held content no longer matches its checksum
        """
        with self._lock:
            item = self._snapshots.get(snapshot_id)
        if item is None:
            return None
        snapshot = item[1]
        snapshot.verify()
        return snapshot

    def __contains__(self, snapshot_id: object) -> bool:
        with self._lock:
            return snapshot_id in self._snapshots

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)

    def ids(self) -> List[str]:
        """All stored ids, oldest first."""
        with self._lock:
            return self._ids_oldest_first()

    def list(
        self,
        limit: Optional[int] = None,
        *,
        trigger: Union[SnapshotTrigger, str, None] = None,
        description: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        oldest_first: bool = False,
    ) -> List[SnapshotSummary]:
        """Summaries newest first, filtered, then truncated to ``limit``.

        Args:
            limit: Keep at most this many (after filtering)
            trigger: Only snapshots taken for this reason
            description: Case-insensitive substring of the description
            since: Created at or after (naive datetimes are UTC)
            until: Created at or before (naive datetimes are UTC)
            oldest_first: Reverse the order

        Raises:
            ValueError: Unknown trigger
        """
        if trigger is not None:
            trigger = SnapshotTrigger(trigger)
        needle = description.lower() if description else None
        since, until = _as_utc(since), _as_utc(until)

        def keep(snapshot: Snapshot) -> bool:
            if trigger is not None and snapshot.trigger != trigger:
                return False
            if needle is not None and needle not in snapshot.description.lower():
                return False
            if since is not None and snapshot.created_at < since:
                return False
            if until is not None and snapshot.created_at > until:
                return False
            return True

        with self._lock:
            ordered = sorted(
                self._snapshots.values(),
                key=lambda item: (item[1].created_at, item[0]),
                reverse=not oldest_first,
            )
            summaries = [snapshot.summary() for _, snapshot in ordered if keep(snapshot)]
        if limit is not None and limit > 0:
            summaries = summaries[:limit]
        return summaries

    # ---- Removal -----------------------------------------------------------

    def remove(self, snapshot_id: str) -> bool:
        """Delete a snapshot. Returns False if it was not stored."""
        with self._lock:
            if snapshot_id not in self._snapshots:
                logger.debug("Snapshot %s not found for removal", snapshot_id)
                return False
            snapshot = self._drop(snapshot_id)
            logger.debug(
                "Removed snapshot %s, freed %d bytes; %d snapshots remain",
                snapshot_id, snapshot.total_size, len(self._snapshots),
            )
            return True

    # ---- Stats -------------------------------------------------------------

    def stats(self) -> StorageStats:
        """Utilization computed from the live totals."""
        with self._lock:
            count, total = len(self._snapshots), self._total_bytes
        return StorageStats.compute(
            count=count,
            total_bytes=total,
            max_snapshots=self.max_snapshots,
            max_memory_mb=self.settings.max_memory_mb,
        )


def _check_bounds(settings: StorageSettings) -> None:
    """Re-check bounds for settings built without validation."""
    problems = []
    if settings.max_snapshots < 1:
        problems.append("storage.max_snapshots: must be at least 1")
    if settings.max_memory_mb < 1:
        problems.append("storage.max_memory_mb: must be at least 1")
    if not 0 < settings.cleanup_threshold <= 1:
        problems.append("storage.cleanup_threshold: must be in (0, 1]")
    if settings.cleanup_strategy != "oldest_first":
        problems.append(f"storage.cleanup_strategy: unsupported strategy {settings.cleanup_strategy!r}")
    if problems:
        raise ConfigurationError(problems)


def _as_utc(when: Optional[datetime]) -> Optional[datetime]:
    if when is not None and when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when
