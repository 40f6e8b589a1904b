"""Filesystem access for the snapshot engine.

All reads and writes against the workspace go through ``Workspace`` so the
engine depends on a small surface: walk, stat, read, write, chmod, unlink.
Tests substitute subclasses that fail on chosen paths.
"""

import contextlib
import logging
import os
import secrets
import stat
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from .errors import FileSystemError
from .hashing import compute_file_digest
from .utils import normalize_relpath


logger = logging.getLogger(__name__)


def _fsync_dir(path: Path) -> None:
    """Fsync a directory so a rename inside it is durable.

    Best-effort: Windows and some filesystems don't support directory fsync.
    """
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY
        fd = os.open(str(path), flags)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        logger.debug("Directory fsync not supported for %s", path)


class Workspace:
    """A directory tree the engine captures from and restores into.

    Paths handed in and out are workspace-relative POSIX strings.
    ``OSError`` from the underlying calls propagates unchanged; callers
    decide whether a failure is per-file or fatal.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.root)!r})"

    def resolve(self, relpath: str) -> Path:
        """Map a workspace-relative path to an absolute path under root.

        The path must stay under root after symlinks are resolved, so a
        directory swapped for a link to somewhere else is refused. The
        returned path itself is not resolved; a link at the final component
        is replaced on write rather than written through.

        Raises:
            FileSystemError: If the path is absolute or escapes the workspace
        """
        try:
            rel = normalize_relpath(relpath)
        except ValueError as e:
            raise FileSystemError(str(relpath), str(e)) from e

        target = self.root / rel
        try:
            target.resolve().relative_to(self.root)
        except ValueError:
            raise FileSystemError(rel, "Path escapes workspace through a symlink")
        return target

    # ---- Reading -----------------------------------------------------------

    def walk(self, should_traverse: Optional[Callable[[str], bool]] = None) -> Iterator[str]:
        """Yield regular files depth-first in sorted name order.

        Symlinks are neither followed nor yielded. Subdirectories are entered
        only when ``should_traverse(reldir)`` is true. Directories that cannot
        be listed are logged and skipped.

        Args:
            should_traverse: Predicate on workspace-relative directory paths
        """
        yield from self._walk_dir(self.root, "", should_traverse)

    def _walk_dir(
        self, directory: Path, prefix: str, should_traverse: Optional[Callable[[str], bool]]
    ) -> Iterator[str]:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning("Cannot list %s: %s", directory, e)
            return

        for entry in entries:
            rel = f"{prefix}{entry.name}"
            try:
                if entry.is_symlink():
                    logger.debug("Skipping symlink %s", rel)
                    continue
                if entry.is_dir(follow_symlinks=False):
                    if should_traverse is None or should_traverse(rel):
                        yield from self._walk_dir(Path(entry.path), rel + "/", should_traverse)
                    continue
                if entry.is_file(follow_symlinks=False):
                    yield rel
            except OSError as e:
                logger.warning("Cannot inspect %s: %s", rel, e)

    def exists(self, relpath: str) -> bool:
        return self.resolve(relpath).is_file()

    def stat(self, relpath: str) -> os.stat_result:
        return os.stat(self.resolve(relpath), follow_symlinks=False)

    def mode(self, relpath: str) -> int:
        """POSIX permission bits of a file."""
        return stat.S_IMODE(self.stat(relpath).st_mode)

    def read_bytes(self, relpath: str) -> bytes:
        return self.resolve(relpath).read_bytes()

    def digest(self, relpath: str) -> str:
        return compute_file_digest(self.resolve(relpath))

    def missing_dirs(self, relpath: str) -> List[str]:
        """Parent directories of ``relpath`` that do not exist yet, outermost first."""
        parts = normalize_relpath(relpath).split("/")[:-1]
        missing = []
        for i in range(1, len(parts) + 1):
            reldir = "/".join(parts[:i])
            if missing or not self.resolve(reldir).is_dir():
                missing.append(reldir)
        return missing

    # ---- Writing -----------------------------------------------------------

    def write_bytes(self, relpath: str, data: bytes) -> None:
        """Atomically replace a file's content.

        1. Write to a temp file in the destination directory and fsync it
        2. Atomic rename onto the target
        3. Fsync the directory (best-effort)

        A failed write leaves the previous file content in place. New files
        get 0o666 filtered by the process umask, as ``open()`` would create
        them; existing files keep their mode.
        """
        path = self.resolve(relpath)
        path.parent.mkdir(parents=True, exist_ok=True)

        tmp = path.parent / f".{path.name}.tmp-{secrets.token_hex(4)}"
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o666)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            if path.exists():
                os.chmod(tmp, stat.S_IMODE(os.stat(path).st_mode))
            os.replace(tmp, path)
        except BaseException:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise

        _fsync_dir(path.parent)

    def chmod(self, relpath: str, mode: int) -> None:
        os.chmod(self.resolve(relpath), mode)

    def unlink(self, relpath: str) -> None:
        self.resolve(relpath).unlink()

    def rmdir(self, reldir: str) -> None:
        """Remove an empty directory; OSError if it is not empty."""
        self.resolve(reldir).rmdir()
