"""Shared test fixtures and utilities."""

import errno
import os
import threading
from pathlib import Path
from typing import Iterable, Optional

import pytest

from workspace_snapshots.config import SnapshotSettings
from workspace_snapshots.errors import FileSystemError
from workspace_snapshots.manager import SnapshotManager
from workspace_snapshots.workspace import Workspace


class FailingWorkspace(Workspace):
    """Workspace that fails chosen writes or reads.

    ``fail_on_write`` is a 1-based write counter; ``fail_paths`` fail on every
    write; ``unreadable`` fail on every read; ``refused`` fail path checks.
    """

    def __init__(
        self,
        root,
        fail_on_write: Optional[int] = None,
        fail_paths: Iterable[str] = (),
        unreadable: Iterable[str] = (),
        refused: Iterable[str] = (),
        cancel_after_write: Optional[threading.Event] = None,
    ):
        super().__init__(root)
        self.fail_on_write = fail_on_write
        self.fail_paths = set(fail_paths)
        self.unreadable = set(unreadable)
        self.refused = set(refused)
        self.cancel_after_write = cancel_after_write
        self.writes = 0

    def write_bytes(self, relpath: str, data: bytes) -> None:
        self.writes += 1
        if relpath in self.fail_paths or self.writes == self.fail_on_write:
            raise OSError(errno.EIO, "simulated write failure", relpath)
        super().write_bytes(relpath, data)
        if self.cancel_after_write is not None:
            self.cancel_after_write.set()

    def read_bytes(self, relpath: str) -> bytes:
        if relpath in self.unreadable:
            raise PermissionError(errno.EACCES, "Permission denied", relpath)
        return super().read_bytes(relpath)

    def resolve(self, relpath: str) -> Path:
        if relpath in self.refused:
            raise FileSystemError(relpath, "Path escapes workspace")
        return super().resolve(relpath)


@pytest.fixture
def workspace_dir(tmp_path):
    """Empty workspace directory."""
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def write_file(workspace_dir):
    """Factory fixture to write files relative to the workspace."""
    def _write(path: str, content="test content", mode: Optional[int] = None) -> Path:
        file_path = workspace_dir / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            file_path.write_bytes(content)
        else:
            file_path.write_text(content)
        if mode is not None:
            os.chmod(file_path, mode)
        return file_path
    return _write


@pytest.fixture
def test_files(write_file):
    """Create a small project in the workspace."""
    def make_files():
        return {
            "README.md": write_file("README.md", "# project\n"),
            "src/main.py": write_file("src/main.py", "print('hello')\n", mode=0o755),
            "src/util.py": write_file("src/util.py", "def f():\n    return 1\n", mode=0o640),
            "data/data.csv": write_file("data/data.csv", "a,b,c\n1,2,3\n"),
        }
    return make_files


@pytest.fixture
def make_settings():
    """Build validated settings from section mappings."""
    def _make(**sections) -> SnapshotSettings:
        return SnapshotSettings.from_mapping(sections)
    return _make


@pytest.fixture
def manager(workspace_dir):
    """Manager with default settings over the workspace."""
    return SnapshotManager(root=workspace_dir)


@pytest.fixture
def failing_workspace(workspace_dir):
    """Factory for FailingWorkspace over the workspace directory."""
    def _make(**kwargs) -> FailingWorkspace:
        return FailingWorkspace(workspace_dir, **kwargs)
    return _make
