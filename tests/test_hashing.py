"""Tests for hashing module."""

import pytest

from workspace_snapshots.errors import ChecksumMismatchError
from workspace_snapshots.hashing import compute_digest, compute_file_digest, verify_digest


class TestDigests:
    """Test content and file digests."""

    def test_file_and_content_digest_agree(self, tmp_path):
        """A file's digest equals the digest of its bytes."""
        data = b"line one\nline two\n" * 1000
        path = tmp_path / "data.txt"
        path.write_bytes(data)

        assert compute_file_digest(path) == compute_digest(data)

    def test_digest_format(self):
        digest = compute_digest(b"\x00\x01\x02")
        assert digest.startswith("sha256:")
        assert len(digest) == 71  # "sha256:" (7) + 64 hex chars

    def test_digest_detects_changes(self, tmp_path):
        """Single byte changes produce a different digest."""
        path = tmp_path / "test.py"
        path.write_text("def foo():\n    return 42")
        before = compute_file_digest(path)

        path.write_text("def foo():\n    return 43")

        assert compute_file_digest(path) != before

    def test_empty_content(self, tmp_path):
        path = tmp_path / "empty"
        path.write_bytes(b"")
        assert compute_file_digest(path) == compute_digest(b"")


class TestVerify:
    """Test digest verification."""

    def test_verify_passes(self):
        verify_digest("a.txt", b"hello", compute_digest(b"hello"))

    def test_verify_mismatch(self):
        expected = compute_digest(b"hello")
        with pytest.raises(ChecksumMismatchError) as exc_info:
            verify_digest("a.txt", b"hellO", expected)

        assert exc_info.value.path == "a.txt"
        assert exc_info.value.expected == expected
        assert exc_info.value.actual == compute_digest(b"hellO")
