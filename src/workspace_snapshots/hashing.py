"""Hashing utilities for snapshot checksums.

Checksums use the same "sha256:<hex>" format for in-memory content and for
files on disk, so a captured entry can be compared directly against the
destination file during restore.
"""

from pathlib import Path
import hashlib

from .errors import ChecksumMismatchError


CHUNK_SIZE = 8192


def compute_digest(data: bytes) -> str:
    """Compute SHA256 digest of in-memory content.

    Args:
        data: Raw bytes to hash

    Returns:
        SHA256 digest in format "sha256:xxxx"
    """
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def compute_file_digest(path: Path) -> str:
    """Compute SHA256 hash of file contents.

    Simple byte-for-byte hashing - any change invalidates the digest.

    Args:
        path: Path to file to hash

    Returns:
        SHA256 digest in format "sha256:xxxx"
    """
    sha256 = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            sha256.update(chunk)
    return f"sha256:{sha256.hexdigest()}"


def verify_digest(path: str, data: bytes, expected: str) -> None:
    """Raise ChecksumMismatchError if ``data`` does not hash to ``expected``."""
    actual = compute_digest(data)
    if actual != expected:
        raise ChecksumMismatchError(path, expected, actual)


__all__ = [
    "compute_digest",
    "compute_file_digest",
    "verify_digest",
]
