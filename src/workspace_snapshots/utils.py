"""Utility functions for workspace-snapshots."""

from datetime import datetime, timezone
from pathlib import PurePosixPath
import os
import secrets
import time


def generate_snapshot_id() -> str:
    """Generate a time-sortable snapshot id.

    12 hex chars of epoch milliseconds followed by 12 random hex chars, so
    ids sort lexicographically in creation order.
    """
    millis = time.time_ns() // 1_000_000
    return f"{millis:012x}{secrets.token_hex(6)}"


def normalize_relpath(path: str) -> str:
    """Normalize a workspace-relative path to POSIX form.

    Native separators (``os.sep``/``os.altsep``) become forward slashes and
    "." segments are dropped. On POSIX a backslash is an ordinary filename
    character and is kept.

    Raises:
        ValueError: If the path is absolute, empty, or contains ".."
    """
    raw = str(path)
    for sep in (os.sep, os.altsep):
        if sep and sep != "/":
            raw = raw.replace(sep, "/")
    if raw.startswith("/"):
        raise ValueError(f"Path must be workspace-relative: {path}")
    parts = [p for p in PurePosixPath(raw).parts if p not in ("", ".")]
    if not parts:
        raise ValueError(f"Empty path: {path!r}")
    if ".." in parts:
        raise ValueError(f"Path escapes workspace: {path}")
    return "/".join(parts)


def file_extension(path: str) -> str:
    """Lower-cased extension including the dot, or "" if none."""
    name = path.rsplit("/", 1)[-1]
    dot = name.rfind(".")
    if dot <= 0 or dot == len(name) - 1:
        return ""
    return name[dot:].lower()


def humanize_size(size: float) -> str:
    """Convert bytes to human-readable format."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def humanize_date(when: datetime) -> str:
    """Convert a timestamp to human-readable relative time.

    Examples:
        30 seconds ago -> "just now"
        2 hours ago    -> "2 hours ago"
    """
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    seconds = (datetime.now(timezone.utc) - when).total_seconds()

    if seconds < 60:
        return "just now"
    elif seconds < 3600:  # Less than 1 hour
        minutes = int(seconds / 60)
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    elif seconds < 86400:  # Less than 1 day
        hours = int(seconds / 3600)
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    else:
        days = int(seconds / 86400)
        return f"{days} day{'s' if days != 1 else ''} ago"
