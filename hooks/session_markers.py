#!/usr/bin/env python3
"""
Marker files for the advisory hooks.

Markers are tiny files in the system temp dir, keyed by a hash of the repo
root (plus the session, where a hook nags once per session). They are
throwaway state: anything unreadable is treated as absent.
"""

import hashlib
import os
import sys
import tempfile
from pathlib import Path
from typing import Optional


def repo_hash(root: str, *extra: str) -> str:
    """Stable key for a repository root and optional session parts."""
    key = "\n".join((root,) + tuple(e for e in extra if e))
    return hashlib.md5(key.encode("utf-8")).hexdigest()


class MarkerStore:
    """Read and write `<prefix>-<hash>` markers."""

    def __init__(self, prefix: str, marker_dir: Optional[Path] = None):
        """
        Args:
            prefix: Marker file name prefix, e.g. '.claude-last-edit'.
            marker_dir: Directory holding markers (defaults to the temp dir).
        """
        self.prefix = prefix
        self.marker_dir = Path(marker_dir) if marker_dir else Path(tempfile.gettempdir())

    def path(self, key: str) -> Path:
        return self.marker_dir / f"{self.prefix}-{key}"

    def exists(self, key: str) -> bool:
        return self.path(key).exists()

    def touch(self, key: str):
        try:
            self.path(key).touch()
        except OSError as e:
            print(f"Warning: Could not write marker: {e}", file=sys.stderr)

    def read_epoch(self, key: str) -> Optional[int]:
        """The epoch stored in a marker, or None when missing or corrupt."""
        try:
            content = self.path(key).read_text().strip()
        except (IOError, OSError):
            return None
        return int(content) if content.isdigit() else None

    def write_epoch(self, key: str, epoch: int):
        try:
            self.marker_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                dir=str(self.marker_dir),
                prefix=f"{self.prefix}-",
                suffix=".tmp",
                delete=False,
            ) as f:
                f.write(f"{epoch}\n")
                temp_name = f.name
            os.replace(temp_name, self.path(key))
        except OSError as e:
            print(f"Warning: Could not write marker: {e}", file=sys.stderr)


def session_key(context: dict) -> str:
    """Session identity from the hook payload, else the parent process."""
    return str(context.get("session_id") or os.getppid())

