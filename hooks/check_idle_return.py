#!/usr/bin/env python3
"""
git-guardrails PreToolUse Hook (Edit|Write): return-from-idle nudge

Records the time of every edit per repository. When an edit follows a gap
of 5 minutes or more, nudges to commit and save learnings first. Gaps of 8
hours or more count as a new working session and are not nudged.

Advisory only: always exits 0.
"""

import os
import sys
import time
from typing import Optional

from git_remotes import GitRepository, GitTimeout
from hook_io import HookInputError, read_hook_input
from session_markers import MarkerStore, repo_hash

MARKER_PREFIX = ".claude-last-edit"
IDLE_MIN_SECONDS = 300
IDLE_MAX_SECONDS = 28800


def idle_nudge(gap: int) -> Optional[str]:
    """Message for a gap in seconds, or None outside [5m, 8h)."""
    if IDLE_MIN_SECONDS <= gap < IDLE_MAX_SECONDS:
        mins = gap // 60
        return (
            f"It's been {mins}m since your last edit. Before continuing: check for "
            f"uncommitted changes worth committing, and consider saving any learnings to auto memory."
        )
    return None


def check_idle_return(
    directory: str,
    now: Optional[int] = None,
    store: Optional[MarkerStore] = None,
    repo_factory=GitRepository,
) -> Optional[str]:
    """
    Compare against the last edit, then record this one.

    Args:
        directory: Where the edit happens.
        now: Current epoch seconds (defaults to time.time()).
        store: Marker storage (defaults to the temp dir).

    Returns:
        The nudge, or None.
    """
    store = store or MarkerStore(MARKER_PREFIX)
    now = int(time.time()) if now is None else now

    root = repo_factory(directory).toplevel()
    if not root:
        return None

    key = repo_hash(root)
    last = store.read_epoch(key)
    message = idle_nudge(now - last) if last is not None else None
    store.write_epoch(key, now)
    return message


def main():
    try:
        context = read_hook_input()
    except HookInputError:
        context = {}

    try:
        message = check_idle_return(context.get("cwd") or os.getcwd())
    except GitTimeout:
        message = None

    if message:
        print(message)
    sys.exit(0)


if __name__ == "__main__":
    main()
