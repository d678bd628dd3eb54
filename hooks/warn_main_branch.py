#!/usr/bin/env python3
"""
git-guardrails PreToolUse Hook (Edit|Write): main-branch advisory

Warns once per session and repository when files are edited directly on
main or master. Advisory only: always exits 0.
"""

import os
import sys
from typing import Optional

from git_remotes import GitRepository, GitTimeout
from hook_io import HookInputError, read_hook_input
from session_markers import MarkerStore, repo_hash, session_key

MARKER_PREFIX = ".claude-main-branch-warned"
PROTECTED_BRANCHES = ("main", "master")


def edit_dir(context: dict) -> str:
    """Directory of the edited file when given, else the session cwd."""
    cwd = context.get("cwd") or os.getcwd()
    tool_input = context.get("tool_input") or {}
    file_path = tool_input.get("file_path") if isinstance(tool_input, dict) else None
    if file_path:
        directory = os.path.dirname(os.path.join(cwd, file_path))
        if os.path.isdir(directory):
            return directory
    return cwd


def main_branch_warning(
    directory: str,
    session: str,
    store: Optional[MarkerStore] = None,
    repo_factory=GitRepository,
) -> Optional[str]:
    """
    Build the advisory for an edit in `directory`.

    Returns:
        The message the first time per session, None otherwise.
    """
    store = store or MarkerStore(MARKER_PREFIX)
    repo = repo_factory(directory)
    branch = repo.current_branch()
    if branch not in PROTECTED_BRANCHES:
        return None
    root = repo.toplevel()
    if not root:
        return None

    key = repo_hash(root, session)
    if store.exists(key):
        return None
    store.touch(key)
    return f"You're editing files directly on '{branch}'. Ask the user: should this work be on a feature branch instead?"


def main():
    try:
        context = read_hook_input()
    except HookInputError:
        context = {}

    try:
        message = main_branch_warning(edit_dir(context), session_key(context))
    except GitTimeout:
        message = None

    if message:
        print(message)
    sys.exit(0)


if __name__ == "__main__":
    main()
