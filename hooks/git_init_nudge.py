#!/usr/bin/env python3
"""
git-guardrails PostToolUse Hook (Bash): new repository nudge

After `git init`, reminds to scaffold the project and to point origin at a
repository the user owns, so later pushes pass the push guard.
Advisory only: always exits 0.
"""

import re
import sys

from hook_io import HookInputError, bash_command, read_hook_input
from shell_scan import strip_quoted

_GIT_INIT_RE = re.compile(r"\bgit(?:\s+-[Cc]\s+\S+)*\s+init\b")

NUDGE = (
    "New repo detected. Scaffold project standards (.gitignore, README, CONTRIBUTING, "
    "CHANGELOG, LICENSE, Makefile, linting, CI/CD), then add an origin remote you own "
    "before the first push."
)


def is_git_init(command: str) -> bool:
    return bool(command) and bool(_GIT_INIT_RE.search(strip_quoted(command)))


def main():
    try:
        context = read_hook_input()
    except HookInputError:
        sys.exit(0)

    command, _cwd = bash_command(context)
    if command and is_git_init(command):
        print(NUDGE)
    sys.exit(0)


if __name__ == "__main__":
    main()
