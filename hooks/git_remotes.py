#!/usr/bin/env python3
"""
Read-only git metadata queries for git-guardrails.

Every query shells out to `git -C <dir>` with a bounded timeout. Failures
(not a repository, unknown remote, git missing) come back as None; a timeout
raises GitTimeout so the caller can block instead of hanging or allowing.
Nothing is cached: remotes can change between invocations.
"""

import math
import os
import subprocess
import sys
from functools import lru_cache
from typing import Dict, List, Mapping, Optional

ENV_GIT_TIMEOUT = "GIT_GUARDRAILS_GIT_TIMEOUT"
# Seconds per git invocation
DEFAULT_GIT_TIMEOUT = 5.0


@lru_cache(maxsize=None)
def _parse_timeout(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        value = 0.0
    if not (math.isfinite(value) and value > 0):
        print(f"Warning: Ignoring {ENV_GIT_TIMEOUT}={raw!r}, using {DEFAULT_GIT_TIMEOUT:g}s", file=sys.stderr)
        return DEFAULT_GIT_TIMEOUT
    return value


def git_timeout(environ: Optional[Mapping[str, str]] = None) -> float:
    """Timeout from the environment; a malformed value warns and uses the default."""
    environ = os.environ if environ is None else environ
    raw = environ.get(ENV_GIT_TIMEOUT, "").strip()
    return _parse_timeout(raw) if raw else DEFAULT_GIT_TIMEOUT


class GitTimeout(Exception):
    """A git metadata query exceeded its timeout."""

    def __init__(self, args: List[str], timeout: float):
        self.git_args = args
        self.timeout = timeout
        super().__init__(f"'git {' '.join(args)}' timed out after {timeout:g}s")


class GitRepository:
    """Git metadata of one working directory."""

    def __init__(self, path: str, timeout: Optional[float] = None):
        self.path = path
        self.timeout = git_timeout() if timeout is None else timeout

    def _git(self, *args: str) -> Optional[str]:
        try:
            result = subprocess.run(
                ["git", "-C", self.path, *args],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise GitTimeout(list(args), self.timeout)
        except OSError:
            # git not installed or the directory vanished
            return None

        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def is_repository(self) -> bool:
        return self._git("rev-parse", "--git-dir") is not None

    def toplevel(self) -> Optional[str]:
        return self._git("rev-parse", "--show-toplevel") or None

    def remote_names(self) -> List[str]:
        output = self._git("remote")
        return output.split() if output else []

    def has_remote(self, name: str) -> bool:
        return name in self.remote_names()

    def push_url(self, remote: str) -> Optional[str]:
        return self._git("remote", "get-url", "--push", remote) or None

    def fetch_url(self, remote: str) -> Optional[str]:
        return self._git("remote", "get-url", remote) or None

    def current_branch(self) -> Optional[str]:
        """Short branch name, or None on a detached HEAD."""
        return self._git("symbolic-ref", "--quiet", "--short", "HEAD") or None

    def config(self, key: str) -> Optional[str]:
        return self._git("config", "--get", key) or None

    def remotes(self) -> Dict[str, str]:
        """The RemoteSet: remote name to push URL."""
        remote_set = {}
        for name in self.remote_names():
            url = self.push_url(name)
            if url:
                remote_set[name] = url
        return remote_set


__all__ = [
    'DEFAULT_GIT_TIMEOUT',
    'git_timeout',
    'GitTimeout',
    'GitRepository',
]
