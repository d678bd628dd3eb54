"""
Shared fixtures: an in-memory stand-in for GitRepository and throwaway real
git repositories.
"""

import shutil
import subprocess
import sys
from pathlib import Path
from typing import Dict, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "hooks"))

from guardrails_config import PolicyConfig  # noqa: E402

HAS_GIT = shutil.which("git") is not None
requires_git = pytest.mark.skipif(not HAS_GIT, reason="git not installed")


class FakeGitRepository:
    """Answers GitRepository queries from dictionaries."""

    def __init__(
        self,
        path: str,
        remotes: Optional[Dict[str, str]] = None,
        branch: Optional[str] = "main",
        config: Optional[Dict[str, str]] = None,
        is_repo: bool = True,
    ):
        self.path = path
        self._remotes = dict(remotes or {})
        self._branch = branch
        self._config = dict(config or {})
        self._is_repo = is_repo

    def is_repository(self):
        return self._is_repo

    def toplevel(self):
        return self.path if self._is_repo else None

    def remote_names(self):
        return list(self._remotes) if self._is_repo else []

    def has_remote(self, name):
        return name in self.remote_names()

    def push_url(self, remote):
        return self._remotes.get(remote) if self._is_repo else None

    def fetch_url(self, remote):
        return self.push_url(remote)

    def current_branch(self):
        return self._branch if self._is_repo else None

    def config(self, key):
        return self._config.get(key) if self._is_repo else None

    def remotes(self):
        return dict(self._remotes)


class FakeRepoFactory:
    """repo_factory for the guards: known paths map to FakeGitRepository."""

    def __init__(self, repos: Optional[Dict[str, FakeGitRepository]] = None):
        self.repos = dict(repos or {})
        self.requested = []

    def add(self, path: str, **kwargs) -> FakeGitRepository:
        repo = FakeGitRepository(path, **kwargs)
        self.repos[path] = repo
        return repo

    def __call__(self, path: str) -> FakeGitRepository:
        self.requested.append(path)
        return self.repos.get(path) or FakeGitRepository(path, is_repo=False)


def git(cwd, *args):
    subprocess.run(["git", "-C", str(cwd), *args], check=True, capture_output=True, text=True)


def make_git_repo(
    path: Path,
    remotes: Optional[Dict[str, str]] = None,
    branch: str = "main",
    config: Optional[Dict[str, str]] = None,
) -> Path:
    """Create a repository with the given remotes; nothing is ever fetched or pushed."""
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "-q")
    git(path, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
    for name, url in (remotes or {}).items():
        git(path, "remote", "add", name, url)
    for key, value in (config or {}).items():
        git(path, "config", key, value)
    return path


@pytest.fixture
def fake_repos():
    return FakeRepoFactory()


@pytest.fixture
def policy():
    return PolicyConfig(allowed_owners=("me",), source="test")


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point every state and config location into tmp_path."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_GUARDRAILS_CONFIG", str(home / ".git-guardrails" / "config.yaml"))
    for name in ("GIT_GUARDRAILS_ALLOWED_OWNERS", "GIT_GUARDRAILS_ALLOWED_REPOS", "GIT_GUARDRAILS_GITHUB_HOSTS"):
        monkeypatch.delenv(name, raising=False)

    import hook_io
    state_dir = home / ".git-guardrails"
    monkeypatch.setattr(hook_io, "STATE_DIR", state_dir)
    monkeypatch.setattr(hook_io, "LOG_FILE", state_dir / "audit.log")
    return home
