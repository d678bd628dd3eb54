#!/usr/bin/env python3
"""
Repository references for git-guardrails.

Normalizes git remote URLs and gh -R/--repo values into owner/repo pairs.
Any host is accepted here; whether a host looks like GitHub is a separate
question answered by is_github_host().
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
# git@host:owner/repo(.git); user part optional, path must not start with //
_SCP_RE = re.compile(r"^(?:[^@/\s]+@)?([^:/\s]+):(?!//)(.+)$")
# Anything the shell would still expand cannot be resolved statically
_UNEXPANDED_RE = re.compile(r"[$`{}]")

GITHUB_HOSTS = frozenset({"github.com", "www.github.com", "ssh.github.com"})
GITHUB_LABELS = ("github", "ghe")


@dataclass(frozen=True)
class RepoRef:
    """Canonical owner/repo identifier. The host is informational only."""

    owner: str
    name: str
    host: Optional[str] = field(default=None, compare=False)

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def key(self) -> Tuple[str, str]:
        """Case-folded identity; GitHub treats owner and repo names case-insensitively."""
        return (self.owner.lower(), self.name.lower())

    def same_repo(self, other: Optional["RepoRef"]) -> bool:
        return other is not None and self.key == other.key

    def __str__(self) -> str:
        return self.slug


def _strip_git_suffix(name: str) -> str:
    return name[:-4] if name.endswith(".git") else name


def _ref_from_path(path: str, host: Optional[str]) -> Optional[RepoRef]:
    path = path.split("?", 1)[0].split("#", 1)[0]
    path = _strip_git_suffix(path.strip().strip("/"))
    segments = [s for s in path.split("/") if s]
    if len(segments) < 2:
        return None
    owner, name = segments[0], _strip_git_suffix(segments[1])
    if not owner or not name:
        return None
    return RepoRef(owner, name, host.lower() if host else None)


def normalize_url(url: Optional[str]) -> Optional[RepoRef]:
    """
    Normalize a git remote URL to a RepoRef.

    Accepts:
        https://host/owner/repo(.git)
        git@host:owner/repo(.git)
        ssh://[user@]host[:port]/owner/repo(.git)

    Args:
        url: Remote URL as printed by `git remote get-url`.

    Returns:
        RepoRef with the first two path segments as owner and name, or None
        when the URL is a local path or has fewer than two path segments.
    """
    if not url:
        return None
    url = url.strip()

    if _SCHEME_RE.match(url):
        scheme, rest = url.split("://", 1)
        if scheme.lower() == "file":
            return None
        authority, _, path = rest.partition("/")
        if "@" in authority:
            authority = authority.rsplit("@", 1)[1]
        host = authority.split(":", 1)[0]
        if not host:
            return None
        return _ref_from_path(path, host)

    match = _SCP_RE.match(url)
    if not match:
        # Local filesystem remote (/srv/git/repo.git, ../repo) has no owner to check
        return None
    host, path = match.group(1), match.group(2)
    return _ref_from_path(path, host)


def looks_like_url(value: str) -> bool:
    """True for values git would treat as a URL rather than a remote name."""
    if _SCHEME_RE.match(value):
        return True
    return "@" in value and bool(_SCP_RE.match(value))


def parse_repo_ref(value: Optional[str]) -> Optional[RepoRef]:
    """
    Parse a gh repository argument.

    gh accepts OWNER/REPO, HOST/OWNER/REPO and full URLs. Values that still
    contain shell expansions or {owner}-style placeholders return None.
    """
    if not value:
        return None
    value = value.strip().strip("'\"")
    if not value or _UNEXPANDED_RE.search(value):
        return None
    if looks_like_url(value):
        return normalize_url(value)

    segments = _strip_git_suffix(value.strip("/")).split("/")
    if any(not s for s in segments):
        return None
    if len(segments) == 2:
        return RepoRef(segments[0], segments[1])
    if len(segments) == 3:
        return RepoRef(segments[1], segments[2], segments[0].lower())
    return None


def is_github_host(host: Optional[str], extra_hosts: Iterable[str] = ()) -> bool:
    """
    Decide whether a remote host is GitHub-shaped.

    github.com, any *.github.com host, hosts with a `github` or `ghe` label
    (github.example.com, ghe.corp.net, SSH aliases like github.com-work) and
    configured enterprise hosts qualify. A missing host means gh's default,
    which is github.com.
    """
    if host is None:
        return True
    host = host.lower()
    if host in GITHUB_HOSTS or host.endswith(".github.com"):
        return True
    if host in {h.lower() for h in extra_hosts}:
        return True
    labels = re.split(r"[.\-]", host)
    return any(label in GITHUB_LABELS for label in labels)


__all__ = [
    'RepoRef',
    'normalize_url',
    'parse_repo_ref',
    'looks_like_url',
    'is_github_host',
]
