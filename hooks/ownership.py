#!/usr/bin/env python3
"""
Ownership policy: may the agent write to this repository?

Order of checks:
  1. explicit owner/repo overrides (allowed_repos)
  2. owner allow-list (allowed_owners)
  3. fork-parent exception: the target is the `upstream` remote's repo and
     was named explicitly with -R/--repo
Owner and repo names compare case-insensitively, as GitHub does.
"""

from typing import Optional

from guardrails_config import PolicyConfig
from repo_ref import RepoRef, parse_repo_ref


def repo_override_matches(ref: RepoRef, policy: PolicyConfig) -> bool:
    for entry in policy.allowed_repos:
        if ref.same_repo(parse_repo_ref(entry)):
            return True
    return False


def owner_matches(ref: RepoRef, policy: PolicyConfig) -> bool:
    owner = ref.owner.lower()
    return any(owner == allowed.lower() for allowed in policy.allowed_owners)


def is_allowed(
    ref: Optional[RepoRef],
    policy: PolicyConfig,
    fork_parent: Optional[RepoRef] = None,
) -> bool:
    """
    Check a resolved target against the policy.

    Args:
        ref: Resolved target repository.
        policy: Ownership policy.
        fork_parent: The upstream remote's repo when the target was chosen
            explicitly; None otherwise.

    Returns:
        True when any rule admits the target.
    """
    if ref is None:
        return False
    if repo_override_matches(ref, policy):
        return True
    if owner_matches(ref, policy):
        return True
    if fork_parent is not None and ref.same_repo(fork_parent):
        return True
    return False
