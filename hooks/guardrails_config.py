#!/usr/bin/env python3
"""
Ownership policy configuration for git-guardrails.

The policy is read once per hook process and passed explicitly into every
evaluation. Environment variables win over the YAML settings file, key by key:

  GIT_GUARDRAILS_ALLOWED_OWNERS  GitHub users/orgs you own (required for writes)
  GIT_GUARDRAILS_ALLOWED_REPOS   explicit owner/repo overrides
  GIT_GUARDRAILS_GITHUB_HOSTS    extra GitHub Enterprise hostnames
  GIT_GUARDRAILS_CONFIG          settings file (default ~/.git-guardrails/config.yaml)

Lists may be separated by whitespace or commas.
"""

import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

STATE_DIR = Path.home() / ".git-guardrails"
CONFIG_FILE = STATE_DIR / "config.yaml"

ENV_OWNERS = "GIT_GUARDRAILS_ALLOWED_OWNERS"
ENV_REPOS = "GIT_GUARDRAILS_ALLOWED_REPOS"
ENV_HOSTS = "GIT_GUARDRAILS_GITHUB_HOSTS"
ENV_CONFIG = "GIT_GUARDRAILS_CONFIG"

# settings-file key -> environment variable
_KEYS = {
    "allowed_owners": ENV_OWNERS,
    "allowed_repos": ENV_REPOS,
    "github_hosts": ENV_HOSTS,
}


@dataclass(frozen=True)
class PolicyConfig:
    """Immutable ownership policy."""

    allowed_owners: Tuple[str, ...] = ()
    allowed_repos: Tuple[str, ...] = ()
    github_hosts: Tuple[str, ...] = ()
    source: str = "none"

    @property
    def is_configured(self) -> bool:
        return bool(self.allowed_owners)

    @property
    def default_owner(self) -> Optional[str]:
        return self.allowed_owners[0] if self.allowed_owners else None

    def describe(self) -> str:
        return f"owners=[{' '.join(self.allowed_owners)}] repos=[{' '.join(self.allowed_repos)}]"


def split_list(value: Any) -> Tuple[str, ...]:
    """Normalize a whitespace/comma string or a YAML list into a de-duplicated tuple."""
    if value is None:
        return ()
    if isinstance(value, str):
        items = re.split(r"[\s,]+", value)
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value if v is not None]
    else:
        raise ValueError(f"expected a list or string, got {type(value).__name__}")

    seen = []
    for item in items:
        item = item.strip()
        if item and item not in seen:
            seen.append(item)
    return tuple(seen)


def config_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    environ = os.environ if environ is None else environ
    override = environ.get(ENV_CONFIG)
    return Path(override).expanduser() if override else CONFIG_FILE


def load_config_file(path: Path) -> Dict[str, Any]:
    """
    Load the YAML settings file.

    Args:
        path: Settings file location.

    Returns:
        The parsed mapping; empty when the file is missing. A malformed or
        unreadable file prints a warning and also yields an empty mapping,
        which leaves writes unconfigured (fail-closed).
    """
    if not path.exists():
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        print(f"Warning: Invalid YAML in {path}: {e}", file=sys.stderr)
        return {}
    except (IOError, OSError) as e:
        print(f"Warning: Could not read {path}: {e}", file=sys.stderr)
        return {}

    if data is None:
        return {}
    if not isinstance(data, dict):
        print(f"Warning: {path} must contain a mapping, ignoring it", file=sys.stderr)
        return {}
    return data


def load_policy(
    environ: Optional[Mapping[str, str]] = None,
    path: Optional[Path] = None,
) -> PolicyConfig:
    """
    Build the PolicyConfig from the environment and the settings file.

    Args:
        environ: Environment mapping (defaults to os.environ).
        path: Settings file (defaults to config_path(environ)).

    Returns:
        PolicyConfig. `source` records which inputs contributed values.
    """
    environ = os.environ if environ is None else environ
    path = config_path(environ) if path is None else path
    file_data = load_config_file(path)

    values: Dict[str, Tuple[str, ...]] = {}
    sources = []
    for key, env_name in _KEYS.items():
        env_value = environ.get(env_name, "").strip()
        if env_value:
            values[key] = split_list(env_value)
            if "environment" not in sources:
                sources.append("environment")
            continue
        if key in file_data:
            try:
                values[key] = split_list(file_data[key])
            except ValueError as e:
                print(f"Warning: Ignoring '{key}' in {path}: {e}", file=sys.stderr)
                continue
            if values[key] and str(path) not in sources:
                sources.append(str(path))

    return PolicyConfig(
        allowed_owners=values.get("allowed_owners", ()),
        allowed_repos=values.get("allowed_repos", ()),
        github_hosts=values.get("github_hosts", ()),
        source=", ".join(sources) if sources else "none",
    )


__all__ = [
    'PolicyConfig',
    'STATE_DIR',
    'CONFIG_FILE',
    'split_list',
    'config_path',
    'load_config_file',
    'load_policy',
]
