#!/usr/bin/env python3
"""
Rule Loader for git-guardrails.
Loads the gh write-classification tables from YAML with caching support.

Unlike advisory data, these tables decide what gets guarded: a missing or
malformed rules file raises RuleLoadError so the gh hook fails closed.
"""

import site
import sys
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

WRITE_RULES_FILE = "gh_write_rules.yaml"
# Install location of the rules relative to an installation prefix
INSTALLED_RULES_DIR = Path("share") / "git-guardrails" / "rules"


def rules_dir_candidates() -> List[Path]:
    """Checkout rules/ first, then the installed copies (system or --user prefix)."""
    candidates = [Path(__file__).parent.parent / "rules", Path(sys.prefix) / INSTALLED_RULES_DIR]
    user_base = site.getuserbase()
    if user_base:
        candidates.append(Path(user_base) / INSTALLED_RULES_DIR)
    return candidates


def default_rules_dir() -> Path:
    """The first candidate that holds the write rules; the checkout path otherwise."""
    candidates = rules_dir_candidates()
    for candidate in candidates:
        if (candidate / WRITE_RULES_FILE).exists():
            return candidate
    return candidates[0]


class RuleLoadError(Exception):
    """The rules file is missing, unreadable or incomplete."""


@dataclass(frozen=True)
class WriteRules:
    """gh write classification tables."""

    resources: FrozenSet[str]
    actions: FrozenSet[str]
    additional: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    account_scoped: FrozenSet[str] = frozenset()
    api_write_methods: FrozenSet[str] = frozenset()
    api_field_flags: FrozenSet[str] = frozenset()
    api_body_flags: FrozenSet[str] = frozenset()
    api_account_scoped_paths: FrozenSet[str] = frozenset()

    def is_write_action(self, resource: Optional[str], action: Optional[str]) -> bool:
        if not resource or not action:
            return False
        if resource in self.resources and action in self.actions:
            return True
        return action in self.additional.get(resource, frozenset())

    def is_account_scoped(self, resource: Optional[str]) -> bool:
        return resource in self.account_scoped

    @classmethod
    def from_dict(cls, data: dict) -> "WriteRules":
        """
        Build WriteRules from the parsed YAML document.

        Raises:
            RuleLoadError: when a required table is missing or empty.
        """
        if not isinstance(data, dict):
            raise RuleLoadError("rules document must be a mapping")
        commands = data.get("commands") or {}
        api = data.get("api") or {}

        resources = frozenset(commands.get("resources") or ())
        actions = frozenset(commands.get("actions") or ())
        methods = frozenset(m.upper() for m in api.get("write_methods") or ())
        if not resources or not actions or not methods:
            raise RuleLoadError("commands.resources, commands.actions and api.write_methods are required")

        additional = {
            resource: frozenset(extra or ())
            for resource, extra in (commands.get("additional") or {}).items()
        }
        return cls(
            resources=resources,
            actions=actions,
            additional=additional,
            account_scoped=frozenset(data.get("account_scoped") or ()),
            api_write_methods=methods,
            api_field_flags=frozenset(api.get("field_flags") or ()),
            api_body_flags=frozenset(api.get("body_flags") or ()),
            api_account_scoped_paths=frozenset(api.get("account_scoped_paths") or ()),
        )


class RuleLoader:
    """Loads and caches rule tables from YAML files."""

    def __init__(self, rules_dir: Optional[Path] = None):
        """
        Initialize rule loader.

        Args:
            rules_dir: Directory containing rule YAML files.
                       Defaults to default_rules_dir().
        """
        if rules_dir is None:
            rules_dir = default_rules_dir()

        self.rules_dir = Path(rules_dir)
        self._cache: Dict[str, dict] = {}

    def load_rules(self, filename: str) -> dict:
        """
        Load a rules document.

        Args:
            filename: Name of the YAML file (e.g., 'gh_write_rules.yaml')

        Returns:
            The parsed document.

        Raises:
            RuleLoadError: when the file is missing or is not valid YAML.
        """
        if filename in self._cache:
            return self._cache[filename]

        file_path = self.rules_dir / filename
        if not file_path.exists():
            raise RuleLoadError(f"rules file not found: {file_path}")

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RuleLoadError(f"invalid YAML in {file_path}: {e}") from e
        except (IOError, OSError) as e:
            raise RuleLoadError(f"could not read {file_path}: {e}") from e

        self._cache[filename] = data
        return data

    def load_write_rules(self) -> WriteRules:
        """Load the gh write classification tables."""
        return WriteRules.from_dict(self.load_rules(WRITE_RULES_FILE))

    def clear_cache(self):
        """Clear the rules cache. Useful for testing or live reloading."""
        self._cache.clear()


# Singleton instance for convenience
_default_loader: Optional[RuleLoader] = None


def get_loader() -> RuleLoader:
    """Get the default rule loader instance."""
    global _default_loader
    if _default_loader is None:
        _default_loader = RuleLoader()
    return _default_loader


def load_write_rules() -> WriteRules:
    """Load gh write rules through the default loader."""
    return get_loader().load_write_rules()
