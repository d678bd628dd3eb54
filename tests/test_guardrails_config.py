#!/usr/bin/env python3
"""
Tests for PolicyConfig loading: environment, settings file, precedence.
"""

import sys
from pathlib import Path

import pytest

# Add hooks directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "hooks"))

from guardrails_config import (
    CONFIG_FILE,
    PolicyConfig,
    config_path,
    load_config_file,
    load_policy,
    split_list,
)


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "config.yaml"


class TestSplitList:
    def test_whitespace_and_commas(self):
        assert split_list("alice  acme,beta\tgamma") == ("alice", "acme", "beta", "gamma")

    def test_yaml_list(self):
        assert split_list(["alice", "acme", None]) == ("alice", "acme")

    def test_deduplicates_in_order(self):
        assert split_list("b a b") == ("b", "a")

    def test_none_and_empty(self):
        assert split_list(None) == ()
        assert split_list("   ") == ()

    def test_rejects_mappings(self):
        with pytest.raises(ValueError):
            split_list({"a": 1})


class TestPolicyConfig:
    def test_unconfigured_by_default(self):
        policy = PolicyConfig()
        assert not policy.is_configured
        assert policy.default_owner is None

    def test_default_owner_is_first(self):
        assert PolicyConfig(allowed_owners=("me", "org")).default_owner == "me"

    def test_describe(self):
        policy = PolicyConfig(allowed_owners=("me", "org"), allowed_repos=("x/y",))
        assert policy.describe() == "owners=[me org] repos=[x/y]"

    def test_immutable(self):
        policy = PolicyConfig(allowed_owners=("me",))
        with pytest.raises(AttributeError):
            policy.allowed_owners = ("other",)


class TestLoadPolicy:
    def test_environment_only(self, config_file):
        policy = load_policy(
            {"GIT_GUARDRAILS_ALLOWED_OWNERS": "me acme", "GIT_GUARDRAILS_ALLOWED_REPOS": "up/stream"},
            path=config_file,
        )
        assert policy.allowed_owners == ("me", "acme")
        assert policy.allowed_repos == ("up/stream",)
        assert policy.source == "environment"

    def test_file_only(self, config_file):
        config_file.write_text("allowed_owners: [me]\nallowed_repos:\n  - up/stream\ngithub_hosts: ghe.corp\n")
        policy = load_policy({}, path=config_file)
        assert policy.allowed_owners == ("me",)
        assert policy.allowed_repos == ("up/stream",)
        assert policy.github_hosts == ("ghe.corp",)
        assert policy.source == str(config_file)

    def test_environment_overrides_file_per_key(self, config_file):
        config_file.write_text("allowed_owners: [file-owner]\nallowed_repos: [file/repo]\n")
        policy = load_policy({"GIT_GUARDRAILS_ALLOWED_OWNERS": "env-owner"}, path=config_file)
        assert policy.allowed_owners == ("env-owner",)
        assert policy.allowed_repos == ("file/repo",)
        assert policy.source == f"environment, {config_file}"

    def test_blank_environment_value_falls_through(self, config_file):
        config_file.write_text("allowed_owners: [me]\n")
        policy = load_policy({"GIT_GUARDRAILS_ALLOWED_OWNERS": "  "}, path=config_file)
        assert policy.allowed_owners == ("me",)

    def test_nothing_configured(self, config_file):
        policy = load_policy({}, path=config_file)
        assert not policy.is_configured
        assert policy.source == "none"

    def test_invalid_yaml_fails_closed(self, config_file, capsys):
        config_file.write_text("allowed_owners: [me\n")
        policy = load_policy({}, path=config_file)
        assert not policy.is_configured
        assert "Warning: Invalid YAML" in capsys.readouterr().err

    def test_non_mapping_ignored(self, config_file, capsys):
        config_file.write_text("- me\n- acme\n")
        assert load_config_file(config_file) == {}
        assert "must contain a mapping" in capsys.readouterr().err

    def test_bad_value_type_ignored(self, config_file, capsys):
        config_file.write_text("allowed_owners:\n  nested: true\n")
        policy = load_policy({}, path=config_file)
        assert not policy.is_configured
        assert "Ignoring 'allowed_owners'" in capsys.readouterr().err

    def test_empty_file(self, config_file):
        config_file.write_text("")
        assert load_config_file(config_file) == {}


class TestConfigPath:
    def test_default(self):
        assert config_path({}) == CONFIG_FILE

    def test_override(self, tmp_path):
        target = tmp_path / "custom.yaml"
        assert config_path({"GIT_GUARDRAILS_CONFIG": str(target)}) == target

    def test_load_policy_uses_override(self, tmp_path):
        target = tmp_path / "custom.yaml"
        target.write_text("allowed_owners: me\n")
        policy = load_policy({"GIT_GUARDRAILS_CONFIG": str(target)})
        assert policy.allowed_owners == ("me",)
