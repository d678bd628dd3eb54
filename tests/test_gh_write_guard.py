#!/usr/bin/env python3
"""
Tests for the gh write guard.
"""

import sys
from pathlib import Path

import pytest

# Add hooks directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "hooks"))

from conftest import make_git_repo, requires_git
from gh_write_guard import WriteGuard, api_repo, parse_api_args, positionals, repo_flag
from guard_core import OperationKind, Outcome
from guardrails_config import PolicyConfig
from repo_ref import RepoRef
from rule_loader import RuleLoader

OWN = "/work/own"
FORK = "/work/fork"

RULES = RuleLoader().load_write_rules()


@pytest.fixture
def guard(fake_repos):
    fake_repos.add(OWN, remotes={"origin": "git@github.com:me/app.git"})
    fake_repos.add(FORK, remotes={
        "origin": "git@github.com:me/fork.git",
        "upstream": "https://github.com/other/project.git",
    })
    return WriteGuard(rules=RULES, repo_factory=fake_repos)


def evaluate(guard, command, cwd=OWN, policy=None):
    return guard.evaluate(command, cwd, policy or PolicyConfig(allowed_owners=("me",)))


class TestForkWithoutRepoFlag:
    @pytest.mark.parametrize("command", [
        'gh pr create --title "test" --body "test"',
        'gh issue create --title "test"',
        "gh release create v1.0.0",
        "gh pr close 42",
        'gh issue comment 42 -b "test"',
        "gh pr merge 5 --squash",
        "gh pr review 5 --approve",
        "gh workflow run deploy.yml",
        "gh label create bug --color FF0000",
    ])
    def test_ambiguous(self, guard, command):
        decision = evaluate(guard, command, cwd=FORK)
        assert not decision.allowed
        assert decision.outcome is Outcome.FORK_AMBIGUOUS

    def test_message_names_both_sides(self, guard):
        reason = evaluate(guard, "gh pr create", cwd=FORK).reason
        assert "Write operation in a fork" in reason
        assert "Fork:     me/fork" in reason
        assert "Upstream: other/project" in reason
        assert "Use -R me/fork" in reason
        assert "Use -R other/project" in reason


class TestRepoFlag:
    @pytest.mark.parametrize("command", [
        'gh pr create -R me/fork --title "test"',
        'gh issue create -R me/fork --title "test"',
        'gh pr create --repo me/fork --title "test"',
        'gh pr create --repo=me/fork --title "test"',
        'gh pr create -Rme/fork --title "test"',
        "gh pr create -R github.com/me/fork",
        "gh pr create -R https://github.com/me/fork",
    ])
    def test_own_fork_allowed(self, guard, command):
        decision = evaluate(guard, command, cwd=FORK)
        assert decision.outcome is Outcome.ALLOWED
        assert decision.target == RepoRef("me", "fork")

    @pytest.mark.parametrize("command", [
        'gh issue comment 42 -R other/project -b "test"',
        'gh pr create -R other/project --title "test"',
        'gh pr create -R Other/Project --title "test"',
    ])
    def test_fork_parent_allowed(self, guard, command):
        assert evaluate(guard, command, cwd=FORK).outcome is Outcome.ALLOWED

    def test_unrelated_repo_blocked_from_fork(self, guard):
        decision = evaluate(guard, 'gh pr create -R someoneelse/other-repo --title "test"', cwd=FORK)
        assert decision.outcome is Outcome.DENIED
        assert "targets repo you don't own" in decision.reason
        assert "someoneelse/other-repo" in decision.reason
        assert "GIT_GUARDRAILS_ALLOWED_REPOS" in decision.reason

    def test_fork_parent_needs_upstream_remote(self, guard):
        assert evaluate(guard, "gh pr create -R other/project", cwd=OWN).outcome is Outcome.DENIED

    def test_repo_override(self, guard):
        policy = PolicyConfig(allowed_owners=("me",), allowed_repos=("other/project",))
        decision = evaluate(guard, 'gh issue create -R other/project --title "test"', policy=policy)
        assert decision.outcome is Outcome.ALLOWED

    @pytest.mark.parametrize("command", ["gh pr create -R $REPO", "gh pr create -R", "gh pr create -R just-a-name"])
    def test_unparseable_value(self, guard, command):
        decision = evaluate(guard, command)
        assert decision.outcome is Outcome.UNRESOLVABLE
        assert "-R" in decision.reason


class TestOwnRepo:
    @pytest.mark.parametrize("command", [
        'gh issue create --title "test"',
        'gh pr create --title "test"',
        "gh release create v1.0.0",
        "gh label create bug --color FF0000",
        "gh pr merge 12 --squash --delete-branch",
        "gh secret set TOKEN < token.txt",
        "gh run rerun 123",
    ])
    def test_allowed(self, guard, command):
        decision = evaluate(guard, command)
        assert decision.outcome is Outcome.ALLOWED, decision.reason
        assert decision.target == RepoRef("me", "app")

    def test_secret_to_foreign_repo(self, guard):
        assert evaluate(guard, "gh secret set TOKEN -R other/project").outcome is Outcome.DENIED


class TestReadOnly:
    @pytest.mark.parametrize("command", [
        "gh pr view 123",
        "gh issue list",
        "gh pr list",
        "gh pr checkout 12",
        "gh run view 99 --log",
        "gh auth status",
        "gh --version",
        "gh api repos/other/project/pulls",
        "gh api --method GET repos/other/project/pulls",
    ])
    def test_reads_allowed_in_fork(self, guard, command):
        decision = evaluate(guard, command, cwd=FORK)
        assert decision.allowed
        assert decision.outcome is Outcome.READ_ONLY

    def test_reads_allowed_unconfigured(self, guard):
        assert evaluate(guard, "gh pr view 1", policy=PolicyConfig()).allowed

    def test_non_gh_passthrough(self, guard):
        assert evaluate(guard, "npm test").outcome is Outcome.PASSTHROUGH

    def test_unconfigured_write_blocks(self, guard):
        decision = evaluate(guard, "gh pr create", policy=PolicyConfig())
        assert decision.outcome is Outcome.UNCONFIGURED
        assert "Not configured" in decision.reason


class TestApi:
    @pytest.mark.parametrize("command", [
        "gh api repos/other/project/issues -f title=test",
        "gh api -X DELETE repos/other/project/issues/42",
        "gh api -XPOST repos/other/project/issues",
        "gh api --method POST repos/other/project/issues -f title=test",
        "gh api --method=PATCH /repos/other/project",
        "gh api repos/other/project/issues --input body.json",
        "gh api repos/other/project/issues --raw-field title=x",
        "gh api repos/other/project/issues -Ftitle=x",
    ])
    def test_foreign_writes_blocked(self, guard, command):
        decision = evaluate(guard, command)
        assert decision.outcome is Outcome.DENIED
        assert decision.target == RepoRef("other", "project")

    def test_own_repo_write_allowed(self, guard):
        assert evaluate(guard, "gh api repos/me/fork/issues -f title=test").allowed
        assert evaluate(guard, "gh api repos/me/fork/issues --input body.json").allowed

    def test_api_path_gets_no_fork_parent_exception(self, guard):
        decision = evaluate(guard, "gh api repos/other/project/issues -f title=x", cwd=FORK)
        assert decision.outcome is Outcome.DENIED

    def test_fields_mean_write_even_with_get(self, guard):
        decision = evaluate(guard, "gh api --method GET repos/other/project/issues -f state=open")
        assert decision.outcome is Outcome.DENIED

    def test_placeholders_fall_back_to_remotes(self, guard):
        command = "gh api repos/{owner}/{repo}/issues -f title=x"
        assert evaluate(guard, command, cwd=OWN).outcome is Outcome.ALLOWED
        assert evaluate(guard, command, cwd=FORK).outcome is Outcome.FORK_AMBIGUOUS

    def test_graphql_uses_remotes(self, guard):
        assert evaluate(guard, "gh api graphql -f query=x").outcome is Outcome.ALLOWED

    @pytest.mark.parametrize("command", ["gh api gists -f description=x", "gh api -X DELETE /gists/abc123"])
    def test_gists_are_account_scoped(self, guard, command):
        decision = evaluate(guard, command, cwd=FORK)
        assert decision.allowed
        assert decision.outcome is Outcome.ACCOUNT_SCOPED


class TestRepoCommands:
    @pytest.mark.parametrize("command,cwd", [
        ("gh repo create me/new-repo --private", OWN),
        ('gh repo create me/llm-comic --private --description "test" --source /tmp/llm-comic --push', OWN),
        ("gh repo create me/new-repo --private", FORK),
        ("gh repo create new-repo --private", FORK),
    ])
    def test_own_allowed(self, guard, command, cwd):
        assert evaluate(guard, command, cwd=cwd).outcome is Outcome.ALLOWED

    def test_bare_name_uses_first_owner(self, guard):
        decision = evaluate(guard, "gh repo create new-repo --private")
        assert decision.target == RepoRef("me", "new-repo")

    @pytest.mark.parametrize("cwd", [OWN, FORK])
    def test_unowned_org_blocked(self, guard, cwd):
        decision = evaluate(guard, "gh repo create other/new-repo --private", cwd=cwd)
        assert decision.outcome is Outcome.DENIED

    def test_description_value_is_not_a_name(self, guard):
        decision = evaluate(guard, 'gh repo create -d "other/desc" me/tool')
        assert decision.target == RepoRef("me", "tool")

    def test_delete_foreign(self, guard):
        assert evaluate(guard, "gh repo delete other/thing --yes").outcome is Outcome.DENIED

    def test_edit_without_target_uses_origin(self, guard):
        assert evaluate(guard, "gh repo edit --description tidy").outcome is Outcome.ALLOWED

    def test_archive_from_fork_without_target(self, guard):
        assert evaluate(guard, "gh repo archive", cwd=FORK).outcome is Outcome.FORK_AMBIGUOUS


class TestUrlArgument:
    def test_foreign_url(self, guard):
        decision = evaluate(guard, "gh pr merge https://github.com/other/project/pull/1")
        assert decision.outcome is Outcome.DENIED
        assert decision.target == RepoRef("other", "project")

    def test_own_url_resolves_fork_ambiguity(self, guard):
        decision = evaluate(guard, "gh pr merge https://github.com/me/fork/pull/1 --squash", cwd=FORK)
        assert decision.outcome is Outcome.ALLOWED

    def test_url_as_flag_value_is_ignored(self, guard):
        decision = evaluate(guard, "gh pr comment 3 --body https://github.com/other/project/issues/9")
        assert decision.target == RepoRef("me", "app")


class TestGist:
    @pytest.mark.parametrize("command,cwd", [
        ("gh gist create foo.txt", OWN),
        ("gh gist create --public foo.txt", FORK),
        ("gh gist edit abc123", OWN),
        ("gh gist delete abc123", FORK),
    ])
    def test_passes_through(self, guard, command, cwd):
        decision = evaluate(guard, command, cwd=cwd)
        assert decision.allowed
        assert decision.outcome is Outcome.ACCOUNT_SCOPED

    def test_no_config_needed(self, guard):
        assert evaluate(guard, "gh gist create foo.txt", policy=PolicyConfig()).allowed

    def test_gist_does_not_hide_repo_write(self, guard):
        decision = evaluate(guard, "gh gist create foo.txt && gh issue create -R stranger/x")
        assert decision.outcome is Outcome.DENIED


class TestComplexity:
    def test_for_loop(self, guard):
        command = "for repo in a b; do cd /tmp/$repo && gh issue create --title test; done"
        assert evaluate(guard, command, cwd=FORK).outcome is Outcome.TOO_COMPLEX

    def test_while_loop(self, guard):
        command = "cat repos.txt | while read repo; do gh issue create --title test -R $repo; done"
        decision = evaluate(guard, command)
        assert decision.outcome is Outcome.TOO_COMPLEX
        assert "batch/loop" in decision.reason

    @pytest.mark.parametrize("command", [
        'gh issue create --repo me/bosun --title "feat: add endpoint for Homepage"',
        'gh issue create --repo me/bosun --title "test" --body "wait for results while polling"',
        'gh pr create --title "Fix tests" --body "Refactored the loop for clarity in the test suite"',
        'gh issue create --repo me/bosun --title "test" --body "run the check while idle; do not restart"',
    ])
    def test_quoted_prose_is_not_a_loop(self, guard, command):
        assert evaluate(guard, command).outcome is Outcome.ALLOWED

    @pytest.mark.parametrize("command", [
        "for f in a b; do echo $f; done && git checkout gh-pages",
        "while true; do sleep 1; done; ls my_gh",
        "git push origin gh-pages",
    ])
    def test_gh_inside_other_words(self, guard, command):
        assert evaluate(guard, command).outcome is Outcome.PASSTHROUGH


class TestCommandShapes:
    def test_each_invocation_checked(self, guard):
        decision = evaluate(guard, "gh issue create -R me/app && gh issue create -R stranger/x")
        assert decision.outcome is Outcome.DENIED
        assert decision.target == RepoRef("stranger", "x")

    def test_read_then_write(self, guard):
        assert evaluate(guard, "gh pr view 1 && gh pr create -R stranger/x").outcome is Outcome.DENIED

    def test_command_substitution(self, guard):
        decision = evaluate(guard, "url=$(gh pr create -R stranger/x --title t)")
        assert decision.outcome is Outcome.DENIED

    def test_env_prefix(self, guard):
        assert evaluate(guard, "GH_TOKEN=abc gh pr create -R stranger/x").outcome is Outcome.DENIED

    def test_cd_into_fork(self, guard):
        decision = evaluate(guard, "cd /work/fork && gh pr create --title t", cwd=OWN)
        assert decision.outcome is Outcome.FORK_AMBIGUOUS

    def test_cd_applies_per_invocation(self, guard):
        command = "gh pr create --title a && cd /work/fork && gh pr view 1"
        assert evaluate(guard, command, cwd=OWN).outcome is Outcome.ALLOWED

    def test_untokenizable_write_is_unresolvable(self, guard):
        decision = evaluate(guard, "xargs gh pr close < prs.txt")
        assert decision.outcome is Outcome.UNRESOLVABLE


class TestGhRepoVariable:
    def test_foreign_repo_denied(self, guard):
        decision = evaluate(guard, "GH_REPO=other/project gh issue create -t x -b y")
        assert decision.outcome is Outcome.DENIED
        assert decision.target == RepoRef("other", "project")
        assert "via GH_REPO" in decision.reason

    def test_own_repo_in_fork_is_explicit(self, guard):
        assert evaluate(guard, "GH_REPO=me/fork gh pr create --fill", cwd=FORK).outcome is Outcome.ALLOWED

    def test_after_env_wrapper(self, guard):
        decision = evaluate(guard, "env GH_REPO=other/project gh pr merge 3")
        assert decision.outcome is Outcome.DENIED

    def test_repo_flag_wins(self, guard):
        decision = evaluate(guard, "GH_REPO=other/project gh issue create -R me/app -t x")
        assert decision.outcome is Outcome.ALLOWED
        assert decision.target == RepoRef("me", "app")

    def test_unparseable_value(self, guard):
        decision = evaluate(guard, "GH_REPO=$TARGET gh issue create -t x")
        assert decision.outcome is Outcome.UNRESOLVABLE
        assert "GH_REPO" in decision.reason

    def test_other_variables_ignored(self, guard):
        assert evaluate(guard, "GH_TOKEN=abc gh pr create --fill").outcome is Outcome.ALLOWED


class TestRemotes:
    def test_not_a_repository(self, guard):
        decision = evaluate(guard, "gh issue create --title x", cwd="/tmp/scratch")
        assert decision.outcome is Outcome.UNRESOLVABLE
        assert "Cannot determine target repo" in decision.reason
        assert "-R owner/repo" in decision.reason

    def test_no_origin(self, fake_repos):
        fake_repos.add(OWN, remotes={"mirror": "git@github.com:me/app.git"})
        decision = evaluate(WriteGuard(rules=RULES, repo_factory=fake_repos), "gh pr create")
        assert decision.outcome is Outcome.UNRESOLVABLE

    def test_non_github_origin(self, fake_repos):
        fake_repos.add(OWN, remotes={"origin": "git@gitlab.com:other/app.git"})
        decision = evaluate(WriteGuard(rules=RULES, repo_factory=fake_repos), "gh pr create")
        assert decision.outcome is Outcome.NOT_APPLICABLE
        assert decision.allowed


class TestHelpers:
    def test_repo_flag(self):
        assert repo_flag(("-R", "o/r")) == (True, "o/r")
        assert repo_flag(("--repo=o/r",)) == (True, "o/r")
        assert repo_flag(("-Ro/r",)) == (True, "o/r")
        assert repo_flag(("-R",)) == (True, None)
        assert repo_flag(("pr", "create")) == (False, None)

    def test_positionals_skip_repo_values(self):
        assert positionals(("-R", "o/r", "pr", "create", "--fill")) == ["pr", "create"]

    def test_parse_api_args(self):
        call = parse_api_args(("-H", "Accept: x", "repos/o/r/issues", "-f", "a=b"), RULES)
        assert call.path == "repos/o/r/issues"
        assert call.has_fields
        assert call.method is None

    def test_api_repo(self):
        assert api_repo(("/repos/o/r/pulls",)) == RepoRef("o", "r")
        assert api_repo(("repos/{owner}/{repo}",)) is None
        assert api_repo(("user",)) is None

    def test_classify_invocation(self, guard):
        assert guard.classify_invocation(("pr", "create")).kind is OperationKind.WRITE
        assert guard.classify_invocation(("pr", "view")).kind is OperationKind.READ
        assert guard.classify_invocation(("gist", "create")).kind is OperationKind.ACCOUNT_SCOPED

    def test_rules_loaded_lazily(self, fake_repos):
        guard = WriteGuard(repo_factory=fake_repos)
        assert guard._rules is None
        evaluate(guard, "npm test")
        assert guard._rules is None
        evaluate(guard, "gh pr view 1")
        assert guard._rules is not None


@requires_git
class TestRealRepositories:
    @pytest.fixture
    def fork(self, tmp_path):
        return make_git_repo(tmp_path / "fork", {
            "origin": "git@github.com:me/fork.git",
            "upstream": "git@github.com:other/project.git",
        })

    def test_fork_without_repo_flag(self, fork):
        assert evaluate(WriteGuard(), "gh pr create", cwd=str(fork)).outcome is Outcome.FORK_AMBIGUOUS

    def test_fork_parent(self, fork):
        assert evaluate(WriteGuard(), "gh pr create -R other/project", cwd=str(fork)).allowed

    def test_own_repo(self, tmp_path):
        own = make_git_repo(tmp_path / "own", {"origin": "https://github.com/me/own.git"})
        decision = evaluate(WriteGuard(), "gh issue create --title x", cwd=str(own))
        assert decision.outcome is Outcome.ALLOWED
