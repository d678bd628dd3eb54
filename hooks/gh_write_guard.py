#!/usr/bin/env python3
"""
git-guardrails PreToolUse Hook (Bash): gh write operations

Blocks gh CLI writes (PRs, issues, releases, api POST/PUT/PATCH/DELETE, ...)
aimed at repositories the user does not own.

Target resolution, first match wins:
  1. -R / --repo, then a GH_REPO=owner/repo prefix
  2. a GitHub URL argument (gh pr merge https://github.com/o/r/pull/1)
  3. gh repo create|delete|archive|edit positional
  4. gh api repos/<owner>/<repo>/...
  5. git remotes: an `upstream` remote makes the target ambiguous, else origin

Read-only commands and gists (user-scoped) pass through.

Exit codes:
  0 = allow
  2 = block (reason on stderr)
"""

import re
import sys
from dataclasses import dataclass
from typing import List, Optional, Tuple

from guard_core import PREFIX, GuardEvaluator, Operation, OperationKind, Resolution
from guardrails_config import PolicyConfig
from hook_io import run_guard
from repo_ref import RepoRef, is_github_host, looks_like_url, normalize_url, parse_repo_ref
from rule_loader import WriteRules, load_write_rules
from shell_scan import (
    env_assignments,
    find_program,
    split_segments,
    strip_quoted,
    strip_redirections,
    tokenize,
)
from shell_scan import too_complex_to_resolve as _too_complex

# gh as a word of its own, not gh-pages or my_gh
_GH_RE = re.compile(r"(?<![\w-])gh(?![\w-])")
# Written-out invocation, for commands the tokenizer could not follow
_GH_INVOCATION_RE = re.compile(r"(?<![\w-])gh\s+([\w-]+)\s+([\w-]+)")
_API_REPO_RE = re.compile(r"(?:^|/)repos/([^/\s?#]+)/([^/\s?#]+)")

_REPO_FLAGS = ("-R", "--repo")

# gh api options that consume the next token
_API_OPTS_WITH_VALUE = frozenset({
    "-X", "--method", "-H", "--header", "-f", "-F", "--field", "--raw-field",
    "--input", "-q", "--jq", "-t", "--template", "--hostname", "-p", "--preview", "--cache",
})
# gh repo create|edit options that consume the next token
_REPO_OPTS_WITH_VALUE = frozenset({
    "-d", "--description", "-h", "--homepage", "-g", "--gitignore", "-l", "--license",
    "-s", "--source", "-r", "--remote", "-t", "--team", "-p", "--template",
    "--default-branch", "--add-topic", "--remove-topic", "--visibility",
})
_REPO_TARGET_ACTIONS = frozenset({"create", "delete", "archive", "edit"})
# Resources whose commands accept a GitHub URL in place of a number
_URL_RESOURCES = frozenset({"pr", "issue"})

_EXPLICIT_HINT = "Use -R owner/repo to specify target explicitly."


def repo_flag(args: Tuple[str, ...]) -> Tuple[bool, Optional[str]]:
    """
    Find a -R/--repo value.

    Returns:
        (flag present, value). The value is None when the flag has no argument.
    """
    for i, arg in enumerate(args):
        if arg in _REPO_FLAGS:
            return True, (args[i + 1] if i + 1 < len(args) else None)
        if arg.startswith("--repo="):
            return True, arg.split("=", 1)[1]
        if arg.startswith("-R") and len(arg) > 2:
            return True, arg[2:]
    return False, None


def positionals(args: Tuple[str, ...], opts_with_value=frozenset()) -> List[str]:
    """Non-flag arguments, skipping -R/--repo values and the given flags' values."""
    found = []
    skip = False
    for arg in args:
        if skip:
            skip = False
            continue
        if arg in _REPO_FLAGS or arg in opts_with_value:
            skip = True
            continue
        if arg.startswith("-") and arg != "-":
            continue
        found.append(arg)
    return found


@dataclass(frozen=True)
class ApiCall:
    """What a `gh api` invocation sends."""

    path: Optional[str]
    method: Optional[str]
    has_fields: bool
    has_body: bool


def parse_api_args(args: Tuple[str, ...], rules: WriteRules) -> ApiCall:
    method = None
    has_fields = False
    has_body = False
    for i, arg in enumerate(args):
        if arg in ("-X", "--method") and i + 1 < len(args):
            method = args[i + 1].upper()
        elif arg.startswith("--method="):
            method = arg.split("=", 1)[1].upper()
        elif arg.startswith("-X") and len(arg) > 2:
            method = arg[2:].upper()
        elif arg in rules.api_field_flags:
            has_fields = True
        elif arg.startswith(("--field=", "--raw-field=")):
            has_fields = True
        elif len(arg) > 2 and arg[:2] in rules.api_field_flags:
            has_fields = True
        elif arg.split("=", 1)[0] in rules.api_body_flags:
            has_body = True

    paths = positionals(args, _API_OPTS_WITH_VALUE)
    return ApiCall(paths[0] if paths else None, method, has_fields, has_body)


def api_is_write(call: ApiCall, rules: WriteRules) -> bool:
    # Field flags always mean a write, whatever --method says
    return (call.method in rules.api_write_methods) or call.has_fields or call.has_body


def api_is_account_scoped(call: ApiCall, rules: WriteRules) -> bool:
    if not call.path:
        return False
    return call.path.lstrip("/").split("/", 1)[0] in rules.api_account_scoped_paths


def api_repo(args: Tuple[str, ...]) -> Optional[RepoRef]:
    """owner/repo from the first repos/<owner>/<repo> path in the arguments."""
    for arg in args:
        match = _API_REPO_RE.search(arg)
        if match:
            return parse_repo_ref(f"{match.group(1)}/{match.group(2)}")
    return None


def url_argument(args: Tuple[str, ...], extra_hosts=()) -> Optional[RepoRef]:
    """A GitHub URL given as a positional argument."""
    previous = None
    for arg in args:
        if looks_like_url(arg) and not (previous or "").startswith("-"):
            ref = normalize_url(arg)
            if ref is not None and is_github_host(ref.host, extra_hosts):
                return ref
        previous = arg
    return None


class WriteGuard(GuardEvaluator):
    """Ownership guard for gh CLI write operations."""

    name = "gh command"

    def __init__(self, rules: Optional[WriteRules] = None, repo_factory=None):
        super().__init__(repo_factory)
        self._rules = rules

    @property
    def rules(self) -> WriteRules:
        # Loaded on first use so irrelevant commands never touch the rules file
        if self._rules is None:
            self._rules = load_write_rules()
        return self._rules

    def looks_relevant(self, command: str) -> bool:
        return bool(_GH_RE.search(command))

    def too_complex_to_resolve(self, command: str) -> bool:
        return _too_complex(command, _GH_RE)

    def classify(self, command: str) -> List[Operation]:
        operations = []
        for segment in split_segments(command):
            tokens = strip_redirections(tokenize(segment.text))
            for index in find_program(tokens, "gh"):
                args = tuple(t.rstrip(")`") for t in tokens[index + 1:] if t.rstrip(")`"))
                operations.append(self.classify_invocation(args, segment.start, env_assignments(tokens, index)))

        if not any(op.kind is not OperationKind.READ for op in operations):
            unparsed = self._unparsed_write(command)
            if unparsed is not None:
                operations.append(unparsed)
        return operations

    def classify_invocation(
        self,
        args: Tuple[str, ...],
        start: int = 0,
        env: Tuple[Tuple[str, str], ...] = (),
    ) -> Operation:
        """Classify one `gh ...` invocation given the tokens after `gh`."""
        words = positionals(args)
        resource = words[0] if words else None

        if resource == "api":
            call = parse_api_args(args[args.index("api") + 1:], self.rules)
            if not api_is_write(call, self.rules):
                kind = OperationKind.READ
            elif api_is_account_scoped(call, self.rules):
                kind = OperationKind.ACCOUNT_SCOPED
            else:
                kind = OperationKind.WRITE
            return Operation(kind, "gh api", start=start, args=args, resource="api", action=call.method, env=env)

        action = words[1] if len(words) > 1 else None
        label = " ".join(w for w in ("gh", resource, action) if w)
        if not self.rules.is_write_action(resource, action):
            kind = OperationKind.READ
        elif self.rules.is_account_scoped(resource):
            kind = OperationKind.ACCOUNT_SCOPED
        else:
            kind = OperationKind.WRITE
        return Operation(kind, label, start=start, args=args, resource=resource, action=action, env=env)

    def _unparsed_write(self, command: str) -> Optional[Operation]:
        skeleton = strip_quoted(command)
        for match in _GH_INVOCATION_RE.finditer(skeleton):
            resource, action = match.group(1), match.group(2)
            if self.rules.is_write_action(resource, action) and not self.rules.is_account_scoped(resource):
                label = f"gh {resource} {action}"
                return Operation(OperationKind.WRITE, label, start=match.start(), resource=resource, action=action)
        return None

    def resolve_target(self, op: Operation, work_dir: str, policy: PolicyConfig) -> Resolution:
        if op.args is None:
            return Resolution.unresolvable(f"gh invocation could not be parsed. {_EXPLICIT_HINT}")
        args = op.args

        # 1. Explicit -R / --repo, then GH_REPO
        present, value = repo_flag(args)
        if present:
            ref = parse_repo_ref(value)
            if ref is None:
                return Resolution.unresolvable(f"cannot parse -R value '{value or ''}'. {_EXPLICIT_HINT}")
            return Resolution.resolved(ref, via="-R", explicit=True)

        gh_repo = dict(op.env).get("GH_REPO")
        if gh_repo is not None:
            ref = parse_repo_ref(gh_repo)
            if ref is None:
                return Resolution.unresolvable(f"cannot parse GH_REPO value '{gh_repo}'. {_EXPLICIT_HINT}")
            return Resolution.resolved(ref, via="GH_REPO", explicit=True)

        # 2. GitHub URL argument
        if op.resource in _URL_RESOURCES and op.action != "create":
            ref = url_argument(args, policy.github_hosts)
            if ref is not None:
                return Resolution.resolved(ref, via="URL argument")

        # 3. gh repo <action> OWNER/REPO
        if op.resource == "repo" and op.action in _REPO_TARGET_ACTIONS:
            resolution = self._repo_positional(args, op.action, policy)
            if resolution is not None:
                return resolution

        # 4. gh api repos/OWNER/REPO/...
        if op.resource == "api":
            ref = api_repo(args)
            if ref is not None:
                return Resolution.resolved(ref, via="api path")

        # 5. Git remotes
        return self._from_remotes(work_dir, policy)

    @staticmethod
    def _repo_positional(args: Tuple[str, ...], action: str, policy: PolicyConfig) -> Optional[Resolution]:
        words = positionals(args, _REPO_OPTS_WITH_VALUE)
        # words[0] == "repo", words[1] == action
        if len(words) < 3:
            return None
        name = words[2]
        if "/" in name:
            ref = parse_repo_ref(name)
            if ref is None:
                return Resolution.unresolvable(f"cannot parse repository '{name}'. {_EXPLICIT_HINT}")
            return Resolution.resolved(ref, via=f"repo {action} argument")
        if action == "edit":
            return None
        # Bare name: gh uses the authenticated account
        ref = parse_repo_ref(f"{policy.default_owner}/{name}")
        if ref is None:
            return Resolution.unresolvable(f"cannot parse repository '{name}'. {_EXPLICIT_HINT}")
        return Resolution.resolved(ref, via=f"repo {action} argument")

    def _from_remotes(self, work_dir: str, policy: PolicyConfig) -> Resolution:
        repo = self.repo_factory(work_dir)
        if not repo.is_repository():
            return Resolution.unresolvable(f"{work_dir} is not a git repository. {_EXPLICIT_HINT}")

        upstream_url = repo.fetch_url("upstream")
        origin_url = repo.fetch_url("origin")
        if upstream_url:
            return Resolution.fork_ambiguous(normalize_url(origin_url), normalize_url(upstream_url))

        if not origin_url:
            return Resolution.unresolvable(f"no origin remote. {_EXPLICIT_HINT}")
        ref = normalize_url(origin_url)
        if ref is None:
            return Resolution.unresolvable(f"cannot parse owner/repo from {origin_url}. {_EXPLICIT_HINT}")
        if not is_github_host(ref.host, policy.github_hosts):
            return Resolution.not_applicable(f"origin host {ref.host} is not a GitHub host", target=ref)
        return Resolution.resolved(ref, via="remote 'origin'", detail=origin_url)

    # --- messages ---

    def denied_message(self, op, work_dir, resolution, policy) -> str:
        return (
            f"🚫 {PREFIX} {op.label} targets repo you don't own\n"
            f"   Target:  {resolution.target} (via {resolution.via})\n"
            f"   Allowed: {policy.describe()}\n"
            f"\n"
            f"   To override: add to GIT_GUARDRAILS_ALLOWED_REPOS\n"
            f"   Or specify:  -R owner/repo"
        )


def main():
    sys.exit(run_guard(WriteGuard(), "gh"))


if __name__ == "__main__":
    main()
