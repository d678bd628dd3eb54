#!/usr/bin/env python3
"""
git-guardrails: PreToolUse Hook (Bash): git push

Blocks pushes whose destination repository is not owned by the user.

Resolution order for the destination:
  1. a URL given in place of a remote (`git push git@host:o/r.git`, --repo=URL)
  2. an explicit remote name (`git push upstream main`)
  3. bare push: branch.<b>.pushRemote, remote.pushDefault, branch.<b>.remote,
     then origin

Exit codes:
  0 = allow
  2 = block (reason on stderr)
"""

import os
import re
import sys
from typing import List, Optional, Tuple

from guard_core import PREFIX, GuardEvaluator, Operation, OperationKind, Resolution
from guardrails_config import PolicyConfig
from hook_io import run_guard
from repo_ref import is_github_host, looks_like_url, normalize_url
from shell_scan import (
    bare_word,
    env_assignments,
    find_program,
    resolve_path,
    split_segments,
    strip_quoted,
    strip_redirections,
    tokenize,
)
from shell_scan import too_complex_to_resolve as _too_complex

# Any `git ... push` within one command; classify() re-checks with the tokenizer
_PUSH_MENTION_RE = re.compile(r"\bgit\b[^;&|\n]*?\bpush\b")
# git [global options] push, option values possibly quoted
_OPT_VALUE = r"""(?:[^\s"']|"[^"]*"|'[^']*')+"""
_PUSH_RE = re.compile(
    r"\bgit(?:\s+-[Cc]\s+" + _OPT_VALUE + r"|\s+--[\w-]+(?:=" + _OPT_VALUE + r")?|\s+-[A-Za-z])*\s+push\b"
)

# git options that consume the next token
_GIT_OPTS_WITH_VALUE = frozenset({
    "-c", "-C", "--exec-path", "--git-dir", "--namespace", "--super-prefix", "--work-tree",
})
# push options that consume the next token
_PUSH_OPTS_WITH_VALUE = frozenset({"-o", "--push-option", "--receive-pack", "--exec", "--repo"})
# Options and variables that point git at another repository
_REPOSITORY_OPTS = ("--git-dir", "--work-tree")
_REPOSITORY_VARS = frozenset({"GIT_DIR", "GIT_WORK_TREE"})

_EXPLICIT_HINT = "Push explicitly: git push origin main"


def _git_subcommand(tokens: List[str], start: int) -> Tuple[Optional[int], Optional[str], Optional[str]]:
    """
    Skip git's global options after tokens[start] ("git").

    Returns:
        (index of the subcommand, combined -C directory or None,
        the --git-dir/--work-tree option seen or None)
    """
    chdir = None
    repository_opt = None
    i = start + 1
    while i < len(tokens):
        tok = tokens[i]
        if tok == "--":
            i += 1
            break
        if not tok.startswith("-") or tok == "-":
            break
        if tok.split("=", 1)[0] in _REPOSITORY_OPTS:
            repository_opt = tok.split("=", 1)[0]
        if tok == "-C":
            if i + 1 >= len(tokens):
                return None, chdir, repository_opt
            chdir = os.path.join(chdir, tokens[i + 1]) if chdir else tokens[i + 1]
            i += 2
            continue
        if tok.startswith("-C"):
            chdir = os.path.join(chdir, tok[2:]) if chdir else tok[2:]
            i += 1
            continue
        if tok in _GIT_OPTS_WITH_VALUE:
            i += 2
            continue
        i += 1

    if i >= len(tokens):
        return None, chdir, repository_opt
    return i, chdir, repository_opt


def parse_push_args(args: Tuple[str, ...]) -> Tuple[Optional[str], List[str]]:
    """
    Split push arguments into (--repo value, positionals).

    Flags are dropped; values of value-taking flags are skipped with them.
    """
    repo_option = None
    positionals: List[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--":
            positionals.extend(args[i + 1:])
            break
        if arg.startswith("--repo="):
            repo_option = arg.split("=", 1)[1]
        elif arg == "--repo":
            repo_option = args[i + 1] if i + 1 < len(args) else None
            i += 2
            continue
        elif arg in _PUSH_OPTS_WITH_VALUE:
            i += 2
            continue
        elif arg.startswith("-") and arg != "-":
            pass
        else:
            positionals.append(arg)
        i += 1
    return repo_option, positionals


class PushGuard(GuardEvaluator):
    """Ownership guard for `git push`."""

    name = "git push"

    def looks_relevant(self, command: str) -> bool:
        return bool(_PUSH_MENTION_RE.search(command))

    def too_complex_to_resolve(self, command: str) -> bool:
        if _too_complex(command, _PUSH_MENTION_RE):
            return True
        # More than one push in the raw command is a batch
        return len(_PUSH_RE.findall(command)) > 1

    def classify(self, command: str) -> List[Operation]:
        operations = []
        for segment in split_segments(command):
            tokens = strip_redirections(tokenize(segment.text))
            for index in find_program(tokens, "git"):
                sub_index, chdir, repository_opt = _git_subcommand(tokens, index)
                if sub_index is None or bare_word(tokens[sub_index]) != "push":
                    continue
                args = tuple(t.rstrip(")") for t in tokens[sub_index + 1:] if t.rstrip(")"))
                env = env_assignments(tokens, index)
                redirect = repository_opt or next((name for name, _ in env if name in _REPOSITORY_VARS), None)
                operations.append(Operation(
                    OperationKind.WRITE, "git push", start=segment.start, args=args,
                    chdir=chdir, env=env, redirect=redirect,
                ))

        if not operations and _PUSH_RE.search(strip_quoted(command)):
            # Visible to the shell but not parseable here
            match = _PUSH_RE.search(command)
            start = match.start() if match else 0
            operations.append(Operation(OperationKind.WRITE, "git push", start=start))
        return operations

    def work_dir_for(self, command: str, cwd: str, op: Operation) -> Optional[str]:
        work_dir = super().work_dir_for(command, cwd, op)
        if work_dir is None or not op.chdir:
            return work_dir
        return resolve_path(op.chdir, work_dir)

    def resolve_target(self, op: Operation, work_dir: str, policy: PolicyConfig) -> Resolution:
        if op.args is None:
            return Resolution.unresolvable(f"push invocation could not be parsed. {_EXPLICIT_HINT}")

        if op.redirect:
            return Resolution.unresolvable(
                f"{op.redirect} points git at another repository. "
                f"Run the push from inside that repository instead"
            )

        repo = self.repo_factory(work_dir)
        if not repo.is_repository():
            return Resolution.not_applicable(f"{work_dir} is not a git repository")

        repo_option, positionals = parse_push_args(op.args)
        destination = repo_option or (positionals[0] if positionals else None)

        if destination and looks_like_url(destination):
            return self._check_url(destination, "URL", policy)

        if destination and repo.has_remote(destination):
            remote = destination
        else:
            remote = self.push_remote(repo)
            if remote == ".":
                return Resolution.not_applicable("branch pushes to the local repository")

        url = repo.push_url(remote)
        if not url:
            return Resolution.unresolvable(f"remote '{remote}' has no URL. {_EXPLICIT_HINT}")
        return self._check_url(url, f"remote '{remote}'", policy)

    @staticmethod
    def push_remote(repo) -> str:
        """The remote a bare `git push` uses, following git's precedence."""
        branch = repo.current_branch()
        if branch:
            push_remote = repo.config(f"branch.{branch}.pushRemote")
            if push_remote:
                return push_remote
        push_default = repo.config("remote.pushDefault")
        if push_default:
            return push_default
        if branch:
            tracking = repo.config(f"branch.{branch}.remote")
            if tracking:
                return tracking
        return "origin"

    @staticmethod
    def _check_url(url: str, via: str, policy: PolicyConfig) -> Resolution:
        ref = normalize_url(url)
        if ref is None:
            return Resolution.unresolvable(f"cannot parse owner/repo from {url}. {_EXPLICIT_HINT}")
        if not is_github_host(ref.host, policy.github_hosts):
            return Resolution.not_applicable(f"{ref.host} is not a GitHub host", target=ref)
        return Resolution.resolved(ref, via=via, detail=url)

    # --- messages ---

    def unresolvable_message(self, op, work_dir, resolution) -> str:
        return (
            f"⚠️  {PREFIX} Cannot resolve push target\n"
            f"   Directory: {work_dir}\n"
            f"   Reason:    {resolution.detail}"
        )

    def denied_message(self, op, work_dir, resolution, policy) -> str:
        return (
            f"🚫 {PREFIX} Push target is not yours\n"
            f"   Would push to: {resolution.target} ({resolution.via}: {resolution.detail})\n"
            f"   Directory:     {work_dir}\n"
            f"   Allowed:       {policy.describe()}\n"
            f"\n"
            f"   Fix tracking:  git branch -u origin/main\n"
            f"   Push explicit: git push origin main"
        )


def main():
    sys.exit(run_guard(PushGuard(), "push"))


if __name__ == "__main__":
    main()
