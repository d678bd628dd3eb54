#!/usr/bin/env python3
"""
Guard evaluator core for git-guardrails.

Both guards run the same state machine:

  StructuralFilter -> ComplexityGate -> Classify -> (account-scoped check)
  -> ConfigCheck -> ResolveWorkDir -> ResolveTarget -> OwnershipPolicy

and differ only in how they classify operations and resolve targets.
evaluate() is a pure decision function: it queries git read-only and writes
nothing. Logging happens in the hook entry point.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from git_remotes import GitRepository, GitTimeout
from guardrails_config import PolicyConfig
from ownership import is_allowed
from repo_ref import RepoRef, normalize_url
from shell_scan import resolve_work_dir

PREFIX = "git-guardrails:"


class Outcome(Enum):
    """Named result behind every decision."""

    PASSTHROUGH = "passthrough"          # no guarded verb
    READ_ONLY = "read_only"
    ACCOUNT_SCOPED = "account_scoped"    # gists: user-scoped, never repo-scoped
    ALLOWED = "allowed"
    NOT_APPLICABLE = "not_applicable"    # host cannot be verified
    TOO_COMPLEX = "too_complex"
    UNCONFIGURED = "unconfigured"
    UNRESOLVABLE = "unresolvable"
    FORK_AMBIGUOUS = "fork_ambiguous"
    DENIED = "denied"
    GIT_TIMEOUT = "git_timeout"
    INTERNAL_ERROR = "internal_error"

    @property
    def allows(self) -> bool:
        return self in _ALLOWING


_ALLOWING = frozenset({
    Outcome.PASSTHROUGH,
    Outcome.READ_ONLY,
    Outcome.ACCOUNT_SCOPED,
    Outcome.ALLOWED,
    Outcome.NOT_APPLICABLE,
})


@dataclass(frozen=True)
class Decision:
    """Allow or Block, with a human-readable reason."""

    outcome: Outcome
    reason: str = ""
    target: Optional[RepoRef] = None
    work_dir: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome.allows

    @property
    def verdict(self) -> str:
        return "ALLOW" if self.allowed else "BLOCK"


class OperationKind(Enum):
    READ = "read"
    WRITE = "write"
    ACCOUNT_SCOPED = "account_scoped"


@dataclass(frozen=True)
class Operation:
    """
    One guarded invocation found in a command.

    `args` holds the tokens after the verb; None means the verb was seen
    outside quotes but its arguments could not be parsed. `env` holds the
    `NAME=value` assignments prefixed to the invocation; `redirect` names an
    option or variable that points the tool at another repository.
    """

    kind: OperationKind
    label: str
    start: int = 0
    args: Optional[Tuple[str, ...]] = None
    resource: Optional[str] = None
    action: Optional[str] = None
    chdir: Optional[str] = None
    env: Tuple[Tuple[str, str], ...] = ()
    redirect: Optional[str] = None


class ResolutionKind(Enum):
    RESOLVED = "resolved"
    FORK_AMBIGUOUS = "fork_ambiguous"
    UNRESOLVABLE = "unresolvable"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class Resolution:
    kind: ResolutionKind
    target: Optional[RepoRef] = None
    via: str = ""
    detail: str = ""
    explicit: bool = False
    origin: Optional[RepoRef] = None
    upstream: Optional[RepoRef] = None

    @classmethod
    def resolved(cls, target: RepoRef, via: str, detail: str = "", explicit: bool = False) -> "Resolution":
        return cls(ResolutionKind.RESOLVED, target=target, via=via, detail=detail, explicit=explicit)

    @classmethod
    def unresolvable(cls, detail: str) -> "Resolution":
        return cls(ResolutionKind.UNRESOLVABLE, detail=detail)

    @classmethod
    def not_applicable(cls, detail: str, target: Optional[RepoRef] = None) -> "Resolution":
        return cls(ResolutionKind.NOT_APPLICABLE, target=target, detail=detail)

    @classmethod
    def fork_ambiguous(cls, origin: Optional[RepoRef], upstream: Optional[RepoRef]) -> "Resolution":
        return cls(ResolutionKind.FORK_AMBIGUOUS, origin=origin, upstream=upstream)


RepoFactory = Callable[[str], GitRepository]


class GuardEvaluator:
    """
    Shared state machine. Subclasses supply the verb-specific stages:
    looks_relevant, too_complex_to_resolve, classify and resolve_target,
    plus the wording of their block messages.
    """

    name = "guard"

    def __init__(self, repo_factory: Optional[RepoFactory] = None):
        self.repo_factory: RepoFactory = repo_factory or GitRepository

    # --- stages supplied by subclasses ---

    def looks_relevant(self, command: str) -> bool:
        raise NotImplementedError

    def too_complex_to_resolve(self, command: str) -> bool:
        raise NotImplementedError

    def classify(self, command: str) -> List[Operation]:
        raise NotImplementedError

    def resolve_target(self, op: Operation, work_dir: str, policy: PolicyConfig) -> Resolution:
        raise NotImplementedError

    # --- evaluation ---

    def evaluate(self, command: str, cwd: str, policy: PolicyConfig) -> Decision:
        """
        Decide whether a command may run.

        Args:
            command: Raw shell command.
            cwd: Directory the command would start in.
            policy: Ownership policy, read-only.

        Returns:
            Decision; every block carries a distinct reason.
        """
        if not command or not command.strip() or not self.looks_relevant(command):
            return Decision(Outcome.PASSTHROUGH)

        if self.too_complex_to_resolve(command):
            return Decision(Outcome.TOO_COMPLEX, self.too_complex_message(), work_dir=cwd)

        operations = self.classify(command)
        if not operations:
            return Decision(Outcome.PASSTHROUGH)
        guarded = [op for op in operations if op.kind is not OperationKind.READ]
        if not guarded:
            return Decision(Outcome.READ_ONLY, work_dir=cwd)
        writes = [op for op in guarded if op.kind is OperationKind.WRITE]
        if not writes:
            return Decision(
                Outcome.ACCOUNT_SCOPED,
                f"{PREFIX} {guarded[0].label} is user-scoped, not checked against repo ownership",
                work_dir=cwd,
            )

        if not policy.is_configured:
            return Decision(Outcome.UNCONFIGURED, self.unconfigured_message(), work_dir=cwd)

        try:
            decision = None
            for op in writes:
                decision = self._evaluate_operation(command, cwd, policy, op)
                if not decision.allowed:
                    return decision
            return decision
        except GitTimeout as e:
            return Decision(
                Outcome.GIT_TIMEOUT,
                f"🚫 {PREFIX} Git metadata query timed out: cannot verify target\n"
                f"   {e}\n"
                f"   Retry, or raise GIT_GUARDRAILS_GIT_TIMEOUT.",
                work_dir=cwd,
            )

    def _evaluate_operation(self, command: str, cwd: str, policy: PolicyConfig, op: Operation) -> Decision:
        work_dir = self.work_dir_for(command, cwd, op)
        if work_dir is None:
            return Decision(
                Outcome.UNRESOLVABLE,
                f"⚠️  {PREFIX} Cannot resolve working directory for {op.label}\n"
                f"   cd/-C targets using variables, backticks or 'cd -' are not evaluated.\n"
                f"   Use a literal path.",
                work_dir=cwd,
            )

        resolution = self.resolve_target(op, work_dir, policy)

        if resolution.kind is ResolutionKind.UNRESOLVABLE:
            return Decision(Outcome.UNRESOLVABLE, self.unresolvable_message(op, work_dir, resolution), work_dir=work_dir)
        if resolution.kind is ResolutionKind.FORK_AMBIGUOUS:
            return Decision(Outcome.FORK_AMBIGUOUS, self.fork_ambiguous_message(op, resolution), work_dir=work_dir)
        if resolution.kind is ResolutionKind.NOT_APPLICABLE:
            return Decision(
                Outcome.NOT_APPLICABLE,
                f"{PREFIX} cannot verify ownership ({resolution.detail}), allowing",
                target=resolution.target,
                work_dir=work_dir,
            )

        target = resolution.target
        fork_parent = self.fork_parent(work_dir) if resolution.explicit else None
        if is_allowed(target, policy, fork_parent):
            return Decision(Outcome.ALLOWED, target=target, work_dir=work_dir)
        return Decision(Outcome.DENIED, self.denied_message(op, work_dir, resolution, policy),
                        target=target, work_dir=work_dir)

    def work_dir_for(self, command: str, cwd: str, op: Operation) -> Optional[str]:
        return resolve_work_dir(command, cwd, before=op.start)

    def fork_parent(self, work_dir: str) -> Optional[RepoRef]:
        """The `upstream` remote's repo, if the work dir has one."""
        repo = self.repo_factory(work_dir)
        return normalize_url(repo.fetch_url("upstream"))

    # --- messages ---

    def too_complex_message(self) -> str:
        return (
            f"🚫 {PREFIX} {self.name} in batch/loop command: cannot verify targets\n"
            f"   Run each command individually so targets can be validated."
        )

    def unconfigured_message(self) -> str:
        return (
            f"🚫 {PREFIX} Not configured, run the guardrails init command to set up\n"
            f"   GIT_GUARDRAILS_ALLOWED_OWNERS is not set and no config file provides allowed_owners."
        )

    def unresolvable_message(self, op: Operation, work_dir: str, resolution: Resolution) -> str:
        return (
            f"⚠️  {PREFIX} Cannot determine target repo for {op.label}\n"
            f"   Directory: {work_dir}\n"
            f"   Reason:    {resolution.detail}"
        )

    def fork_ambiguous_message(self, op: Operation, resolution: Resolution) -> str:
        origin = resolution.origin.slug if resolution.origin else "(unknown)"
        upstream = resolution.upstream.slug if resolution.upstream else "(unknown)"
        return (
            f"🚫 {PREFIX} Write operation in a fork, specify target with -R\n"
            f"   Fork:     {origin}\n"
            f"   Upstream: {upstream}\n"
            f"\n"
            f"   Use -R {origin} to target your fork\n"
            f"   Use -R {upstream} to target upstream (if intended)"
        )

    def denied_message(self, op: Operation, work_dir: str, resolution: Resolution, policy: PolicyConfig) -> str:
        return (
            f"🚫 {PREFIX} {op.label} targets a repo you don't own\n"
            f"   Target:  {resolution.target}\n"
            f"   Allowed: {policy.describe()}"
        )


__all__ = [
    'PREFIX',
    'Outcome',
    'Decision',
    'OperationKind',
    'Operation',
    'ResolutionKind',
    'Resolution',
    'GuardEvaluator',
]
