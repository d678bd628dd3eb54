#!/usr/bin/env python3
"""
Hook plumbing shared by the push and gh guards.

Reads the Claude Code PreToolUse payload from stdin, runs a guard, writes the
audit log and turns the Decision into an exit status:

  0 = allow
  2 = block (reason on stderr)

Design principle: Fail-closed. Unreadable input or an unexpected error blocks.
"""

import json
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import IO, Optional, Tuple

from guard_core import PREFIX, Decision, GuardEvaluator, Outcome
from guardrails_config import PolicyConfig, load_policy

# === CONFIGURATION ===

STATE_DIR = Path.home() / ".git-guardrails"
LOG_FILE = STATE_DIR / "audit.log"

EXIT_ALLOW = 0
EXIT_BLOCK = 2


class HookInputError(Exception):
    """stdin did not carry a usable hook payload."""


def read_hook_input(stream: Optional[IO[str]] = None) -> dict:
    """
    Parse the hook payload.

    Raises:
        HookInputError: on invalid JSON or a non-object payload.
    """
    stream = sys.stdin if stream is None else stream
    try:
        context = json.load(stream)
    except json.JSONDecodeError as e:
        raise HookInputError(f"Could not parse command context ({e})") from e
    if not isinstance(context, dict):
        raise HookInputError("Hook payload must be a JSON object")
    return context


def bash_command(context: dict) -> Tuple[Optional[str], str]:
    """
    Extract (command, cwd) from a payload.

    command is None when the tool is not Bash.
    """
    tool_name = context.get("tool_name", "Bash")
    cwd = context.get("cwd") or os.getcwd()
    if tool_name != "Bash":
        return None, cwd
    tool_input = context.get("tool_input") or {}
    command = tool_input.get("command", "") if isinstance(tool_input, dict) else ""
    return (command if isinstance(command, str) else ""), cwd


# === AUDIT LOG ===

def log_decision(guard: str, command: str, cwd: str, decision: Decision):
    """Append a decision to the audit log."""
    try:
        STATE_DIR.mkdir(parents=True, exist_ok=True)
        entry = {
            "timestamp": datetime.now().isoformat(),
            "guard": guard,
            "command": command[:500],  # Truncate very long commands
            "cwd": cwd,
            "work_dir": decision.work_dir,
            "verdict": decision.verdict,
            "outcome": decision.outcome.value,
            "target": decision.target.slug if decision.target else None,
            "reason": decision.reason,
        }
        with open(LOG_FILE, "a") as f:
            f.write(json.dumps(entry) + "\n")
    except (IOError, OSError) as e:
        # Logging failure shouldn't change the decision
        print(f"Warning: Could not write to audit log: {e}", file=sys.stderr)


def report(decision: Decision) -> int:
    """Print what the user needs to see and return the exit status."""
    if not decision.allowed:
        print(decision.reason, file=sys.stderr)
        return EXIT_BLOCK
    if decision.outcome is Outcome.NOT_APPLICABLE and decision.reason:
        print(decision.reason, file=sys.stderr)
    return EXIT_ALLOW


def run_guard(
    evaluator: GuardEvaluator,
    guard: str,
    stdin: Optional[IO[str]] = None,
    policy: Optional[PolicyConfig] = None,
) -> int:
    """
    Run one guard against the hook payload.

    Args:
        evaluator: PushGuard or WriteGuard.
        guard: Name recorded in the audit log.
        stdin: Payload stream (defaults to sys.stdin).
        policy: Ownership policy (defaults to load_policy()).

    Returns:
        Exit status for the hook process.
    """
    try:
        context = read_hook_input(stdin)
    except HookInputError as e:
        print(f"\n🚫 {PREFIX} BLOCKED: {e}\n", file=sys.stderr)
        print("Target check cannot proceed.\n", file=sys.stderr)
        return EXIT_BLOCK

    command, cwd = bash_command(context)
    if not command or not command.strip():
        return EXIT_ALLOW

    try:
        if policy is None:
            policy = load_policy()
        decision = evaluator.evaluate(command, cwd, policy)
    except Exception as e:
        decision = Decision(
            Outcome.INTERNAL_ERROR,
            f"🚫 {PREFIX} Internal error while checking {guard} ({type(e).__name__}: {e})\n"
            f"   Blocking to stay safe. Run the command manually if it is intended.",
            work_dir=cwd,
        )

    if decision.outcome is not Outcome.PASSTHROUGH:
        log_decision(guard, command, cwd, decision)
    return report(decision)


__all__ = [
    'STATE_DIR',
    'LOG_FILE',
    'EXIT_ALLOW',
    'EXIT_BLOCK',
    'HookInputError',
    'read_hook_input',
    'bash_command',
    'log_decision',
    'report',
    'run_guard',
]
