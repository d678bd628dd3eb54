#!/usr/bin/env python3
"""
git-guardrails: Slash Command Handler

Commands:
  /guardrails init [owner ...] [--repos o/r ...] [--hosts h ...]
                          Write the settings file (detects your gh login)
  /guardrails status      Show the effective policy
  /guardrails check CMD [--cwd DIR]
                          Dry-run both guards against a command
  /guardrails log         Show recent audit log entries
  /guardrails help        Show this help
"""

import io
import json
import os
import shlex
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

sys.path.insert(0, str(Path(__file__).parent.parent / "hooks"))

from gh_write_guard import WriteGuard  # noqa: E402
from guardrails_config import PolicyConfig, config_path, load_policy  # noqa: E402
from hook_io import LOG_FILE  # noqa: E402
from push_guard import PushGuard  # noqa: E402

# Fix Windows console encoding for Unicode output
if sys.platform == "win32":
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

GH_TIMEOUT = 10


def detect_login() -> Optional[str]:
    """The authenticated gh user, or None when gh is missing or logged out."""
    try:
        result = subprocess.run(
            ["gh", "api", "user", "-q", ".login"],
            capture_output=True,
            text=True,
            timeout=GH_TIMEOUT,
        )
    except (subprocess.TimeoutExpired, OSError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def parse_init_args(args: List[str]) -> Tuple[List[str], List[str], List[str]]:
    """Split init arguments into (owners, repos, hosts)."""
    groups: Dict[str, List[str]] = {"owners": [], "repos": [], "hosts": []}
    current = "owners"
    for arg in args:
        if arg in ("--repos", "--repo"):
            current = "repos"
        elif arg in ("--hosts", "--host"):
            current = "hosts"
        elif arg in ("--owners", "--owner"):
            current = "owners"
        else:
            groups[current].extend(a for a in arg.replace(",", " ").split() if a)
    return groups["owners"], groups["repos"], groups["hosts"]


def save_config(path: Path, settings: dict):
    """Write the settings file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = yaml.safe_dump(settings, default_flow_style=False, sort_keys=False)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        delete=False,
        dir=str(path.parent),
        prefix="config.",
        suffix=".tmp",
    ) as tf:
        tf.write(payload)
        tmp_path = tf.name
    os.replace(tmp_path, path)


def cmd_init(args: List[str]) -> int:
    owners, repos, hosts = parse_init_args(args)

    if not owners:
        login = detect_login()
        if not login:
            print("❌ Could not detect your GitHub login (is gh installed and authenticated?)")
            print("   Usage: /guardrails init <owner> [more owners] [--repos owner/repo ...]")
            return 1
        print(f"Detected GitHub login: {login}")
        owners = [login]

    settings = {"allowed_owners": owners}
    if repos:
        settings["allowed_repos"] = repos
    if hosts:
        settings["github_hosts"] = hosts

    path = config_path()
    try:
        save_config(path, settings)
    except (IOError, OSError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return 1

    print("✅ git-guardrails configured")
    print(f"  Owners:  {' '.join(owners)}")
    if repos:
        print(f"  Repos:   {' '.join(repos)}")
    if hosts:
        print(f"  Hosts:   {' '.join(hosts)}")
    print(f"  Config:  {path}")
    print()
    print("  GIT_GUARDRAILS_ALLOWED_OWNERS / _REPOS / _GITHUB_HOSTS override the file when set.")
    return 0


def recent_stats(limit: int = 100) -> Optional[Tuple[int, int, int]]:
    """(entries, blocks, allows) over the last `limit` audit entries."""
    if not LOG_FILE.exists():
        return None
    try:
        lines = LOG_FILE.read_text().strip().split('\n')
    except (IOError, OSError):
        return None
    recent = [l for l in lines[-limit:] if l]
    blocks = sum(1 for l in recent if '"verdict": "BLOCK"' in l)
    allows = sum(1 for l in recent if '"verdict": "ALLOW"' in l)
    return len(recent), blocks, allows


def cmd_status() -> int:
    policy = load_policy()

    print("git-guardrails")
    print()
    if policy.is_configured:
        print("  Status:      🟢 Configured")
    else:
        print("  Status:      🔴 Not configured (all pushes and gh writes are blocked)")
    print(f"  Owners:      {' '.join(policy.allowed_owners) or '-'}")
    print(f"  Repos:       {' '.join(policy.allowed_repos) or '-'}")
    print(f"  Extra hosts: {' '.join(policy.github_hosts) or '-'}")
    print(f"  Source:      {policy.source}")
    print(f"  Fail mode:   Fail-closed (unresolvable targets block)")
    print()
    print(f"  Config file: {config_path()}")
    print(f"  Audit log:   {LOG_FILE}")

    stats = recent_stats()
    if stats:
        count, blocks, allows = stats
        print()
        print(f"  Recent stats (last {count} decisions):")
        print(f"    Blocked: {blocks}")
        print(f"    Allowed: {allows}")
    return 0


def join_command(words: List[str]) -> str:
    """
    Rebuild a command from argv words.

    Words the caller quoted (they contain whitespace) are re-quoted; operators
    such as && stay bare so the shell structure survives.
    """
    if len(words) == 1:
        return words[0]
    return " ".join(shlex.quote(w) if any(c.isspace() for c in w) else w for w in words)


def cmd_check(args: List[str], policy: Optional[PolicyConfig] = None) -> int:
    """Dry-run both guards. Nothing is logged."""
    cwd = os.getcwd()
    words = []
    i = 0
    while i < len(args):
        if args[i] == "--cwd" and i + 1 < len(args):
            cwd = os.path.abspath(os.path.expanduser(args[i + 1]))
            i += 2
            continue
        words.append(args[i])
        i += 1

    command = join_command(words)
    if not command.strip():
        print("Usage: /guardrails check '<command>' [--cwd DIR]")
        return 1

    policy = load_policy() if policy is None else policy
    blocked = False
    for name, guard in (("push", PushGuard()), ("gh", WriteGuard())):
        decision = guard.evaluate(command, cwd, policy)
        icon = "✅" if decision.allowed else "🛑"
        target = f" -> {decision.target}" if decision.target else ""
        print(f"{icon} {name:4} {decision.verdict} ({decision.outcome.value}){target}")
        if decision.reason:
            for line in decision.reason.splitlines():
                print(f"       {line}")
        blocked = blocked or not decision.allowed
    return 2 if blocked else 0


def cmd_log() -> int:
    """Show recent audit log entries."""
    if not LOG_FILE.exists():
        print("No audit log found yet.")
        print(f"Log will be created at: {LOG_FILE}")
        return 0

    try:
        lines = LOG_FILE.read_text().strip().split('\n')
    except (IOError, OSError) as e:
        print(f"Error reading log: {e}")
        return 1
    recent = lines[-20:]  # Last 20 entries

    print(f"git-guardrails Audit Log (last {len(recent)} entries)")
    print("=" * 60)

    for line in recent:
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        ts = entry.get("timestamp", "")[:19]  # Trim microseconds
        verdict = entry.get("verdict", "?")
        guard = entry.get("guard", "?")
        cmd = entry.get("command", "")[:50]
        reason = (entry.get("reason") or "").splitlines()
        target = entry.get("target")

        icon = "🛑" if verdict == "BLOCK" else "✅"
        print(f"{ts} {icon} [{guard:4}] {cmd}")
        detail = reason[0][:60] if reason else (f"target {target}" if target else "")
        if detail:
            print(f"                         └─ {detail}")

    print()
    print(f"Full log: {LOG_FILE}")
    return 0


def cmd_help() -> int:
    print("""
git-guardrails
Keeps AI agents from pushing to, or writing into, repositories you don't own

Commands:
  /guardrails init [owner ...] [--repos o/r ...] [--hosts h ...]
                              Write ~/.git-guardrails/config.yaml
                              (no owner: uses your gh login)
  /guardrails status          Show the effective policy and stats
  /guardrails check CMD [--cwd DIR]
                              Dry-run the guards against a command
  /guardrails log             Show recent audit log entries
  /guardrails help            Show this help

What it guards:
  🛑 git push to a remote whose owner is not allowed
  🛑 gh writes (pr/issue/release/repo/api ...) against repos you don't own
  🛑 ambiguous targets: forks without -R, loops, batched pushes

Design:
  • Fail-closed: if the target cannot be determined, the command is blocked
  • Environment variables override the settings file key by key
  • Audit logging: all decisions logged to ~/.git-guardrails/audit.log
""")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        return cmd_help()

    subcommand = argv[0].lower()
    rest = argv[1:]

    if subcommand in ("init", "setup"):
        return cmd_init(rest)
    if subcommand in ("check", "test"):
        return cmd_check(rest)

    commands = {
        "status": cmd_status,
        "state": cmd_status,
        "log": cmd_log,
        "logs": cmd_log,
        "audit": cmd_log,
        "help": cmd_help,
        "-h": cmd_help,
        "--help": cmd_help,
    }

    handler = commands.get(subcommand)
    if handler:
        return handler()
    print(f"Unknown command: {subcommand}")
    print("Use '/guardrails help' for available commands.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
