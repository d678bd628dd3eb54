#!/usr/bin/env python3
"""
Heuristic shell scanning shared by the push and gh guards.

This is deliberately not a shell parser. It strips quoted literals, splits
command chains, spots loop syntax and follows `cd` segments. Anything it
cannot resolve statically is reported as such so the guards can block
instead of guessing.
"""

import os
import re
import shlex
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

# === QUOTED LITERALS ===

_DOUBLE_QUOTED_RE = re.compile(r'"[^"]*"')
_SINGLE_QUOTED_RE = re.compile(r"'[^']*'")


def strip_quoted(command: str) -> str:
    """
    Remove single- and double-quoted substrings.

    Loop keywords inside commit messages, titles and bodies are user data,
    not shell structure.
    """
    return _SINGLE_QUOTED_RE.sub("", _DOUBLE_QUOTED_RE.sub("", command))


# === COMPLEXITY GATE ===

_LOOP_RE = re.compile(
    r"\bfor\s+\w+\s+in\b"             # for x in a b; do ...
    r"|\bfor\s*\(\("                   # for ((i = 0; ...))
    r"|\b(?:while|until)\b.*?[;\n]\s*do\b",
    re.DOTALL,
)
_NESTED_SHELL_RE = re.compile(r"(?:^|[\s;&|(])(?:ba|z|da|k)?sh\s+-\w*c\b|\beval\b")


def has_loop(command: str) -> bool:
    """True when the quote-stripped command contains loop syntax."""
    return bool(_LOOP_RE.search(strip_quoted(command)))


def has_nested_shell(command: str) -> bool:
    """True for `bash -c`, `sh -c` or `eval` outside quoted literals."""
    return bool(_NESTED_SHELL_RE.search(strip_quoted(command)))


def too_complex_to_resolve(
    command: str,
    verb: Pattern,
    max_occurrences: Optional[int] = None,
) -> bool:
    """
    Decide whether a command's structure defeats single-target resolution.

    Args:
        command: Raw command text.
        verb: Pattern for the guarded verb (git push, gh).
        max_occurrences: If set, more verb matches than this in the raw,
            unstripped command also count as too complex.

    Returns:
        True when the verb appears and the command loops, re-enters a nested
        shell with the verb inside, or batches the verb.
    """
    if not verb.search(command):
        return False
    if has_loop(command) or has_nested_shell(command):
        return True
    if max_occurrences is not None and len(verb.findall(command)) > max_occurrences:
        return True
    return False


# === COMMAND CHAINS ===

@dataclass(frozen=True)
class Segment:
    """One command of a chain, with its offset and the operator before it."""

    start: int
    text: str
    operator: Optional[str]


_CHAIN_OPERATORS = ("&&", "||", ";", "|", "\n")


def split_segments(command: str) -> List[Segment]:
    """
    Split a command on &&, ||, ;, | and newlines outside quotes.

    Complex constructs are not handled perfectly; callers treat what they
    cannot understand as unresolvable.
    """
    segments: List[Segment] = []
    start = 0
    operator: Optional[str] = None
    quote_char = None
    i = 0

    def flush(end: int):
        raw = command[start:end]
        text = raw.strip()
        if text:
            offset = start + (len(raw) - len(raw.lstrip()))
            segments.append(Segment(offset, text, operator))

    while i < len(command):
        char = command[i]

        if char in ('"', "'") and (i == 0 or command[i - 1] != '\\'):
            if quote_char is None:
                quote_char = char
            elif char == quote_char:
                quote_char = None

        if quote_char is None:
            two_char = command[i:i + 2]
            if two_char in ('&&', '||'):
                flush(i)
                operator = two_char
                i += 2
                start = i
                continue
            if char in (';', '|', '\n'):
                flush(i)
                operator = char
                i += 1
                start = i
                continue

        i += 1

    flush(len(command))
    return segments


def tokenize(text: str) -> List[str]:
    """shlex-split a segment, falling back to whitespace on unbalanced quotes."""
    try:
        return shlex.split(text)
    except ValueError:
        return text.split()


_REDIRECT_RE = re.compile(r"^\d*(?:>>?|<<?|>&|<&|&>)")


def strip_redirections(tokens: List[str]) -> List[str]:
    """Drop redirections (`2>&1`, `> out.log`) so they are not read as arguments."""
    kept: List[str] = []
    skip_next = False
    for token in tokens:
        if skip_next:
            skip_next = False
            continue
        match = _REDIRECT_RE.match(token)
        if match:
            # Bare operator: its target is the next token
            skip_next = match.end() == len(token)
            continue
        kept.append(token)
    return kept


_WRAPPERS = frozenset({"sudo", "env", "command", "time", "nice", "nohup", "exec", "builtin"})
_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")


def bare_word(token: str) -> str:
    """Program name of a token: strips $( ( ` decorations and any directory."""
    if "$(" in token:
        token = token.split("$(", 1)[1]
    word = token.lstrip("(`{").rstrip(")`;}")
    return word.rsplit("/", 1)[-1]


def find_program(tokens: List[str], program: str) -> List[int]:
    """
    Indices where `program` is invoked within a tokenized segment.

    Matches the first word after env assignments and wrappers (sudo, env,
    nohup ...) as well as command substitutions such as `x=$(gh ...)`.
    """
    hits: List[int] = []
    at_command_start = True
    for index, token in enumerate(tokens):
        substituted = "$(" in token or token.startswith(("(", "`"))
        if at_command_start and not substituted:
            if _ASSIGNMENT_RE.match(token) or token.startswith("-") or bare_word(token) in _WRAPPERS:
                continue
        if bare_word(token) == program and (at_command_start or substituted):
            hits.append(index)
        at_command_start = False
    return hits


def env_assignments(tokens: List[str], index: int) -> Tuple[Tuple[str, str], ...]:
    """`NAME=value` prefixes of the program at tokens[index], including after `env`."""
    found = []
    for token in tokens[:index]:
        if _ASSIGNMENT_RE.match(token):
            name, value = token.split("=", 1)
            found.append((name, value))
    return tuple(found)


# === WORKING DIRECTORY ===

_CD_RE = re.compile(r"""^cd(?:\s+("([^"]*)"|'([^']*)'|([^\s&;|)]+))|\s*$)""")
_CD_OPERATORS = frozenset({None, "&&", "||", ";", "\n"})


def resolve_path(target: str, cwd: str) -> Optional[str]:
    """
    Resolve a directory argument against cwd.

    Returns None for targets that need the shell (`$VAR`, backticks, `cd -`).
    """
    if target == "-" or "$" in target or "`" in target:
        return None
    target = os.path.expanduser(target)
    if not os.path.isabs(target):
        target = os.path.join(cwd, target)
    return os.path.normpath(target)


def resolve_work_dir(command: str, cwd: str, before: Optional[int] = None) -> Optional[str]:
    """
    Find the directory a chained command will run in.

    Applies every `cd <target>` segment at the start of the command or after
    &&, ||, ; or a newline in order, each relative to the previous one,
    ignoring segments at or after offset `before` (the guarded verb).
    pushd and variables are not interpreted.

    Args:
        command: Raw command text.
        cwd: Directory the command starts in.
        before: Offset of the guarded verb, or None to scan the whole command.

    Returns:
        The effective directory, cwd when there is no cd, or None when the
        cd target cannot be resolved statically.
    """
    work_dir: Optional[str] = cwd
    for segment in split_segments(command):
        if before is not None and segment.start >= before:
            break
        if segment.operator not in _CD_OPERATORS:
            continue
        match = _CD_RE.match(segment.text.lstrip("({ \t"))
        if not match:
            continue
        if match.group(1) is None:
            target = "~"
        else:
            target = next(g for g in match.group(2, 3, 4) if g is not None)

        if work_dir is None and not os.path.isabs(os.path.expanduser(target)):
            # Relative to a directory that is already unknown
            continue
        work_dir = resolve_path(target, work_dir or cwd)
    return work_dir


__all__ = [
    'Segment',
    'strip_quoted',
    'has_loop',
    'has_nested_shell',
    'too_complex_to_resolve',
    'split_segments',
    'tokenize',
    'strip_redirections',
    'bare_word',
    'find_program',
    'env_assignments',
    'resolve_path',
    'resolve_work_dir',
]
