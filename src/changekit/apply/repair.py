"""Heuristic repair of malformed search patterns.

Search patterns come from language-model output and are frequently
truncated or half-escaped. ``repair_pattern`` fixes the common cases
before a pattern is compiled as a regex. Every fix only ever appends
text or escapes an unescaped character, so running the repair twice
gives the same result as running it once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

REGEX_META_CHARS = frozenset(".*+?^${}()|[]\\")

# Markers that identify a literal code snippet rather than an intended regex.
CODE_MARKERS = ("async (", "Promise<", "=>")

# Keywords that make a search pattern read like source code.
CODE_KEYWORDS = ("function", "class ", "import ", "export ")

_PAIRS = (
    ("(", ")", "parentheses"),
    ("{", "}", "curly braces"),
    ("[", "]", "square brackets"),
)

DEFAULT_MAX_PATTERN_LENGTH = 5000


@dataclass
class RepairOutcome:
    """Result of ``repair_pattern``."""

    fixed: str
    notes: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.notes)


def _unescaped(pattern: str) -> Iterator[tuple[int, str]]:
    """Yield ``(index, char)`` for every character not consumed by a backslash escape.

    A trailing lone backslash is yielded as an unescaped character.
    """
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "\\" and i + 1 < n:
            i += 2
            continue
        yield i, ch
        i += 1


def escape_unescaped(text: str) -> str:
    """Escape regex metacharacters that are not already escaped."""
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\" and i + 1 < n:
            out.append(text[i:i + 2])
            i += 2
            continue
        out.append("\\" + ch if ch in REGEX_META_CHARS else ch)
        i += 1
    return "".join(out)


def has_code_markers(pattern: str) -> bool:
    return any(marker in pattern for marker in CODE_MARKERS)


def looks_like_code(pattern: str) -> bool:
    """True when the pattern reads like a source-code snippet."""
    return any(keyword in pattern for keyword in CODE_KEYWORDS) or has_code_markers(pattern)


def _balance_brackets(pattern: str, notes: list[str]) -> str:
    counts = {ch: 0 for pair in _PAIRS for ch in pair[:2]}
    for _, ch in _unescaped(pattern):
        if ch in counts:
            counts[ch] += 1

    fixed = pattern
    for opener, closer, name in _PAIRS:
        missing = counts[opener] - counts[closer]
        # Excess closers are left alone; only under-closed patterns are fixed.
        if missing > 0:
            fixed += closer * missing
            notes.append(f"Added {missing} missing closing {name}")
    return fixed


def _close_template_literals(pattern: str, notes: list[str]) -> str:
    chars = list(_unescaped(pattern))
    needed = 0
    for k, (i, ch) in enumerate(chars):
        if ch != "$" or k + 1 >= len(chars):
            continue
        j, nxt = chars[k + 1]
        if nxt != "{" or j != i + 1:
            continue
        depth = 0
        for _, c in chars[k + 1:]:
            if c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    break
        needed = max(needed, depth)

    if needed:
        notes.append(f"Closed {needed} unterminated template literal(s)")
        return pattern + "}" * needed
    return pattern


def _escape_code_snippet(pattern: str, notes: list[str]) -> str:
    if not has_code_markers(pattern):
        return pattern
    escaped = escape_unescaped(pattern)
    if escaped != pattern:
        notes.append("Escaped special regex characters in code snippet")
    return escaped


def _escape_dollars(pattern: str, notes: list[str]) -> str:
    positions = [
        i for i, ch in _unescaped(pattern)
        if ch == "$" and pattern[i + 1:i + 2] != "{"
    ]
    if not positions:
        return pattern
    out = []
    last = 0
    for i in positions:
        out.append(pattern[last:i])
        out.append("\\$")
        last = i + 1
    out.append(pattern[last:])
    notes.append(f"Escaped {len(positions)} standalone dollar sign(s)")
    return "".join(out)


def _ends_with_lone_backslash(text: str) -> bool:
    last = None
    for i, ch in _unescaped(text):
        last = (i, ch)
    return last == (len(text) - 1, "\\")


def _apply_fixes(pattern: str, notes: list[str]) -> str:
    fixed = pattern
    # A lone trailing backslash would escape whatever closer gets appended.
    if _ends_with_lone_backslash(fixed):
        fixed += "\\"
        notes.append("Escaped trailing backslash")
    fixed = _balance_brackets(fixed, notes)
    fixed = _close_template_literals(fixed, notes)
    fixed = _escape_code_snippet(fixed, notes)
    return _escape_dollars(fixed, notes)


def repair_pattern(pattern: str, max_length: int = DEFAULT_MAX_PATTERN_LENGTH) -> RepairOutcome:
    """Fix common problems in a search pattern.

    The fixes run in a fixed order and each one appends a note when it
    changes the pattern:

    1. append missing ``)``, ``}`` and ``]`` closers
    2. close unterminated ``${...}`` sequences
    3. escape metacharacters when the pattern is a code snippet
    4. escape standalone ``$``
    5. truncate to ``max_length``

    Truncation cuts the input and re-runs fixes 1-4 on the shorter text,
    so the result never exceeds ``max_length`` and repairing it again is
    a no-op.
    """
    notes: list[str] = []
    fixed = _apply_fixes(pattern, notes)
    if len(fixed) <= max_length:
        return RepairOutcome(fixed=fixed, notes=notes)

    cut = max_length
    while True:
        head = pattern[:max(cut, 0)]
        # Never leave the first half of a split escape pair at the end.
        while head and _ends_with_lone_backslash(head):
            head = head[:-1]
        notes = []
        fixed = _apply_fixes(head, notes)
        if len(fixed) <= max_length:
            break
        cut = len(head) - max(1, (len(fixed) - max_length) // 2)

    notes.append(f"Truncated excessively long pattern to {max_length} characters")
    return RepairOutcome(fixed=fixed, notes=notes)
