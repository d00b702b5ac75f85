"""Multi-strategy text matching for search/replace operations.

The engine tries, in order: exact substring, line-ending normalized
substring, whitespace-normalized line blocks and, for patterns that look
like regular expressions, a regex. The first strategy that finds an
occurrence wins. Live regex syntax is only honored in ``/body/flags``
notation; other regex-looking patterns match literally.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from changekit.apply.repair import looks_like_code, repair_pattern
from changekit.core.config import ChangeKitConfig
from changekit.core.models import MatchMethod

logger = logging.getLogger(__name__)

_WHITESPACE_RUN = re.compile(r"\s+")
_SLASH_DELIMITED = re.compile(r"/(.*)/([gimsuy]*)")
_REGEX_HINTS = re.compile(r"\\d|\\w|\\s|\[\^?.*?\]|\(\?:|\(\?!|\(\?=|\\b|^\^|\$\Z")
_JS_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|`|'|\d{1,2})")

_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RUN.sub(" ", text).strip()


def looks_like_regex(pattern: str) -> bool:
    """True when the pattern was probably meant as a regular expression."""
    return bool(_SLASH_DELIMITED.fullmatch(pattern) or _REGEX_HINTS.search(pattern))


def slash_body(pattern: str) -> str | None:
    """The body of a ``/body/flags`` pattern, or ``None`` for any other pattern."""
    m = _SLASH_DELIMITED.fullmatch(pattern)
    return m.group(1) if m else None


def parse_regex_pattern(pattern: str, default_flags: str = "ms") -> tuple[str, str]:
    """Split ``/body/flags`` notation.

    Only the slash form carries live regex syntax. Any other pattern is
    escaped, so text such as ``items[0]`` or ``C:\\src`` matches literally.
    """
    m = _SLASH_DELIMITED.fullmatch(pattern)
    if m:
        return m.group(1), m.group(2) or default_flags
    return re.escape(pattern), default_flags


def compile_flags(flags: str) -> int:
    value = 0
    for flag in flags:
        value |= _FLAG_MAP.get(flag, 0)
    return value


def expand_replacement(match: re.Match, template: str) -> str:
    """Expand ``$&``, ``$1``, ``$$``, ``$``` and ``$'`` in a replacement template.

    Anything else in the template is literal text, including backslashes.
    """
    def _token(tm: re.Match) -> str:
        token = tm.group(1)
        if token == "$":
            return "$"
        if token == "&":
            return match.group(0)
        if token == "`":
            return match.string[:match.start()]
        if token == "'":
            return match.string[match.end():]
        index = int(token)
        if 0 < index <= (match.re.groups or 0):
            return match.group(index) or ""
        if len(token) == 2 and 0 < int(token[0]) <= (match.re.groups or 0):
            return (match.group(int(token[0])) or "") + token[1]
        return tm.group(0)

    return _JS_REPLACEMENT_TOKEN.sub(_token, template)


@dataclass
class Match:
    """Where (and how) a search pattern was found in some content.

    ``content`` is the text the locations refer to; for the line-ending
    normalized strategy it is the normalized form of the original.
    """

    method: MatchMethod
    count: int
    content: str
    pattern: str
    spans: list[tuple[int, int]] = field(default_factory=list)
    line_windows: list[tuple[int, int]] = field(default_factory=list)
    regex: re.Pattern | None = None
    notes: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.count > 0

    def locate(self) -> list[tuple[int, int]]:
        """Character spans of every occurrence within ``content``."""
        if self.method != MatchMethod.WHITESPACE:
            return list(self.spans)
        offsets = [0]
        for line in self.content.split("\n"):
            offsets.append(offsets[-1] + len(line) + 1)
        return [(offsets[start], offsets[end] - 1) for start, end in self.line_windows]

    def replace(self, replacement: str) -> str:
        """Return ``content`` with every occurrence replaced."""
        if not self.found:
            return self.content
        if self.method in (MatchMethod.EXACT, MatchMethod.FALLBACK):
            return self.content.replace(self.pattern, replacement)
        if self.method == MatchMethod.NORMALIZED:
            return self.content.replace(self.pattern, normalize_line_endings(replacement))
        if self.method == MatchMethod.WHITESPACE:
            return self._replace_windows(replacement)
        return self._replace_regex(replacement)

    def _replace_windows(self, replacement: str) -> str:
        lines = self.content.split("\n")
        if replacement.endswith("\n"):
            replacement = replacement[:-1]
        new_lines = replacement.split("\n")
        # Bottom-up so earlier line indices stay valid.
        for start, end in sorted(self.line_windows, reverse=True):
            lines[start:end] = new_lines
        return "\n".join(lines)

    def _replace_regex(self, replacement: str) -> str:
        def _sub(m: re.Match) -> str:
            if m.start() == m.end():
                return ""
            return expand_replacement(m, replacement)

        return self.regex.sub(_sub, self.content)


class MatchEngine:
    """Finds a search pattern in file content using an ordered strategy cascade."""

    def __init__(self, config: ChangeKitConfig | None = None):
        self.config = config or ChangeKitConfig()

    def match(self, content: str, pattern: str) -> Match:
        """Run the strategy cascade and return the first strategy that matches."""
        none = Match(method=MatchMethod.NONE, count=0, content=content, pattern=pattern)
        if not pattern:
            return none

        for strategy in (self._exact, self._normalized, self._whitespace, self._regex):
            result = strategy(content, pattern, none.notes)
            if result is not None and result.found:
                result.notes[:0] = none.notes
                logger.debug("Matched %d occurrence(s) via %s", result.count, result.method.value)
                return result
        return none

    def replace(self, content: str, pattern: str, replacement: str) -> tuple[str, Match]:
        """Replace every occurrence of ``pattern``.

        When no strategy matches, a plain substring replace is still
        attempted and reported as ``MatchMethod.FALLBACK`` if it changed
        anything.
        """
        found = self.match(content, pattern)
        if found.found:
            return found.replace(replacement), found

        updated = content.replace(pattern, replacement) if pattern else content
        if updated != content:
            fallback = Match(
                method=MatchMethod.FALLBACK,
                count=content.count(pattern),
                content=content,
                pattern=pattern,
                notes=found.notes,
            )
            return updated, fallback
        return content, found

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _exact(self, content: str, pattern: str, notes: list[str]) -> Match | None:
        if pattern not in content:
            return None
        spans = _find_all(content, pattern)
        return Match(method=MatchMethod.EXACT, count=len(spans), content=content,
                     pattern=pattern, spans=spans)

    def _normalized(self, content: str, pattern: str, notes: list[str]) -> Match | None:
        norm_content = normalize_line_endings(content)
        norm_pattern = normalize_line_endings(pattern)
        if norm_pattern not in norm_content:
            return None
        spans = _find_all(norm_content, norm_pattern)
        return Match(method=MatchMethod.NORMALIZED, count=len(spans), content=norm_content,
                     pattern=norm_pattern, spans=spans)

    def _whitespace(self, content: str, pattern: str, notes: list[str]) -> Match | None:
        cfg = self.config.match
        if not (len(pattern.strip()) > cfg.whitespace_min_chars and len(pattern) < cfg.whitespace_max_chars):
            return None

        target = collapse_whitespace(pattern)
        window = len(pattern.strip("\r\n").split("\n"))
        lines = content.split("\n")

        windows: list[tuple[int, int]] = []
        i = 0
        while i + window <= len(lines):
            if collapse_whitespace("\n".join(lines[i:i + window])) == target:
                windows.append((i, i + window))
                i += window
            else:
                i += 1

        if not windows:
            return None
        return Match(method=MatchMethod.WHITESPACE, count=len(windows), content=content,
                     pattern=pattern, line_windows=windows)

    def _regex(self, content: str, pattern: str, notes: list[str]) -> Match | None:
        if not looks_like_regex(pattern) or looks_like_code(pattern):
            return None

        body, flags = parse_regex_pattern(pattern, self.config.match.default_regex_flags)
        regex = self._compile(body, flags, notes)
        spans = [m.span() for m in regex.finditer(content) if m.end() > m.start()]
        if not spans:
            return None
        return Match(method=MatchMethod.REGEX, count=len(spans), content=content,
                     pattern=pattern, spans=spans, regex=regex)

    def _compile(self, body: str, flags: str, notes: list[str]) -> re.Pattern:
        """Compile ``body``; fall back to its repaired form, then to a literal."""
        flag_bits = compile_flags(flags)
        try:
            return re.compile(body, flag_bits)
        except re.error as exc:
            notes.append(f"Warning: pattern looks like regex but failed to compile: {exc}")
            logger.warning("Regex compile failed (%s); trying repaired pattern", exc)

        repaired = repair_pattern(body, self.config.repair.max_pattern_length)
        if repaired.changed:
            try:
                regex = re.compile(repaired.fixed, flag_bits)
                notes.append(f"Note: regex repaired ({'; '.join(repaired.notes)})")
                return regex
            except re.error as exc:
                logger.warning("Repaired regex still invalid: %s", exc)

        notes.append("Note: regex treated as literal text after syntax error")
        return re.compile(re.escape(body), flag_bits)


def _find_all(content: str, pattern: str) -> list[tuple[int, int]]:
    spans = []
    pos = content.find(pattern)
    while pos != -1:
        spans.append((pos, pos + len(pattern)))
        pos = content.find(pattern, pos + len(pattern))
    return spans
