"""Shared data models used across changekit modules."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class FileAction(enum.Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


class MatchMethod(enum.Enum):
    EXACT = "exact-text"
    NORMALIZED = "normalized-text"
    WHITESPACE = "whitespace-normalized"
    REGEX = "regex"
    FALLBACK = "fallback"
    NONE = "none"

    @property
    def label(self) -> str:
        """Wording used in the change log."""
        return _METHOD_LABELS[self]


_METHOD_LABELS = {
    MatchMethod.EXACT: "exact match",
    MatchMethod.NORMALIZED: "normalized line endings",
    MatchMethod.WHITESPACE: "whitespace normalized",
    MatchMethod.REGEX: "regex mode",
    MatchMethod.FALLBACK: "fallback mode",
    MatchMethod.NONE: "no match",
}


class ErrorKind(enum.Enum):
    PARSE = "parse"
    IO = "io"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class Operation:
    """One ordered search/replace pair within a file's edit list."""

    search: str
    replace: str


@dataclass(frozen=True)
class FileChange:
    """A single file entry of a change-set."""

    path: str
    action: FileAction
    operations: tuple[Operation, ...] = ()
    meta: str | None = None


@dataclass(frozen=True)
class ChangeSet:
    """One proposed patch, as produced by the parser.

    ``warnings`` holds schema deviations; ``diagnostics`` holds notes about
    individual search patterns (repairs, code-like text, regex syntax).
    """

    version: str
    files: tuple[FileChange, ...] = ()
    meta: str | None = None
    warnings: tuple[str, ...] = ()
    diagnostics: tuple[str, ...] = ()


@dataclass
class BackupRecord:
    """Pre-mutation snapshot of one file. ``content=None`` means it did not exist."""

    path: str
    content: str | None


@dataclass
class ApplyError:
    """A run-level failure, tagged where it occurred."""

    kind: ErrorKind
    message: str
    path: str | None = None


@dataclass
class ApplyResult:
    """Outcome of applying a change-set."""

    success: bool
    message: str
    changes: list[str] = field(default_factory=list)
    errors: list[ApplyError] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class PreviewResult:
    """Read-only match report for one file/operation pair."""

    pattern: str
    file_path: str
    success: bool
    match_count: int = 0
    samples: list[str] = field(default_factory=list)
    match_method: MatchMethod = MatchMethod.NONE
    error: str | None = None
    auto_fixed: bool = False
    fixed_details: list[str] = field(default_factory=list)


@dataclass
class FilePreview:
    """Preview results for every operation of one file."""

    file_path: str
    action: FileAction
    file_exists: bool
    operations: list[PreviewResult] = field(default_factory=list)
    problem: str | None = None

    @property
    def has_issues(self) -> bool:
        return self.problem is not None or any(not op.success for op in self.operations)


@dataclass
class PreviewReport:
    """Preview results for a whole change-set."""

    success: bool
    message: str
    files: list[FilePreview] = field(default_factory=list)

    @property
    def results(self) -> list[PreviewResult]:
        """Flattened file/operation results in document order."""
        return [op for f in self.files for op in f.operations]

    @property
    def issue_count(self) -> int:
        return sum(1 for op in self.results if not op.success)
