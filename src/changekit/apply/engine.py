"""Change engine: orchestrates parsing, previewing and applying change-sets."""

from __future__ import annotations

from pathlib import Path

from changekit.apply.applier import ChangeApplier
from changekit.apply.matcher import MatchEngine
from changekit.apply.parser import ChangeSetParser
from changekit.apply.preview import ChangePreviewer, render_preview_report
from changekit.apply.store import FileStore, LocalFileStore
from changekit.apply.transaction import TransactionManager
from changekit.core.config import ChangeKitConfig, load_config
from changekit.core.errors import ParseError
from changekit.core.models import (
    ApplyError,
    ApplyResult,
    ChangeSet,
    ErrorKind,
    PreviewReport,
    PreviewResult,
)


class ChangeEngine:
    """Core engine bound to one project root.

    Callers must not run two applies concurrently against the same root
    with overlapping files; each call is one sequential transaction.
    """

    def __init__(
        self,
        project_path: Path | None = None,
        config: ChangeKitConfig | None = None,
        store: FileStore | None = None,
    ):
        self.project_path = Path(project_path or Path.cwd()).resolve()
        self.config = config or load_config(self.project_path)
        self.store = store or LocalFileStore(self.project_path, self.config.apply.encoding)
        self.parser = ChangeSetParser(self.config)
        self.matcher = MatchEngine(self.config)
        self.applier = ChangeApplier(self.config, self.matcher)
        self.previewer = ChangePreviewer(self.config, self.matcher)

    def parse(self, raw: str) -> ChangeSet:
        """Parse raw model output. Raises ``ParseError``."""
        return self.parser.parse(raw)

    def apply(self, changeset: ChangeSet, dry_run: bool | None = None) -> ApplyResult:
        """Apply a change-set as one transaction."""
        if dry_run is None:
            dry_run = self.config.apply.dry_run
        transaction = TransactionManager(self.store, self.applier, dry_run=dry_run)
        transaction.changes.extend(f"Warning: {w}" for w in changeset.warnings)
        return transaction.execute(changeset)

    def apply_text(self, raw: str, dry_run: bool | None = None) -> ApplyResult:
        """Parse and apply; a parse failure becomes a failed result."""
        try:
            changeset = self.parse(raw)
        except ParseError as exc:
            return ApplyResult(
                success=False,
                message=str(exc),
                changes=[f"Error: {exc}"],
                errors=[ApplyError(kind=ErrorKind.PARSE, message=str(exc))],
                dry_run=bool(dry_run),
            )
        return self.apply(changeset, dry_run=dry_run)

    def preview_report(self, changeset: ChangeSet) -> PreviewReport:
        return self.previewer.preview(changeset, self.store)

    def preview(self, changeset: ChangeSet) -> list[PreviewResult]:
        """One result per file/operation pair, in document order."""
        return self.preview_report(changeset).results

    def preview_text(self, changeset: ChangeSet) -> str:
        """Plain-text preview report."""
        return render_preview_report(self.preview_report(changeset))


def parse(raw: str, config: ChangeKitConfig | None = None) -> ChangeSet:
    return ChangeSetParser(config).parse(raw)


def apply(
    changeset: ChangeSet,
    project_root: Path | str,
    dry_run: bool = False,
    config: ChangeKitConfig | None = None,
) -> ApplyResult:
    return ChangeEngine(Path(project_root), config).apply(changeset, dry_run=dry_run)


def preview(
    changeset: ChangeSet,
    project_root: Path | str,
    config: ChangeKitConfig | None = None,
) -> list[PreviewResult]:
    return ChangeEngine(Path(project_root), config).preview(changeset)


def apply_text(
    raw: str,
    project_root: Path | str,
    dry_run: bool = False,
    config: ChangeKitConfig | None = None,
) -> ApplyResult:
    """Parse ``raw`` and apply it under ``project_root``; never raises ``ParseError``."""
    return ChangeEngine(Path(project_root), config).apply_text(raw, dry_run=dry_run)
