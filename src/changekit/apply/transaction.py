"""Transactional application of a change-set with whole-run rollback.

A run moves through ``COLLECTING -> APPLYING -> COMMITTED | ROLLED_BACK``.
Every path is backed up before anything is written. If a write or
delete fails, every path already touched in the run is restored from its
backup, in the order the backups were taken.
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path

from changekit.apply.applier import ChangeApplier
from changekit.apply.store import FileStore
from changekit.core.errors import RollbackError, WriteIOError
from changekit.core.models import (
    ApplyError,
    ApplyResult,
    BackupRecord,
    ChangeSet,
    ErrorKind,
    FileAction,
    FileChange,
)

logger = logging.getLogger(__name__)


class TransactionState(enum.Enum):
    COLLECTING = "collecting"
    APPLYING = "applying"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransactionManager:
    """Backs up, applies and, on failure, restores the files of one run.

    One instance handles exactly one run. In dry-run mode the store's
    ``write`` and ``delete`` are never called; results are kept in an
    in-memory overlay instead.
    """

    def __init__(self, store: FileStore, applier: ChangeApplier | None = None, dry_run: bool = False):
        self.store = store
        self.applier = applier or ChangeApplier()
        self.dry_run = dry_run
        self.state = TransactionState.COLLECTING
        self.backups: dict[str, BackupRecord] = {}
        self.changes: list[str] = []
        self.errors: list[ApplyError] = []
        self._touched: set[str] = set()
        self._created_dirs: list[Path] = []
        self._overlay: dict[str, str | None] = {}

    # ------------------------------------------------------------------
    # Collecting
    # ------------------------------------------------------------------

    def collect(self, files: tuple[FileChange, ...] | list[FileChange]) -> list[FileChange]:
        """Back up every path and return the file changes whose preconditions hold."""
        self._require(TransactionState.COLLECTING)
        simulated: dict[str, bool] = {}
        included: list[FileChange] = []

        for change in files:
            path = change.path
            reason = self.store.check_path(path)
            if reason is None and self.store.is_dir(path):
                reason = f"{path} is a directory"
            if reason is None:
                reason = self._backup(path)
            if reason:
                self._warn(f"Skipped {path}: {reason}")
                continue

            exists = simulated.get(path, self.backups[path].content is not None)
            if change.action == FileAction.DELETE and not exists:
                self._warn(f"Skipped delete of {path}: file does not exist")
                continue
            if change.action == FileAction.CREATE and exists:
                self._warn(f"Skipped create of {path}: file already exists")
                continue
            if change.action == FileAction.MODIFY and not exists:
                self._warn(f"Skipped modify of {path}: file does not exist")
                continue

            simulated[path] = change.action != FileAction.DELETE
            included.append(change)

        return included

    def _backup(self, path: str) -> str | None:
        """Record the pre-run state of ``path`` on first touch; return a skip reason on failure."""
        if path in self.backups:
            return None
        content = None
        if self.store.exists(path):
            try:
                content = self.store.read(path)
            except UnicodeDecodeError:
                return "not a text file in the configured encoding"
            except OSError as exc:
                return f"could not be read ({exc})"
        self.backups[path] = BackupRecord(path=path, content=content)
        return None

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    def execute(self, changeset: ChangeSet) -> ApplyResult:
        """Run the whole transaction for ``changeset``."""
        plan = self.collect(changeset.files)
        self.state = TransactionState.APPLYING

        written = 0
        try:
            for change in plan:
                outcome = self.applier.apply_file(change, self.current(change.path))
                self.changes.append(f"Processing {change.action.value} {change.path}")
                self.changes.extend(outcome.log)
                if outcome.delete:
                    self.delete(change.path)
                    self.changes.append(f"Deleted {change.path}")
                    written += 1
                elif outcome.writes:
                    self.write(change.path, outcome.content)
                    verb = "Created" if change.action == FileAction.CREATE else "Modified"
                    self.changes.append(f"{verb} {change.path}")
                    written += 1
        except WriteIOError as exc:
            self.errors.append(ApplyError(kind=ErrorKind.IO, message=str(exc), path=exc.path))
            self.changes.append(f"Error: Failed to write {exc.path}: {exc.cause}")
            logger.error("Write failed for %s; rolling back: %s", exc.path, exc.cause)
            self.rollback()
            return ApplyResult(
                success=False,
                message=f"Failed to write {exc.path}; all changes were rolled back",
                changes=self.changes,
                errors=self.errors,
                dry_run=self.dry_run,
            )
        except Exception:
            logger.exception("Unexpected error while applying; rolling back")
            self.rollback()
            raise

        self.commit()
        if self.dry_run:
            message = f"Dry run: {written} file(s) would be changed"
        else:
            message = f"Applied changes to {written} file(s)"
        return ApplyResult(
            success=True,
            message=message,
            changes=self.changes,
            errors=self.errors,
            dry_run=self.dry_run,
        )

    def current(self, path: str) -> str | None:
        """Content of ``path`` as seen by this run so far."""
        if path in self._overlay:
            return self._overlay[path]
        record = self.backups.get(path)
        return record.content if record else None

    def write(self, path: str, content: str) -> None:
        self._require(TransactionState.APPLYING)
        self._overlay[path] = content
        if self.dry_run:
            return
        self._touched.add(path)
        try:
            # Record first; a failed write may already have created them.
            self._created_dirs.extend(self.store.missing_dirs(path))
            self.store.write(path, content)
        except OSError as exc:
            raise WriteIOError(path, exc) from exc
        logger.info("Wrote %s (%d characters)", path, len(content))

    def delete(self, path: str) -> None:
        self._require(TransactionState.APPLYING)
        self._overlay[path] = None
        if self.dry_run:
            return
        self._touched.add(path)
        try:
            self.store.delete(path)
        except OSError as exc:
            raise WriteIOError(path, exc) from exc
        logger.info("Deleted %s", path)

    # ------------------------------------------------------------------
    # Finishing
    # ------------------------------------------------------------------

    def commit(self) -> None:
        self._require(TransactionState.APPLYING)
        self.state = TransactionState.COMMITTED
        self.backups.clear()

    def rollback(self) -> None:
        """Restore every touched path. Failures are logged, never raised."""
        self._require(TransactionState.APPLYING)
        for path, record in self.backups.items():
            if path not in self._touched:
                continue
            try:
                self._restore(record)
            except RollbackError as exc:
                self.errors.append(ApplyError(kind=ErrorKind.ROLLBACK, message=str(exc), path=path))
                self.changes.append(f"Error: Failed to roll back {path}: {exc.cause}")
                logger.error("Rollback failed for %s: %s", path, exc.cause)
            else:
                self.changes.append(f"Rolled back {path}")

        # Deepest first, so a parent is empty by the time it is checked.
        for directory in sorted(set(self._created_dirs), key=lambda d: len(d.parts), reverse=True):
            try:
                self.store.remove_empty_dir(directory)
            except OSError as exc:
                logger.error("Could not remove directory %s: %s", directory, exc)

        self.state = TransactionState.ROLLED_BACK
        self.backups.clear()

    def _restore(self, record: BackupRecord) -> None:
        try:
            if record.content is None:
                if self.store.exists(record.path):
                    self.store.delete(record.path)
            else:
                self.store.write(record.path, record.content)
        except OSError as exc:
            raise RollbackError(record.path, exc) from exc

    def _require(self, state: TransactionState) -> None:
        if self.state != state:
            raise RuntimeError(f"Transaction is {self.state.value}, expected {state.value}")

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.changes.append(f"Warning: {message}")
