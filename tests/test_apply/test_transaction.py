"""Tests for transactional apply and rollback."""

from __future__ import annotations

from pathlib import Path

import pytest

from changekit.apply.applier import ChangeApplier
from changekit.apply.store import LocalFileStore
from changekit.apply.transaction import TransactionManager, TransactionState
from changekit.core.models import ChangeSet, ErrorKind, FileAction, FileChange, Operation


class FailingStore(LocalFileStore):
    """LocalFileStore whose first write or delete of selected paths fails.

    With ``fail_restore`` every second write to a path fails too, which
    breaks restoring a file that was already written once.
    """

    def __init__(self, root: Path, fail_on: set[str], fail_restore: bool = False):
        super().__init__(root)
        self.fail_on = set(fail_on)
        self.fail_restore = fail_restore
        self.calls: list[tuple[str, str]] = []
        self._writes: dict[str, int] = {}

    def _maybe_fail(self, path: str) -> None:
        if path in self.fail_on:
            self.fail_on.discard(path)
            raise PermissionError(f"denied: {path}")

    def write(self, path, content):
        self.calls.append(("write", path))
        self._maybe_fail(path)
        self._writes[path] = self._writes.get(path, 0) + 1
        if self.fail_restore and self._writes[path] > 1:
            raise PermissionError(f"restore denied: {path}")
        return super().write(path, content)

    def delete(self, path):
        self.calls.append(("delete", path))
        self._maybe_fail(path)
        return super().delete(path)


def _changeset(*files: FileChange) -> ChangeSet:
    return ChangeSet(version="1", files=files)


def _modify(path: str, search: str, replace: str) -> FileChange:
    return FileChange(path=path, action=FileAction.MODIFY, operations=(Operation(search, replace),))


def _create(path: str, content: str) -> FileChange:
    return FileChange(path=path, action=FileAction.CREATE, operations=(Operation("", content),))


@pytest.fixture
def project(tmp_path):
    (tmp_path / "a.txt").write_text("alpha\n")
    (tmp_path / "b.txt").write_text("beta\n")
    return tmp_path


class TestCommit:
    def test_applies_all_files(self, project):
        tx = TransactionManager(LocalFileStore(project))
        result = tx.execute(_changeset(
            _modify("a.txt", "alpha", "ALPHA"),
            _create("c/new.txt", "new\n"),
            FileChange(path="b.txt", action=FileAction.DELETE),
        ))
        assert result.success
        assert result.message == "Applied changes to 3 file(s)"
        assert (project / "a.txt").read_text() == "ALPHA\n"
        assert (project / "c" / "new.txt").read_text() == "new\n"
        assert not (project / "b.txt").exists()
        assert tx.state == TransactionState.COMMITTED
        assert tx.backups == {}

    def test_change_log(self, project):
        result = TransactionManager(LocalFileStore(project)).execute(
            _changeset(_modify("a.txt", "alpha", "ALPHA"))
        )
        assert result.changes[0] == "Processing modify a.txt"
        assert result.changes[-1] == "Modified a.txt"

    def test_unmatched_file_is_not_written(self, project):
        store = FailingStore(project, fail_on=set())
        result = TransactionManager(store).execute(_changeset(_modify("a.txt", "missing", "x")))
        assert result.success
        assert result.message == "Applied changes to 0 file(s)"
        assert store.calls == []

    def test_preserves_crlf(self, project):
        (project / "win.txt").write_bytes(b"one\r\ntwo\r\n")
        TransactionManager(LocalFileStore(project)).execute(_changeset(_modify("win.txt", "one", "ONE")))
        assert (project / "win.txt").read_bytes() == b"ONE\r\ntwo\r\n"


class TestPreconditions:
    def test_modify_missing_file_skipped(self, project):
        result = TransactionManager(LocalFileStore(project)).execute(
            _changeset(_modify("nope.txt", "x", "y"), _modify("a.txt", "alpha", "ALPHA"))
        )
        assert result.success
        assert "Warning: Skipped modify of nope.txt: file does not exist" in result.changes
        assert (project / "a.txt").read_text() == "ALPHA\n"

    def test_create_existing_file_skipped(self, project):
        result = TransactionManager(LocalFileStore(project)).execute(_changeset(_create("a.txt", "new")))
        assert "Warning: Skipped create of a.txt: file already exists" in result.changes
        assert (project / "a.txt").read_text() == "alpha\n"

    def test_delete_missing_file_skipped(self, project):
        result = TransactionManager(LocalFileStore(project)).execute(
            _changeset(FileChange(path="nope.txt", action=FileAction.DELETE))
        )
        assert "Warning: Skipped delete of nope.txt: file does not exist" in result.changes

    def test_path_outside_root_skipped(self, project):
        result = TransactionManager(LocalFileStore(project)).execute(
            _changeset(_create("../escape.txt", "x"), _create("/tmp/abs.txt", "x"))
        )
        assert result.success
        assert not (project.parent / "escape.txt").exists()
        assert sum(1 for line in result.changes if line.startswith("Warning: Skipped")) == 2

    def test_binary_file_skipped(self, project):
        (project / "blob.bin").write_bytes(b"\xff\xfe\x00bad")
        result = TransactionManager(LocalFileStore(project)).execute(_changeset(_modify("blob.bin", "bad", "x")))
        assert any("Skipped blob.bin" in line for line in result.changes)
        assert (project / "blob.bin").read_bytes() == b"\xff\xfe\x00bad"

    def test_duplicate_paths_see_earlier_entries(self, project):
        result = TransactionManager(LocalFileStore(project)).execute(_changeset(
            _create("d.txt", "one\n"),
            _modify("d.txt", "one", "two"),
        ))
        assert result.success
        assert (project / "d.txt").read_text() == "two\n"


class TestRollback:
    def test_failed_write_restores_earlier_files(self, project):
        (project / "win.txt").write_bytes(b"x\r\ny\r\n")
        store = FailingStore(project, fail_on={"b.txt"})
        tx = TransactionManager(store)
        result = tx.execute(_changeset(
            _modify("a.txt", "alpha", "ALPHA"),
            _modify("win.txt", "x", "X"),
            _modify("b.txt", "beta", "BETA"),
        ))
        assert not result.success
        assert result.message == "Failed to write b.txt; all changes were rolled back"
        assert result.errors[0].kind == ErrorKind.IO
        assert result.errors[0].path == "b.txt"
        assert (project / "a.txt").read_text() == "alpha\n"
        assert (project / "win.txt").read_bytes() == b"x\r\ny\r\n"
        assert (project / "b.txt").read_text() == "beta\n"
        assert tx.state == TransactionState.ROLLED_BACK

    def test_rollback_order_follows_backups(self, project):
        store = FailingStore(project, fail_on={"b.txt"})
        result = TransactionManager(store).execute(_changeset(
            _modify("a.txt", "alpha", "ALPHA"),
            _modify("b.txt", "beta", "BETA"),
        ))
        rolled = [line for line in result.changes if line.startswith("Rolled back")]
        assert rolled == ["Rolled back a.txt", "Rolled back b.txt"]

    def test_created_file_and_directory_removed(self, project):
        store = FailingStore(project, fail_on={"b.txt"})
        result = TransactionManager(store).execute(_changeset(
            _create("pkg/sub/new.py", "x = 1\n"),
            _modify("b.txt", "beta", "BETA"),
        ))
        assert not result.success
        assert not (project / "pkg").exists()

    def test_nested_created_directories_removed(self, project):
        store = FailingStore(project, fail_on={"b.txt"})
        result = TransactionManager(store).execute(_changeset(
            _create("a/x.txt", "x"),
            _create("a/b/y.txt", "y"),
            _modify("b.txt", "beta", "BETA"),
        ))
        assert not result.success
        assert not (project / "a").exists()
        assert sorted(p.name for p in project.iterdir()) == ["a.txt", "b.txt"]

    def test_directories_from_failed_write_removed(self, project):
        class MkdirThenFailStore(LocalFileStore):
            def write(self, path, content):
                self.resolve(path).parent.mkdir(parents=True, exist_ok=True)
                raise PermissionError(f"denied: {path}")

        result = TransactionManager(MkdirThenFailStore(project)).execute(
            _changeset(_create("deep/er/new.txt", "x"))
        )
        assert not result.success
        assert not (project / "deep").exists()

    def test_deleted_file_restored(self, project):
        store = FailingStore(project, fail_on={"b.txt"})
        TransactionManager(store).execute(_changeset(
            FileChange(path="a.txt", action=FileAction.DELETE),
            _modify("b.txt", "beta", "BETA"),
        ))
        assert (project / "a.txt").read_text() == "alpha\n"

    def test_failed_delete_rolls_back(self, project):
        store = FailingStore(project, fail_on={"b.txt"})
        result = TransactionManager(store).execute(_changeset(
            _modify("a.txt", "alpha", "ALPHA"),
            FileChange(path="b.txt", action=FileAction.DELETE),
        ))
        assert not result.success
        assert (project / "a.txt").read_text() == "alpha\n"
        assert (project / "b.txt").exists()

    def test_rollback_failure_is_recorded(self, project):
        store = FailingStore(project, fail_on={"b.txt"}, fail_restore=True)
        result = TransactionManager(store).execute(_changeset(
            _modify("a.txt", "alpha", "ALPHA"),
            _modify("b.txt", "beta", "BETA"),
        ))
        kinds = [e.kind for e in result.errors]
        assert kinds[0] == ErrorKind.IO
        assert ErrorKind.ROLLBACK in kinds
        assert any(line.startswith("Error: Failed to roll back a.txt") for line in result.changes)

    def test_unexpected_error_rolls_back_and_raises(self, project):
        class ExplodingApplier:
            def __init__(self):
                self.calls = 0

            def apply_file(self, change, current):
                self.calls += 1
                if self.calls == 2:
                    raise RuntimeError("boom")
                return ChangeApplier().apply_file(change, current)

        tx = TransactionManager(LocalFileStore(project), ExplodingApplier())
        with pytest.raises(RuntimeError, match="boom"):
            tx.execute(_changeset(
                _modify("a.txt", "alpha", "ALPHA"),
                _modify("b.txt", "beta", "BETA"),
            ))
        assert (project / "a.txt").read_text() == "alpha\n"
        assert tx.state == TransactionState.ROLLED_BACK


class TestDryRun:
    def test_never_touches_the_store(self, project):
        store = FailingStore(project, fail_on=set())
        result = TransactionManager(store, dry_run=True).execute(_changeset(
            _modify("a.txt", "alpha", "ALPHA"),
            _create("new.txt", "x"),
            FileChange(path="b.txt", action=FileAction.DELETE),
        ))
        assert result.success
        assert result.dry_run
        assert result.message == "Dry run: 3 file(s) would be changed"
        assert store.calls == []
        assert (project / "a.txt").read_text() == "alpha\n"
        assert not (project / "new.txt").exists()
        assert (project / "b.txt").exists()

    def test_dry_run_log_matches_real_run(self, tmp_path):
        changeset = _changeset(_modify("a.txt", "alpha", "ALPHA"), _create("n.txt", "x"))
        dry_root = tmp_path / "dry"
        real_root = tmp_path / "real"
        for root in (dry_root, real_root):
            root.mkdir()
            (root / "a.txt").write_text("alpha\n")

        dry = TransactionManager(LocalFileStore(dry_root), dry_run=True).execute(changeset)
        real = TransactionManager(LocalFileStore(real_root)).execute(changeset)
        assert dry.changes == real.changes


class TestStateMachine:
    def test_write_requires_applying_state(self, project):
        tx = TransactionManager(LocalFileStore(project))
        with pytest.raises(RuntimeError):
            tx.write("a.txt", "x")
