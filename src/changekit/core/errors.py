"""Exception types raised by changekit."""

from __future__ import annotations


class ChangeKitError(Exception):
    """Base class for all changekit errors."""


class ParseError(ChangeKitError):
    """The change-set document is structurally invalid."""


class WriteIOError(ChangeKitError):
    """A write or delete failed while applying; triggers a rollback."""

    def __init__(self, path: str, cause: OSError):
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause


class RollbackError(ChangeKitError):
    """A single path could not be restored during rollback."""

    def __init__(self, path: str, cause: OSError):
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause
