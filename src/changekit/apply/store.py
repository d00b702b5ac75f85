"""File-system access used while applying a change-set."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath


class FileStore(ABC):
    """Project-relative file access.

    All paths are project-relative, forward-slash strings.
    """

    @abstractmethod
    def check_path(self, path: str) -> str | None:
        """Return a reason the path is unusable, or ``None`` if it is fine."""
        ...

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def is_dir(self, path: str) -> bool:
        ...

    @abstractmethod
    def read(self, path: str) -> str:
        ...

    @abstractmethod
    def missing_dirs(self, path: str) -> list[Path]:
        """Parent directories a write to ``path`` would create, deepest first."""
        ...

    @abstractmethod
    def write(self, path: str, content: str) -> None:
        ...

    @abstractmethod
    def delete(self, path: str) -> None:
        ...

    @abstractmethod
    def remove_empty_dir(self, directory: Path) -> None:
        ...


class LocalFileStore(FileStore):
    """Reads and writes files under a project root on the local disk.

    Text is read and written with ``newline=""`` so line endings survive a
    round trip byte for byte.
    """

    def __init__(self, root: Path, encoding: str = "utf-8"):
        self.root = Path(root).resolve()
        self.encoding = encoding

    def resolve(self, path: str) -> Path:
        reason = self.check_path(path)
        if reason:
            raise ValueError(reason)
        return self.root / path

    def check_path(self, path: str) -> str | None:
        pure = PurePosixPath(path)
        if not path or pure.is_absolute() or Path(path).is_absolute():
            return f"Path must be project-relative: {path!r}"
        if ".." in pure.parts:
            return f"Path escapes the project root: {path}"
        target = (self.root / path).resolve()
        if target != self.root and self.root not in target.parents:
            return f"Path resolves outside the project root: {path}"
        return None

    def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    def is_dir(self, path: str) -> bool:
        return self.resolve(path).is_dir()

    def read(self, path: str) -> str:
        with open(self.resolve(path), encoding=self.encoding, newline="") as f:
            return f.read()

    def missing_dirs(self, path: str) -> list[Path]:
        missing = []
        parent = self.resolve(path).parent
        while not parent.exists():
            missing.append(parent)
            parent = parent.parent
        return missing

    def write(self, path: str, content: str) -> None:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding=self.encoding, newline="") as f:
            f.write(content)

    def delete(self, path: str) -> None:
        self.resolve(path).unlink()

    def remove_empty_dir(self, directory: Path) -> None:
        if directory.is_dir() and not any(directory.iterdir()):
            directory.rmdir()
