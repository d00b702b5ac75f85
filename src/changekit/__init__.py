"""changekit: safely apply machine-generated change-sets to a file tree."""

from changekit._version import __version__
from changekit.apply.engine import ChangeEngine, apply, apply_text, parse, preview
from changekit.core.errors import ChangeKitError, ParseError
from changekit.core.models import ApplyResult, ChangeSet, FileAction, FileChange, Operation

__all__ = [
    "__version__",
    "ChangeEngine",
    "apply",
    "apply_text",
    "parse",
    "preview",
    "ChangeKitError",
    "ParseError",
    "ApplyResult",
    "ChangeSet",
    "FileAction",
    "FileChange",
    "Operation",
]
