"""Per-file application of change-set operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from changekit.apply.matcher import Match, MatchEngine
from changekit.core.config import ChangeKitConfig
from changekit.core.models import FileAction, FileChange, MatchMethod

logger = logging.getLogger(__name__)


@dataclass
class FileOutcome:
    """What should happen to one file, plus the log of how it was decided."""

    path: str
    action: FileAction
    content: str | None = None
    delete: bool = False
    log: list[str] = field(default_factory=list)
    matches: list[Match] = field(default_factory=list)

    @property
    def writes(self) -> bool:
        return self.content is not None


class ChangeApplier:
    """Computes the new content of a file from its operations.

    Pure with respect to the file system: reading and writing is done by
    the transaction.
    """

    def __init__(self, config: ChangeKitConfig | None = None, engine: MatchEngine | None = None):
        self.config = config or ChangeKitConfig()
        self.engine = engine or MatchEngine(self.config)

    def apply_file(self, change: FileChange, current: str | None) -> FileOutcome:
        if change.action == FileAction.DELETE:
            return FileOutcome(path=change.path, action=change.action, delete=True)
        if change.action == FileAction.CREATE:
            return self._create(change)
        if current is None:
            outcome = FileOutcome(path=change.path, action=change.action)
            outcome.log.append(f"Warning: Cannot modify {change.path}: file does not exist")
            return outcome
        return self._modify(change, current)

    def _create(self, change: FileChange) -> FileOutcome:
        outcome = FileOutcome(path=change.path, action=change.action)
        if not change.operations:
            outcome.log.append(f"Warning: Create action for {change.path} has no operations; creating an empty file")
            outcome.content = ""
            return outcome

        outcome.content = change.operations[0].replace
        outcome.log.append(f"Created file with {len(outcome.content)} characters")
        for i in range(1, len(change.operations)):
            outcome.log.append(
                f"Warning: Operation #{i + 1} ignored; file creation uses only the first operation."
            )
        return outcome

    def _modify(self, change: FileChange, original: str) -> FileOutcome:
        outcome = FileOutcome(path=change.path, action=change.action)
        updated = original
        long_pattern = self.config.match.long_pattern_warning_chars

        for i, op in enumerate(change.operations):
            n = i + 1
            if not op.search and not op.replace:
                outcome.log.append(f"Warning: Operation #{n} has empty search and replace patterns. Skipping.")
                continue
            if not op.search.strip():
                outcome.log.append(f"Warning: Operation #{n} has an empty search pattern. Skipping.")
                continue

            logger.debug("Processing operation #%d for %s", n, change.path)
            before = updated
            updated, match = self.engine.replace(updated, op.search, op.replace)
            outcome.log.extend(match.notes)

            if match.found:
                outcome.matches.append(match)
                suffix = " - check results carefully" if match.method == MatchMethod.FALLBACK else ""
                outcome.log.append(
                    f"Applied search/replace operation #{n} "
                    f"({match.method.label} - {match.count} occurrences){suffix}"
                )
                if len(before) == len(updated):
                    outcome.log.append(f"Note: Operation #{n} was applied but did not change the content length.")
                continue

            logger.warning(
                "No matches found for operation #%d in %s. Pattern length: %d chars.",
                n, change.path, len(op.search),
            )
            outcome.log.append(f"Warning: Could not apply operation #{n} - pattern not found in {change.path}")
            if len(op.search) > long_pattern:
                outcome.log.append(
                    f"Warning: Search pattern for operation #{n} is very long ({len(op.search)} chars) "
                    "which increases the risk of mismatch."
                )

        if updated == original:
            outcome.log.append(f"Warning: No changes applied to {change.path}")
            return outcome

        delta = len(updated) - len(original)
        outcome.log.append(f"Total change: {abs(delta)} characters {'added' if delta >= 0 else 'removed'}")
        outcome.content = updated
        return outcome
