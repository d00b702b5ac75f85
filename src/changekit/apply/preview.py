"""Read-only preview: will each operation of a change-set find its target?"""

from __future__ import annotations

import logging

from changekit.apply.matcher import Match, MatchEngine, looks_like_regex, slash_body
from changekit.apply.repair import repair_pattern
from changekit.apply.store import FileStore
from changekit.core.config import ChangeKitConfig, PreviewConfig
from changekit.core.models import (
    ChangeSet,
    FileAction,
    FilePreview,
    MatchMethod,
    PreviewReport,
    PreviewResult,
)

logger = logging.getLogger(__name__)

NO_MATCH_ERROR = "No matches found using any method (exact, normalized, whitespace-normalized, or regex)"
EMPTY_PATTERN_ERROR = "Empty search pattern; the operation will be skipped"


def collect_samples(match: Match, config: PreviewConfig) -> list[str]:
    """Excerpts of the first few occurrences, with surrounding lines for context."""
    spans = match.locate()[:config.max_samples]
    content = match.content

    if match.method == MatchMethod.REGEX:
        samples = []
        half = config.max_sample_chars // 2
        for start, end in spans:
            text = content[start:end]
            if len(text) > config.max_sample_chars:
                text = text[:half] + "\n...\n" + text[-half:]
            samples.append(text)
        return samples

    lines = content.split("\n")
    samples = []
    for start, end in spans:
        first = content.count("\n", 0, start)
        last = content.count("\n", 0, end)
        lo = max(0, first - config.context_lines)
        hi = min(len(lines), last + config.context_lines + 1)
        samples.append("\n".join(lines[lo:hi]))
    return samples


class ChangePreviewer:
    """Runs the match engine over a change-set without touching any file."""

    def __init__(self, config: ChangeKitConfig | None = None, engine: MatchEngine | None = None):
        self.config = config or ChangeKitConfig()
        self.engine = engine or MatchEngine(self.config)

    def preview_pattern(self, pattern: str, file_path: str, content: str) -> PreviewResult:
        result = PreviewResult(pattern=pattern, file_path=file_path, success=False)

        if not pattern.strip():
            # Modify skips blank searches; create previews never get here.
            result.error = EMPTY_PATTERN_ERROR
            return result

        if looks_like_regex(pattern):
            body = slash_body(pattern)
            repaired = repair_pattern(pattern if body is None else body, self.config.repair.max_pattern_length)
            if repaired.changed:
                result.auto_fixed = True
                result.fixed_details = list(repaired.notes)

        match = self.engine.match(content, pattern)
        if match.found:
            logger.debug("Preview of %s matched via %s", file_path, match.method.value)
            result.success = True
            result.match_count = match.count
            result.match_method = match.method
            result.samples = collect_samples(match, self.config.preview)
            return result

        result.error = NO_MATCH_ERROR
        if match.notes:
            result.error += "; " + "; ".join(match.notes)
        return result

    def preview(self, changeset: ChangeSet, store: FileStore) -> PreviewReport:
        files: list[FilePreview] = []
        # Content as earlier entries of the same change-set would leave it.
        overlay: dict[str, str | None] = {}

        for change in changeset.files:
            reason = store.check_path(change.path)
            if reason:
                fp = FilePreview(file_path=change.path, action=change.action, file_exists=False, problem=reason)
                files.append(fp)
                continue

            if change.path in overlay:
                content = overlay[change.path]
            elif store.exists(change.path):
                try:
                    content = store.read(change.path)
                except (UnicodeDecodeError, OSError) as exc:
                    files.append(FilePreview(
                        file_path=change.path, action=change.action, file_exists=True,
                        problem=f"could not be read ({exc})",
                    ))
                    continue
            else:
                content = None

            fp = FilePreview(file_path=change.path, action=change.action, file_exists=content is not None)
            files.append(fp)

            if change.action == FileAction.DELETE:
                if content is None:
                    fp.problem = "file does not exist"
                else:
                    overlay[change.path] = None
                continue

            if change.action == FileAction.CREATE:
                if content is not None:
                    fp.problem = "file already exists"
                    continue
                for i, op in enumerate(change.operations):
                    op_result = PreviewResult(pattern=op.search, file_path=change.path, success=True)
                    if i > 0:
                        op_result.error = "Ignored: file creation uses only the first operation"
                    fp.operations.append(op_result)
                overlay[change.path] = change.operations[0].replace if change.operations else ""
                continue

            if content is None:
                fp.problem = "file does not exist"
                for op in change.operations:
                    fp.operations.append(PreviewResult(
                        pattern=op.search, file_path=change.path, success=False, error="File not found",
                    ))
                continue

            for op in change.operations:
                op_result = self.preview_pattern(op.search, change.path, content)
                fp.operations.append(op_result)
                if op_result.success and op.search.strip():
                    content, _ = self.engine.replace(content, op.search, op.replace)
            overlay[change.path] = content

        issues = sum(1 for fp in files if fp.has_issues)
        pattern_issues = sum(1 for fp in files for op in fp.operations if not op.success)
        if issues:
            message = f"Found {pattern_issues} issues with patterns"
            if pattern_issues == 0:
                message = f"Found {issues} file(s) that cannot be applied"
        else:
            message = "All patterns validated successfully"
        return PreviewReport(success=issues == 0, message=message, files=files)


def render_preview_report(report: PreviewReport) -> str:
    """Plain-text preview report, files with issues first."""
    out = ["Change-set Preview Report", "=========================", ""]
    out.append(f"Overall status: {'SUCCESS' if report.success else 'ISSUES FOUND'}")
    out.append(report.message)
    out.append("")

    ordered = sorted(report.files, key=lambda fp: 0 if fp.has_issues else 1)
    for fp in ordered:
        out.append(f"File: {fp.file_path} ({fp.action.value})")
        out.append(f"Status: {'EXISTS' if fp.file_exists else 'MISSING'}")
        if fp.problem:
            out.append(f"Problem: {fp.problem}")
        if not fp.operations:
            out.append("No operations to test")
            out.append("")
            continue

        out.append("Operations:")
        for i, op in enumerate(fp.operations, start=1):
            excerpt = op.pattern[:50] + ("..." if len(op.pattern) > 50 else "")
            out.append(f"  [{i}] Pattern: {excerpt}")
            out.append(f"      Status: {'MATCHES' if op.success else 'NO MATCHES'}")
            out.append(f"      Matches: {op.match_count}")
            out.append(f"      Match method: {op.match_method.value.upper()}")
            if op.auto_fixed:
                out.append("      Auto-fixed: YES")
                if op.fixed_details:
                    out.append("      Fixes applied:")
                    out.extend(f"        - {fix}" for fix in op.fixed_details)
            if op.error:
                out.append(f"      Error: {op.error}")
            if op.samples:
                out.append("      Sample matches:")
                for sample in op.samples:
                    out.extend(f"        | {line}" for line in sample.split("\n"))
            out.append("")
        out.append("")

    return "\n".join(out)
