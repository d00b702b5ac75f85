"""Parse raw model output into a ``ChangeSet``.

The input is expected to hold a ``<changes>`` document but is often
wrapped in a markdown fence or surrounded by prose. Schema deviations are
collected as warnings instead of aborting, because most model output is
close enough to apply. Only a document that cannot be read at all (bad
XML, wrong root, ``file`` without ``path``/``action``) raises
``ParseError``.
"""

from __future__ import annotations

import logging
import re
from xml.dom import Node, minidom
from xml.parsers.expat import ExpatError

from changekit.apply.repair import looks_like_code, repair_pattern
from changekit.core.config import ChangeKitConfig
from changekit.core.errors import ParseError
from changekit.core.models import ChangeSet, FileAction, FileChange, Operation

logger = logging.getLogger(__name__)

FENCE = "```"

_EXACT_FENCE = re.compile(r"^```(?:xml)?\s*(.*?)\s*```$", re.DOTALL)
_EMBEDDED_FENCE = re.compile(r"```(?:xml)?\s*(.*?)\s*```", re.DOTALL)
_XML_DECLARATION = re.compile(r"<\?xml[^>]*>.*", re.DOTALL | re.IGNORECASE)
_LEADING_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)
_DOCUMENT_START = re.compile(r"<\?xml|<changes[\s>]")
_VERSION = re.compile(r"\d+")

_ACTIONS = {action.value: action for action in FileAction}


def strip_markdown_fences(content: str) -> str:
    """Pull the XML document out of a markdown code block.

    Tries, in order: the whole text being one fenced block, the first
    embedded fenced block that holds an XML document, and everything from
    the first ``<?xml`` declaration onward. Returns ``content`` unchanged
    when none of these apply.
    """
    trimmed = content.strip()
    if trimmed.startswith("<?xml") and FENCE not in trimmed:
        return trimmed

    m = _EXACT_FENCE.match(trimmed)
    if m and m.group(1):
        return m.group(1).strip()

    for m in _EMBEDDED_FENCE.finditer(content):
        extracted = m.group(1).strip()
        if extracted.startswith("<?xml") or extracted.startswith("<changes"):
            logger.warning("Extracted change-set from markdown code block")
            return extracted

    m = _XML_DECLARATION.search(content)
    if m:
        logger.warning("Extracted change-set starting from XML declaration")
        return m.group(0).strip()

    return content


def extract_document(raw: str) -> str:
    """Return the bare ``<changes>`` document from ``raw``."""
    text = raw
    start = _DOCUMENT_START.search(text)
    end = text.rfind("</changes>")
    if start and end > start.start():
        # Slice by the document tags; CDATA bodies may contain fences of their own.
        text = text[start.start():end + len("</changes>")]
    elif FENCE in text:
        before = len(text)
        text = strip_markdown_fences(text)
        if len(text) != before:
            logger.info("Stripped markdown code blocks: %d -> %d characters", before, len(text))

    text = text.strip()
    # Prose before or after the document.
    if not text.startswith("<"):
        m = _DOCUMENT_START.search(text)
        if m:
            text = text[m.start():]
    end = text.rfind("</changes>")
    if end != -1:
        text = text[:end + len("</changes>")]

    # expat only understands XML 1.0 declarations; the content is already decoded.
    return _LEADING_DECLARATION.sub("", text, count=1).strip()


def normalize_path(path: str) -> str:
    """Forward slashes, no duplicate separators, no leading ``./``."""
    normalized = path.strip().replace("\\", "/")
    normalized = re.sub(r"/{2,}", "/", normalized)
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def _children(element, name: str) -> list:
    return [
        child for child in element.childNodes
        if child.nodeType == Node.ELEMENT_NODE and child.tagName == name
    ]


def extract_text(element) -> str:
    """Return an element's CDATA content, or its plain text when it has none."""
    cdata = [c.data for c in element.childNodes if c.nodeType == Node.CDATA_SECTION_NODE]
    if cdata:
        return "".join(cdata)
    return _text_content(element)


def _text_content(node) -> str:
    parts = []
    for child in node.childNodes:
        if child.nodeType in (Node.TEXT_NODE, Node.CDATA_SECTION_NODE):
            parts.append(child.data)
        elif child.nodeType == Node.ELEMENT_NODE:
            parts.append(_text_content(child))
    return "".join(parts)


def _meta(element) -> str | None:
    metas = _children(element, "meta")
    if not metas:
        return None
    return _text_content(metas[0]) or None


def validate_structure(root) -> list[str]:
    """Check the document against the expected schema; return deviations."""
    errors: list[str] = []

    if root.tagName != "changes":
        errors.append(f"XML Structure Error: Root element must be <changes>, found <{root.tagName}>")
        return errors

    version = root.getAttribute("version")
    if not _VERSION.fullmatch(version):
        errors.append("XML Attribute Error: Missing or invalid version attribute on root element")

    file_elements = root.getElementsByTagName("file")
    if not file_elements:
        errors.append("XML Structure Error: No <file> elements found")

    for i, file_el in enumerate(file_elements, start=1):
        path = file_el.getAttribute("path")
        action = file_el.getAttribute("action")
        if not path:
            errors.append(f"XML Attribute Error: Missing path attribute on file element #{i}")
            continue
        if not action:
            errors.append(f'XML Attribute Error: Missing action attribute on file element for path "{path}"')
            continue
        if action not in _ACTIONS:
            errors.append(
                f'XML Value Error: Invalid action "{action}" on file element for path "{path}". '
                "Must be create, modify, or delete"
            )
            continue
        if action == FileAction.DELETE.value:
            continue

        operations = file_el.getElementsByTagName("operation")
        if not operations:
            errors.append(
                f'XML Structure Error: No <operation> elements found for {action} action on path "{path}"'
            )
        for j, op_el in enumerate(operations, start=1):
            for tag in ("search", "replace"):
                found = len(op_el.getElementsByTagName(tag))
                if found != 1:
                    problem = "Missing" if found == 0 else "Multiple"
                    errors.append(
                        f'XML Structure Error: {problem} <{tag}> element in operation #{j} for path "{path}"'
                    )
    return errors


class ChangeSetParser:
    """Turns raw model output into a ``ChangeSet``."""

    def __init__(self, config: ChangeKitConfig | None = None):
        self.config = config or ChangeKitConfig()

    def parse(self, raw: str) -> ChangeSet:
        document = extract_document(raw)
        if not document:
            raise ParseError("Failed to parse change-set: document is empty")

        try:
            dom = minidom.parseString(document)
        except ExpatError as exc:
            raise ParseError(f"Failed to parse change-set: XML parsing error: {exc}") from exc

        root = dom.documentElement
        warnings = validate_structure(root)
        if warnings:
            logger.warning("Change-set does not conform to the expected schema; attempting anyway")
            for warning in warnings:
                logger.warning("  - %s", warning)

        if root.tagName != "changes":
            raise ParseError("Failed to parse change-set: Root element must be <changes>")

        version = root.getAttribute("version") or "1"
        diagnostics: list[str] = []
        files: list[FileChange] = []

        for file_el in root.getElementsByTagName("file"):
            path = normalize_path(file_el.getAttribute("path"))
            action_name = file_el.getAttribute("action").strip().lower()
            if not path or not action_name:
                raise ParseError("Failed to parse change-set: File element must have path and action attributes")

            action = _ACTIONS.get(action_name)
            if action is None:
                warnings.append(f'Skipped file "{path}": unknown action "{action_name}"')
                continue

            operations: tuple[Operation, ...] = ()
            if action == FileAction.DELETE:
                if file_el.getElementsByTagName("operation"):
                    warnings.append(f'Ignored operations on delete action for "{path}"')
            else:
                operations = self._parse_operations(file_el, path, action, warnings, diagnostics)

            files.append(FileChange(path=path, action=action, operations=operations, meta=_meta(file_el)))

        if warnings:
            logger.warning("Parsed change-set with %d validation warning(s)", len(warnings))

        return ChangeSet(
            version=version,
            files=tuple(files),
            meta=_meta(root),
            warnings=tuple(warnings),
            diagnostics=tuple(diagnostics),
        )

    def _parse_operations(
        self,
        file_el,
        path: str,
        action: FileAction,
        warnings: list[str],
        diagnostics: list[str],
    ) -> tuple[Operation, ...]:
        operations: list[Operation] = []
        for j, op_el in enumerate(file_el.getElementsByTagName("operation"), start=1):
            search_els = op_el.getElementsByTagName("search")
            replace_els = op_el.getElementsByTagName("replace")
            if not search_els or not replace_els:
                warnings.append(f"Skipped operation #{j} for {path}: missing <search> or <replace>")
                continue

            search = extract_text(search_els[0])
            replace = extract_text(replace_els[0])

            if action == FileAction.CREATE:
                if j == 1 and search.strip():
                    warnings.append(f"Create action for {path} has a non-empty search pattern; it is ignored")
            elif not search:
                warnings.append(f"Operation #{j} for {path} has an empty search pattern")
            else:
                diagnostics.extend(
                    f"{path} (operation #{j}): {issue}" for issue in self.diagnose_pattern(search, path, j)
                )

            operations.append(Operation(search=search, replace=replace))
        return tuple(operations)

    def diagnose_pattern(self, pattern: str, path: str = "", index: int = 0) -> list[str]:
        """Report likely problems with a search pattern without changing it."""
        issues: list[str] = []
        outcome = repair_pattern(pattern, self.config.repair.max_pattern_length)
        if outcome.changed:
            logger.warning(
                "Applied %d automatic fix(es) to pattern in operation #%d for %s:",
                len(outcome.notes), index, path,
            )
            for note in outcome.notes:
                logger.warning("  - %s", note)
            issues.append(f"Pattern required automatic fixes: {', '.join(outcome.notes)}")

        if looks_like_code(pattern):
            issues.append("Pattern looks like a code snippet, may cause unintended matches")

        try:
            re.compile(outcome.fixed, re.MULTILINE | re.DOTALL)
        except re.error as exc:
            issues.append(f"Invalid regex syntax: {exc}")
            logger.warning("Pattern in operation #%d for %s is not a valid regex: %s", index, path, exc)
        return issues
