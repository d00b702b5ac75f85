"""Tests for change-set parsing."""

from __future__ import annotations

import pytest

from changekit.apply.parser import ChangeSetParser, extract_document, normalize_path
from changekit.core.errors import ParseError
from changekit.core.models import FileAction

BASIC = """<changes version="1">
  <meta>Rename helper</meta>
  <file path="src/app.py" action="modify">
    <operation>
      <search><![CDATA[old()]]></search>
      <replace><![CDATA[new()]]></replace>
    </operation>
  </file>
  <file path="docs/old.md" action="delete"/>
</changes>"""


@pytest.fixture
def parser():
    return ChangeSetParser()


class TestParse:
    def test_basic_document(self, parser):
        changeset = parser.parse(BASIC)
        assert changeset.version == "1"
        assert changeset.meta == "Rename helper"
        assert [f.path for f in changeset.files] == ["src/app.py", "docs/old.md"]
        assert changeset.files[0].action == FileAction.MODIFY
        assert changeset.files[0].operations[0].search == "old()"
        assert changeset.files[0].operations[0].replace == "new()"
        assert changeset.files[1].action == FileAction.DELETE
        assert changeset.files[1].operations == ()
        assert changeset.warnings == ()
        assert changeset.diagnostics == ()

    def test_cdata_is_verbatim(self, parser):
        raw = (
            '<changes version="1"><file path="a.html" action="modify"><operation>'
            "<search>\n  <![CDATA[  <b> & </b>\n]]>\n</search>"
            "<replace><![CDATA[<i>&amp;</i>]]></replace>"
            "</operation></file></changes>"
        )
        op = parser.parse(raw).files[0].operations[0]
        assert op.search == "  <b> & </b>\n"
        assert op.replace == "<i>&amp;</i>"

    def test_split_cdata_sections_are_joined(self, parser):
        raw = (
            '<changes version="1"><file path="a.txt" action="modify"><operation>'
            "<search><![CDATA[a]]]]><![CDATA[>b]]></search>"
            "<replace><![CDATA[c]]></replace>"
            "</operation></file></changes>"
        )
        assert parser.parse(raw).files[0].operations[0].search == "a]]>b"

    def test_plain_text_content(self, parser):
        raw = (
            '<changes version="1"><file path="a.txt" action="modify"><operation>'
            "<search>hello</search><replace>bye</replace>"
            "</operation></file></changes>"
        )
        op = parser.parse(raw).files[0].operations[0]
        assert (op.search, op.replace) == ("hello", "bye")

    def test_file_meta(self, parser):
        raw = (
            '<changes version="2"><file path="a.txt" action="create">'
            "<meta>new file</meta><operation><search></search>"
            "<replace><![CDATA[x]]></replace></operation></file></changes>"
        )
        change = parser.parse(raw).files[0]
        assert change.meta == "new file"
        assert change.action == FileAction.CREATE


class TestExtraction:
    def test_markdown_fence_with_prose(self, parser):
        raw = f"Here you go:\n```xml\n{BASIC}\n```\nLet me know."
        assert len(parser.parse(raw).files) == 2

    def test_prose_without_fence(self, parser):
        raw = f"Sure!\n{BASIC}\nHope this helps."
        assert len(parser.parse(raw).files) == 2

    def test_fence_inside_cdata(self, parser):
        raw = (
            "Updated the readme:\n```xml\n"
            '<changes version="1"><file path="README.md" action="modify"><operation>'
            "<search><![CDATA[Usage]]></search>"
            "<replace><![CDATA[Usage\n```python\nprint(1)\n```\n]]></replace>"
            "</operation></file></changes>\n```\nDone."
        )
        op = parser.parse(raw).files[0].operations[0]
        assert op.replace == "Usage\n```python\nprint(1)\n```\n"

    def test_xml_declaration_is_dropped(self, parser):
        raw = '<?xml version="1.1" encoding="UTF-8"?>\n' + BASIC
        assert extract_document(raw).startswith("<changes")
        assert len(parser.parse(raw).files) == 2


class TestParseErrors:
    def test_empty_input(self, parser):
        with pytest.raises(ParseError):
            parser.parse("   ")

    def test_malformed_xml(self, parser):
        with pytest.raises(ParseError, match="XML parsing error"):
            parser.parse('<changes version="1"><file>')

    def test_wrong_root(self, parser):
        with pytest.raises(ParseError, match="Root element"):
            parser.parse('<patch version="1"/>')

    def test_file_without_action(self, parser):
        with pytest.raises(ParseError, match="path and action"):
            parser.parse('<changes version="1"><file path="a.txt"/></changes>')


class TestWarnings:
    def test_unknown_action_is_skipped(self, parser):
        raw = '<changes version="1"><file path="a.txt" action="rename"/></changes>'
        changeset = parser.parse(raw)
        assert changeset.files == ()
        assert any('unknown action "rename"' in w for w in changeset.warnings)

    def test_operations_on_delete_ignored(self, parser):
        raw = (
            '<changes version="1"><file path="a.txt" action="delete"><operation>'
            "<search>x</search><replace>y</replace></operation></file></changes>"
        )
        changeset = parser.parse(raw)
        assert changeset.files[0].operations == ()
        assert any("Ignored operations on delete" in w for w in changeset.warnings)

    def test_missing_replace_skips_operation(self, parser):
        raw = (
            '<changes version="1"><file path="a.txt" action="modify"><operation>'
            "<search>x</search></operation></file></changes>"
        )
        changeset = parser.parse(raw)
        assert changeset.files[0].operations == ()
        assert any("Skipped operation #1 for a.txt" in w for w in changeset.warnings)
        assert any("Missing <replace>" in w for w in changeset.warnings)

    def test_missing_version(self, parser):
        raw = (
            '<changes><file path="a.txt" action="modify"><operation>'
            "<search>x</search><replace>y</replace></operation></file></changes>"
        )
        changeset = parser.parse(raw)
        assert changeset.version == "1"
        assert any("version attribute" in w for w in changeset.warnings)

    def test_create_with_search_pattern(self, parser):
        raw = (
            '<changes version="1"><file path="a.txt" action="create"><operation>'
            "<search>junk</search><replace>body</replace></operation></file></changes>"
        )
        changeset = parser.parse(raw)
        assert any("non-empty search pattern" in w for w in changeset.warnings)


class TestDiagnostics:
    def test_code_snippet_pattern(self, parser):
        raw = (
            '<changes version="1"><file path="src/app.js" action="modify"><operation>'
            "<search><![CDATA[const f = async (x) => {]]></search>"
            "<replace><![CDATA[const f = (x) => {]]></replace>"
            "</operation></file></changes>"
        )
        changeset = parser.parse(raw)
        # The search text itself is never rewritten.
        assert changeset.files[0].operations[0].search == "const f = async (x) => {"
        assert any(
            d.startswith("src/app.js (operation #1): Pattern required automatic fixes")
            for d in changeset.diagnostics
        )
        assert any("looks like a code snippet" in d for d in changeset.diagnostics)

    def test_diagnose_invalid_regex(self, parser):
        issues = parser.diagnose_pattern("a)b")
        assert any(issue.startswith("Invalid regex syntax") for issue in issues)

    def test_clean_pattern_has_no_issues(self, parser):
        assert parser.diagnose_pattern("plain text") == []


class TestNormalizePath:
    def test_strips_leading_dot_slash(self):
        assert normalize_path("./src//app.py") == "src/app.py"

    def test_backslashes(self):
        assert normalize_path("src\\pkg\\mod.py") == "src/pkg/mod.py"
