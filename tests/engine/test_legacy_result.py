"""
Tests for the legacy literal-object result parser.

Covers the accepted form, every failure mode, and the fallback taken by
result normalization when parsing fails.
"""

import allure
import pytest
from hypothesis import given, settings, strategies as st

from turnstream.engine.legacy_result import LiteralScanner, ScanState, parse_legacy_result
from turnstream.engine.tool_calls import normalize_tool_result
from turnstream.errors import LegacyResultFailure, UnrecognizedLegacyResultError


@allure.feature("Legacy Result Parser")
@allure.story("Escaped single quotes")
def test_escaped_quote_in_content():
    assert parse_legacy_result("TypeName(tool_name='x', content='a\\'b')") == {
        "tool_name": "x",
        "content": "a'b",
    }


@allure.feature("Legacy Result Parser")
@allure.story("Accepted forms")
@pytest.mark.parametrize("text, expected", [
    (
        "ToolReturnPart(tool_name='search', content='done', tool_call_id='t1')",
        {"tool_name": "search", "content": "done", "tool_call_id": "t1"},
    ),
    (
        "ToolReturnPart(content='line1\\nline2\\tend')",
        {"content": "line1\nline2\tend"},
    ),
    (
        "ToolReturnPart(content='back\\\\slash')",
        {"content": "back\\slash"},
    ),
    (
        "ToolReturnPart(content='keep \\d unknown escape')",
        {"content": "keep \\d unknown escape"},
    ),
    (
        "pkg.ToolReturnPart(tool_name='s', metadata=None, content='x, y (z)', "
        "timestamp=datetime.datetime(2024, 1, 1, 0, 0), part_kind='tool-return')",
        {"tool_name": "s", "content": "x, y (z)"},
    ),
    (
        "ToolReturnPart(extra={'content': 'nested'}, content='outer')",
        {"content": "outer"},
    ),
    (
        "ToolReturnPart( tool_name = 'spaced' , content = 'ok' )",
        {"tool_name": "spaced", "content": "ok"},
    ),
])
def test_accepted_forms(text, expected):
    assert parse_legacy_result(text) == expected


@allure.feature("Legacy Result Parser")
@allure.story("Failure modes")
@pytest.mark.parametrize("text, reason", [
    ("plain words", LegacyResultFailure.NOT_A_LITERAL),
    ("ToolReturnPart(content='x') trailing", LegacyResultFailure.NOT_A_LITERAL),
    ("ToolReturnPart(content='x')) extra)", LegacyResultFailure.NOT_A_LITERAL),
    ("(content='x')", LegacyResultFailure.NOT_A_LITERAL),
    ("ToolReturnPart(tool_name='x')", LegacyResultFailure.MISSING_FIELD),
    ("ToolReturnPart(tool_name='x', content=None)", LegacyResultFailure.UNQUOTED_VALUE),
    ('ToolReturnPart(content="double quoted")', LegacyResultFailure.UNQUOTED_VALUE),
    ("ToolReturnPart(content='never closed)", LegacyResultFailure.UNTERMINATED_VALUE),
    ("ToolReturnPart(content='ends on escape\\)", LegacyResultFailure.UNTERMINATED_VALUE),
])
def test_failure_modes(text, reason):
    with pytest.raises(UnrecognizedLegacyResultError) as exc_info:
        parse_legacy_result(text)
    assert exc_info.value.reason is reason


def test_scanner_ends_in_done_state():
    text = "T(content='x')"
    scanner = LiteralScanner(text, 2)
    assert scanner.run() == len(text) - 1
    assert scanner.state is ScanState.DONE
    assert scanner.values == {"content": "x"}


@allure.feature("Legacy Result Parser")
@allure.story("Fallback to raw text")
@pytest.mark.parametrize("text", [
    "ToolReturnPart(content=None)",
    'ToolReturnPart(content="it\'s")',
    "ToolReturnPart(content='unterminated)",
    "just some output",
])
def test_normalization_falls_back_to_raw_text(text):
    assert normalize_tool_result(f"  {text}  ") == {"content": text}


@allure.feature("Legacy Result Parser")
@allure.story("Quoting and escaping")
@settings(max_examples=100)
@given(st.text(alphabet=st.characters(exclude_categories=("Cs",)), max_size=40))
def test_escaped_values_decode_to_original(value):
    """Any value written with backslash-escaped quotes and backslashes reads back unchanged."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    assert parse_legacy_result(f"ToolReturnPart(content='{escaped}')") == {"content": value}
