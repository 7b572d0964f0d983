"""
Tests for the webpilot.environment.definitions and tool_response modules.

This module tests:
- The static tool catalogue and its JSON schemas
- Name sanitization and LLM tool conversion
- Focus hints on focus-aware tools
- ToolResult summaries and payload normalization
"""

import base64

import pytest

from webpilot.environment.definitions import (
    list_definitions,
    llm_tools,
    lookup,
    sanitize_name,
    with_focus_hint,
)
from webpilot.environment.tool_response import EMPTY_RESULT_TEXT, ToolResult


# =============================================================================
# Catalogue Tests
# =============================================================================

class TestDefinitions:
    """Tests for the tool catalogue."""

    def test_catalogue_size_and_unique_names(self):
        names = [d.name for d in list_definitions()]

        assert len(names) == 26
        assert len(set(names)) == len(names)

    def test_focus_aware_tools(self):
        focus_aware = {d.name for d in list_definitions() if d.focus_aware}

        assert focus_aware == {"get_html", "text", "to_markdown", "html", "run_js"}

    def test_required_parameters_in_schema(self):
        schema = lookup("load_url").input_schema()

        assert schema["type"] == "object"
        assert schema["required"] == ["url"]
        assert schema["properties"]["url"]["type"] == "string"

    def test_schema_without_required(self):
        schema = lookup("box").input_schema()

        assert schema == {"type": "object", "properties": {}}

    def test_enum_parameter(self):
        schema = lookup("network_save").input_schema()

        assert schema["properties"]["return"]["enum"] == ["binary", "file"]

    def test_lookup_unknown(self):
        assert lookup("teleport") is None


class TestLlmTools:
    """Tests for sanitize_name, llm_tools and with_focus_hint."""

    @pytest.mark.parametrize(
        "tool,expected",
        [
            ("load_url", "webpilot__load_url"),
            ("a.b c", "webpilot__a_b_c"),
            ("x-y", "webpilot__x-y"),
        ],
    )
    def test_sanitize_name(self, tool, expected):
        assert sanitize_name("webpilot", tool) == expected

    def test_llm_tools_shape_and_mapping(self):
        tools, mapping = llm_tools("webpilot")

        assert len(tools) == len(list_definitions())
        first = tools[0]
        assert first["type"] == "function"
        assert first["function"]["name"] == "webpilot__load_url"
        assert mapping["webpilot__load_url"].name == "load_url"

    def test_focus_hint_copy(self):
        tools, mapping = llm_tools("webpilot")

        hinted = with_focus_hint(tools, mapping, "h1 #title")

        by_name = {t["function"]["name"]: t["function"]["description"] for t in hinted}
        assert by_name["webpilot__html"].endswith("Current focus: h1 #title")
        assert "Current focus" not in by_name["webpilot__click"]
        original = {t["function"]["name"]: t["function"]["description"] for t in tools}
        assert "Current focus" not in original["webpilot__html"]

    def test_empty_hint_returns_unchanged_copy(self):
        tools, mapping = llm_tools("webpilot")

        hinted = with_focus_hint(tools, mapping, "")

        assert hinted == tools
        assert hinted is not tools


# =============================================================================
# ToolResult Tests
# =============================================================================

class TestToolResult:
    """Tests for ToolResult."""

    def test_text_only_payload_is_string(self):
        assert ToolResult(text="done").to_payload() == "done"

    def test_empty_payload(self):
        result = ToolResult()

        assert result.to_payload() == EMPTY_RESULT_TEXT
        assert result.summary() == EMPTY_RESULT_TEXT

    def test_binary_payload(self):
        payload = ToolResult(text="Captured", binary=b"\x00\x01", content_type="image/png").to_payload()

        assert payload == {
            "text": "Captured",
            "binary_base64": base64.b64encode(b"\x00\x01").decode("ascii"),
            "content_type": "image/png",
        }

    def test_file_payload(self):
        payload = ToolResult(file_path="/tmp/a.pdf", inline_uri="inline:pdf").to_payload()

        assert payload == {"file_path": "/tmp/a.pdf", "inline_uri": "inline:pdf"}

    @pytest.mark.parametrize(
        "result,expected",
        [
            (ToolResult(text="hello"), "hello"),
            (ToolResult(binary=b"abc", content_type="image/png"), "binary response (3 bytes, content_type=image/png)"),
            (ToolResult(file_path="/tmp/x"), "file saved at /tmp/x"),
            (ToolResult(inline_uri="inline:pdf"), "inline URI inline:pdf"),
        ],
    )
    def test_summary(self, result, expected):
        assert result.summary() == expected
