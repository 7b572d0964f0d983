"""
Tests for the webpilot.agents.memory module.

This module tests:
- ToolCallMsg and Message conversion to the chat-completions wire format
- Message compaction helpers
- The history sanitizer and ConversationHistory window handling
"""

import json

import pytest

from webpilot.agents.memory import (
    MAX_ASSISTANT_CONTENT_LEN,
    MAX_USER_CONTENT_LEN,
    ContentBlock,
    ConversationHistory,
    Message,
    ToolCallMsg,
    attach_tool_calls,
    clone_assistant_message,
    clone_tool_message,
    decode_arguments,
    new_tool_message,
    new_user_message,
    sanitize,
    summarize_text,
)
from webpilot.models.response_models import HarmonizedResponse, ResponseMetadata, ToolCall, ToolResponseMessage


def _assistant(text="", calls=()):
    blocks = []
    if text:
        blocks.append(ContentBlock(type="text", text=text))
    for call_id, name in calls:
        blocks.append(ContentBlock(type="tool_use", id=call_id, name=name, input={}))
    return Message(role="assistant", content=tuple(blocks))


def _roles(messages):
    return [m.get_role() for m in messages]


# =============================================================================
# ToolCallMsg / Message Tests
# =============================================================================

class TestToolCallMsg:
    """Tests for ToolCallMsg."""

    def test_to_dict_encodes_arguments_as_json(self):
        call = ToolCallMsg(id="call_1", name="webpilot__load_url", arguments={"url": "https://example.com"})
        data = call.to_dict()

        assert data["id"] == "call_1"
        assert data["type"] == "function"
        assert data["function"]["name"] == "webpilot__load_url"
        assert json.loads(data["function"]["arguments"]) == {"url": "https://example.com"}

    def test_from_dict_decodes_string_arguments(self):
        call = ToolCallMsg.from_dict(
            {"id": "call_2", "function": {"name": "webpilot__duck", "arguments": '{"query": "python"}'}}
        )

        assert call.get_arguments() == {"query": "python"}

    def test_rejects_non_dict_arguments(self):
        with pytest.raises(ValueError):
            ToolCallMsg(id="x", name="y", arguments="not a dict")


class TestMessage:
    """Tests for Message."""

    def test_invalid_role_rejected(self):
        with pytest.raises(ValueError):
            Message(role="system")

    def test_content_list_stored_as_tuple(self):
        msg = Message(role="user", content=[ContentBlock(type="text", text="hi")])

        assert isinstance(msg.content, tuple)

    def test_assistant_with_tool_calls_to_llm_dict(self):
        msg = _assistant("", calls=[("call_1", "webpilot__text")])
        data = msg.to_llm_dict()

        assert data["role"] == "assistant"
        assert data["content"] is None
        assert data["tool_calls"][0]["id"] == "call_1"

    def test_tool_message_to_llm_dict(self):
        data = new_tool_message("call_1", "result text").to_llm_dict()

        assert data == {"role": "tool", "tool_call_id": "call_1", "content": "result text"}


# =============================================================================
# Helper Tests
# =============================================================================

class TestHelpers:
    """Tests for argument decoding and text summarization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, {}),
            ("", {}),
            ('{"a": 1}', {"a": 1}),
            ("{broken", {}),
            ("[1, 2]", {}),
            ({"b": 2}, {"b": 2}),
        ],
    )
    def test_decode_arguments(self, raw, expected):
        assert decode_arguments(raw) == expected

    def test_summarize_collapses_whitespace(self):
        assert summarize_text("  hello \n\t world  ", 100) == "hello world"

    def test_summarize_truncates_with_ellipsis(self):
        result = summarize_text("abcdefghij", 6)

        assert result == "abc..."
        assert len(result) == 6

    def test_summarize_tiny_limit_hard_cuts(self):
        assert summarize_text("abcdef", 2) == "ab"

    def test_summarize_empty_and_nonpositive_limit(self):
        assert summarize_text("   ", 10) == ""
        assert summarize_text("text", 0) == ""

    def test_new_user_message_is_capped(self):
        msg = new_user_message("x" * (MAX_USER_CONTENT_LEN + 50))

        assert len(msg.get_content()) == MAX_USER_CONTENT_LEN


class TestCompaction:
    """Tests for clone_assistant_message and clone_tool_message."""

    def test_clone_provider_response_keeps_calls(self):
        response = HarmonizedResponse(
            content="Looking it up",
            tool_calls=[ToolCall(id="c1", function={"name": "webpilot__duck", "arguments": '{"query": "x"}'})],
            metadata=ResponseMetadata(provider="openai", model="gpt-5"),
        )
        clone = clone_assistant_message(response)

        assert clone.get_content() == "Looking it up"
        calls = clone.get_tool_calls()
        assert calls[0].get_id() == "c1"
        assert calls[0].get_arguments() == {"query": "x"}

    def test_clone_truncates_long_text(self):
        response = HarmonizedResponse(
            content="y" * (MAX_ASSISTANT_CONTENT_LEN * 2),
            metadata=ResponseMetadata(provider="openai", model="gpt-5"),
        )

        assert len(clone_assistant_message(response).get_content()) == MAX_ASSISTANT_CONTENT_LEN

    def test_clone_empty_response_is_none(self):
        response = HarmonizedResponse(content="   ", metadata=ResponseMetadata(provider="openai", model="gpt-5"))

        assert clone_assistant_message(response) is None
        assert clone_assistant_message(None) is None

    def test_clone_tool_message(self):
        clone = clone_tool_message(ToolResponseMessage(tool_call_id="c1", content="  done  "))

        assert clone.get_role() == "tool"
        assert clone.get_tool_response_id() == "c1"
        assert clone.to_llm_dict()["content"] == "done"

    def test_attach_tool_calls_keeps_text(self):
        base = _assistant("thinking")
        merged = attach_tool_calls(base, [ToolCallMsg(id="inline_call_1", name="webpilot__text")])

        assert merged.get_content() == "thinking"
        assert [c.get_id() for c in merged.get_tool_calls()] == ["inline_call_1"]

    def test_attach_tool_calls_without_message(self):
        merged = attach_tool_calls(None, [ToolCallMsg(id="inline_call_1", name="webpilot__text")])

        assert merged.get_role() == "assistant"
        assert len(merged.get_tool_calls()) == 1


# =============================================================================
# Sanitizer Tests
# =============================================================================

class TestSanitize:
    """Tests for the history sanitizer."""

    def test_drops_leading_non_user_messages(self):
        messages = [_assistant("orphan"), new_tool_message("c0", "x"), new_user_message("hi")]

        assert _roles(sanitize(messages)) == ["user"]

    def test_keeps_tool_answering_latest_calls(self):
        messages = [
            new_user_message("go"),
            _assistant(calls=[("c1", "webpilot__text"), ("c2", "webpilot__html")]),
            new_tool_message("c1", "one"),
            new_tool_message("c2", "two"),
        ]

        assert _roles(sanitize(messages)) == ["user", "assistant", "tool", "tool"]

    def test_drops_tool_with_unknown_id(self):
        messages = [
            new_user_message("go"),
            _assistant(calls=[("c1", "webpilot__text")]),
            new_tool_message("other", "stray"),
        ]

        assert _roles(sanitize(messages)) == ["user", "assistant"]

    def test_tool_after_text_only_assistant_is_dropped(self):
        messages = [
            new_user_message("go"),
            _assistant(calls=[("c1", "webpilot__text")]),
            _assistant("plain answer"),
            new_tool_message("c1", "late"),
        ]

        assert _roles(sanitize(messages)) == ["user", "assistant", "assistant"]

    def test_tool_after_user_message_is_dropped(self):
        messages = [
            new_user_message("go"),
            _assistant(calls=[("c1", "webpilot__text")]),
            new_user_message("never mind"),
            new_tool_message("c1", "late"),
        ]

        assert _roles(sanitize(messages)) == ["user", "assistant", "user"]

    def test_window_applied_before_alignment(self):
        messages = [
            new_user_message("first"),
            _assistant(calls=[("c1", "webpilot__text")]),
            new_tool_message("c1", "r"),
            _assistant("answer"),
            new_user_message("second"),
            _assistant("answer 2"),
        ]
        result = sanitize(messages, window=3)

        assert _roles(result) == ["user", "assistant"]
        assert result[0].get_content() == "second"

    def test_idempotent(self):
        messages = [
            _assistant("stray"),
            new_user_message("go"),
            _assistant(calls=[("c1", "webpilot__text")]),
            new_tool_message("c1", "r"),
            new_tool_message("zz", "orphan"),
        ]
        once = sanitize(messages, window=4)

        assert sanitize(once, window=4) == once

    def test_does_not_mutate_input(self):
        messages = [_assistant("stray"), new_user_message("go")]
        snapshot = list(messages)
        sanitize(messages)

        assert messages == snapshot


class TestConversationHistory:
    """Tests for ConversationHistory."""

    def test_append_resanitizes(self):
        history = ConversationHistory()
        history.append(_assistant("before any user"))
        history.append(new_user_message("hello"))

        assert _roles(history) == ["user"]

    def test_append_none_is_ignored(self):
        history = ConversationHistory()
        history.append(None)

        assert len(history) == 0

    def test_window_setter_trims(self):
        history = ConversationHistory()
        for i in range(5):
            history.append(new_user_message(f"m{i}"))
        history.window = 2

        assert [m.get_content() for m in history] == ["m3", "m4"]

    def test_negative_window_means_unbounded(self):
        assert ConversationHistory(window=-3).window == 0

    def test_pop_last_user_by_identity(self):
        history = ConversationHistory()
        first = new_user_message("same")
        second = new_user_message("same")
        history.append(first)
        history.append(second)

        removed = history.pop_last_user(first)

        assert removed is first
        assert history.messages == (second,)

    def test_pop_last_user_missing_target(self):
        history = ConversationHistory(messages=[new_user_message("kept")])

        assert history.pop_last_user(new_user_message("kept")) is None
        assert len(history) == 1

    def test_pop_last_user_without_target_drops_trailing_reply(self):
        history = ConversationHistory()
        history.append(new_user_message("q"))
        history.append(_assistant(calls=[("c1", "webpilot__text")]))

        history.pop_last_user()

        assert len(history) == 0

    def test_restore_brings_back_evicted_messages(self):
        history = ConversationHistory(window=2)
        history.append(new_user_message("u1"))
        history.append(_assistant("a1"))
        snapshot = history.messages
        history.append(new_user_message("u2"))

        history.restore(snapshot)

        assert history.messages == snapshot

    def test_restore_resanitizes(self):
        history = ConversationHistory(window=2)

        history.restore([new_user_message("u1"), _assistant("a1"), new_user_message("u2")])

        assert [m.get_content() for m in history] == ["u2"]

    def test_clear(self):
        history = ConversationHistory(messages=[new_user_message("x")])
        history.clear()

        assert history.messages == ()
