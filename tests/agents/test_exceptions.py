"""
Tests for the webpilot.agents.exceptions module.

This module tests:
- The WebPilotError base class and its serialization
- Default messages and error codes of the specific error types
- Context population for tool, provider and search errors
"""

import pytest

from webpilot.agents.exceptions import (
    BrowserBusyError,
    BrowserError,
    BrowserNotInitializedError,
    ConfigurationError,
    EmptyInputError,
    ModelProfileError,
    NoElementSelectedError,
    ProviderError,
    ProviderTimeoutError,
    SearchChallengeError,
    SearchError,
    ToolArgumentError,
    ToolError,
    ToolExecutionError,
    UnknownToolError,
    WebPilotError,
)


# =============================================================================
# Base Error Tests
# =============================================================================

class TestWebPilotError:
    """Tests for the WebPilotError base class."""

    def test_str_is_developer_message(self):
        error = WebPilotError("something broke", user_message="Oops")

        assert str(error) == "something broke"
        assert error.user_message == "Oops"

    def test_user_message_defaults_to_message(self):
        error = WebPilotError("plain")

        assert error.user_message == "plain"
        assert error.error_code == "WEBPILOT_ERROR"

    def test_to_dict(self):
        error = WebPilotError("boom", error_code="X", context={"k": "v"}, suggestion="retry")
        data = error.to_dict()

        assert data["error_type"] == "WebPilotError"
        assert data["error_code"] == "X"
        assert data["message"] == "boom"
        assert data["context"] == {"k": "v"}
        assert data["suggestion"] == "retry"
        assert isinstance(data["timestamp"], float)

    @pytest.mark.parametrize(
        "error",
        [
            EmptyInputError(),
            ProviderError("x"),
            UnknownToolError("foo"),
            BrowserBusyError(1.0),
            SearchChallengeError(),
            ModelProfileError("x"),
        ],
    )
    def test_all_errors_share_base(self, error):
        assert isinstance(error, WebPilotError)


# =============================================================================
# Specific Error Tests
# =============================================================================

class TestInputAndProviderErrors:
    """Tests for EmptyInputError and the provider errors."""

    def test_empty_input_default(self):
        error = EmptyInputError()

        assert str(error) == "prompt cannot be empty"
        assert error.error_code == "EMPTY_INPUT"

    def test_provider_error_context(self):
        error = ProviderError("bad request", provider="openai", status_code=400, api_error_type="invalid_request")

        assert error.context == {"provider": "openai", "status_code": 400, "api_error_type": "invalid_request"}
        assert error.status_code == 400

    def test_provider_timeout_is_provider_error(self):
        error = ProviderTimeoutError(timeout=5.0, provider="openai")

        assert isinstance(error, ProviderError)
        assert error.error_code == "PROVIDER_TIMEOUT"
        assert error.context["timeout_seconds"] == 5.0
        assert "timeout" in str(error)


class TestToolErrors:
    """Tests for the tool error types."""

    def test_unknown_tool_message(self):
        error = UnknownToolError("webpilot__fly")

        assert str(error) == "unknown tool: webpilot__fly"
        assert error.tool_name == "webpilot__fly"
        assert isinstance(error, ToolError)

    def test_argument_error_context(self):
        error = ToolArgumentError("type requires non-empty text", tool_name="type", argument="text")

        assert error.context == {"tool_name": "type", "argument": "text"}
        assert error.error_code == "TOOL_ARGUMENT_ERROR"

    def test_execution_error(self):
        error = ToolExecutionError("click failed: detached", tool_name="click")

        assert error.error_code == "TOOL_EXECUTION_ERROR"
        assert str(error) == "click failed: detached"


class TestBrowserErrors:
    """Tests for the browser error types."""

    def test_busy_message(self):
        error = BrowserBusyError(2.5)

        assert str(error) == "page busy: could not acquire lock within 2.5s"
        assert error.timeout == 2.5
        assert isinstance(error, BrowserError)

    def test_not_initialized_default(self):
        assert str(BrowserNotInitializedError()) == "no page loaded - call load_url first or provide url"

    def test_no_element_default_and_override(self):
        assert "no element selected" in str(NoElementSelectedError())
        assert str(NoElementSelectedError("custom")) == "custom"


class TestSearchAndConfigErrors:
    """Tests for search and configuration errors."""

    def test_search_error_status(self):
        error = SearchError("unexpected status code 500", status_code=500)

        assert error.status_code == 500
        assert error.context["status_code"] == 500

    def test_challenge_is_search_error(self):
        error = SearchChallengeError()

        assert isinstance(error, SearchError)
        assert error.error_code == "SEARCH_CHALLENGE"
        assert "challenge" in str(error)

    def test_profile_error_context(self):
        error = ModelProfileError("profile not found", config_path="/tmp/p.json")

        assert isinstance(error, ConfigurationError)
        assert error.context["config_path"] == "/tmp/p.json"
        assert error.error_code == "MODEL_PROFILE_ERROR"
