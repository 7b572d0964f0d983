"""
WebPilot Exception Hierarchy

This module defines the exception hierarchy for the browser agent, providing
specific error types for the different failure categories of a chat turn with
rich context and standardized error information.

The hierarchy is designed to:
1. Separate errors that stop a turn (input, provider) from errors that are
   absorbed into the conversation (tool, browser, search)
2. Let callers pattern-match on the class instead of comparing message strings
3. Carry context (tool name, timeouts, status codes) for logging
"""

import time
from typing import Any, Dict, Optional


class WebPilotError(Exception):
    """
    Base exception class for all WebPilot errors.

    Attributes:
        error_code: Unique error code for programmatic handling
        timestamp: When the error occurred
        context: Additional context information
        user_message: User-friendly error message
        developer_message: Detailed technical error message
        suggestion: Suggested fix or next steps (if applicable)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "WEBPILOT_ERROR",
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.timestamp = time.time()
        self.context = context or {}
        self.user_message = user_message or message
        self.developer_message = message
        self.suggestion = suggestion

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.developer_message,
            "user_message": self.user_message,
            "timestamp": self.timestamp,
            "context": self.context,
            "suggestion": self.suggestion,
        }

    def __str__(self) -> str:
        return self.developer_message


# =============================================================================
# INPUT ERRORS
# =============================================================================

class EmptyInputError(WebPilotError):
    """Raised when a prompt is empty after trimming. No state has changed."""

    def __init__(self, message: str = "prompt cannot be empty", **kwargs):
        super().__init__(
            message,
            error_code="EMPTY_INPUT",
            user_message="Please enter a prompt for the assistant.",
            suggestion="Try `webpilot ai inspect the login form`.",
            **kwargs,
        )


# =============================================================================
# PROVIDER ERRORS
# =============================================================================

class ProviderError(WebPilotError):
    """
    Raised when the model provider rejects or fails a request.

    Non-timeout provider errors stop the turn and are propagated verbatim.
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        api_error_type: Optional[str] = None,
        **kwargs,
    ):
        self.provider = provider
        self.status_code = status_code
        self.api_error_type = api_error_type

        context = kwargs.pop("context", {}) or {}
        if provider:
            context["provider"] = provider
        if status_code is not None:
            context["status_code"] = status_code
        if api_error_type:
            context["api_error_type"] = api_error_type

        error_code = kwargs.pop("error_code", "PROVIDER_ERROR")
        super().__init__(message, error_code=error_code, context=context, **kwargs)


class ProviderTimeoutError(ProviderError):
    """Raised when a provider request exceeds its deadline."""

    def __init__(self, message: str = "provider request timeout", timeout: Optional[float] = None, **kwargs):
        self.timeout = timeout
        context = kwargs.pop("context", {}) or {}
        if timeout is not None:
            context["timeout_seconds"] = timeout
        super().__init__(
            message,
            error_code="PROVIDER_TIMEOUT",
            context=context,
            user_message="The model took too long to respond.",
            **kwargs,
        )


# =============================================================================
# TOOL ERRORS
# =============================================================================

class ToolError(WebPilotError):
    """Base class for tool dispatch and execution errors."""

    def __init__(self, message: str, tool_name: Optional[str] = None, **kwargs):
        self.tool_name = tool_name
        context = kwargs.pop("context", {}) or {}
        if tool_name:
            context["tool_name"] = tool_name
        error_code = kwargs.pop("error_code", "TOOL_ERROR")
        super().__init__(message, error_code=error_code, context=context, **kwargs)


class UnknownToolError(ToolError):
    """Raised when no handler is registered under the requested tool name."""

    def __init__(self, tool_name: str, **kwargs):
        super().__init__(
            f"unknown tool: {tool_name}",
            tool_name=tool_name,
            error_code="UNKNOWN_TOOL",
            suggestion="Call one of the tools listed in the system prompt.",
            **kwargs,
        )


class ToolArgumentError(ToolError):
    """Raised when a tool receives missing or invalid arguments."""

    def __init__(self, message: str, tool_name: Optional[str] = None, argument: Optional[str] = None, **kwargs):
        self.argument = argument
        context = kwargs.pop("context", {}) or {}
        if argument:
            context["argument"] = argument
        super().__init__(
            message,
            tool_name=tool_name,
            error_code="TOOL_ARGUMENT_ERROR",
            context=context,
            **kwargs,
        )


class ToolExecutionError(ToolError):
    """Raised when a tool handler fails while doing its work."""

    def __init__(self, message: str, tool_name: Optional[str] = None, **kwargs):
        super().__init__(message, tool_name=tool_name, error_code="TOOL_EXECUTION_ERROR", **kwargs)


# =============================================================================
# BROWSER ERRORS
# =============================================================================

class BrowserError(WebPilotError):
    """Base class for browser state errors."""

    def __init__(self, message: str, **kwargs):
        error_code = kwargs.pop("error_code", "BROWSER_ERROR")
        super().__init__(message, error_code=error_code, **kwargs)


class BrowserBusyError(BrowserError):
    """
    Raised when the shared browser handle could not be acquired in time.

    The guarded operation was not run.
    """

    def __init__(self, timeout: float, **kwargs):
        self.timeout = timeout
        super().__init__(
            f"page busy: could not acquire lock within {timeout:g}s",
            error_code="BROWSER_BUSY",
            context={"timeout_seconds": timeout},
            user_message="The browser is busy with another operation.",
            suggestion="Retry once the current browser operation has finished.",
            **kwargs,
        )


class BrowserNotInitializedError(BrowserError):
    """Raised when a tool needs a page but none has been loaded."""

    def __init__(self, message: str = "no page loaded - call load_url first or provide url", **kwargs):
        super().__init__(message, error_code="BROWSER_NOT_INITIALIZED", **kwargs)


class NoElementSelectedError(BrowserError):
    """Raised when a tool needs a focused element but none is selected."""

    def __init__(
        self,
        message: str = "no element selected: use load_url and element-selection tools first",
        **kwargs,
    ):
        super().__init__(message, error_code="NO_ELEMENT_SELECTED", **kwargs)


# =============================================================================
# SEARCH ERRORS
# =============================================================================

class SearchError(WebPilotError):
    """Raised when the web search collaborator fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        self.status_code = status_code
        context = kwargs.pop("context", {}) or {}
        if status_code is not None:
            context["status_code"] = status_code
        error_code = kwargs.pop("error_code", "SEARCH_ERROR")
        super().__init__(message, error_code=error_code, context=context, **kwargs)


class SearchChallengeError(SearchError):
    """Raised when the search engine answers with a bot challenge page."""

    def __init__(self, **kwargs):
        super().__init__(
            "DuckDuckGo returned a bot challenge; results are unavailable until "
            "the challenge is completed manually.",
            error_code="SEARCH_CHALLENGE",
            **kwargs,
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(WebPilotError):
    """Raised for invalid or incomplete configuration."""

    def __init__(self, message: str, config_field: Optional[str] = None, **kwargs):
        self.config_field = config_field
        context = kwargs.pop("context", {}) or {}
        if config_field:
            context["config_field"] = config_field
        error_code = kwargs.pop("error_code", "CONFIGURATION_ERROR")
        super().__init__(message, error_code=error_code, context=context, **kwargs)


class ModelProfileError(ConfigurationError):
    """Raised when a model profile cannot be resolved."""

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        self.config_path = config_path
        context = kwargs.pop("context", {}) or {}
        if config_path:
            context["config_path"] = config_path
        super().__init__(message, error_code="MODEL_PROFILE_ERROR", context=context, **kwargs)
