"""
Conversation core: history, inline tool-call recovery, the session loop and
the exception hierarchy.

``ChatSession`` lives in ``webpilot.agents.session`` and is imported from there
so that environment modules can depend on the exception hierarchy without
pulling in the session loop.
"""

from .exceptions import (
    BrowserBusyError,
    BrowserError,
    EmptyInputError,
    ProviderError,
    ProviderTimeoutError,
    ToolError,
    UnknownToolError,
    WebPilotError,
)
from .memory import ConversationHistory, Message, ToolCallMsg

__all__ = [
    "BrowserBusyError",
    "BrowserError",
    "ConversationHistory",
    "EmptyInputError",
    "Message",
    "ProviderError",
    "ProviderTimeoutError",
    "ToolCallMsg",
    "ToolError",
    "UnknownToolError",
    "WebPilotError",
]
