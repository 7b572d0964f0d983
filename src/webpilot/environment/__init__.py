"""
Tool plumbing: definitions, registry, browser guard and result types.

Playwright-backed modules (``browser_state``, ``web_tools``) are imported
explicitly by callers that need a live browser.
"""

from .definitions import ToolDefinition, ToolParameter, list_definitions, llm_tools, with_focus_hint
from .guard import ExclusiveGuard
from .registry import ToolRegistry
from .tool_response import ToolResult

__all__ = [
    "ExclusiveGuard",
    "ToolDefinition",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "list_definitions",
    "llm_tools",
    "with_focus_hint",
]
