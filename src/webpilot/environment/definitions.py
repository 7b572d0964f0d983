"""
Static catalogue of the tools exposed to the model.

Definitions are created once at import time and never mutated. The session
asks ``llm_tools()`` for provider-ready function schemas (with names
namespaced by server) and ``with_focus_hint()`` for a per-iteration copy whose
focus-aware descriptions mention the currently selected element.
"""

import copy
import re
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

ParameterType = Literal["string", "number", "boolean"]

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


class ToolParameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: ParameterType = "string"
    description: str = ""
    required: bool = False
    enum: Optional[Tuple[str, ...]] = None

    def to_schema(self) -> Dict[str, Any]:
        prop: Dict[str, Any] = {"type": self.type}
        if self.description:
            prop["description"] = self.description
        if self.enum:
            prop["enum"] = list(self.enum)
        return prop


class ToolDefinition(BaseModel):
    """Static capability descriptor."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: Tuple[ToolParameter, ...] = Field(default_factory=tuple)
    focus_aware: bool = False

    def input_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.to_schema() for p in self.parameters},
        }
        required = [p.name for p in self.parameters if p.required]
        if required:
            schema["required"] = required
        return schema


def _p(name: str, type_: str = "string", description: str = "", required: bool = False, enum=None) -> ToolParameter:
    return ToolParameter(
        name=name,
        type=type_,
        description=description,
        required=required,
        enum=tuple(enum) if enum else None,
    )


DEFINITIONS: Tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="load_url",
        description="Load a webpage at the given URL and set it as the current page for subsequent tools.",
        parameters=(_p("url", description="the URL of the webpage to load", required=True),),
    ),
    ToolDefinition(
        name="get_html",
        description=(
            "Get the raw HTML of the current element (or an optional URL). "
            "Beware: this returns the full source and can be very large. "
            'In most cases, use "to_markdown" for a more concise, token-efficient output.'
        ),
        focus_aware=True,
        parameters=(_p("url", description="optional URL to load first; overrides the current element"),),
    ),
    ToolDefinition(
        name="text",
        description="Print the text of the current element, optionally truncating to a specified length.",
        focus_aware=True,
        parameters=(_p("length", "number", "optional maximum number of characters to return"),),
    ),
    ToolDefinition(
        name="capture_screenshot",
        description="Capture a screenshot of the current page or an optional URL.",
        parameters=(
            _p("url", description="optional URL to load before capturing the screenshot"),
            _p("selector", description="optional CSS selector to capture a specific element"),
            _p("full_page", "boolean", "capture the entire page instead of the viewport"),
            _p("format", description="image format: png or jpeg (default png)", enum=("png", "jpeg")),
            _p("quality", "number", "JPEG quality (0-100)"),
            _p("return", description="delivery mode: binary (inline) or file (writes to disk)", enum=("binary", "file")),
            _p("output", description="optional path to save the capture on disk when return=file"),
        ),
    ),
    ToolDefinition(
        name="capture_pdf",
        description="Render the current page or an optional URL to PDF.",
        parameters=(
            _p("url", description="optional URL to load before generating the PDF"),
            _p("landscape", "boolean", "render pages in landscape orientation"),
            _p("header_footer", "boolean", "display header and footer templates"),
            _p("background", "boolean", "print background graphics"),
            _p("scale", "number", "scale factor for rendering (default 1.0)"),
            _p("paper_width", "number", "paper width in inches"),
            _p("paper_height", "number", "paper height in inches"),
            _p("margin_top", "number", "top margin in inches"),
            _p("margin_bottom", "number", "bottom margin in inches"),
            _p("margin_left", "number", "left margin in inches"),
            _p("margin_right", "number", "right margin in inches"),
            _p("page_ranges", description="page ranges to print, e.g. '1-5,8'"),
            _p("header_template", description="HTML template for the header"),
            _p("footer_template", description="HTML template for the footer"),
            _p("prefer_css_page_size", "boolean", "prefer CSS-defined page size"),
            _p("tagged", "boolean", "generate tagged (accessible) PDF"),
            _p("outline", "boolean", "embed document outline in the PDF"),
            _p("return", description="delivery mode: binary (embedded) or file (writes to disk)", enum=("binary", "file")),
            _p("output", description="optional path to save the PDF on disk when return=file"),
        ),
    ),
    ToolDefinition(name="box", description="Get the bounding box of the current element."),
    ToolDefinition(name="computedstyles", description="Output the computed styles of the current element in JSON format."),
    ToolDefinition(name="describe", description="Describe the current element as formatted JSON."),
    ToolDefinition(name="xpath", description="Get the optimized XPath of the current element."),
    ToolDefinition(name="shutdown", description="Close the browser session."),
    ToolDefinition(
        name="duck",
        description="Search DuckDuckGo and return top N results.",
        parameters=(
            _p("query", description="the search terms", required=True),
            _p("num", "number", "how many results to return (default 20)"),
        ),
    ),
    ToolDefinition(
        name="network_list",
        description="List captured network activity entries with optional filters.",
        parameters=(
            _p("mime", description="optional comma-separated MIME substrings to match"),
            _p("suffix", description="optional comma-separated URL suffixes (e.g. .mp4)"),
            _p("status", description="optional comma-separated HTTP status codes"),
            _p("contains", description="optional comma-separated substrings to match in the URL"),
            _p("method", description="optional comma-separated HTTP methods"),
            _p("domain", description="optional comma-separated domain substrings"),
            _p("type", description="optional comma-separated resource types (document, image, media, etc.)"),
            _p("limit", "number", "maximum number of entries to return (default 20, capped at 1000)"),
            _p("offset", "number", "number of matching entries to skip before returning results"),
            _p("tail", "boolean", "when true (default) return the newest matching entries"),
        ),
    ),
    ToolDefinition(
        name="network_save",
        description="Retrieve or persist the response body for a captured network request.",
        parameters=(
            _p("request_id", description="request identifier returned by network_list", required=True),
            _p("return", description="delivery mode: file (default, writes to disk) or binary", enum=("binary", "file")),
            _p("save_dir", description="optional directory to write the file when return=file"),
            _p("filename", description="optional filename override when saving to disk"),
        ),
    ),
    ToolDefinition(
        name="network_set_logging",
        description="Enable, disable, or query network activity logging without restarting the browser.",
        parameters=(_p("enabled", "boolean", "optional flag; when provided sets logging state to the given value"),),
    ),
    ToolDefinition(
        name="to_markdown",
        description=(
            "Convert the current page/element (or an optional URL) into a structured Markdown document. "
            "This produces a well-formatted, token-efficient summary. "
            'Use this instead of "get_html" unless you specifically need raw HTML.'
        ),
        focus_aware=True,
        parameters=(_p("url", description="optional URL to load first; overrides the current element"),),
    ),
    ToolDefinition(
        name="search",
        description=(
            "Search for elements matching a CSS selector, focus the first match, "
            "and return a numbered list for subsequent navigation commands."
        ),
        parameters=(_p("selector", description="CSS selector to query", required=True),),
    ),
    ToolDefinition(
        name="head",
        description="List page headings (optionally by level), focus the first match, and return a numbered index.",
        parameters=(_p("level", description="Heading level number (1-6)"),),
    ),
    ToolDefinition(
        name="next",
        description="Advance to the next element in the active search/head list or jump to a specific index.",
        parameters=(_p("index", "number", "optional index to jump to"),),
    ),
    ToolDefinition(
        name="prev",
        description="Move to the previous element in the active search/head list or jump to a specific index.",
        parameters=(_p("index", "number", "optional index to jump to"),),
    ),
    ToolDefinition(
        name="elem",
        description=(
            "Match elements by selector (scoped to the current element, falling back to the page), "
            "focus the best match, and return a numbered list."
        ),
        parameters=(_p("selector", description="CSS selector to resolve", required=True),),
    ),
    ToolDefinition(name="child", description="Focus the first child element of the current selection."),
    ToolDefinition(name="parent", description="Focus the parent element of the current selection."),
    ToolDefinition(
        name="html",
        description="Return the outer HTML of the current element that prior navigation selected.",
        focus_aware=True,
    ),
    ToolDefinition(
        name="click",
        description="Click the currently focused element; falls back to href navigation or synthetic click on failure.",
    ),
    ToolDefinition(
        name="type",
        description=(
            "Type text into the currently focused element; trims optional quotes "
            "and falls back to JavaScript value injection."
        ),
        parameters=(_p("text", description="Text to type", required=True),),
    ),
    ToolDefinition(
        name="run_js",
        description="Execute JavaScript on the current page and return the result as JSON.",
        focus_aware=True,
        parameters=(
            _p("script", description="JavaScript code to execute in the page context", required=True),
            _p("showErrors", "boolean", "if true, return any evaluation errors in the tool result text"),
        ),
    ),
)


def list_definitions() -> List[ToolDefinition]:
    """Return all tool definitions."""
    return list(DEFINITIONS)


def lookup(name: str) -> Optional[ToolDefinition]:
    for definition in DEFINITIONS:
        if definition.name == name:
            return definition
    return None


def sanitize_name(server: str, tool: str) -> str:
    """Namespace a tool for exposure to LLMs while removing invalid characters."""
    return f"{server}__{_INVALID_NAME_CHARS.sub('_', tool)}"


def llm_tools(server: str) -> Tuple[List[Dict[str, Any]], Dict[str, ToolDefinition]]:
    """
    Build provider-ready function schemas and a mapping back to the definitions.

    Returns:
        (tools, mapping) where ``tools`` is a list of OpenAI function tool
        dicts with sanitized names and ``mapping`` maps each sanitized name to
        its original definition.
    """
    tools: List[Dict[str, Any]] = []
    mapping: Dict[str, ToolDefinition] = {}
    for definition in DEFINITIONS:
        sanitized = sanitize_name(server, definition.name)
        tools.append(
            {
                "type": "function",
                "function": {
                    "name": sanitized,
                    "description": definition.description,
                    "parameters": definition.input_schema(),
                },
            }
        )
        mapping[sanitized] = definition
    return tools, mapping


def with_focus_hint(
    tools: List[Dict[str, Any]],
    mapping: Dict[str, ToolDefinition],
    hint: str,
) -> List[Dict[str, Any]]:
    """
    Return a copy of ``tools`` with focus-aware descriptions augmented by ``hint``.

    The input list is never modified; an empty hint returns an unchanged copy.
    """
    augmented = copy.deepcopy(tools)
    if not hint:
        return augmented
    for tool in augmented:
        function = tool.get("function", {})
        definition = mapping.get(function.get("name", ""))
        if definition is not None and definition.focus_aware:
            function["description"] = f"{function.get('description', '')} Current focus: {hint}".strip()
    return augmented
