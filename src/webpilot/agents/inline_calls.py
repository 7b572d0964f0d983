"""
Recovery of tool calls that a model wrote as inline text markup.

Some models emit tool-call intent inside their text reply instead of using the
structured tool-calling channel::

    <tool_call>webpilot__duck
    <arg_key>query</arg_key>
    <arg_value>release notes</arg_value>
    </tool_call>

The text is tokenized into tag and text segments, each ``<tool_call>`` block is
parsed into a ``ParsedCall`` (or discarded), and the surviving blocks become
ordinary ``ToolCallMsg`` objects so the session loop does not care where a
call came from.
"""

import dataclasses
import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional

from .memory import ToolCallMsg

logger = logging.getLogger(__name__)

BLOCK_OPEN = "tool_call"
ARG_KEY = "arg_key"
ARG_VALUE = "arg_value"

_TAG_RE = re.compile(r"<(/?)(tool_call|arg_key|arg_value)\s*>", re.IGNORECASE)
_NAME_RE = re.compile(r"[A-Za-z0-9-]+__[A-Za-z0-9_-]+")
_ANY_TAG_RE = re.compile(r"^</?[A-Za-z_][\w-]*\s*/?>$")

INLINE_ID_PREFIX = "inline_call_"


@dataclasses.dataclass(frozen=True)
class Token:
    """Either a tag (``kind='open'``/``'close'`` with ``value`` the tag name) or text."""

    kind: str
    value: str


@dataclasses.dataclass(frozen=True)
class ParsedCall:
    name: str
    args: Dict[str, Any]


def tokenize(text: str) -> Iterator[Token]:
    pos = 0
    for match in _TAG_RE.finditer(text):
        if match.start() > pos:
            yield Token("text", text[pos:match.start()])
        kind = "close" if match.group(1) else "open"
        yield Token(kind, match.group(2).lower())
        pos = match.end()
    if pos < len(text):
        yield Token("text", text[pos:])


def split_blocks(text: str) -> List[List[Token]]:
    """
    Group tokens into ``<tool_call>`` blocks.

    A block ends at its closing tag, at the next opening ``<tool_call>``, or at
    the end of the text (models sometimes forget to close the last one).
    """
    blocks: List[List[Token]] = []
    current: Optional[List[Token]] = None
    for token in tokenize(text):
        if token.value == BLOCK_OPEN and token.kind == "open":
            if current is not None:
                blocks.append(current)
            current = []
        elif token.value == BLOCK_OPEN and token.kind == "close":
            if current is not None:
                blocks.append(current)
                current = None
        elif current is not None:
            current.append(token)
    if current is not None:
        blocks.append(current)
    return blocks


def _block_text(tokens: List[Token]) -> str:
    parts = []
    for token in tokens:
        if token.kind == "text":
            parts.append(token.value)
        elif token.kind == "open":
            parts.append(f"<{token.value}>")
        else:
            parts.append(f"</{token.value}>")
    return "".join(parts).strip()


def _decode_value(raw: str) -> Any:
    value = raw.strip()
    if not value:
        return ""
    if value[0] in "{[" or value in ("true", "false", "null") or re.fullmatch(r"-?\d+(\.\d+)?", value):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _parse_args(tokens: List[Token]) -> Dict[str, Any]:
    args: Dict[str, Any] = {}
    pending_key: Optional[str] = None
    section: Optional[str] = None
    buffer: List[str] = []

    for token in tokens:
        if token.kind == "open" and token.value in (ARG_KEY, ARG_VALUE):
            section, buffer = token.value, []
        elif token.kind == "close" and token.value == section:
            captured = "".join(buffer)
            if section == ARG_KEY:
                if pending_key:
                    args[pending_key] = ""
                pending_key = captured.strip() or None
            elif pending_key:
                args[pending_key] = _decode_value(captured)
                pending_key = None
            section, buffer = None, []
        elif token.kind == "text" and section is not None:
            buffer.append(token.value)

    if pending_key:
        args[pending_key] = ""
    return args


def _leading_text(tokens: List[Token]) -> str:
    """Text before the first argument tag; that is where the name lives."""
    parts = []
    for token in tokens:
        if token.kind != "text":
            break
        parts.append(token.value)
    return "".join(parts)


def _parse_name(tokens: List[Token]) -> str:
    leading = _leading_text(tokens)
    match = _NAME_RE.search(leading)
    if match:
        return match.group(0)

    # Fall back to the first non-empty line that is not a tag.
    for line in _block_text(tokens).splitlines():
        line = line.strip()
        if not line or _ANY_TAG_RE.match(line) or line.startswith("<"):
            continue
        return line
    return ""


def parse_block(tokens: List[Token]) -> Optional[ParsedCall]:
    name = _parse_name(tokens)
    if not name:
        return None
    return ParsedCall(name=name, args=_parse_args(tokens))


def synthesize_inline_tool_calls(content: Optional[str]) -> List[ToolCallMsg]:
    """
    Build tool calls from inline ``<tool_call>`` markup in ``content``.

    Identical blocks are collapsed and ids are assigned in discovery order.
    Returns an empty list when there is no usable markup.
    """
    if not content or "<tool_call" not in content.lower():
        return []

    calls: List[ToolCallMsg] = []
    seen: set = set()
    for tokens in split_blocks(content):
        key = _block_text(tokens)
        if not key or key in seen:
            continue
        seen.add(key)
        parsed = parse_block(tokens)
        if parsed is None:
            logger.debug(f"Discarding inline tool call without a name: {key[:120]!r}")
            continue
        calls.append(
            ToolCallMsg(
                id=f"{INLINE_ID_PREFIX}{len(calls) + 1}",
                name=parsed.name,
                arguments=parsed.args,
            )
        )

    if calls:
        logger.info(f"Recovered {len(calls)} inline tool call(s) from assistant text")
    return calls
