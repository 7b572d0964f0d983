import dataclasses
import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

MAX_USER_CONTENT_LEN = 800
MAX_ASSISTANT_CONTENT_LEN = 900
MAX_TOOL_CONTENT_LEN = 900

VALID_ROLES = ("user", "assistant", "tool")


# --- Structured Content Data Classes ---


@dataclasses.dataclass(frozen=True)
class ToolCallMsg:
    """Represents a tool call requested by the model."""

    id: str
    name: str
    arguments: Dict[str, Any] = dataclasses.field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.arguments, dict):
            raise ValueError("Tool call arguments must be a dict")

    def get_id(self) -> str:
        return self.id

    def get_name(self) -> str:
        return self.name

    def get_arguments(self) -> Dict[str, Any]:
        return dict(self.arguments)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format compatible with OpenAI API."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments, ensure_ascii=False),
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCallMsg":
        """Create from dictionary format (OpenAI API format)."""
        function_data = data.get("function", {}) or {}
        return cls(
            id=data.get("id", ""),
            name=function_data.get("name", ""),
            arguments=decode_arguments(function_data.get("arguments")),
        )


@dataclasses.dataclass(frozen=True)
class ContentBlock:
    """A single block of message content: text, a tool invocation or a tool result."""

    type: str
    text: str = ""
    id: str = ""
    name: str = ""
    input: Optional[Dict[str, Any]] = None
    tool_use_id: str = ""

    def __post_init__(self):
        if self.type not in ("text", "tool_use", "tool_result"):
            raise ValueError(f"Unknown content block type: {self.type}")


# --- Core Data Structures ---


@dataclasses.dataclass(frozen=True)
class Message:
    """An immutable turn in the conversation."""

    role: str
    content: Tuple[ContentBlock, ...] = ()

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValueError(f"Role must be one of {VALID_ROLES}, got {self.role}")
        # Accept any iterable of blocks but always store a tuple.
        if not isinstance(self.content, tuple):
            object.__setattr__(self, "content", tuple(self.content))

    def get_role(self) -> str:
        return self.role

    def get_content(self) -> str:
        """Concatenate all text content blocks."""
        return " ".join(b.text for b in self.content if b.type == "text").strip()

    def get_tool_calls(self) -> List[ToolCallMsg]:
        return [
            ToolCallMsg(id=b.id, name=b.name, arguments=dict(b.input or {}))
            for b in self.content
            if b.type == "tool_use"
        ]

    def is_tool_response(self) -> bool:
        return any(b.type == "tool_result" for b in self.content)

    def get_tool_response_id(self) -> str:
        for block in self.content:
            if block.type == "tool_result":
                return block.tool_use_id
        return ""

    def get_usage(self) -> Tuple[int, int]:
        # Stored messages don't track usage
        return 0, 0

    def to_llm_dict(self) -> Dict[str, Any]:
        """
        Convert the message to the OpenAI chat-completions wire format.

        Tool-role messages must carry string content and the id of the call
        they answer; assistant tool invocations are serialized as
        ``tool_calls`` with JSON-encoded arguments.
        """
        if self.role == "tool":
            text = " ".join(b.text for b in self.content if b.type == "tool_result").strip()
            return {
                "role": "tool",
                "tool_call_id": self.get_tool_response_id(),
                "content": text,
            }

        result: Dict[str, Any] = {"role": self.role, "content": self.get_content()}
        calls = self.get_tool_calls()
        if calls:
            result["tool_calls"] = [call.to_dict() for call in calls]
            if not result["content"]:
                result["content"] = None
        return result


def decode_arguments(raw: Any) -> Dict[str, Any]:
    """Decode tool-call arguments that may arrive as a JSON string or a dict."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding malformed tool arguments: {raw[:200]}")
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def summarize_text(text: Optional[str], limit: int) -> str:
    """Trim, collapse whitespace and cap ``text`` at ``limit`` characters."""
    text = (text or "").strip()
    if not text or limit <= 0:
        return ""
    normalized = " ".join(text.split())
    if len(normalized) <= limit:
        return normalized
    if limit <= 3:
        return normalized[:limit]
    return normalized[: limit - 3] + "..."


def new_user_message(text: str) -> Message:
    """Create a user history entry with trimmed content."""
    return Message(
        role="user",
        content=(ContentBlock(type="text", text=summarize_text(text, MAX_USER_CONTENT_LEN)),),
    )


def clone_assistant_message(msg: Any) -> Optional[Message]:
    """
    Convert an assistant/provider message into a compact history entry.

    ``msg`` may be a stored ``Message`` or any provider response exposing
    ``get_role()``, ``get_content()`` and ``get_tool_calls()``. Returns None
    when neither text nor tool calls remain.
    """
    if msg is None:
        return None
    role = msg.get_role() or "assistant"
    blocks: List[ContentBlock] = []

    text = summarize_text(msg.get_content(), MAX_ASSISTANT_CONTENT_LEN)
    if text:
        blocks.append(ContentBlock(type="text", text=text))

    for call in msg.get_tool_calls() or []:
        if call is None:
            continue
        blocks.append(
            ContentBlock(
                type="tool_use",
                id=call.get_id(),
                name=call.get_name(),
                input=call.get_arguments() or {},
            )
        )

    if not blocks:
        return None
    return Message(role=role, content=tuple(blocks))


def attach_tool_calls(msg: Optional[Message], calls: Sequence[ToolCallMsg]) -> Message:
    """
    Return an assistant message carrying ``calls`` as tool invocations.

    Used for calls recovered from inline markup, which the provider reported
    as plain text; without them the matching tool results would be orphaned.
    """
    blocks = [b for b in (msg.content if msg else ()) if b.type == "text"]
    blocks.extend(
        ContentBlock(type="tool_use", id=call.get_id(), name=call.get_name(), input=call.get_arguments())
        for call in calls
    )
    return Message(role="assistant", content=tuple(blocks))


def clone_tool_message(msg: Any) -> Optional[Message]:
    """Convert a tool response message into a compact history entry."""
    if msg is None:
        return None
    text = summarize_text(msg.get_content(), MAX_TOOL_CONTENT_LEN)
    call_id = msg.get_tool_response_id()
    if not text and not call_id:
        return None
    return Message(
        role="tool",
        content=(ContentBlock(type="tool_result", tool_use_id=call_id, text=text),),
    )


def new_tool_message(call_id: str, text: str) -> Message:
    return Message(
        role="tool",
        content=(ContentBlock(type="tool_result", tool_use_id=call_id, text=text),),
    )


# --- Sanitizer ---


def sanitize(messages: Sequence[Message], window: int = 0) -> List[Message]:
    """
    Return a copy of ``messages`` that the provider will accept.

    1. When ``window`` is positive only the last ``window`` messages are kept.
    2. Leading messages are dropped until the first ``user`` message.
    3. A ``tool`` message survives only if it answers one of the call ids
       emitted by the closest preceding non-tool message, which must be an
       assistant message that requested tools.
    """
    if window > 0 and len(messages) > window:
        messages = messages[len(messages) - window:]

    start = 0
    while start < len(messages) and messages[start].get_role() != "user":
        start += 1

    result: List[Message] = []
    pending_ids: set = set()
    for msg in messages[start:]:
        role = msg.get_role()
        if role == "tool":
            call_id = msg.get_tool_response_id()
            if call_id and call_id in pending_ids:
                result.append(msg)
            else:
                logger.debug(f"Dropping orphaned tool message (id={call_id!r})")
            continue
        if role == "assistant":
            pending_ids = {call.get_id() for call in msg.get_tool_calls()}
        else:
            pending_ids = set()
        result.append(msg)
    return result


class ConversationHistory:
    """
    The session's exclusively-owned message log.

    Every mutation re-applies the window and the sanitizer so the sequence
    handed to the provider never violates the alternation rules.
    """

    def __init__(self, window: int = 0, messages: Optional[Iterable[Message]] = None):
        self._window = max(0, int(window))
        self._messages: List[Message] = list(messages or [])
        self._resanitize()

    @property
    def window(self) -> int:
        return self._window

    @window.setter
    def window(self, value: int) -> None:
        self._window = max(0, int(value))
        self._resanitize()

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))

    def append(self, msg: Optional[Message]) -> None:
        if msg is None:
            return
        self._messages.append(msg)
        self._resanitize()

    def pop_last_user(self, target: Optional[Message] = None) -> Optional[Message]:
        """
        Remove the most recently appended user message, if any remains.

        When ``target`` is given only that exact instance is removed, so a
        message already pushed out of the window is never confused with an
        older turn's prompt.
        """
        for idx in range(len(self._messages) - 1, -1, -1):
            candidate = self._messages[idx]
            if target is not None:
                matches = candidate is target
            else:
                matches = candidate.get_role() == "user"
            if matches:
                removed = self._messages.pop(idx)
                self._resanitize()
                return removed
        return None

    def restore(self, snapshot: Iterable[Message]) -> None:
        """Replace the log with an earlier ``messages`` snapshot."""
        self._messages = list(snapshot)
        self._resanitize()

    def clear(self) -> None:
        self._messages = []

    def _resanitize(self) -> None:
        self._messages = sanitize(self._messages, self._window)
