"""
The tool-calling conversation loop.

A ``ChatSession`` turns one user prompt into a final reply, calling the model
provider up to ``max_iterations`` times and dispatching every tool call the
model asks for through the ``ToolRegistry``. Tool failures are fed back to the
model as ``{"error": ...}`` payloads; only empty input and non-timeout
provider errors reach the caller.

Callers must not run two ``send`` calls on the same session concurrently.
"""

import asyncio
import dataclasses
import enum
import inspect
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import aiohttp

from webpilot.agents.exceptions import EmptyInputError, ProviderTimeoutError, UnknownToolError
from webpilot.agents.inline_calls import synthesize_inline_tool_calls
from webpilot.agents.memory import (
    MAX_TOOL_CONTENT_LEN,
    ConversationHistory,
    Message,
    ToolCallMsg,
    attach_tool_calls,
    clone_assistant_message,
    clone_tool_message,
    new_user_message,
    summarize_text,
)
from webpilot.agents.utils import marshal_for_log, truncate_for_log
from webpilot.config import SessionConfig
from webpilot.environment.definitions import ToolDefinition, llm_tools, sanitize_name, with_focus_hint
from webpilot.environment.registry import ToolRegistry
from webpilot.environment.tool_response import ToolResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_HEADER = (
    "You are WebPilot's integrated AI assistant. Use the provided browser tools to inspect pages, "
    "gather evidence, and complete tasks carefully."
)
SYSTEM_PROMPT_GUIDELINES = (
    "Guidelines:\n"
    "- Prefer calling tools to inspect the live browser when information is uncertain.\n"
    "- Confirm before performing destructive or irreversible actions.\n"
    "- Keep responses concise when no further action is required.\n"
    "- When a tool call returns data, summarize the key points before continuing."
)
SYSTEM_PROMPT_CONTEXT_INTRO = "Current browser context:"
SYSTEM_PROMPT_TOOLS_INTRO = "Available tools:"

TIMEOUT_REPLY = "Sorry, the model did not respond in time. Please try again."
FALLBACK_REPLY = "I could not finish this request within the allowed number of steps."
FALLBACK_WITH_RESULT = "I ran out of steps before finishing. Last tool result: {summary}"

ToolPayload = Union[str, Dict[str, Any]]


class TurnState(enum.Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    TOOL_EXECUTING = "tool_executing"
    TIMEOUT_RECOVERY = "timeout_recovery"
    FINAL_ANSWER = "final_answer"
    ITERATION_CAP_REACHED = "iteration_cap_reached"


@dataclasses.dataclass
class TurnSummary:
    """What happened during the most recent ``send``."""

    steps: int = 0
    tool_calls: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    outcome: TurnState = TurnState.IDLE
    last_tool_summary: str = ""


def is_timeout_error(err: BaseException) -> bool:
    """True for deadline expiry, transport timeouts and errors that say they timed out."""
    if isinstance(err, (asyncio.TimeoutError, TimeoutError, aiohttp.ServerTimeoutError, ProviderTimeoutError)):
        return True
    text = str(err).lower()
    return "timeout" in text or "deadline exceeded" in text


class ChatSession:
    """
    Conversation state bound to one provider, one registry and one browser.

    Args:
        provider: Object with ``set_system_prompt(text)``,
            ``await create_message(history, tools)`` and
            ``create_tool_response(call_id, payload)``.
        registry: Tool handlers keyed by unsanitized tool name.
        browser: Optional collaborator exposing ``await focus_summary()`` and
            ``await context_summary()`` for the system prompt.
        config: Session tunables.
        base_prompt: Extra instructions appended to every system prompt.
        clock: Returns the timestamp shown to the model.
    """

    def __init__(
        self,
        provider: Any,
        registry: ToolRegistry,
        browser: Any = None,
        config: Optional[SessionConfig] = None,
        base_prompt: str = "",
        session_id: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or SessionConfig()
        self.provider = provider
        self.registry = registry
        self.browser = browser
        self.base_prompt = (base_prompt or "").strip()
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self._clock = clock or (lambda: datetime.now().astimezone())

        self.history = ConversationHistory(window=self.config.history_window)
        self.tools, self.tool_mapping = llm_tools(self.config.server_name)

        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.state = TurnState.IDLE
        self.last_turn: Optional[TurnSummary] = None

        self._log(
            logging.INFO,
            f"session initialized (tools={len(self.tools)} history_window={self.config.history_window})",
        )

    def _log(self, level: int, message: str) -> None:
        logger.log(level, message, extra={"session": self.session_id})

    def set_history_window(self, window: int) -> None:
        self.history.window = window

    def reset(self) -> None:
        """Forget the conversation; token counters keep accumulating."""
        self.history.clear()
        self.state = TurnState.IDLE

    # --- Prompt assembly ---

    async def focus_hint(self) -> str:
        if self.browser is None:
            return ""
        try:
            hint = await self.browser.focus_summary()
        except Exception as e:
            self._log(logging.WARNING, f"failed to read focused element: {e}")
            return ""
        return summarize_text(hint, self.config.focus_hint_limit)

    async def browser_context(self) -> str:
        if self.browser is None:
            return ""
        try:
            return (await self.browser.context_summary()).strip()
        except Exception as e:
            self._log(logging.WARNING, f"failed to fetch page info: {e}")
            return ""

    async def build_system_prompt(self, tools: List[Dict[str, Any]]) -> str:
        parts = [SYSTEM_PROMPT_HEADER]

        context = await self.browser_context()
        if context:
            parts.append(f"{SYSTEM_PROMPT_CONTEXT_INTRO}\n{context}")

        parts.append(f"Current time: {self._clock().isoformat(timespec='seconds')}")

        if tools:
            lines = [SYSTEM_PROMPT_TOOLS_INTRO]
            for tool in tools:
                function = tool.get("function", {})
                description = function.get("description", "")
                lines.append(f"- {function.get('name', '')}: {description}" if description else f"- {function.get('name', '')}")
            parts.append("\n".join(lines))

        parts.append(SYSTEM_PROMPT_GUIDELINES)
        if self.base_prompt:
            parts.append(self.base_prompt)
        return "\n\n".join(parts)

    # --- Turn loop ---

    async def send(self, text: str) -> str:
        """
        Run one turn and return the reply.

        Raises:
            EmptyInputError: If ``text`` is blank; history is untouched.
            ProviderError: For non-timeout provider failures.
            asyncio.CancelledError: When the calling task is cancelled; history
                is first restored to its state before the call.
        """
        text = (text or "").strip()
        if not text:
            raise EmptyInputError()

        self._log(logging.INFO, f"user prompt: {truncate_for_log(text)}")
        snapshot = self.history.messages
        self.history.append(new_user_message(text))

        summary = TurnSummary()
        self.last_turn = summary
        deadline = self._deadline()

        try:
            for step in range(1, self.config.max_iterations + 1):
                summary.steps = step
                tools = with_focus_hint(self.tools, self.tool_mapping, await self.focus_hint())
                self.provider.set_system_prompt(await self.build_system_prompt(tools))

                self.state = TurnState.AWAITING_MODEL
                self._log(
                    logging.INFO,
                    f"llm iteration {step}: sending {len(self.history)} history messages with {len(tools)} tools",
                )
                try:
                    response = await self._request(tools, deadline)
                except Exception as e:
                    if not is_timeout_error(e):
                        self._log(logging.ERROR, f"provider error: {e}")
                        raise
                    self.state = TurnState.TIMEOUT_RECOVERY
                    self._rollback(snapshot)
                    summary.outcome = TurnState.TIMEOUT_RECOVERY
                    self._log(logging.WARNING, f"provider request timed out ({str(e) or type(e).__name__}); prompt rolled back")
                    return TIMEOUT_REPLY

                self._account(response, summary)

                calls = list(response.get_tool_calls() or [])
                assistant_msg = clone_assistant_message(response)
                if not calls:
                    calls = synthesize_inline_tool_calls(response.get_content())
                    if calls:
                        assistant_msg = attach_tool_calls(assistant_msg, calls)
                self.history.append(assistant_msg)

                if not calls:
                    self.state = TurnState.FINAL_ANSWER
                    summary.outcome = TurnState.FINAL_ANSWER
                    reply = response.get_content()
                    self._log(logging.INFO, f"assistant response (iteration {step}): {truncate_for_log(reply)}")
                    self._log_turn(summary)
                    return reply

                self.state = TurnState.TOOL_EXECUTING
                self._log(logging.INFO, f"assistant requested {len(calls)} tool call(s)")
                for call in calls:
                    payload, result_summary = await self._dispatch(call, deadline)
                    summary.tool_calls += 1
                    summary.last_tool_summary = result_summary
                    await self._append_tool_response(call, payload)

            self.state = TurnState.ITERATION_CAP_REACHED
            summary.outcome = TurnState.ITERATION_CAP_REACHED
            self._log(logging.WARNING, f"iteration cap ({self.config.max_iterations}) reached without a final answer")
            self._log_turn(summary)
            if summary.tool_calls:
                return FALLBACK_WITH_RESULT.format(
                    summary=summarize_text(summary.last_tool_summary, MAX_TOOL_CONTENT_LEN)
                )
            return FALLBACK_REPLY
        except asyncio.CancelledError:
            self._rollback(snapshot)
            raise
        finally:
            self.state = TurnState.IDLE

    def _deadline(self) -> Optional[float]:
        if self.config.request_timeout <= 0:
            return None
        return asyncio.get_running_loop().time() + self.config.request_timeout

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return deadline - asyncio.get_running_loop().time()

    async def _request(self, tools: List[Dict[str, Any]], deadline: Optional[float]) -> Any:
        remaining = self._remaining(deadline)
        if remaining is not None and remaining <= 0:
            raise ProviderTimeoutError("deadline exceeded before provider request", timeout=self.config.request_timeout)
        request = self.provider.create_message(self.history.messages, tools)
        if remaining is None:
            return await request
        return await asyncio.wait_for(request, timeout=remaining)

    def _rollback(self, snapshot: Tuple[Message, ...]) -> None:
        # Windowing on append may already have evicted older messages.
        self.history.restore(snapshot)

    def _account(self, response: Any, summary: TurnSummary) -> None:
        prompt, completion = response.get_usage()
        prompt, completion = max(0, prompt or 0), max(0, completion or 0)
        self.prompt_tokens += prompt
        self.completion_tokens += completion
        summary.prompt_tokens += prompt
        summary.completion_tokens += completion

    def _log_turn(self, summary: TurnSummary) -> None:
        self._log(
            logging.INFO,
            f"turn complete ({summary.outcome.value}): steps={summary.steps} tool_calls={summary.tool_calls} "
            f"tokens prompt={summary.prompt_tokens} completion={summary.completion_tokens} "
            f"(session total prompt={self.prompt_tokens} completion={self.completion_tokens})",
        )

    # --- Tool dispatch ---

    def resolve_tool(self, name: str) -> Optional[ToolDefinition]:
        """Map a model-facing tool name back to its definition; bare names are accepted too."""
        definition = self.tool_mapping.get(name)
        if definition is None:
            definition = self.tool_mapping.get(sanitize_name(self.config.server_name, name))
        return definition

    async def _dispatch(self, call: ToolCallMsg, deadline: Optional[float]) -> Tuple[ToolPayload, str]:
        definition = self.resolve_tool(call.get_name())
        if definition is None:
            error = UnknownToolError(call.get_name())
            self._log(logging.WARNING, f"tool call skipped: {call.get_name()} (unknown name)")
            return {"error": str(error)}, f"error: {error}"

        self._log(
            logging.INFO,
            f"tool call start: {definition.name} (sanitized={call.get_name()}) args={marshal_for_log(call.get_arguments())}",
        )
        try:
            result = await self._call_tool(definition.name, call.get_arguments(), deadline)
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            message = "tool call cancelled"
            self._log(logging.WARNING, f"tool call error: {definition.name} {message}")
            return {"error": message}, f"error: {message}"
        except Exception as e:
            message = str(e) or type(e).__name__
            if isinstance(e, asyncio.TimeoutError) and not str(e):
                message = "deadline exceeded"
            self._log(logging.WARNING, f"tool call error: {definition.name} {message}")
            return {"error": message}, f"error: {message}"

        summary = result.summary()
        self._log(logging.INFO, f"tool call success: {definition.name} result={truncate_for_log(summary)}")
        return result.to_payload(), summary

    async def _call_tool(self, name: str, args: Dict[str, Any], deadline: Optional[float]) -> ToolResult:
        remaining = self._remaining(deadline)
        if remaining is None:
            return await self.registry.call(name, args)
        if remaining <= 0:
            raise asyncio.TimeoutError("deadline exceeded")
        return await asyncio.wait_for(self.registry.call(name, args), timeout=remaining)

    async def _append_tool_response(self, call: ToolCallMsg, payload: ToolPayload) -> None:
        tool_msg = self.provider.create_tool_response(call.get_id(), payload)
        if inspect.isawaitable(tool_msg):
            tool_msg = await tool_msg
        self.history.append(clone_tool_message(tool_msg))

    async def aclose(self) -> None:
        """Release the provider's network resources."""
        close = getattr(self.provider, "aclose", None)
        if close is not None:
            await close()
