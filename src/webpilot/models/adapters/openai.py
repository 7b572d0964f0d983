import json
import logging
import re
import time
from typing import Any, Dict, Iterable, List, Optional, Union

from webpilot.models.adapters.base import AsyncBaseAPIAdapter
from webpilot.models.response_models import (
    HarmonizedResponse,
    ResponseMetadata,
    ToolCall,
    ToolResponseMessage,
    UsageInfo,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "groq": "https://api.groq.com/openai/v1",
}

_REASONING_MODEL_RE = re.compile(r"^(gpt-[5-9]|gpt-\d{2,}|o\d+)")


class OpenAIChatAdapter(AsyncBaseAPIAdapter):
    """
    Adapter for OpenAI and OpenAI-compatible chat-completions APIs (OpenRouter, Groq).

    Holds the system prompt for the next request; the session replaces it on
    every iteration so page context stays current.
    """

    def __init__(
        self,
        model_name: str,
        api_key: str,
        base_url: Optional[str] = None,
        provider: str = "openai",
        max_tokens: Optional[int] = None,
        request_timeout: float = 90.0,
        **kwargs,
    ):
        # OpenRouter uses "openai/gpt-4o" but the OpenAI API needs "gpt-4o"
        if provider == "openai" and model_name.startswith("openai/"):
            model_name = model_name[len("openai/"):]
        super().__init__(model_name, request_timeout=request_timeout, **kwargs)
        self.provider_name = provider
        self.api_key = api_key
        self.base_url = base_url or DEFAULT_BASE_URLS.get(provider, DEFAULT_BASE_URLS["openai"])
        self.max_tokens = max_tokens
        self.system_prompt = ""

    def set_system_prompt(self, prompt: str) -> None:
        self.system_prompt = prompt or ""

    def get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def get_endpoint_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    def _is_reasoning_model(self) -> bool:
        return bool(_REASONING_MODEL_RE.match(self.model_name.lower()))

    def format_request_payload(self, messages: List[Dict], **kwargs) -> Dict[str, Any]:
        wire_messages: List[Dict[str, Any]] = []
        if self.system_prompt:
            wire_messages.append({"role": "system", "content": self.system_prompt})
        wire_messages.extend(messages)

        payload: Dict[str, Any] = {"model": self.model_name, "messages": wire_messages}

        tools = kwargs.get("tools")
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        if self.max_tokens:
            # Reasoning models reject max_tokens
            key = "max_completion_tokens" if self._is_reasoning_model() else "max_tokens"
            payload[key] = self.max_tokens
        return payload

    def harmonize_response(self, raw_response: Dict[str, Any], request_start_time: float) -> HarmonizedResponse:
        """Convert a chat-completions response to the standardized model."""
        choice = (raw_response.get("choices") or [{}])[0]
        message = choice.get("message") or {}

        tool_calls = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function") or {}
            if not function.get("name"):
                logger.warning(f"Skipping tool call without a function name: {tc.get('id', '')}")
                continue
            tool_calls.append(ToolCall(id=tc.get("id", ""), type=tc.get("type", "function"), function=function))

        usage_data = raw_response.get("usage") or {}
        usage = None
        if usage_data:
            details = usage_data.get("completion_tokens_details") or {}
            usage = UsageInfo(
                prompt_tokens=usage_data.get("prompt_tokens"),
                completion_tokens=usage_data.get("completion_tokens"),
                total_tokens=usage_data.get("total_tokens"),
                reasoning_tokens=details.get("reasoning_tokens"),
            )

        metadata = ResponseMetadata(
            provider=self.provider_name,
            model=raw_response.get("model", self.model_name),
            request_id=raw_response.get("id"),
            created=raw_response.get("created"),
            usage=usage,
            finish_reason=choice.get("finish_reason"),
            response_time=time.time() - request_start_time,
        )

        return HarmonizedResponse(
            role=message.get("role") or "assistant",
            content=message.get("content"),
            tool_calls=tool_calls,
            reasoning=message.get("reasoning"),
            metadata=metadata,
        )

    async def create_message(self, history: Iterable[Any], tools: Optional[List[Dict[str, Any]]] = None) -> HarmonizedResponse:
        """Send the conversation and the available tools; return the model's reply."""
        messages = [msg.to_llm_dict() for msg in history]
        logger.debug(f"Requesting {self.model_name} with {len(messages)} message(s) and {len(tools or [])} tool(s)")
        return await self.arun(messages, tools=tools)

    def create_tool_response(self, call_id: str, payload: Union[str, Dict[str, Any]]) -> ToolResponseMessage:
        """Wrap a tool payload as a tool-role message answering ``call_id``."""
        if isinstance(payload, str):
            content = payload
        else:
            content = json.dumps(payload, ensure_ascii=False)
        return ToolResponseMessage(tool_call_id=call_id, content=content)
