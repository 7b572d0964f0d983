"""
Pydantic models for harmonized provider responses.

Adapters convert whatever their provider returns into a ``HarmonizedResponse``
so the session loop only ever talks to one shape.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from webpilot.agents.memory import ToolCallMsg, decode_arguments


class ToolCall(BaseModel):
    """Represents a tool/function call."""

    id: str
    type: str = "function"
    function: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("function")
    @classmethod
    def validate_function(cls, v):
        """Ensure function has required fields."""
        if "name" not in v:
            raise ValueError("Function must have 'name' field")
        if "arguments" not in v:
            v["arguments"] = {}
        return v

    def to_message(self) -> ToolCallMsg:
        return ToolCallMsg(
            id=self.id,
            name=self.function.get("name", ""),
            arguments=decode_arguments(self.function.get("arguments")),
        )


class UsageInfo(BaseModel):
    """Token usage information."""

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    reasoning_tokens: Optional[int] = None

    @model_validator(mode="after")
    def calculate_total(self):
        """Calculate total tokens if not provided."""
        if self.total_tokens is None:
            prompt = self.prompt_tokens or 0
            completion = self.completion_tokens or 0
            reasoning = self.reasoning_tokens or 0
            self.total_tokens = prompt + completion + reasoning
        return self


class ResponseMetadata(BaseModel):
    """Metadata about the API response."""

    model_config = ConfigDict(extra="allow")

    provider: str
    model: str
    request_id: Optional[str] = None
    created: Optional[datetime] = None
    usage: Optional[UsageInfo] = None
    finish_reason: Optional[str] = None
    response_time: Optional[float] = None


class HarmonizedResponse(BaseModel):
    """
    Standardized response format for all providers.

    Exposes the same ``get_role``/``get_content``/``get_tool_calls`` accessors
    as stored history messages so either can be compacted into history.
    """

    model_config = ConfigDict(extra="allow")

    role: str = "assistant"
    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    reasoning: Optional[str] = None
    metadata: ResponseMetadata

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        valid_roles = ["assistant", "user", "system", "tool"]
        if v not in valid_roles:
            raise ValueError(f"Role must be one of {valid_roles}, got {v}")
        return v

    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    def get_role(self) -> str:
        return self.role

    def get_content(self) -> str:
        return self.content or ""

    def get_tool_calls(self) -> List[ToolCallMsg]:
        return [call.to_message() for call in self.tool_calls]

    def get_usage(self) -> Tuple[int, int]:
        """Return ``(prompt_tokens, completion_tokens)``; missing counts are 0."""
        usage = self.metadata.usage
        if usage is None:
            return 0, 0
        return usage.prompt_tokens or 0, usage.completion_tokens or 0


class ToolResponseMessage(BaseModel):
    """A tool result formatted for the provider, before it is compacted into history."""

    tool_call_id: str
    content: str
    role: str = "tool"

    def get_role(self) -> str:
        return self.role

    def get_content(self) -> str:
        return self.content

    def get_tool_response_id(self) -> str:
        return self.tool_call_id

