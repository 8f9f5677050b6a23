"""
brain/types.py — Tandem Brain Data Models

Shared types used between the reasoning backend clients, the Turn, and the
two-actor layer. Providers map their native response shapes into these.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"           # function response fed back to the backend


class FinishReason(str, Enum):
    STOP = "stop"
    TOOL_CALLS = "tool_calls"
    LENGTH = "length"
    ERROR = "error"


# ─────────────────────────────────────────────────────────────────────────────
# Function calling
# ─────────────────────────────────────────────────────────────────────────────


class FunctionCall(BaseModel):
    """A single invocation request as produced by the backend. `id` is optional."""
    id: Optional[str] = Field(default=None, description="Backend-assigned call id, if any")
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class FunctionResponse(BaseModel):
    """The result of a function call, fed back to the backend as input."""
    call_id: str
    name: str
    content: str
    is_error: bool = False


class ToolSchema(BaseModel):
    """
    Provider-agnostic tool definition. Clients translate this into their own
    function-declaration format.
    """
    name: str
    description: str
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )


# ─────────────────────────────────────────────────────────────────────────────
# Messages
# ─────────────────────────────────────────────────────────────────────────────


class Message(BaseModel):
    """
    One entry of the conversation.

    Assistant messages that asked for tools carry `tool_calls`; messages with
    role TOOL carry the `tool_result` for exactly one of those calls.
    """
    role: Role
    content: Optional[str] = None
    tool_calls: Optional[list[FunctionCall]] = None
    tool_result: Optional[FunctionResponse] = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls, content: Optional[str], tool_calls: Optional[list[FunctionCall]] = None
    ) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool_response(cls, result: FunctionResponse) -> "Message":
        return cls(role=Role.TOOL, tool_result=result, content=result.content)

    def text_length(self) -> int:
        """Characters this message contributes to the context window."""
        total = len(self.content or "")
        for call in self.tool_calls or []:
            total += len(call.name) + len(str(call.args))
        return total


# ─────────────────────────────────────────────────────────────────────────────
# Request config
# ─────────────────────────────────────────────────────────────────────────────


class LLMConfig(BaseModel):
    """Per-request backend configuration."""
    model: str
    temperature: float = 0.7
    max_tokens: int = 4096
    top_p: float = 1.0
    timeout_seconds: float = 60.0
    system_instruction: Optional[str] = None
    json_mode: bool = False


# ─────────────────────────────────────────────────────────────────────────────
# Responses
# ─────────────────────────────────────────────────────────────────────────────


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMResponse(BaseModel):
    """Normalised non-streamed response from any backend."""
    content: Optional[str] = None
    tool_calls: list[FunctionCall] = Field(default_factory=list)
    finish_reason: FinishReason = FinishReason.STOP
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    @property
    def text(self) -> str:
        return self.content or ""


class StreamChunk(BaseModel):
    """
    One piece of a streamed backend response.

    A chunk may carry narrative text, a "thinking" fragment, and any number
    of complete function calls, in any combination.
    """
    text: Optional[str] = None
    thought: Optional[str] = None
    function_calls: list[FunctionCall] = Field(default_factory=list)
    finish_reason: Optional[FinishReason] = None
    usage: Optional[TokenUsage] = None
