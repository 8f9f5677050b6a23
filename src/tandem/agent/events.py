"""
agent/events.py — Turn and Driver Events

Everything a Turn or the driver loop reports to its caller is one of these
models, discriminated by the `type` field.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from tandem.tools.types import ToolCallRecord, ToolCallRequest


class ContentEvent(BaseModel):
    type: Literal["content"] = "content"
    text: str


class ThoughtEvent(BaseModel):
    type: Literal["thought"] = "thought"
    subject: str
    description: str


class ToolCallRequestEvent(BaseModel):
    type: Literal["tool_call_request"] = "tool_call_request"
    request: ToolCallRequest


class UserCancelledEvent(BaseModel):
    type: Literal["user_cancelled"] = "user_cancelled"
    reason: Optional[str] = None


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str
    status: Optional[int] = None


class ChatCompressedEvent(BaseModel):
    type: Literal["chat_compressed"] = "chat_compressed"
    original_tokens: int
    new_tokens: int


class ToolCallsCompletedEvent(BaseModel):
    type: Literal["tool_calls_completed"] = "tool_calls_completed"
    records: list[ToolCallRecord]


class MaxTurnsReachedEvent(BaseModel):
    type: Literal["max_turns_reached"] = "max_turns_reached"
    max_turns: int


TurnEvent = Annotated[
    Union[ContentEvent, ThoughtEvent, ToolCallRequestEvent, UserCancelledEvent, ErrorEvent],
    Field(discriminator="type"),
]

DriverEvent = Annotated[
    Union[
        ContentEvent,
        ThoughtEvent,
        ToolCallRequestEvent,
        UserCancelledEvent,
        ErrorEvent,
        ChatCompressedEvent,
        ToolCallsCompletedEvent,
        MaxTurnsReachedEvent,
    ],
    Field(discriminator="type"),
]
