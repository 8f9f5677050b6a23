"""
a2a/messages.py — Planner/Executor Message Types

Every message between the two actors is one variant of AgentMessage,
discriminated by `variant`. Request variants that expect a reply are
answered by exactly one response variant whose `reply_to` carries the
request's id. StatusUpdate and ErrorNotice are fire-and-forget.
"""

from __future__ import annotations

import itertools
import time
import uuid
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from tandem.brain.types import Message
from tandem.tools.types import ToolCallRequest, ToolCallResponse

_SEQ = itertools.count()


class ActorType(str, Enum):
    PLANNER = "planner"
    EXECUTOR = "executor"

    @property
    def other(self) -> "ActorType":
        return ActorType.EXECUTOR if self is ActorType.PLANNER else ActorType.PLANNER


class MessageVariant(str, Enum):
    TOOL_EXECUTION_REQUEST = "tool_execution_request"
    TOOL_EXECUTION_RESPONSE = "tool_execution_response"
    PLANNING_REQUEST = "planning_request"
    PLANNING_RESPONSE = "planning_response"
    STATUS_UPDATE = "status_update"
    ERROR_NOTICE = "error_notice"


def new_message_id(prefix: str = "msg") -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class _BaseAgentMessage(BaseModel):
    id: str = Field(default_factory=new_message_id)
    from_actor: ActorType
    to_actor: ActorType
    timestamp: float = Field(default_factory=time.time)
    seq: int = Field(default_factory=lambda: next(_SEQ))
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    reply_to: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────────────
# Variants
# ─────────────────────────────────────────────────────────────────────────────


class ToolExecutionRequest(_BaseAgentMessage):
    variant: Literal["tool_execution_request"] = "tool_execution_request"
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    context: list[Message] = Field(default_factory=list)


class ToolExecutionResponse(_BaseAgentMessage):
    variant: Literal["tool_execution_response"] = "tool_execution_response"
    tool_results: list[ToolCallResponse] = Field(default_factory=list)
    success: bool = True
    error: Optional[str] = None


class PlanningRequest(_BaseAgentMessage):
    variant: Literal["planning_request"] = "planning_request"
    situation: str
    available_tools: list[str] = Field(default_factory=list)
    context: list[Message] = Field(default_factory=list)


class PlanningResponse(_BaseAgentMessage):
    variant: Literal["planning_response"] = "planning_response"
    plan: str = ""
    next_steps: list[str] = Field(default_factory=list)
    tools_to_use: list[str] = Field(default_factory=list)


class StatusUpdate(_BaseAgentMessage):
    variant: Literal["status_update"] = "status_update"
    status: str
    progress: Optional[float] = None


class ErrorNotice(_BaseAgentMessage):
    variant: Literal["error_notice"] = "error_notice"
    error: str
    detail: Optional[str] = None


AgentMessage = Annotated[
    Union[
        ToolExecutionRequest,
        ToolExecutionResponse,
        PlanningRequest,
        PlanningResponse,
        StatusUpdate,
        ErrorNotice,
    ],
    Field(discriminator="variant"),
]

_MESSAGE_ADAPTER: TypeAdapter[AgentMessage] = TypeAdapter(AgentMessage)

_REPLY_VARIANT = {
    MessageVariant.TOOL_EXECUTION_REQUEST: MessageVariant.TOOL_EXECUTION_RESPONSE,
    MessageVariant.PLANNING_REQUEST: MessageVariant.PLANNING_RESPONSE,
}


def parse_message(data: dict[str, Any]) -> AgentMessage:
    """Rebuild a message from its dumped form (logs, fixtures)."""
    return _MESSAGE_ADAPTER.validate_python(data)


def expects_reply(message: AgentMessage) -> bool:
    return MessageVariant(message.variant) in _REPLY_VARIANT


def reply_variant(message: AgentMessage) -> Optional[MessageVariant]:
    return _REPLY_VARIANT.get(MessageVariant(message.variant))


def reply_id(request: AgentMessage) -> str:
    """Id for the single reply to `request`, derived from the request id."""
    return f"{request.id}.reply"
