"""
tools/types.py — Tool System Data Models

Shared types used across the tool registry, the scheduler, the Turn, and
the executor actor.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from tandem.brain.types import FunctionResponse


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class ToolCallState(str, Enum):
    """
    Lifecycle of a ToolCallRecord.

    VALIDATING → {ERROR | AWAITING_APPROVAL | SCHEDULED} → EXECUTING
               → {SUCCESS | ERROR | CANCELLED}
    """
    VALIDATING = "validating"
    AWAITING_APPROVAL = "awaiting_approval"
    SCHEDULED = "scheduled"
    EXECUTING = "executing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({ToolCallState.SUCCESS, ToolCallState.ERROR, ToolCallState.CANCELLED})


class ApprovalMode(str, Enum):
    AUTO = "auto"                 # every valid call goes straight to SCHEDULED
    INTERACTIVE = "interactive"   # tools may ask for confirmation


class ApprovalOutcome(str, Enum):
    PROCEED_ONCE = "proceed_once"
    PROCEED_ALWAYS = "proceed_always"
    REJECT = "reject"


# ─────────────────────────────────────────────────────────────────────────────
# Requests / results
# ─────────────────────────────────────────────────────────────────────────────


class ToolCallRequest(BaseModel):
    """One invocation the backend (or a client) asked for."""
    call_id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    is_client_initiated: bool = False


class ToolOutput(BaseModel):
    """What a tool's execute() returns."""
    content: str                        # fed back to the backend
    display: Optional[str] = None       # human-facing rendering, if different


class ConfirmationDetails(BaseModel):
    """Descriptor surfaced to the caller when a call needs explicit approval."""
    title: str
    prompt: str
    kind: str = "generic"
    payload: dict[str, Any] = Field(default_factory=dict)


class ToolCallRecord(BaseModel):
    """
    One requested invocation and its lifecycle state.

    Only the ToolCallScheduler mutates records; everyone else gets copies.
    """
    request: ToolCallRequest
    state: ToolCallState = ToolCallState.VALIDATING
    started_at: float = Field(default_factory=time.time)
    finished_at: Optional[float] = None
    result: Optional[ToolOutput] = None
    error: Optional[str] = None
    confirmation: Optional[ConfirmationDetails] = None
    live_output: Optional[str] = None
    outcome: Optional[ApprovalOutcome] = None

    @property
    def call_id(self) -> str:
        return self.request.call_id

    @property
    def tool_name(self) -> str:
        return self.request.name

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def duration_ms(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return round((self.finished_at - self.started_at) * 1000, 2)


class ToolCallResponse(BaseModel):
    """A terminal record converted into the part fed back to the backend."""
    call_id: str
    response: FunctionResponse
    display: Optional[str] = None
    error: Optional[str] = None
    state: ToolCallState

    @property
    def is_error(self) -> bool:
        return self.response.is_error
