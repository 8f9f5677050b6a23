"""
tools/ — Tandem Tool System

Public interface for the tool system.

Usage:
    from tandem.tools import ToolRegistry, ToolCallScheduler, ApprovalMode

    registry = ToolRegistry([ReadFile(), Shell()])
    scheduler = ToolCallScheduler(registry, approval_mode=ApprovalMode.INTERACTIVE)
    records = await scheduler.schedule(requests, token)
"""

from __future__ import annotations

from tandem.tools.approvals import AllowList
from tandem.tools.base import BaseTool, validate_args
from tandem.tools.registry import ToolRegistry
from tandem.tools.scheduler import CANCELLED_RESPONSE_TEXT, ToolCallScheduler
from tandem.tools.types import (
    ApprovalMode,
    ApprovalOutcome,
    ConfirmationDetails,
    ToolCallRecord,
    ToolCallRequest,
    ToolCallResponse,
    ToolCallState,
    ToolOutput,
)

__all__ = [
    "AllowList",
    "BaseTool",
    "validate_args",
    "ToolRegistry",
    "ToolCallScheduler",
    "CANCELLED_RESPONSE_TEXT",
    # Types
    "ApprovalMode",
    "ApprovalOutcome",
    "ConfirmationDetails",
    "ToolCallRecord",
    "ToolCallRequest",
    "ToolCallResponse",
    "ToolCallState",
    "ToolOutput",
]
