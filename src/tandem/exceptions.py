"""
exceptions.py — Tandem Unified Error Hierarchy

All Tandem-specific exceptions live here. Import from here, not from
individual modules:
    from tandem.exceptions import BatchInProgressError, OrchestratorStateError

Hierarchy:
    TandemError
    ├── SchedulerError
    │   └── BatchInProgressError
    ├── TurnError
    ├── AgentError
    │   └── MessageRoutingError
    ├── OrchestratorError
    │   └── OrchestratorStateError
    ├── ToolError
    │   └── ToolNotFoundError
    └── LLMError
        ├── LLMConnectionError
        ├── LLMRateLimitError
        ├── LLMContextError
        └── LLMInvalidRequestError

Only invariant violations are raised across component boundaries.
Per-call failures (unknown tool, bad arguments, a tool that throws) are
recorded as data on the ToolCallRecord instead.
"""

from __future__ import annotations

from typing import Optional


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class TandemError(Exception):
    """Base class for all Tandem exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Scheduler
# ─────────────────────────────────────────────────────────────────────────────

class SchedulerError(TandemError):
    """Base for tool-call scheduler errors."""


class BatchInProgressError(SchedulerError):
    """schedule() was called while a previous batch is still non-terminal."""

    def __init__(self, active_call_ids: list[str], message: str = "") -> None:
        self.active_call_ids = list(active_call_ids)
        super().__init__(
            message
            or "Cannot schedule new tool calls while other tool calls are actively "
            f"running (active: {', '.join(self.active_call_ids) or 'none'})."
        )


# ─────────────────────────────────────────────────────────────────────────────
# Turn / driver
# ─────────────────────────────────────────────────────────────────────────────

class TurnError(TandemError):
    """Base for turn and driver-loop errors."""


# ─────────────────────────────────────────────────────────────────────────────
# Two-actor layer
# ─────────────────────────────────────────────────────────────────────────────

class AgentError(TandemError):
    """Base for planner/executor actor errors."""


class MessageRoutingError(AgentError):
    """A message was addressed to an actor that has no bus."""


class OrchestratorError(TandemError):
    """Base for orchestrator errors."""


class OrchestratorStateError(OrchestratorError):
    """Operation called outside the initialize() / shutdown() lifetime."""


# ─────────────────────────────────────────────────────────────────────────────
# Tools
# ─────────────────────────────────────────────────────────────────────────────

class ToolError(TandemError):
    """Base for tool errors."""


class ToolNotFoundError(ToolError):
    """Requested tool is not in the registry."""


# ─────────────────────────────────────────────────────────────────────────────
# LLM backend
# ─────────────────────────────────────────────────────────────────────────────

class LLMError(TandemError):
    """Base exception for all reasoning-backend errors."""

    def __init__(self, message: str, provider: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class LLMConnectionError(LLMError):
    """Provider unreachable or authentication failed."""


class LLMRateLimitError(LLMError):
    """Rate limit hit — retry with exponential backoff."""

    def __init__(self, message: str, provider: str = "", retry_after: Optional[float] = None):
        super().__init__(message, provider)
        self.retry_after = retry_after


class LLMContextError(LLMError):
    """Input exceeds model context window."""


class LLMInvalidRequestError(LLMError):
    """Malformed request rejected by the provider."""


__all__ = [
    "TandemError",
    "SchedulerError",
    "BatchInProgressError",
    "TurnError",
    "AgentError",
    "MessageRoutingError",
    "OrchestratorError",
    "OrchestratorStateError",
    "ToolError",
    "ToolNotFoundError",
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMContextError",
    "LLMInvalidRequestError",
]
