"""
a2a/ — Tandem Two-Actor Layer

Public API:
    from tandem.a2a import Orchestrator, PlannerAgent, ExecutorAgent

Component overview:
    AgentMessage        Discriminated union of the six message variants
    CommunicationBus    Per-actor message log + ordered listeners
    PlannerAgent        Reasons and answers; delegates tool work
    ExecutorAgent       Runs requested tool calls through a scheduler batch
    Orchestrator        Routes between the two buses, owns the lifecycle
"""

from tandem.a2a.actor import AgentContext, BaseActor
from tandem.a2a.bus import CommunicationBus
from tandem.a2a.executor import STARTING_STATUS, ExecutorAgent
from tandem.a2a.messages import (
    ActorType,
    AgentMessage,
    ErrorNotice,
    MessageVariant,
    PlanningRequest,
    PlanningResponse,
    StatusUpdate,
    ToolExecutionRequest,
    ToolExecutionResponse,
    expects_reply,
    new_message_id,
    parse_message,
    reply_id,
    reply_variant,
)
from tandem.a2a.orchestrator import Orchestrator, OrchestratorState
from tandem.a2a.planner import COORDINATING_ACK, TOOL_RESULTS_PROCESSED, PlannerAgent, parse_decision
from tandem.a2a.roles import EXECUTOR_ROLE, PLANNER_ROLE, ActorRole

__all__ = [
    "Orchestrator",
    "OrchestratorState",
    "PlannerAgent",
    "ExecutorAgent",
    "BaseActor",
    "AgentContext",
    "CommunicationBus",
    "ActorRole",
    "PLANNER_ROLE",
    "EXECUTOR_ROLE",
    "COORDINATING_ACK",
    "TOOL_RESULTS_PROCESSED",
    "STARTING_STATUS",
    "parse_decision",
    # Messages
    "ActorType",
    "MessageVariant",
    "AgentMessage",
    "ToolExecutionRequest",
    "ToolExecutionResponse",
    "PlanningRequest",
    "PlanningResponse",
    "StatusUpdate",
    "ErrorNotice",
    "new_message_id",
    "parse_message",
    "expects_reply",
    "reply_variant",
    "reply_id",
]
