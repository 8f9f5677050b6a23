"""
agent/ — Tandem Agent Core

Public API:
    from tandem.agent import AgentDriver, ChatSession, Turn

Component overview:
    ChatSession           Conversation history + backend client + tool schemas
    Turn                  One backend exchange, reported as typed events
    ContinuationPolicy    Decides whether the model keeps speaking
    ChatCompressor        Summarises old history past a token threshold
    AgentDriver           Turn → scheduler → Turn loop under a turn budget
"""

from tandem.agent.compressor import ChatCompressor, CompressionInfo
from tandem.agent.continuation import (
    ContinuationPolicy,
    LLMContinuationPolicy,
    NextSpeaker,
    StaticContinuationPolicy,
)
from tandem.agent.driver import AgentDriver
from tandem.agent.events import (
    ChatCompressedEvent,
    ContentEvent,
    DriverEvent,
    ErrorEvent,
    MaxTurnsReachedEvent,
    ThoughtEvent,
    ToolCallRequestEvent,
    ToolCallsCompletedEvent,
    TurnEvent,
    UserCancelledEvent,
)
from tandem.agent.session import ChatSession
from tandem.agent.turn import ThoughtSummary, Turn, generate_call_id, parse_thought

__all__ = [
    "AgentDriver",
    "ChatSession",
    "Turn",
    "ThoughtSummary",
    "parse_thought",
    "generate_call_id",
    "ChatCompressor",
    "CompressionInfo",
    "ContinuationPolicy",
    "LLMContinuationPolicy",
    "StaticContinuationPolicy",
    "NextSpeaker",
    # Events
    "ContentEvent",
    "ThoughtEvent",
    "ToolCallRequestEvent",
    "UserCancelledEvent",
    "ErrorEvent",
    "ChatCompressedEvent",
    "ToolCallsCompletedEvent",
    "MaxTurnsReachedEvent",
    "TurnEvent",
    "DriverEvent",
]
