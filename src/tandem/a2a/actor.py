"""
a2a/actor.py — Actor base class

Shared lifecycle for the Planner and the Executor:

    initialize(context) → process_message(msg)* → shutdown()

Outbound messages go through the callback registered with on_message();
the orchestrator points it at the actor's own bus.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from tandem.a2a.messages import ActorType, AgentMessage
from tandem.a2a.roles import ActorRole
from tandem.brain.types import Message
from tandem.exceptions import AgentError, MessageRoutingError
from tandem.observability.logger import get_logger

log = get_logger(__name__)

OutboundCallback = Callable[[AgentMessage], Awaitable[None]]


@dataclass
class AgentContext:
    """Per-session state shared by both actors."""
    session_id: str
    conversation_history: list[Message] = field(default_factory=list)
    current_task: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


class BaseActor(ABC):
    actor: ActorType
    role: ActorRole

    def __init__(self) -> None:
        self.context: Optional[AgentContext] = None
        self._outbound: Optional[OutboundCallback] = None

    @property
    def is_initialized(self) -> bool:
        return self.context is not None

    async def initialize(self, context: AgentContext) -> None:
        self.context = context
        log.info("actor.initialized", actor=self.actor.value, session_id=context.session_id)

    @abstractmethod
    async def process_message(self, message: AgentMessage) -> Optional[AgentMessage]:
        """Handle one inbound message; return the reply, if any. Never raises."""
        ...

    async def shutdown(self) -> None:
        self.context = None
        self._outbound = None
        log.info("actor.shutdown", actor=self.actor.value)

    def on_message(self, callback: OutboundCallback) -> None:
        self._outbound = callback

    async def _emit(self, message: AgentMessage) -> None:
        if self._outbound is None:
            raise MessageRoutingError(
                f"{self.actor.value} has no bus to send {message.variant} to {message.to_actor.value}"
            )
        await self._outbound(message)

    def _require_context(self) -> AgentContext:
        if self.context is None:
            raise AgentError(f"{self.role.name} is not initialized")
        return self.context

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} initialized={self.is_initialized}>"
