"""
a2a/bus.py — Communication Bus

One bus per actor. An actor's outbound messages are sent on its own bus;
the orchestrator's listener on that bus delivers each message to the
addressed actor.

  - send() appends to history under a lock, then awaits every listener in
    registration order before returning
  - history is append-only until clear_history()
  - a failing listener is logged and skipped; send() never raises to its caller

The lock covers only the append: listeners may send on the same bus again
(a reply routed back through the sender's bus) without deadlocking.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from tandem.a2a.messages import ActorType, AgentMessage
from tandem.observability.logger import get_logger

log = get_logger(__name__)

MessageListener = Callable[[AgentMessage], Awaitable[None]]


class CommunicationBus:
    def __init__(self, owner: ActorType, debugging: bool = False, keep_history: bool = True):
        self.owner = owner
        self.debugging = debugging
        self.keep_history = keep_history
        self._history: list[AgentMessage] = []
        self._listeners: list[MessageListener] = []
        self._lock = asyncio.Lock()

    async def send(self, message: AgentMessage) -> None:
        async with self._lock:
            if self.keep_history:
                self._history.append(message)

        log.info(
            "bus.send",
            bus=self.owner.value,
            message_id=message.id,
            variant=message.variant,
            from_actor=message.from_actor.value,
            to_actor=message.to_actor.value,
        )
        if self.debugging:
            log.debug("bus.payload", bus=self.owner.value, message=message.model_dump(mode="json"))

        for listener in list(self._listeners):
            try:
                await listener(message)
            except Exception as e:
                log.error(
                    "bus.listener_failed",
                    bus=self.owner.value,
                    message_id=message.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def on_message(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def history(self) -> list[AgentMessage]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history = []

    def clear_listeners(self) -> None:
        self._listeners = []

    def __len__(self) -> int:
        return len(self._history)

    def __repr__(self) -> str:
        return f"<CommunicationBus owner={self.owner.value} messages={len(self._history)}>"
