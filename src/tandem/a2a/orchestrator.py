"""
a2a/orchestrator.py — Two-actor Orchestrator

Wires the Planner and the Executor together through one CommunicationBus
each:

    planner ──emit──► planner bus ──(to EXECUTOR)──► executor.process_message
                                                          │ reply
    planner.process_message ◄──(to PLANNER)── executor bus ◄┘

Each actor's replies go out on its own bus, so a message always sits in
the history of the bus belonging to its sender.

handle_user_input() returns as soon as the Planner has answered or handed
work to the Executor. A ToolExecutionRequest emitted during that call is
delivered on a background task; drain() waits for every outstanding
delivery, after which the Planner's final answer is in `final_answers`.

Lifecycle:
    NEW ──initialize()──► READY ──shutdown()──► SHUT_DOWN
Everything except the status queries requires READY. reset() returns a
shut-down orchestrator to NEW with fresh buses.

Usage:
    orc = Orchestrator.from_settings(settings, llm, registry)
    await orc.initialize("sess_1")
    ack = await orc.handle_user_input("list the repo")
    await orc.drain()
    print(orc.planner.final_answers[-1])
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from tandem.a2a.actor import AgentContext, BaseActor
from tandem.a2a.bus import CommunicationBus
from tandem.a2a.executor import ExecutorAgent
from tandem.a2a.messages import ActorType, AgentMessage, ToolExecutionRequest
from tandem.a2a.planner import PlannerAgent
from tandem.agent.utils import fire_and_forget
from tandem.config.settings import ConfigError
from tandem.exceptions import OrchestratorStateError
from tandem.observability.logger import bind_session, get_logger
from tandem.tools.types import ApprovalMode

if TYPE_CHECKING:
    from tandem.brain.llm_client import BaseLLMClient
    from tandem.config.settings import Settings
    from tandem.tools.registry import ToolRegistry

log = get_logger(__name__)


class OrchestratorState(str, Enum):
    NEW = "new"
    READY = "ready"
    SHUT_DOWN = "shut_down"


class Orchestrator:
    def __init__(
        self,
        planner: PlannerAgent,
        executor: ExecutorAgent,
        debugging: bool = False,
        keep_history: bool = True,
    ):
        self.planner = planner
        self.executor = executor
        self._debugging = debugging
        self._keep_history = keep_history
        self.state = OrchestratorState.NEW
        self.session_id: Optional[str] = None
        self.started_at: Optional[float] = None
        self._deliveries: set[asyncio.Task] = set()
        self._new_buses()

    # ── Factory ───────────────────────────────────────────────────────────────

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        llm: "BaseLLMClient",
        registry: "ToolRegistry",
    ) -> "Orchestrator":
        """Build both actors from the two_agent section. Raises ConfigError."""
        problems = settings.two_agent.problems()
        if problems:
            raise ConfigError("Invalid two_agent configuration: " + "; ".join(problems))

        cfg = settings.two_agent
        planner = PlannerAgent(
            llm=llm,
            model=cfg.planner.model,
            tools=registry.schemas(),
            temperature=settings.llm.temperature,
            max_attempts=settings.llm.retry.max_attempts,
        )
        executor = ExecutorAgent(
            registry=registry,
            approval_mode=ApprovalMode.AUTO,
            output_interval=settings.scheduler.output_update_interval_seconds,
        )
        return cls(
            planner=planner,
            executor=executor,
            debugging=cfg.communication.debugging,
            keep_history=cfg.communication.message_history,
        )

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    @property
    def is_initialized(self) -> bool:
        return self.state == OrchestratorState.READY

    async def initialize(self, session_id: str) -> None:
        if self.state == OrchestratorState.READY:
            raise OrchestratorStateError("Orchestrator already initialized")
        if self.state == OrchestratorState.SHUT_DOWN:
            raise OrchestratorStateError("Orchestrator has been shut down; call reset() first")

        context = AgentContext(session_id=session_id)
        await self.planner.initialize(context)
        await self.executor.initialize(context)

        self.session_id = session_id
        self.started_at = time.time()
        self.state = OrchestratorState.READY
        log.info("orchestrator.initialized", session_id=session_id)

    async def shutdown(self) -> None:
        self._require_ready("shutdown")
        await self.drain()
        await self.planner.shutdown()
        await self.executor.shutdown()
        self.clear_history()
        self.planner_bus.clear_listeners()
        self.executor_bus.clear_listeners()
        self.state = OrchestratorState.SHUT_DOWN
        log.info("orchestrator.shutdown", session_id=self.session_id)

    def reset(self) -> None:
        """Back to NEW with fresh buses. Pending deliveries are cancelled."""
        for task in list(self._deliveries):
            task.cancel()
        self._deliveries.clear()
        self.state = OrchestratorState.NEW
        self.session_id = None
        self.started_at = None
        self._new_buses()

    # ── Entry point ───────────────────────────────────────────────────────────

    async def handle_user_input(self, text: str) -> str:
        self._require_ready("handle_user_input")
        bind_session(self.session_id or "", actor="orchestrator")
        try:
            return await self.planner.handle_user_input(text)
        except Exception as e:
            log.error("orchestrator.user_input_failed", error=str(e), error_type=type(e).__name__)
            return f"Error: {e}"

    async def drain(self) -> None:
        """Wait until every background delivery (and what it triggered) is done."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    # ── Introspection ─────────────────────────────────────────────────────────

    def communication_stats(self) -> dict[str, int]:
        planner_messages = len(self.planner_bus)
        executor_messages = len(self.executor_bus)
        total = planner_messages + executor_messages
        return {
            "planner_messages": planner_messages,
            "executor_messages": executor_messages,
            "total_messages": total,
            "pending_deliveries": len(self._deliveries),
            "active_agents": 2 if self.is_initialized else 0,
        }

    def full_message_history(self) -> list[AgentMessage]:
        merged = self.planner_bus.history() + self.executor_bus.history()
        return sorted(merged, key=lambda m: (m.timestamp, m.seq))

    def clear_history(self) -> None:
        self.planner_bus.clear_history()
        self.executor_bus.clear_history()

    def get_status(self) -> dict[str, Any]:
        return {
            "initialized": self.is_initialized,
            "state": self.state.value,
            "session_id": self.session_id,
            "planner": {
                "actor": self.planner.actor.value,
                "role": self.planner.role.name,
                "model": self.planner.model,
                "initialized": self.planner.is_initialized,
            },
            "executor": {
                "actor": self.executor.actor.value,
                "role": self.executor.role.name,
                "tools": self.executor.registry.list_names(),
                "initialized": self.executor.is_initialized,
                "batch_running": self.executor.scheduler.is_running,
            },
            "communication_stats": self.communication_stats(),
        }

    # ── Wiring ────────────────────────────────────────────────────────────────

    def _new_buses(self) -> None:
        self.planner_bus = CommunicationBus(
            ActorType.PLANNER, debugging=self._debugging, keep_history=self._keep_history
        )
        self.executor_bus = CommunicationBus(
            ActorType.EXECUTOR, debugging=self._debugging, keep_history=self._keep_history
        )
        self._buses = {ActorType.PLANNER: self.planner_bus, ActorType.EXECUTOR: self.executor_bus}
        self._actors: dict[ActorType, BaseActor] = {
            ActorType.PLANNER: self.planner,
            ActorType.EXECUTOR: self.executor,
        }

        self.planner_bus.on_message(self._router(ActorType.EXECUTOR))
        self.executor_bus.on_message(self._router(ActorType.PLANNER))

        self.planner.on_message(self._planner_outbound)
        self.executor.on_message(self.executor_bus.send)

    def _router(self, target: ActorType):
        """Listener that hands messages addressed to `target` to that actor."""
        async def route(message: AgentMessage) -> None:
            if message.to_actor != target:
                return
            if self.state != OrchestratorState.READY:
                log.warning("orchestrator.dropped", message_id=message.id, state=self.state.value)
                return
            reply = await self._actors[target].process_message(message)
            if reply is not None:
                await self._buses[target].send(reply)
        return route

    async def _planner_outbound(self, message: AgentMessage) -> None:
        if isinstance(message, ToolExecutionRequest):
            task = fire_and_forget(self.planner_bus.send(message), label=f"deliver:{message.id}")
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)
            return
        await self.planner_bus.send(message)

    def _require_ready(self, operation: str) -> None:
        if self.state != OrchestratorState.READY:
            raise OrchestratorStateError(
                f"Cannot {operation}: orchestrator is {self.state.value.replace('_', ' ')}"
            )
