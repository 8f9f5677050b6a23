"""
a2a/executor.py — Executor actor

Runs tools on the planner's behalf; makes no strategic decisions.

ToolExecutionRequest handling:
  1. StatusUpdate "Starting tool execution..." to the requester
  2. One ToolCallScheduler batch with the requested calls, queued behind
     any batch still running
  3. ToolExecutionResponse carrying every terminal record
     success = no record ended in ERROR
Any internal failure becomes a ToolExecutionResponse with success=False
and the error text. Nothing is raised to the bus.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from tandem.a2a.actor import BaseActor
from tandem.a2a.messages import (
    ActorType,
    AgentMessage,
    StatusUpdate,
    ToolExecutionRequest,
    ToolExecutionResponse,
    reply_id,
)
from tandem.a2a.roles import EXECUTOR_ROLE
from tandem.brain.types import FunctionResponse
from tandem.cancellation import CancellationToken
from tandem.observability.logger import get_logger
from tandem.tools.registry import ToolRegistry
from tandem.tools.scheduler import ToolCallScheduler
from tandem.tools.types import ApprovalMode, ToolCallResponse, ToolCallState, ToolOutput

log = get_logger(__name__)

STARTING_STATUS = "Starting tool execution..."


class ExecutorAgent(BaseActor):
    actor = ActorType.EXECUTOR
    role = EXECUTOR_ROLE

    def __init__(
        self,
        registry: ToolRegistry,
        approval_mode: ApprovalMode | str = ApprovalMode.AUTO,
        scheduler: Optional[ToolCallScheduler] = None,
        output_interval: float = 1.0,
    ):
        super().__init__()
        self.registry = registry
        self.scheduler = scheduler or ToolCallScheduler(
            registry,
            approval_mode=approval_mode,
            on_output=self._handle_tool_output,
            output_interval=output_interval,
        )
        # One scheduler batch at a time; later requests wait their turn.
        self._batch_lock = asyncio.Lock()
        self._batch_tokens: set[CancellationToken] = set()

    # ── Inbound messages ──────────────────────────────────────────────────────

    async def process_message(self, message: AgentMessage) -> Optional[AgentMessage]:
        if isinstance(message, ToolExecutionRequest):
            return await self._handle_tool_execution_request(message)
        if isinstance(message, StatusUpdate):
            log.info("executor.status_received", status=message.status, content=message.content[:200])
            return None
        log.warning("executor.unexpected_message", variant=message.variant, message_id=message.id)
        return None

    async def _handle_tool_execution_request(self, request: ToolExecutionRequest) -> ToolExecutionResponse:
        try:
            await self._send_status(STARTING_STATUS, to=request.from_actor, reply_to=request.id)

            token = CancellationToken()
            self._batch_tokens.add(token)
            try:
                async with self._batch_lock:
                    records = await self.scheduler.schedule(request.tool_calls, token)
            finally:
                self._batch_tokens.discard(token)

            results = [ToolCallScheduler.to_response(r) for r in records]
            failed = [r for r in records if r.state == ToolCallState.ERROR]
            error = "; ".join(f"{r.tool_name}: {r.error}" for r in failed) or None
            log.info(
                "executor.batch_done",
                calls=len(records),
                failed=len(failed),
                cancelled=sum(1 for r in records if r.state == ToolCallState.CANCELLED),
            )
            return ToolExecutionResponse(
                id=reply_id(request),
                reply_to=request.id,
                from_actor=ActorType.EXECUTOR,
                to_actor=request.from_actor,
                content="Tool execution completed" if not failed
                else f"{len(failed)} of {len(records)} tool calls failed",
                tool_results=results,
                success=not failed,
                error=error,
            )
        except Exception as e:
            log.error(
                "executor.request_failed",
                message_id=request.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ToolExecutionResponse(
                id=reply_id(request),
                reply_to=request.id,
                from_actor=ActorType.EXECUTOR,
                to_actor=request.from_actor,
                content="Tool execution failed",
                tool_results=[],
                success=False,
                error=str(e) or type(e).__name__,
            )

    # ── Direct execution ──────────────────────────────────────────────────────

    async def execute_tool(self, name: str, args: dict[str, Any], call_id: str) -> ToolCallResponse:
        """
        Run one tool directly, outside any batch.

        Raises ToolNotFoundError for unknown tools; execution errors are
        returned on the response.
        """
        tool = self.registry.get(name)
        token = CancellationToken()
        try:
            output = await tool.execute(args, token)
        except Exception as e:
            message = str(e) or type(e).__name__
            log.warning("executor.direct_failed", tool=name, call_id=call_id, error=message)
            return ToolCallResponse(
                call_id=call_id,
                response=FunctionResponse(call_id=call_id, name=name, content=message, is_error=True),
                display=f"Error executing {name}: {message}",
                error=message,
                state=ToolCallState.ERROR,
            )

        if not isinstance(output, ToolOutput):
            output = ToolOutput(content="" if output is None else str(output))
        return ToolCallResponse(
            call_id=call_id,
            response=FunctionResponse(call_id=call_id, name=name, content=output.content),
            display=output.display,
            state=ToolCallState.SUCCESS,
        )

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def cancel(self, reason: str = "cancelled by planner") -> None:
        for token in list(self._batch_tokens):
            token.cancel(reason)

    async def shutdown(self) -> None:
        self.cancel("executor shutting down")
        self.scheduler.cancel_all("Executor shut down.")
        await super().shutdown()

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _send_status(self, status: str, to: ActorType, reply_to: Optional[str] = None) -> None:
        if self._outbound is None:
            return
        await self._emit(StatusUpdate(
            from_actor=ActorType.EXECUTOR,
            to_actor=to,
            reply_to=reply_to,
            content=status,
            status=status,
        ))

    def _handle_tool_output(self, call_id: str, chunk: str) -> None:
        log.debug("executor.tool_output", call_id=call_id, chars=len(chunk))
