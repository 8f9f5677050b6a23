"""
agent/driver.py — Agent Driver Loop

Composes Turn and ToolCallScheduler into the full agent loop:

    input ──► [compress?] ──► Turn ──► pending calls? ── yes ──► scheduler ──┐
                                          │                                  │
                                          no                    results as next input
                                          ▼                                  │
                                 continuation policy ── MODEL ──► "continue" ┤
                                          │                                  │
                                        USER ──► return        budget left? ◄┘

The loop is iterative. The first turn is free; every follow-up turn (tool
results or a continue prompt) spends one unit of the budget. When the
budget is gone the driver yields MaxTurnsReachedEvent and returns.

Turn errors and cancellation end the run. Compression failures do not.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, AsyncIterator, Optional

from tandem.agent.compressor import ChatCompressor
from tandem.agent.continuation import ContinuationPolicy, NextSpeaker
from tandem.agent.events import (
    ChatCompressedEvent,
    DriverEvent,
    ErrorEvent,
    MaxTurnsReachedEvent,
    ToolCallsCompletedEvent,
    UserCancelledEvent,
)
from tandem.agent.session import ChatSession, TurnInput
from tandem.agent.turn import Turn
from tandem.brain.types import FunctionResponse
from tandem.exceptions import LLMError
from tandem.observability.logger import bind_session, clear_session, get_logger
from tandem.tools.scheduler import ToolCallScheduler

if TYPE_CHECKING:
    from tandem.cancellation import CancellationToken
    from tandem.config.settings import Settings

log = get_logger(__name__)


class AgentDriver:
    def __init__(
        self,
        session: ChatSession,
        scheduler: ToolCallScheduler,
        continuation: ContinuationPolicy,
        compressor: Optional[ChatCompressor] = None,
        max_turns: int = 100,
        continue_prompt: str = "Please continue.",
    ):
        self.session = session
        self.scheduler = scheduler
        self.continuation = continuation
        self.compressor = compressor
        self.max_turns = max_turns
        self.continue_prompt = continue_prompt

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        session: ChatSession,
        scheduler: ToolCallScheduler,
        continuation: ContinuationPolicy,
        compressor: Optional[ChatCompressor] = None,
    ) -> "AgentDriver":
        return cls(
            session=session,
            scheduler=scheduler,
            continuation=continuation,
            compressor=compressor,
            max_turns=settings.agent.max_session_turns,
            continue_prompt=settings.agent.continue_prompt,
        )

    async def run(
        self,
        user_input: str,
        cancel: "CancellationToken",
        max_turns: Optional[int] = None,
    ) -> AsyncIterator[DriverEvent]:
        limit = self.max_turns if max_turns is None else max_turns
        budget = limit
        next_input: TurnInput = user_input
        turns_run = 0

        bind_session(self.session.id, actor="driver")
        log.info("driver.start", budget=budget, chars=len(user_input))
        try:
            while True:
                if cancel.cancelled:
                    yield UserCancelledEvent(reason=cancel.reason)
                    return

                compressed = await self._try_compress()
                if compressed is not None:
                    yield compressed

                turn = Turn(self.session)
                turns_run += 1
                stopped = False
                async for event in turn.run(next_input, cancel):
                    yield event
                    if isinstance(event, (UserCancelledEvent, ErrorEvent)):
                        stopped = True
                if stopped:
                    log.info("driver.stopped", turns=turns_run, cancelled=cancel.cancelled)
                    return

                if turn.pending_tool_calls:
                    records = await self.scheduler.schedule(turn.pending_tool_calls, cancel)
                    yield ToolCallsCompletedEvent(records=records)
                    parts = [ToolCallScheduler.to_response(r).response for r in records]
                    if cancel.cancelled:
                        self._close_out(parts)
                        yield UserCancelledEvent(reason=cancel.reason)
                        return
                    next_input = parts
                else:
                    speaker = await self.continuation.decide(self.session, cancel)
                    log.debug("driver.next_speaker", speaker=speaker.value, turns=turns_run)
                    if speaker != NextSpeaker.MODEL:
                        log.info("driver.done", turns=turns_run)
                        return
                    next_input = self.continue_prompt

                if budget <= 0:
                    if not isinstance(next_input, str):
                        self._close_out(next_input)
                    log.warning("driver.max_turns_reached", turns=turns_run, max_turns=limit)
                    yield MaxTurnsReachedEvent(max_turns=limit)
                    return
                budget -= 1
        finally:
            clear_session()

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _try_compress(self) -> Optional[ChatCompressedEvent]:
        if self.compressor is None:
            return None
        try:
            info = await self.compressor.maybe_compress(self.session)
        except (LLMError, OSError) as e:
            log.warning("driver.compression_failed", error=str(e), error_type=type(e).__name__)
            return None
        if info is None:
            return None
        return ChatCompressedEvent(original_tokens=info.original_tokens, new_tokens=info.new_tokens)

    def _close_out(self, parts: list[FunctionResponse]) -> None:
        """Answer recorded function calls so the history stays well-formed."""
        self.session.add_input(parts)
