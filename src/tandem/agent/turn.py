"""
agent/turn.py — One exchange with the reasoning backend

A Turn sends one input to the session, converts the streamed reply into a
sequence of typed events, and collects the tool calls the backend asked
for in `pending_tool_calls`. It never executes anything; the driver loop
hands pending calls to a ToolCallScheduler.

    turn = Turn(session)
    async for event in turn.run("list the repo", token):
        ...
    requests = turn.pending_tool_calls

A Turn is single-use: run() may be called once.
"""

from __future__ import annotations

import asyncio
import re
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, AsyncIterator, Optional

from tandem.agent.events import (
    ContentEvent,
    ErrorEvent,
    ThoughtEvent,
    ToolCallRequestEvent,
    TurnEvent,
    UserCancelledEvent,
)
from tandem.agent.session import ChatSession, TurnInput
from tandem.brain.types import FunctionCall, Message
from tandem.exceptions import LLMError, TurnError
from tandem.observability.logger import get_logger
from tandem.tools.types import ToolCallRequest

if TYPE_CHECKING:
    from tandem.cancellation import CancellationToken

log = get_logger(__name__)

_SUBJECT_RE = re.compile(r"\*\*(.*?)\*\*", re.DOTALL)


@dataclass
class ThoughtSummary:
    subject: str
    description: str


def parse_thought(text: str) -> ThoughtSummary:
    """
    Split a thinking fragment into subject and description.

    "**Planning** I will read the file"  →  ("Planning", "I will read the file")
    "no marker here"                     →  ("", "no marker here")
    """
    match = _SUBJECT_RE.search(text)
    if match is None:
        return ThoughtSummary(subject="", description=text.strip())
    subject = match.group(1).strip()
    description = (text[: match.start()] + text[match.end():]).strip()
    return ThoughtSummary(subject=subject, description=description)


def generate_call_id(name: str) -> str:
    """Unique even for identical calls requested in the same millisecond."""
    return f"{name}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class Turn:
    """Drives one request/response exchange and reports it as events."""

    def __init__(self, session: ChatSession):
        self.session = session
        self.pending_tool_calls: list[ToolCallRequest] = []
        self._text_parts: list[str] = []
        self._function_calls: list[FunctionCall] = []
        self._started = False

    @property
    def text(self) -> str:
        """Narrative text received so far."""
        return "".join(self._text_parts)

    async def run(
        self,
        turn_input: TurnInput,
        cancel: "CancellationToken",
    ) -> AsyncIterator[TurnEvent]:
        if self._started:
            raise TurnError("Turn.run() can only be called once; create a new Turn")
        self._started = True

        completed = False
        stream = self.session.send_stream(turn_input, cancel)
        try:
            if cancel.cancelled:
                yield UserCancelledEvent(reason=cancel.reason)
                return

            async for chunk in stream:
                if cancel.cancelled:
                    log.info("turn.cancelled", session_id=self.session.id, pending=len(self.pending_tool_calls))
                    yield UserCancelledEvent(reason=cancel.reason)
                    return

                if chunk.thought:
                    summary = parse_thought(chunk.thought)
                    yield ThoughtEvent(subject=summary.subject, description=summary.description)

                if chunk.text:
                    self._text_parts.append(chunk.text)
                    yield ContentEvent(text=chunk.text)

                for call in chunk.function_calls:
                    request = self._to_request(call)
                    self._function_calls.append(call.model_copy(update={"id": request.call_id}))
                    self.pending_tool_calls.append(request)
                    yield ToolCallRequestEvent(request=request)

            if cancel.cancelled:
                # backends stop quietly once the token fires
                log.info("turn.cancelled", session_id=self.session.id, pending=len(self.pending_tool_calls))
                yield UserCancelledEvent(reason=cancel.reason)
                return

            completed = True

        except (LLMError, OSError, asyncio.TimeoutError) as e:
            status = getattr(e, "status_code", None)
            log.error(
                "turn.backend_error",
                session_id=self.session.id,
                error=str(e),
                error_type=type(e).__name__,
                status=status,
            )
            yield ErrorEvent(message=str(e) or type(e).__name__, status=status)

        except Exception as e:
            log.error(
                "turn.backend_error",
                session_id=self.session.id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            yield ErrorEvent(message=f"{type(e).__name__}: {e}")

        finally:
            await stream.aclose()
            self._record(completed)

    # ── Internals ─────────────────────────────────────────────────────────────

    @staticmethod
    def _to_request(call: FunctionCall) -> ToolCallRequest:
        return ToolCallRequest(
            call_id=call.id or generate_call_id(call.name),
            name=call.name,
            args=dict(call.args),
        )

    def _record(self, completed: bool) -> None:
        """
        Write the model's side of the turn into history. Function calls are
        only kept when the turn completed, since they must be answered.
        """
        calls = self._function_calls if completed else []
        text: Optional[str] = self.text or None
        if text is None and not calls:
            return
        self.session.add(Message.assistant(text, calls))
        log.debug(
            "turn.recorded",
            session_id=self.session.id,
            chars=len(self.text),
            tool_calls=len(calls),
            completed=completed,
        )
