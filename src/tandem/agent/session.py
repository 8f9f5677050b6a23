"""
agent/session.py — Conversation Session

One ChatSession exists per conversation. It owns the message history, the
backend client and request config, the tool schemas offered to the
backend, and token metrics. Turns borrow it; they never own it.
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING, AsyncIterator, Optional, Union

from tandem.brain.llm_client import BaseLLMClient
from tandem.brain.types import FunctionResponse, LLMConfig, Message, Role, StreamChunk, ToolSchema
from tandem.observability.logger import get_logger

if TYPE_CHECKING:
    from tandem.cancellation import CancellationToken

log = get_logger(__name__)

TurnInput = Union[str, list[FunctionResponse]]


def new_session_id() -> str:
    return f"sess_{uuid.uuid4().hex[:12]}"


class ChatSession:
    """All conversation state for a single agent session."""

    def __init__(
        self,
        llm: BaseLLMClient,
        config: LLMConfig,
        tools: Optional[list[ToolSchema]] = None,
        session_id: Optional[str] = None,
        history: Optional[list[Message]] = None,
    ):
        self.id = session_id or new_session_id()
        self.llm = llm
        self.config = config
        self.tools: list[ToolSchema] = list(tools or [])
        self.created_at = time.time()
        self._history: list[Message] = list(history or [])

        # Metrics
        self.turn_count: int = 0
        self.total_input_tokens: int = 0
        self.total_output_tokens: int = 0

        log.debug("session.created", session_id=self.id, model=config.model, tools=len(self.tools))

    # ── History ───────────────────────────────────────────────────────────────

    @property
    def history(self) -> list[Message]:
        return list(self._history)

    def add(self, message: Message) -> None:
        self._history.append(message)

    def replace_history(self, messages: list[Message]) -> None:
        log.debug("session.history_replaced", session_id=self.id, old=len(self._history), new=len(messages))
        self._history = list(messages)

    def clear(self) -> None:
        self._history = []

    @property
    def last_model_message(self) -> Optional[Message]:
        for message in reversed(self._history):
            if message.role == Role.ASSISTANT:
                return message
        return None

    def token_count(self) -> int:
        return self.llm.count_tokens(self._history)

    # ── Backend ───────────────────────────────────────────────────────────────

    def add_input(self, turn_input: TurnInput) -> None:
        """Append a turn's input (user text or tool results) to history."""
        if isinstance(turn_input, str):
            self.add(Message.user(turn_input))
            self.turn_count += 1
        else:
            for part in turn_input:
                self.add(Message.tool_response(part))

    async def send_stream(
        self,
        turn_input: TurnInput,
        cancel: Optional["CancellationToken"] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Record the input, then stream the backend's reply to the full history."""
        self.add_input(turn_input)
        async for chunk in self.llm.stream(self.history, self.config, self.tools or None, cancel):
            if chunk.usage is not None:
                self.record_token_usage(chunk.usage.input_tokens, chunk.usage.output_tokens)
            yield chunk

    def record_token_usage(self, input_tokens: int, output_tokens: int) -> None:
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens

    def __repr__(self) -> str:
        return f"<ChatSession id={self.id} messages={len(self._history)}>"
