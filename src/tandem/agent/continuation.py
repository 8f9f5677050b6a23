"""
agent/continuation.py — Who speaks next?

After a turn that requested no tools, the driver asks a ContinuationPolicy
whether the model should keep going or hand control back to the user.

  - LLMContinuationPolicy    asks the backend for a small JSON verdict
  - StaticContinuationPolicy always answers the same way (tests, scripts)

Any failure in the LLM policy answers USER.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol

from tandem.brain.llm_client import BaseLLMClient, call_with_retry
from tandem.brain.types import LLMConfig, Message, Role
from tandem.exceptions import LLMError
from tandem.observability.logger import get_logger

if TYPE_CHECKING:
    from tandem.agent.session import ChatSession
    from tandem.cancellation import CancellationToken

log = get_logger(__name__)


class NextSpeaker(str, Enum):
    MODEL = "model"
    USER = "user"


class ContinuationPolicy(Protocol):
    async def decide(self, session: "ChatSession", cancel: "CancellationToken") -> NextSpeaker:
        ...


class StaticContinuationPolicy:
    def __init__(self, speaker: NextSpeaker = NextSpeaker.USER):
        self.speaker = speaker
        self.calls = 0

    async def decide(self, session: "ChatSession", cancel: "CancellationToken") -> NextSpeaker:
        self.calls += 1
        return self.speaker


CHECK_PROMPT = """Analyze *only* the content and structure of your immediately preceding response (your last turn in the conversation history). Based *strictly* on that response, determine who should logically speak next: the 'user' or the 'model' (you).

Decision rules, in order:
1. Model continues: your last response explicitly states an immediate next action *you* intend to take, or appears incomplete or cut off.
2. Question to user: your last response ends with a direct question addressed to the user.
3. Waiting for user: your last response completed a thought or task and does not meet rule 1 or 2.

Respond *only* with a JSON object of the form:
{"reasoning": "<one sentence>", "next_speaker": "user" | "model"}"""


class LLMContinuationPolicy:
    """
    Classify the last model message with a cheap backend call.

    Heuristics short-circuit the call:
      - no model message yet         → USER
      - last model message has calls → MODEL (the calls must be answered)
      - last model message is empty  → MODEL (the model was cut off)
    """

    def __init__(
        self,
        llm: BaseLLMClient,
        model: str,
        history_window: int = 20,
        max_attempts: int = 1,
    ):
        self.llm = llm
        self.config = LLMConfig(model=model, temperature=0.0, max_tokens=256, json_mode=True)
        self.history_window = history_window
        self.max_attempts = max_attempts

    async def decide(self, session: "ChatSession", cancel: "CancellationToken") -> NextSpeaker:
        if cancel.cancelled:
            return NextSpeaker.USER

        last = session.last_model_message
        if last is None:
            return NextSpeaker.USER
        if last.tool_calls:
            return NextSpeaker.MODEL
        if not (last.content or "").strip():
            return NextSpeaker.MODEL

        window = session.history[-self.history_window:]
        while window and window[0].role == Role.TOOL:
            window = window[1:]  # orphaned tool results
        messages = window + [Message.user(CHECK_PROMPT)]
        try:
            response = await call_with_retry(
                self.llm, messages, self.config, tools=None, max_attempts=self.max_attempts
            )
        except LLMError as e:
            log.warning("continuation.backend_error", error=str(e), error_type=type(e).__name__)
            return NextSpeaker.USER

        speaker = self._parse(response.text)
        log.debug("continuation.decided", session_id=session.id, next_speaker=speaker.value)
        return speaker

    @staticmethod
    def _parse(text: str) -> NextSpeaker:
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            log.warning("continuation.unparseable", preview=text[:120])
            return NextSpeaker.USER
        value: Optional[str] = data.get("next_speaker") if isinstance(data, dict) else None
        try:
            return NextSpeaker(str(value).lower())
        except ValueError:
            log.warning("continuation.unknown_speaker", value=value)
            return NextSpeaker.USER
