"""
agent/compressor.py — History compression

When the session's estimated token count passes `threshold * token_limit`,
older history is summarised by the backend into a state snapshot and the
last `keep_recent` messages are kept verbatim.

Backend errors propagate; the driver treats them as non-fatal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from tandem.brain.llm_client import BaseLLMClient, call_with_retry
from tandem.brain.types import LLMConfig, Message, Role
from tandem.observability.logger import get_logger

if TYPE_CHECKING:
    from tandem.agent.session import ChatSession
    from tandem.config.settings import Settings

log = get_logger(__name__)

SUMMARY_PROMPT = (
    "Summarise the conversation so far into a compact state snapshot. Keep the "
    "user's overall goal, decisions made, facts learned from tool results, files "
    "and commands involved, and what remains to be done. Omit pleasantries. "
    "Write plain text, no preamble."
)

SNAPSHOT_ACK = "Got it. Thanks for the additional context!"


@dataclass
class CompressionInfo:
    original_tokens: int
    new_tokens: int
    summarized_messages: int


class ChatCompressor:
    def __init__(
        self,
        llm: BaseLLMClient,
        model: str,
        threshold: float = 0.7,
        token_limit: int = 1_048_576,
        keep_recent: int = 4,
    ):
        self.llm = llm
        self.config = LLMConfig(model=model, temperature=0.2)
        self.threshold = threshold
        self.token_limit = token_limit
        self.keep_recent = keep_recent

    @classmethod
    def from_settings(cls, settings: "Settings", llm: BaseLLMClient) -> "ChatCompressor":
        return cls(
            llm=llm,
            model=settings.llm.model,
            threshold=settings.agent.compression_threshold,
            token_limit=settings.agent.context_token_limit,
            keep_recent=settings.agent.compression_keep_recent,
        )

    @property
    def trigger_tokens(self) -> int:
        return int(self.threshold * self.token_limit)

    async def maybe_compress(self, session: "ChatSession", force: bool = False) -> Optional[CompressionInfo]:
        original = session.token_count()
        if not force and original < self.trigger_tokens:
            return None

        history = session.history
        split = len(history) - self.keep_recent
        # Never separate tool results from the call that produced them.
        while 0 < split < len(history) and history[split].role == Role.TOOL:
            split -= 1
        # Calls still waiting for their results stay in the kept tail.
        if split == len(history) and history and history[-1].tool_calls:
            split -= 1
        if split <= 0:
            log.debug("compressor.nothing_to_compress", session_id=session.id, messages=len(history))
            return None

        older, recent = history[:split], history[split:]
        response = await call_with_retry(self.llm, older + [Message.user(SUMMARY_PROMPT)], self.config)
        summary = response.text.strip()
        if not summary:
            log.warning("compressor.empty_summary", session_id=session.id)
            return None

        session.replace_history(
            [
                Message.user(f"<state_snapshot>\n{summary}\n</state_snapshot>"),
                Message.assistant(SNAPSHOT_ACK),
            ]
            + recent
        )
        info = CompressionInfo(
            original_tokens=original,
            new_tokens=session.token_count(),
            summarized_messages=len(older),
        )
        log.info(
            "compressor.compressed",
            session_id=session.id,
            original_tokens=info.original_tokens,
            new_tokens=info.new_tokens,
            summarized=info.summarized_messages,
        )
        return info
