"""
brain/llm_client.py — Abstract Reasoning Backend + Retry

Every backend must subclass BaseLLMClient and implement generate() and
health_check(). Backends that can stream override stream(); the default
implementation wraps generate() into a single chunk so every client can
drive a Turn.

  - call_with_retry() — exponential backoff on transient errors
  - count_tokens()    — cheap 4-chars-per-token estimate used by the
                        compression trigger
"""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, AsyncIterator, Optional

from tandem.brain.types import LLMConfig, LLMResponse, Message, StreamChunk, ToolSchema
from tandem.exceptions import (
    LLMConnectionError,
    LLMContextError,
    LLMError,
    LLMInvalidRequestError,
    LLMRateLimitError,
)
from tandem.observability.logger import get_logger

if TYPE_CHECKING:
    from tandem.cancellation import CancellationToken

log = get_logger(__name__)

CHARS_PER_TOKEN = 4


class BaseLLMClient(ABC):
    """
    Abstract base for all reasoning backends.

    Subclasses must implement:
      - generate()     -> call the backend, return normalised LLMResponse
      - health_check() -> verify connectivity to the provider
    """

    provider: str = "base"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key
        self.base_url = base_url

    @abstractmethod
    async def generate(
        self,
        messages: list[Message],
        config: LLMConfig,
        tools: Optional[list[ToolSchema]] = None,
    ) -> LLMResponse:
        """Call the backend and return a normalised response."""
        ...

    async def stream(
        self,
        messages: list[Message],
        config: LLMConfig,
        tools: Optional[list[ToolSchema]] = None,
        cancel: Optional["CancellationToken"] = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream the response as StreamChunk objects.

        Default: one chunk built from generate(). The cancel token is advisory
        here; the Turn checks it between chunks.
        """
        response = await self.generate(messages, config, tools)
        yield StreamChunk(
            text=response.content,
            function_calls=list(response.tool_calls),
            finish_reason=response.finish_reason,
            usage=response.usage,
        )

    def count_tokens(self, messages: list[Message]) -> int:
        chars = sum(m.text_length() for m in messages)
        return chars // CHARS_PER_TOKEN

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the provider is reachable and the API key is valid."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


# ─────────────────────────────────────────────────────────────────────────────
# Retry logic
# ─────────────────────────────────────────────────────────────────────────────


async def call_with_retry(
    client: BaseLLMClient,
    messages: list[Message],
    config: LLMConfig,
    tools: Optional[list[ToolSchema]] = None,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> LLMResponse:
    """
    Call client.generate() with exponential backoff on transient errors.

    Retries on:
      - LLMConnectionError  (network blip, timeout, 5xx)
      - LLMRateLimitError   (429 / quota exceeded)

    Does NOT retry (permanent):
      - LLMContextError, LLMInvalidRequestError and any other LLMError

    Backoff formula: min(base_delay * 2^attempt + jitter, max_delay)
    If LLMRateLimitError carries retry_after, that value is used instead.
    """
    last_error: Optional[Exception] = None

    for attempt in range(max_attempts):
        try:
            return await client.generate(messages=messages, config=config, tools=tools)

        except (LLMConnectionError, LLMRateLimitError) as e:
            last_error = e

            if attempt == max_attempts - 1:
                break

            if isinstance(e, LLMRateLimitError) and e.retry_after:
                delay = min(e.retry_after, max_delay)
            else:
                jitter = random.uniform(0, 0.5)
                delay = min(base_delay * (2 ** attempt) + jitter, max_delay)

            log.warning(
                "llm.retrying",
                attempt=attempt + 1,
                max_attempts=max_attempts,
                delay_s=round(delay, 2),
                error=str(e),
                error_type=type(e).__name__,
            )
            await asyncio.sleep(delay)

    if last_error is None:
        raise LLMError("call_with_retry needs max_attempts >= 1")
    raise last_error


__all__ = [
    "BaseLLMClient",
    "call_with_retry",
    "LLMError",
    "LLMConnectionError",
    "LLMRateLimitError",
    "LLMContextError",
    "LLMInvalidRequestError",
]
