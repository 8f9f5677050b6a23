"""
brain/ — Tandem Reasoning Backend

Public API:
    from tandem.brain import BaseLLMClient, OpenAIClient, Message, LLMConfig
"""

from __future__ import annotations

from typing import Optional

from tandem.brain.llm_client import BaseLLMClient, call_with_retry
from tandem.brain.openai_client import OpenAIClient
from tandem.brain.types import (
    FinishReason,
    FunctionCall,
    FunctionResponse,
    LLMConfig,
    LLMResponse,
    Message,
    Role,
    StreamChunk,
    TokenUsage,
    ToolSchema,
)

__all__ = [
    "BaseLLMClient",
    "OpenAIClient",
    "call_with_retry",
    "create_llm_client",
    "FinishReason",
    "FunctionCall",
    "FunctionResponse",
    "LLMConfig",
    "LLMResponse",
    "Message",
    "Role",
    "StreamChunk",
    "TokenUsage",
    "ToolSchema",
]


def create_llm_client(
    provider: str,
    api_key: Optional[str],
    base_url: Optional[str] = None,
) -> BaseLLMClient:
    """Central factory that returns the correct client instance."""
    if provider == "openai":
        return OpenAIClient(api_key=api_key, base_url=base_url)
    raise ValueError(f"Unsupported LLM provider: {provider}")
