"""
brain/openai_client.py — OpenAI Reasoning Backend

Supports GPT-4o, GPT-4o-mini and any OpenAI-compatible endpoint.
Handles tool calling, streaming with tool-call delta assembly, and error
normalisation into the tandem.exceptions LLM hierarchy.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

import openai
from openai import AsyncOpenAI

from tandem.brain.llm_client import BaseLLMClient
from tandem.brain.types import (
    FinishReason,
    FunctionCall,
    LLMConfig,
    LLMResponse,
    Message,
    Role,
    StreamChunk,
    TokenUsage,
    ToolSchema,
)
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

_FINISH_MAP = {
    "stop": FinishReason.STOP,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "length": FinishReason.LENGTH,
}


def _parse_arguments(raw: Optional[str]) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"_raw": raw}


class OpenAIClient(BaseLLMClient):
    """
    OpenAI API client (also works with any OpenAI-compatible endpoint
    e.g. LiteLLM proxy, local vLLM, etc.).
    """

    provider = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,     # None = official OpenAI endpoint
        organization: Optional[str] = None,
    ):
        super().__init__(api_key=api_key, base_url=base_url)
        self._client = AsyncOpenAI(
            # local OpenAI-compatible servers accept any key
            api_key=api_key or ("EMPTY" if base_url else None),
            base_url=base_url,
            organization=organization,
        )

    # ── Public API ────────────────────────────────────────────────────────────

    async def generate(
        self,
        messages: list[Message],
        config: LLMConfig,
        tools: Optional[list[ToolSchema]] = None,
    ) -> LLMResponse:
        log.debug(
            "openai.generate.start",
            model=config.model,
            message_count=len(messages),
            has_tools=bool(tools),
        )

        try:
            response = await self._client.chat.completions.create(
                **self._request_kwargs(messages, config, tools),
            )
        except openai.APIError as e:
            raise self._normalise_error(e) from e

        result = self._from_provider_response(response)
        log.debug(
            "openai.generate.complete",
            model=result.model,
            input_tokens=result.usage.input_tokens,
            output_tokens=result.usage.output_tokens,
            finish_reason=result.finish_reason,
            tool_calls=len(result.tool_calls),
        )
        return result

    async def stream(
        self,
        messages: list[Message],
        config: LLMConfig,
        tools: Optional[list[ToolSchema]] = None,
        cancel: Optional["CancellationToken"] = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream chat completion deltas.

        Text deltas are yielded as they arrive. Tool-call deltas are buffered
        by index and yielded as complete FunctionCalls once the provider
        reports a finish reason, since arguments arrive as JSON fragments.
        """
        log.debug("openai.stream.start", model=config.model, message_count=len(messages))

        try:
            response = await self._client.chat.completions.create(
                **self._request_kwargs(messages, config, tools),
                stream=True,
                stream_options={"include_usage": True},
            )
        except openai.APIError as e:
            raise self._normalise_error(e) from e

        pending: dict[int, dict[str, str]] = {}

        try:
            async for chunk in response:
                if cancel is not None and cancel.cancelled:
                    log.info("openai.stream.cancelled", model=config.model)
                    break

                usage = None
                if getattr(chunk, "usage", None):
                    usage = TokenUsage(
                        input_tokens=chunk.usage.prompt_tokens or 0,
                        output_tokens=chunk.usage.completion_tokens or 0,
                    )

                if not chunk.choices:
                    if usage is not None:
                        yield StreamChunk(usage=usage)
                    continue

                choice = chunk.choices[0]
                delta = choice.delta

                for tc in delta.tool_calls or []:
                    slot = pending.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function is not None:
                        if tc.function.name:
                            slot["name"] += tc.function.name
                        if tc.function.arguments:
                            slot["arguments"] += tc.function.arguments

                calls: list[FunctionCall] = []
                finish = None
                if choice.finish_reason:
                    finish = _FINISH_MAP.get(choice.finish_reason, FinishReason.STOP)
                    calls = self._drain_pending(pending)

                if delta.content or calls or finish or usage:
                    yield StreamChunk(
                        text=delta.content or None,
                        function_calls=calls,
                        finish_reason=finish,
                        usage=usage,
                    )
        except openai.APIError as e:
            raise self._normalise_error(e) from e

        # Some compatible servers end the stream without a finish reason.
        leftover = self._drain_pending(pending)
        if leftover:
            yield StreamChunk(function_calls=leftover, finish_reason=FinishReason.TOOL_CALLS)

    async def health_check(self) -> bool:
        try:
            await self._client.models.list()
            return True
        except (openai.APIError, OSError) as e:
            log.warning("openai.health_check.failed", error=str(e), error_type=type(e).__name__)
            return False

    # ── Private helpers ───────────────────────────────────────────────────────

    def _request_kwargs(
        self,
        messages: list[Message],
        config: LLMConfig,
        tools: Optional[list[ToolSchema]],
    ) -> dict[str, Any]:
        oai_messages = self._to_provider_messages(messages)
        if config.system_instruction:
            oai_messages.insert(0, {"role": "system", "content": config.system_instruction})

        kwargs: dict[str, Any] = {
            "model": config.model,
            "messages": oai_messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "top_p": config.top_p,
            "timeout": config.timeout_seconds,
        }
        if tools:
            kwargs["tools"] = self._to_provider_tools(tools)
            kwargs["tool_choice"] = "auto"
        if config.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    @staticmethod
    def _normalise_error(e: openai.APIError) -> LLMError:
        if isinstance(e, openai.AuthenticationError):
            return LLMConnectionError(str(e), provider="openai", status_code=401)
        if isinstance(e, openai.RateLimitError):
            return LLMRateLimitError(str(e), provider="openai")
        if isinstance(e, openai.BadRequestError):
            text = str(e).lower()
            if "context" in text or "too long" in text:
                return LLMContextError(str(e), provider="openai")
            return LLMInvalidRequestError(str(e), provider="openai")
        if isinstance(e, openai.APIConnectionError):
            return LLMConnectionError(str(e), provider="openai")
        status = getattr(e, "status_code", None)
        if status is not None and status >= 500:
            return LLMConnectionError(str(e), provider="openai", status_code=status)
        return LLMError(str(e), provider="openai", status_code=status)

    @staticmethod
    def _drain_pending(pending: dict[int, dict[str, str]]) -> list[FunctionCall]:
        calls = [
            FunctionCall(
                id=slot["id"] or None,
                name=slot["name"],
                args=_parse_arguments(slot["arguments"]),
            )
            for _, slot in sorted(pending.items())
            if slot["name"]
        ]
        pending.clear()
        return calls

    def _to_provider_messages(self, messages: list[Message]) -> list[dict]:
        """Translate internal Message list → OpenAI chat message format."""
        result = []
        for msg in messages:
            if msg.role == Role.SYSTEM:
                result.append({"role": "system", "content": msg.content or ""})

            elif msg.role == Role.USER:
                result.append({"role": "user", "content": msg.content or ""})

            elif msg.role == Role.ASSISTANT:
                entry: dict = {"role": "assistant"}
                if msg.content:
                    entry["content"] = msg.content
                if msg.tool_calls:
                    entry["tool_calls"] = [
                        {
                            "id": fc.id,
                            "type": "function",
                            "function": {
                                "name": fc.name,
                                "arguments": json.dumps(fc.args),
                            },
                        }
                        for fc in msg.tool_calls
                    ]
                result.append(entry)

            elif msg.role == Role.TOOL and msg.tool_result:
                result.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_result.call_id,
                    "content": msg.tool_result.content,
                })

        return result

    def _to_provider_tools(self, tools: list[ToolSchema]) -> list[dict]:
        """Translate internal ToolSchema list → OpenAI function tool format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in tools
        ]

    def _from_provider_response(self, response) -> LLMResponse:
        """Translate OpenAI ChatCompletion → internal LLMResponse."""
        choice = response.choices[0]
        msg = choice.message

        finish_reason = _FINISH_MAP.get(choice.finish_reason or "stop", FinishReason.STOP)

        tool_calls = [
            FunctionCall(id=tc.id, name=tc.function.name, args=_parse_arguments(tc.function.arguments))
            for tc in msg.tool_calls or []
        ]

        usage = TokenUsage(
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
        )

        return LLMResponse(
            content=msg.content,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            usage=usage,
            model=response.model,
        )
