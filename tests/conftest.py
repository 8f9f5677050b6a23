"""
tests/conftest.py — Shared fixtures and fakes

  - ScriptedLLM    backend double that replays scripted streams / responses
  - fake tools     echo, failing, confirming, slow, streaming
  - wait_until()   poll helper for tests that drive a suspended coroutine
  - environment isolation so Settings() never sees real keys or a .env file
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Union

import pytest
from pydantic_settings import SettingsConfigDict

from tandem.brain.llm_client import BaseLLMClient
from tandem.brain.types import (
    FinishReason,
    FunctionCall,
    LLMConfig,
    LLMResponse,
    Message,
    StreamChunk,
    ToolSchema,
)
from tandem.tools.base import BaseTool
from tandem.tools.registry import ToolRegistry
from tandem.tools.types import ConfirmationDetails, ToolOutput

_ENV_VARS = [
    "OPENAI_API_KEY",
    "TANDEM_CONFIG",
    "TANDEM_TWO_AGENT_MODE",
    "TANDEM_PLANNER_MODEL",
    "TANDEM_EXECUTOR_MODEL",
]


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Clear relevant env vars and disable .env loading for every test."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    import tandem.config.settings as settings_module
    patched_config = SettingsConfigDict(
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
    settings_module.reset_settings()
    yield
    settings_module.reset_settings()


# ─────────────────────────────────────────────────────────────────────────────
# Backend double
# ─────────────────────────────────────────────────────────────────────────────

StreamScript = Union[list[Union[StreamChunk, Exception]], Exception]
ResponseScript = Union[LLMResponse, Exception]


class ScriptedLLM(BaseLLMClient):
    """
    Replays scripted output in order.

    streams:   one entry per stream() call; a list of chunks (an Exception in
               the list is raised mid-stream) or an Exception raised at once
    responses: one entry per generate() call
    """

    provider = "scripted"

    def __init__(
        self,
        streams: Optional[list[StreamScript]] = None,
        responses: Optional[list[ResponseScript]] = None,
        repeat_last_stream: bool = False,
    ):
        super().__init__()
        self.streams = list(streams or [])
        self.responses = list(responses or [])
        self.repeat_last_stream = repeat_last_stream
        self.stream_calls: list[list[Message]] = []
        self.generate_calls: list[tuple[list[Message], LLMConfig]] = []

    async def generate(
        self,
        messages: list[Message],
        config: LLMConfig,
        tools: Optional[list[ToolSchema]] = None,
    ) -> LLMResponse:
        self.generate_calls.append((list(messages), config))
        if not self.responses:
            raise AssertionError("ScriptedLLM ran out of responses")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def stream(self, messages, config, tools=None, cancel=None):
        self.stream_calls.append(list(messages))
        if not self.streams:
            raise AssertionError("ScriptedLLM ran out of streams")
        if self.repeat_last_stream and len(self.streams) == 1:
            script = self.streams[0]
        else:
            script = self.streams.pop(0)
        if isinstance(script, Exception):
            raise script
        for chunk in script:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk

    async def health_check(self) -> bool:
        return True


def text_chunks(*parts: str) -> list[StreamChunk]:
    chunks = [StreamChunk(text=p) for p in parts]
    chunks.append(StreamChunk(finish_reason=FinishReason.STOP))
    return chunks


def call_chunk(name: str, args: Optional[dict] = None, call_id: Optional[str] = None) -> StreamChunk:
    return StreamChunk(function_calls=[FunctionCall(id=call_id, name=name, args=args or {})])


def reply(text: str) -> LLMResponse:
    return LLMResponse(content=text, model="scripted")


# ─────────────────────────────────────────────────────────────────────────────
# Fake tools
# ─────────────────────────────────────────────────────────────────────────────


class EchoTool(BaseTool):
    name = "echo"
    description = "Echo the given text"
    parameters = {
        "type": "object",
        "properties": {"text": {"type": "string"}},
        "required": ["text"],
    }

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def execute(self, args, cancel, on_output=None) -> ToolOutput:
        self.calls.append(dict(args))
        return ToolOutput(content=f"echo: {args['text']}")


class FailingTool(BaseTool):
    name = "explode"
    description = "Always raises"

    async def execute(self, args, cancel, on_output=None) -> ToolOutput:
        raise RuntimeError("boom")


class ConfirmingTool(BaseTool):
    name = "write_file"
    description = "Write a file (needs approval)"
    kind = "filesystem"
    parameters = {
        "type": "object",
        "properties": {"path": {"type": "string"}},
        "required": ["path"],
    }

    def __init__(self) -> None:
        self.executions = 0

    async def should_confirm(self, args, cancel) -> Optional[ConfirmationDetails]:
        return ConfirmationDetails(
            title="Write file",
            prompt=f"Write to {args['path']}?",
            kind="edit",
            payload={"path": args["path"]},
        )

    async def execute(self, args, cancel, on_output=None) -> ToolOutput:
        self.executions += 1
        return ToolOutput(content=f"wrote {args['path']}")


class SlowTool(BaseTool):
    name = "slow"
    description = "Sleeps until cancelled"

    def __init__(self, delay: float = 30.0) -> None:
        self.delay = delay
        self.started = asyncio.Event()

    async def execute(self, args, cancel, on_output=None) -> ToolOutput:
        self.started.set()
        await asyncio.sleep(self.delay)
        return ToolOutput(content="finished")


class StreamingTool(BaseTool):
    name = "stream"
    description = "Emits several output chunks"

    def __init__(self, chunks: Optional[list[str]] = None) -> None:
        self.chunks = chunks or ["one", "two", "three"]

    async def execute(self, args, cancel, on_output=None) -> ToolOutput:
        for chunk in self.chunks:
            if on_output is not None:
                on_output(chunk)
        return ToolOutput(content=" ".join(self.chunks), display=f"{len(self.chunks)} chunks")


@pytest.fixture
def echo_tool() -> EchoTool:
    return EchoTool()


@pytest.fixture
def confirming_tool() -> ConfirmingTool:
    return ConfirmingTool()


@pytest.fixture
def registry(echo_tool, confirming_tool) -> ToolRegistry:
    return ToolRegistry([echo_tool, FailingTool(), confirming_tool])


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


async def wait_until(predicate: Callable[[], Any], timeout: float = 2.0) -> None:
    """Yield to the loop until predicate() is truthy."""
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)
