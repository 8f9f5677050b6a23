"""
tests/unit/test_continuation.py — Continuation Policy Tests
"""

from __future__ import annotations

import pytest

from conftest import ScriptedLLM, reply
from tandem.agent.continuation import (
    CHECK_PROMPT,
    LLMContinuationPolicy,
    NextSpeaker,
    StaticContinuationPolicy,
)
from tandem.agent.session import ChatSession
from tandem.brain.types import FunctionCall, FunctionResponse, LLMConfig, Message
from tandem.cancellation import CancellationToken
from tandem.exceptions import LLMInvalidRequestError


def session_with(llm, *messages: Message) -> ChatSession:
    return ChatSession(llm, LLMConfig(model="m"), history=list(messages))


class TestHeuristics:
    @pytest.mark.asyncio
    async def test_no_model_message_means_user(self):
        llm = ScriptedLLM()
        policy = LLMContinuationPolicy(llm, "m")
        speaker = await policy.decide(session_with(llm, Message.user("hi")), CancellationToken())
        assert speaker == NextSpeaker.USER
        assert llm.generate_calls == []

    @pytest.mark.asyncio
    async def test_pending_calls_mean_model(self):
        llm = ScriptedLLM()
        session = session_with(
            llm,
            Message.user("hi"),
            Message.assistant(None, [FunctionCall(id="c1", name="echo", args={})]),
        )
        speaker = await LLMContinuationPolicy(llm, "m").decide(session, CancellationToken())
        assert speaker == NextSpeaker.MODEL
        assert llm.generate_calls == []

    @pytest.mark.asyncio
    async def test_empty_answer_means_model(self):
        llm = ScriptedLLM()
        session = session_with(llm, Message.user("hi"), Message.assistant("   "))
        assert await LLMContinuationPolicy(llm, "m").decide(session, CancellationToken()) == NextSpeaker.MODEL

    @pytest.mark.asyncio
    async def test_cancelled_token_means_user(self):
        llm = ScriptedLLM()
        token = CancellationToken()
        token.cancel()
        session = session_with(llm, Message.user("hi"), Message.assistant("I will now run the tests."))
        assert await LLMContinuationPolicy(llm, "m").decide(session, token) == NextSpeaker.USER


class TestBackendVerdict:
    @pytest.mark.asyncio
    async def test_model_verdict(self):
        llm = ScriptedLLM(responses=[reply('{"reasoning": "next step stated", "next_speaker": "model"}')])
        session = session_with(llm, Message.user("fix it"), Message.assistant("Next I will run the tests."))

        speaker = await LLMContinuationPolicy(llm, "m").decide(session, CancellationToken())

        assert speaker == NextSpeaker.MODEL
        messages, config = llm.generate_calls[0]
        assert messages[-1].content == CHECK_PROMPT
        assert config.json_mode is True

    @pytest.mark.asyncio
    async def test_user_verdict(self):
        llm = ScriptedLLM(responses=[reply('{"next_speaker": "USER"}')])
        session = session_with(llm, Message.user("hi"), Message.assistant("Anything else?"))
        assert await LLMContinuationPolicy(llm, "m").decide(session, CancellationToken()) == NextSpeaker.USER

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["not json", '{"next_speaker": "nobody"}', "[1, 2]"])
    async def test_unparseable_verdict_falls_back_to_user(self, text):
        llm = ScriptedLLM(responses=[reply(text)])
        session = session_with(llm, Message.user("hi"), Message.assistant("Done."))
        assert await LLMContinuationPolicy(llm, "m").decide(session, CancellationToken()) == NextSpeaker.USER

    @pytest.mark.asyncio
    async def test_backend_error_falls_back_to_user(self):
        llm = ScriptedLLM(responses=[LLMInvalidRequestError("nope")])
        session = session_with(llm, Message.user("hi"), Message.assistant("Done."))
        assert await LLMContinuationPolicy(llm, "m").decide(session, CancellationToken()) == NextSpeaker.USER

    @pytest.mark.asyncio
    async def test_window_skips_leading_tool_results(self):
        llm = ScriptedLLM(responses=[reply('{"next_speaker": "user"}')])
        session = session_with(
            llm,
            Message.user("go"),
            Message.assistant(None, [FunctionCall(id="c1", name="echo", args={})]),
            Message.tool_response(FunctionResponse(call_id="c1", name="echo", content="ok")),
            Message.assistant("All done."),
        )
        policy = LLMContinuationPolicy(llm, "m", history_window=2)

        await policy.decide(session, CancellationToken())

        messages, _ = llm.generate_calls[0]
        assert [m.content for m in messages] == ["All done.", CHECK_PROMPT]


class TestStaticPolicy:
    @pytest.mark.asyncio
    async def test_always_same_answer(self):
        policy = StaticContinuationPolicy(NextSpeaker.MODEL)
        llm = ScriptedLLM()
        session = session_with(llm)
        assert await policy.decide(session, CancellationToken()) == NextSpeaker.MODEL
        assert await policy.decide(session, CancellationToken()) == NextSpeaker.MODEL
        assert policy.calls == 2
