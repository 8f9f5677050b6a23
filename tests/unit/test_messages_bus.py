"""
tests/unit/test_messages_bus.py — Agent Message and CommunicationBus Tests
"""

from __future__ import annotations

import pytest

from tandem.a2a.bus import CommunicationBus
from tandem.a2a.messages import (
    ActorType,
    ErrorNotice,
    MessageVariant,
    PlanningRequest,
    PlanningResponse,
    StatusUpdate,
    ToolExecutionRequest,
    expects_reply,
    parse_message,
    reply_id,
    reply_variant,
)
from tandem.brain.types import Message
from tandem.tools.types import ToolCallRequest


def status(text: str = "working", **kwargs) -> StatusUpdate:
    return StatusUpdate(
        from_actor=ActorType.EXECUTOR,
        to_actor=ActorType.PLANNER,
        content=text,
        status=text,
        **kwargs,
    )


class TestMessages:
    def test_round_trip_through_dump(self):
        original = ToolExecutionRequest(
            from_actor=ActorType.PLANNER,
            to_actor=ActorType.EXECUTOR,
            tool_calls=[ToolCallRequest(call_id="c1", name="echo", args={"text": "x"})],
            context=[Message.user("hi")],
        )
        rebuilt = parse_message(original.model_dump(mode="json"))

        assert isinstance(rebuilt, ToolExecutionRequest)
        assert rebuilt.tool_calls[0].args == {"text": "x"}
        assert rebuilt.id == original.id

    def test_discriminator_picks_variant(self):
        msg = parse_message({
            "variant": "error_notice",
            "from_actor": "planner",
            "to_actor": "executor",
            "error": "bad",
        })
        assert isinstance(msg, ErrorNotice)

    def test_reply_pairing(self):
        request = PlanningRequest(
            from_actor=ActorType.EXECUTOR, to_actor=ActorType.PLANNER, situation="stuck"
        )
        assert expects_reply(request)
        assert reply_variant(request) == MessageVariant.PLANNING_RESPONSE
        assert reply_id(request) == f"{request.id}.reply"

        update = status()
        assert not expects_reply(update)
        assert reply_variant(update) is None

    def test_ids_and_sequence_are_unique(self):
        a, b = status(), status()
        assert a.id != b.id
        assert b.seq > a.seq

    def test_other_actor(self):
        assert ActorType.PLANNER.other == ActorType.EXECUTOR
        assert ActorType.EXECUTOR.other == ActorType.PLANNER


class TestCommunicationBus:
    @pytest.mark.asyncio
    async def test_history_and_listener_order(self):
        bus = CommunicationBus(ActorType.EXECUTOR)
        calls = []

        async def first(message):
            calls.append(("first", message.id))

        async def second(message):
            calls.append(("second", message.id))

        bus.on_message(first)
        bus.on_message(second)
        msg = status()
        await bus.send(msg)

        assert calls == [("first", msg.id), ("second", msg.id)]
        assert bus.history() == [msg]
        assert len(bus) == 1

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_others(self):
        bus = CommunicationBus(ActorType.PLANNER)
        delivered = []

        async def broken(message):
            raise RuntimeError("listener bug")

        async def healthy(message):
            delivered.append(message)

        bus.on_message(broken)
        bus.on_message(healthy)
        await bus.send(status())

        assert len(delivered) == 1
        assert len(bus) == 1

    @pytest.mark.asyncio
    async def test_listener_may_send_again(self):
        bus = CommunicationBus(ActorType.PLANNER)
        seen = []

        async def echo_once(message):
            seen.append(message.content)
            if message.content == "ping":
                await bus.send(status("pong"))

        bus.on_message(echo_once)
        await bus.send(status("ping"))

        assert seen == ["ping", "pong"]
        assert [m.content for m in bus.history()] == ["ping", "pong"]

    @pytest.mark.asyncio
    async def test_history_is_a_copy_and_clearable(self):
        bus = CommunicationBus(ActorType.PLANNER)
        await bus.send(status())
        bus.history().clear()
        assert len(bus) == 1
        bus.clear_history()
        assert bus.history() == []

    @pytest.mark.asyncio
    async def test_history_can_be_disabled(self):
        bus = CommunicationBus(ActorType.PLANNER, keep_history=False)
        delivered = []

        async def listener(message):
            delivered.append(message)

        bus.on_message(listener)
        await bus.send(status())
        assert len(delivered) == 1
        assert bus.history() == []

    @pytest.mark.asyncio
    async def test_debugging_dumps_payload(self):
        bus = CommunicationBus(ActorType.PLANNER, debugging=True)
        await bus.send(PlanningResponse(
            from_actor=ActorType.PLANNER, to_actor=ActorType.EXECUTOR, plan="1. look"
        ))
        assert len(bus) == 1
