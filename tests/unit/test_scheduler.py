"""
tests/unit/test_scheduler.py — ToolCallScheduler Unit Tests

Covers the per-record pipeline (resolve, validate, approve, execute),
approval decisions, cancellation, output throttling, and conversion of
terminal records into backend responses.

Run with:
    pytest tests/unit/test_scheduler.py -v
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import ConfirmingTool, EchoTool, SlowTool, StreamingTool, wait_until
from tandem.cancellation import CancellationToken
from tandem.exceptions import BatchInProgressError
from tandem.tools.base import BaseTool
from tandem.tools.approvals import AllowList
from tandem.tools.registry import ToolRegistry
from tandem.tools.scheduler import CANCELLED_RESPONSE_TEXT, ToolCallScheduler
from tandem.tools.types import (
    ApprovalMode,
    ApprovalOutcome,
    ToolCallRecord,
    ToolCallRequest,
    ToolCallState,
    ToolOutput,
)


class RendezvousTool(BaseTool):
    """Each call waits until `expected` calls are inside execute() at once."""

    name = "rendezvous"
    description = "Blocks until every peer call has started"

    def __init__(self, expected: int) -> None:
        self.expected = expected
        self.arrived = 0
        self.all_arrived = asyncio.Event()

    async def execute(self, args, cancel, on_output=None) -> ToolOutput:
        self.arrived += 1
        if self.arrived == self.expected:
            self.all_arrived.set()
        await asyncio.wait_for(self.all_arrived.wait(), 1.0)
        return ToolOutput(content=f"met {self.arrived}")


def req(name: str, call_id: str, **args) -> ToolCallRequest:
    return ToolCallRequest(call_id=call_id, name=name, args=args)


# ─────────────────────────────────────────────────────────────────────────────
# Batch execution
# ─────────────────────────────────────────────────────────────────────────────


class TestBatchExecution:
    @pytest.mark.asyncio
    async def test_mixed_batch_completes_once(self, registry):
        completions = []
        scheduler = ToolCallScheduler(
            registry,
            approval_mode=ApprovalMode.AUTO,
            on_all_complete=completions.append,
        )

        records = await scheduler.schedule(
            [req("echo", "c1", text="a"), req("echo", "c2", text="b"), req("nope", "c3")],
            CancellationToken(),
        )

        assert [r.state for r in records] == [
            ToolCallState.SUCCESS,
            ToolCallState.SUCCESS,
            ToolCallState.ERROR,
        ]
        assert records[2].error == 'Tool "nope" not found in registry.'
        assert len(completions) == 1
        assert all(r.is_terminal for r in completions[0])
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_records_keep_request_order(self, registry):
        scheduler = ToolCallScheduler(registry, approval_mode=ApprovalMode.AUTO)
        records = await scheduler.schedule(
            [req("echo", f"c{i}", text=str(i)) for i in range(5)],
            CancellationToken(),
        )
        assert [r.call_id for r in records] == ["c0", "c1", "c2", "c3", "c4"]
        assert [r.result.content for r in records] == [f"echo: {i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_validation_failure_is_recorded(self, registry, echo_tool):
        scheduler = ToolCallScheduler(registry, approval_mode=ApprovalMode.AUTO)
        records = await scheduler.schedule([req("echo", "c1")], CancellationToken())

        assert records[0].state == ToolCallState.ERROR
        assert records[0].error == "Missing required field: 'text'"
        assert echo_tool.calls == []

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_error(self, registry):
        scheduler = ToolCallScheduler(registry, approval_mode=ApprovalMode.AUTO)
        records = await scheduler.schedule([req("explode", "c1")], CancellationToken())

        assert records[0].state == ToolCallState.ERROR
        assert records[0].error == "boom"
        assert records[0].finished_at is not None

    @pytest.mark.asyncio
    async def test_empty_batch_returns_immediately(self, registry):
        completions = []
        scheduler = ToolCallScheduler(registry, on_all_complete=completions.append)
        assert await scheduler.schedule([], CancellationToken()) == []
        assert len(completions) == 1

    @pytest.mark.asyncio
    async def test_duplicate_call_ids_rejected(self, registry):
        scheduler = ToolCallScheduler(registry, approval_mode=ApprovalMode.AUTO)
        with pytest.raises(ValueError):
            await scheduler.schedule(
                [req("echo", "dup", text="a"), req("echo", "dup", text="b")],
                CancellationToken(),
            )

    @pytest.mark.asyncio
    async def test_second_batch_while_running_raises(self):
        slow = SlowTool()
        scheduler = ToolCallScheduler(ToolRegistry([slow]), approval_mode=ApprovalMode.AUTO)
        token = CancellationToken()

        first = asyncio.ensure_future(scheduler.schedule([req("slow", "s1")], token))
        await asyncio.wait_for(slow.started.wait(), 2.0)

        with pytest.raises(BatchInProgressError) as exc_info:
            await scheduler.schedule([req("slow", "s2")], CancellationToken())
        assert exc_info.value.active_call_ids == ["s1"]

        token.cancel()
        records = await asyncio.wait_for(first, 2.0)
        assert records[0].state == ToolCallState.CANCELLED

    @pytest.mark.asyncio
    async def test_scheduled_records_run_concurrently(self):
        tool = RendezvousTool(expected=3)
        scheduler = ToolCallScheduler(ToolRegistry([tool]), approval_mode=ApprovalMode.AUTO)

        records = await scheduler.schedule(
            [req("rendezvous", f"r{i}") for i in range(3)],
            CancellationToken(),
        )

        assert [r.state for r in records] == [ToolCallState.SUCCESS] * 3
        assert tool.arrived == 3

    @pytest.mark.asyncio
    async def test_records_are_copies(self, registry):
        scheduler = ToolCallScheduler(registry, approval_mode=ApprovalMode.AUTO)
        records = await scheduler.schedule([req("echo", "c1", text="a")], CancellationToken())
        records[0].state = ToolCallState.ERROR
        assert scheduler.records[0].state == ToolCallState.SUCCESS


# ─────────────────────────────────────────────────────────────────────────────
# Approval
# ─────────────────────────────────────────────────────────────────────────────


class TestApproval:
    @pytest.mark.asyncio
    async def test_reject_cancels_without_execution(self, registry, confirming_tool):
        seen_states = []

        def on_update(records):
            for r in records:
                if r.call_id == "w1" and (not seen_states or seen_states[-1] != r.state):
                    seen_states.append(r.state)

        scheduler = ToolCallScheduler(registry, on_records_update=on_update)
        task = asyncio.ensure_future(
            scheduler.schedule([req("write_file", "w1", path="/tmp/x")], CancellationToken())
        )
        await wait_until(lambda: scheduler.pending_approvals)

        pending = scheduler.pending_approvals[0]
        assert pending.confirmation is not None
        assert pending.confirmation.title == "Write file"

        assert scheduler.resolve_pending_approval("w1", ApprovalOutcome.REJECT) is True
        records = await asyncio.wait_for(task, 2.0)

        assert seen_states[:2] == [ToolCallState.VALIDATING, ToolCallState.AWAITING_APPROVAL]
        assert records[0].state == ToolCallState.CANCELLED
        assert records[0].error == "Rejected by user."
        assert records[0].outcome == ApprovalOutcome.REJECT
        assert confirming_tool.executions == 0

    @pytest.mark.asyncio
    async def test_proceed_once_runs_the_tool(self, registry, confirming_tool):
        scheduler = ToolCallScheduler(registry)
        task = asyncio.ensure_future(
            scheduler.schedule([req("write_file", "w1", path="a.txt")], CancellationToken())
        )
        await wait_until(lambda: scheduler.pending_approvals)
        scheduler.resolve_pending_approval("w1", "proceed_once")
        records = await asyncio.wait_for(task, 2.0)

        assert records[0].state == ToolCallState.SUCCESS
        assert records[0].result.content == "wrote a.txt"
        assert confirming_tool.executions == 1
        assert not scheduler.allow_list.is_allowed("write_file")

    @pytest.mark.asyncio
    async def test_proceed_always_skips_later_confirmation(self, registry, confirming_tool):
        scheduler = ToolCallScheduler(registry)
        task = asyncio.ensure_future(
            scheduler.schedule([req("write_file", "w1", path="a.txt")], CancellationToken())
        )
        await wait_until(lambda: scheduler.pending_approvals)
        scheduler.resolve_pending_approval("w1", ApprovalOutcome.PROCEED_ALWAYS)
        await asyncio.wait_for(task, 2.0)

        assert "write_file" in scheduler.allow_list.tools
        assert "filesystem" in scheduler.allow_list.kinds

        records = await asyncio.wait_for(
            scheduler.schedule([req("write_file", "w2", path="b.txt")], CancellationToken()),
            2.0,
        )
        assert records[0].state == ToolCallState.SUCCESS
        assert confirming_tool.executions == 2

    @pytest.mark.asyncio
    async def test_allow_lists_are_per_scheduler(self, confirming_tool):
        shared_registry = ToolRegistry([confirming_tool])
        allowed = ToolCallScheduler(shared_registry, allow_list=AllowList(tools=["write_file"]))
        other = ToolCallScheduler(shared_registry)

        records = await asyncio.wait_for(
            allowed.schedule([req("write_file", "w1", path="a")], CancellationToken()), 2.0
        )
        assert records[0].state == ToolCallState.SUCCESS
        assert not other.allow_list.is_allowed("write_file")

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(self, registry, confirming_tool):
        scheduler = ToolCallScheduler(registry)
        task = asyncio.ensure_future(
            scheduler.schedule([req("write_file", "w1", path="a")], CancellationToken())
        )
        await wait_until(lambda: scheduler.pending_approvals)

        assert scheduler.resolve_pending_approval("w1", ApprovalOutcome.PROCEED_ONCE) is True
        assert scheduler.resolve_pending_approval("w1", ApprovalOutcome.REJECT) is False
        assert scheduler.resolve_pending_approval("unknown", ApprovalOutcome.REJECT) is False

        records = await asyncio.wait_for(task, 2.0)
        assert records[0].state == ToolCallState.SUCCESS
        assert confirming_tool.executions == 1

    @pytest.mark.asyncio
    async def test_auto_mode_never_asks(self, registry, confirming_tool):
        scheduler = ToolCallScheduler(registry, approval_mode="auto")
        records = await scheduler.schedule([req("write_file", "w1", path="a")], CancellationToken())
        assert records[0].state == ToolCallState.SUCCESS
        assert records[0].confirmation is None

    @pytest.mark.asyncio
    async def test_tools_without_confirmation_are_scheduled(self, registry):
        scheduler = ToolCallScheduler(registry, approval_mode=ApprovalMode.INTERACTIVE)
        records = await scheduler.schedule([req("echo", "c1", text="hi")], CancellationToken())
        assert records[0].state == ToolCallState.SUCCESS


# ─────────────────────────────────────────────────────────────────────────────
# Cancellation
# ─────────────────────────────────────────────────────────────────────────────


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_interrupts_running_tool(self):
        slow = SlowTool()
        scheduler = ToolCallScheduler(ToolRegistry([slow]), approval_mode=ApprovalMode.AUTO)
        token = CancellationToken()

        task = asyncio.ensure_future(scheduler.schedule([req("slow", "s1")], token))
        await asyncio.wait_for(slow.started.wait(), 2.0)
        token.cancel("stop")
        records = await asyncio.wait_for(task, 2.0)

        assert records[0].state == ToolCallState.CANCELLED
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_cancel_reaches_every_running_record(self):
        slow = SlowTool()
        scheduler = ToolCallScheduler(ToolRegistry([slow]), approval_mode=ApprovalMode.AUTO)
        token = CancellationToken()

        task = asyncio.ensure_future(
            scheduler.schedule([req("slow", "s1"), req("slow", "s2"), req("slow", "s3")], token)
        )
        await wait_until(
            lambda: [r.state for r in scheduler.records] == [ToolCallState.EXECUTING] * 3
        )
        token.cancel("stop")
        records = await asyncio.wait_for(task, 2.0)

        assert [r.state for r in records] == [ToolCallState.CANCELLED] * 3
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_cancel_while_awaiting_approval(self, registry, confirming_tool):
        scheduler = ToolCallScheduler(registry)
        token = CancellationToken()
        task = asyncio.ensure_future(
            scheduler.schedule([req("write_file", "w1", path="a")], token)
        )
        await wait_until(lambda: scheduler.pending_approvals)
        token.cancel()
        records = await asyncio.wait_for(task, 2.0)

        assert records[0].state == ToolCallState.CANCELLED
        assert confirming_tool.executions == 0

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self, registry, echo_tool):
        token = CancellationToken()
        token.cancel()
        scheduler = ToolCallScheduler(registry, approval_mode=ApprovalMode.AUTO)
        records = await scheduler.schedule(
            [req("echo", "c1", text="a"), req("nope", "c2")], token
        )

        assert [r.state for r in records] == [ToolCallState.CANCELLED, ToolCallState.ERROR]
        assert echo_tool.calls == []

    @pytest.mark.asyncio
    async def test_cancel_all(self, registry):
        scheduler = ToolCallScheduler(registry)
        task = asyncio.ensure_future(
            scheduler.schedule(
                [req("write_file", "w1", path="a"), req("write_file", "w2", path="b")],
                CancellationToken(),
            )
        )
        await wait_until(lambda: len(scheduler.pending_approvals) == 2)

        assert scheduler.cancel_all() == 2
        records = await asyncio.wait_for(task, 2.0)
        assert {r.state for r in records} == {ToolCallState.CANCELLED}
        assert scheduler.cancel_all() == 0


# ─────────────────────────────────────────────────────────────────────────────
# Live output
# ─────────────────────────────────────────────────────────────────────────────


class TestLiveOutput:
    @pytest.mark.asyncio
    async def test_output_is_throttled(self):
        forwarded = []
        scheduler = ToolCallScheduler(
            ToolRegistry([StreamingTool()]),
            approval_mode=ApprovalMode.AUTO,
            on_output=lambda call_id, chunk: forwarded.append((call_id, chunk)),
            output_interval=60.0,
        )
        records = await scheduler.schedule([req("stream", "o1")], CancellationToken())

        assert forwarded == [("o1", "one")]
        assert records[0].live_output == "three"
        assert records[0].result.display == "3 chunks"

    @pytest.mark.asyncio
    async def test_zero_interval_forwards_everything(self):
        forwarded = []
        scheduler = ToolCallScheduler(
            ToolRegistry([StreamingTool()]),
            approval_mode=ApprovalMode.AUTO,
            on_output=lambda call_id, chunk: forwarded.append(chunk),
            output_interval=0.0,
        )
        await scheduler.schedule([req("stream", "o1")], CancellationToken())
        assert forwarded == ["one", "two", "three"]


# ─────────────────────────────────────────────────────────────────────────────
# Responses
# ─────────────────────────────────────────────────────────────────────────────


class TestToResponse:
    def _record(self, state: ToolCallState, **kwargs) -> ToolCallRecord:
        return ToolCallRecord(request=req("echo", "r1", text="x"), state=state, **kwargs)

    def test_success(self):
        response = ToolCallScheduler.to_response(
            self._record(ToolCallState.SUCCESS, result=ToolOutput(content="done", display="Done!"))
        )
        assert response.response.content == "done"
        assert response.display == "Done!"
        assert not response.is_error

    def test_cancelled(self):
        response = ToolCallScheduler.to_response(self._record(ToolCallState.CANCELLED))
        assert response.response.content == CANCELLED_RESPONSE_TEXT
        assert not response.is_error

    def test_error(self):
        response = ToolCallScheduler.to_response(self._record(ToolCallState.ERROR, error="bad"))
        assert response.response.content == "Error: bad"
        assert response.is_error
        assert response.error == "bad"
        assert response.response.name == "echo"

    def test_non_terminal_rejected(self):
        with pytest.raises(ValueError):
            ToolCallScheduler.to_response(self._record(ToolCallState.EXECUTING))
