"""
tools/scheduler.py — Tool Call Scheduler

Takes a batch of ToolCallRequests through validation, approval, concurrent
execution and completion. The scheduler is the only component that changes
a ToolCallRecord's state.

Per-request pipeline (intake is sequential, execution is concurrent):

  1. Resolve    registry.lookup(name)          unknown        → ERROR
  2. Validate   tool.validate(args)            message        → ERROR
  3. Cancelled  token already signalled                       → CANCELLED
  4. Approve    AUTO                                          → SCHEDULED
                INTERACTIVE + allow-listed name/kind          → SCHEDULED
                INTERACTIVE + should_confirm() → details      → AWAITING_APPROVAL
                INTERACTIVE + should_confirm() → None         → SCHEDULED
  5. Execute    one task per SCHEDULED record  returns        → SUCCESS
                                               raises         → ERROR
                                               token fired    → CANCELLED

Failures of a single call never escape schedule(); they are recorded on the
call's record. The only raised condition is BatchInProgressError.

Usage:
    scheduler = ToolCallScheduler(registry, approval_mode=ApprovalMode.AUTO)
    records = await scheduler.schedule(requests, token)
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Callable, Optional

from tandem.brain.types import FunctionResponse
from tandem.exceptions import BatchInProgressError
from tandem.observability.logger import get_logger
from tandem.tools.approvals import AllowList
from tandem.tools.base import BaseTool
from tandem.tools.registry import ToolRegistry
from tandem.tools.types import (
    ApprovalMode,
    ApprovalOutcome,
    ToolCallRecord,
    ToolCallRequest,
    ToolCallResponse,
    ToolCallState,
    ToolOutput,
)

if TYPE_CHECKING:
    from tandem.cancellation import CancellationToken

log = get_logger(__name__)

CANCELLED_RESPONSE_TEXT = "[Operation Cancelled] Reason: User cancelled tool execution."

RecordsCallback = Callable[[list[ToolCallRecord]], None]
OutputForwarder = Callable[[str, str], None]


class ToolCallScheduler:
    """
    Owns at most one in-flight batch of ToolCallRecords.

    Callbacks receive copies of records, never the live objects:
      on_records_update(records)   after every state change
      on_output(call_id, chunk)    streamed tool output, throttled per record
      on_all_complete(records)     once per batch, every record terminal
    """

    def __init__(
        self,
        registry: ToolRegistry,
        approval_mode: ApprovalMode | str = ApprovalMode.INTERACTIVE,
        allow_list: Optional[AllowList] = None,
        on_records_update: Optional[RecordsCallback] = None,
        on_output: Optional[OutputForwarder] = None,
        on_all_complete: Optional[RecordsCallback] = None,
        output_interval: float = 1.0,
    ):
        self.registry = registry
        self.approval_mode = ApprovalMode(approval_mode)
        self.allow_list = allow_list if allow_list is not None else AllowList()
        self._on_records_update = on_records_update
        self._on_output = on_output
        self._on_all_complete = on_all_complete
        self.output_interval = output_interval

        self._records: dict[str, ToolCallRecord] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._last_output_at: dict[str, float] = {}
        self._batch_done: Optional[asyncio.Event] = None
        self._cancel: Optional["CancellationToken"] = None
        self._completion_fired = False

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return any(not r.is_terminal for r in self._records.values())

    @property
    def records(self) -> list[ToolCallRecord]:
        """Snapshot of the current (or last) batch."""
        return [r.model_copy(deep=True) for r in self._records.values()]

    @property
    def pending_approvals(self) -> list[ToolCallRecord]:
        return [
            r.model_copy(deep=True)
            for r in self._records.values()
            if r.state == ToolCallState.AWAITING_APPROVAL
        ]

    async def schedule(
        self,
        requests: list[ToolCallRequest],
        cancel: "CancellationToken",
    ) -> list[ToolCallRecord]:
        """
        Run a batch to completion and return its terminal records, in
        request order. Suspends while any record awaits approval.

        Raises:
            BatchInProgressError: a previous batch still has non-terminal records.
            ValueError: two requests in the batch share a call_id.
        """
        if self.is_running:
            active = [r.call_id for r in self._records.values() if not r.is_terminal]
            log.error("scheduler.batch_in_progress", active=active)
            raise BatchInProgressError(active)

        seen: set[str] = set()
        for req in requests:
            if req.call_id in seen:
                raise ValueError(f"Duplicate call_id in batch: {req.call_id}")
            seen.add(req.call_id)

        self._records = {req.call_id: ToolCallRecord(request=req) for req in requests}
        self._tasks = {}
        self._last_output_at = {}
        self._batch_done = asyncio.Event()
        self._cancel = cancel
        self._completion_fired = False

        log.info(
            "scheduler.batch_start",
            calls=len(requests),
            tools=[r.name for r in requests],
            mode=self.approval_mode.value,
        )
        self._notify_update()

        # ── Intake ────────────────────────────────────────────────────────────
        for record in list(self._records.values()):
            await self._intake(record, cancel)

        # ── Fan-out ───────────────────────────────────────────────────────────
        for record in list(self._records.values()):
            if record.state == ToolCallState.SCHEDULED:
                self._start(record)

        self._check_complete()

        # ── Fan-in ────────────────────────────────────────────────────────────
        cancel_wait = asyncio.ensure_future(cancel.wait())
        done_wait = asyncio.ensure_future(self._batch_done.wait())
        try:
            await asyncio.wait({cancel_wait, done_wait}, return_when=asyncio.FIRST_COMPLETED)
            if cancel.cancelled and not self._batch_done.is_set():
                self._cancel_awaiting_approval()
                await self._batch_done.wait()
        except asyncio.CancelledError:
            # The caller itself was cancelled: take the batch down with it.
            self.cancel_all()
            raise
        finally:
            cancel_wait.cancel()
            done_wait.cancel()
            if self._tasks:
                await asyncio.gather(*self._tasks.values(), return_exceptions=True)

        log.info(
            "scheduler.batch_complete",
            calls=len(self._records),
            states=[r.state.value for r in self._records.values()],
        )
        return self.records

    def resolve_pending_approval(self, call_id: str, outcome: ApprovalOutcome | str) -> bool:
        """
        Apply the caller's decision to a record in AWAITING_APPROVAL.

        Returns False (and changes nothing) when the id is unknown or the
        record is no longer awaiting approval.
        """
        outcome = ApprovalOutcome(outcome)
        record = self._records.get(call_id)
        if record is None or record.state != ToolCallState.AWAITING_APPROVAL:
            log.debug(
                "scheduler.approval_ignored",
                call_id=call_id,
                state=record.state.value if record else None,
            )
            return False

        record.outcome = outcome
        log.info("scheduler.approval_resolved", call_id=call_id, tool=record.tool_name, outcome=outcome.value)

        if outcome == ApprovalOutcome.REJECT:
            self._finish(record, ToolCallState.CANCELLED, error="Rejected by user.")
            self._check_complete()
            return True

        if outcome == ApprovalOutcome.PROCEED_ALWAYS:
            tool = self.registry.lookup(record.tool_name)
            self.allow_list.allow(record.tool_name, tool.kind if tool else None)

        record.confirmation = None
        self._transition(record, ToolCallState.SCHEDULED)
        if self._cancel is not None and self._cancel.cancelled:
            self._finish(record, ToolCallState.CANCELLED)
            self._check_complete()
        else:
            self._start(record)
        return True

    def cancel_all(self, reason: str = "Cancelled by user.") -> int:
        """Mark every non-terminal record CANCELLED. Returns how many changed."""
        changed = 0
        for record in self._records.values():
            if record.is_terminal:
                continue
            self._finish(record, ToolCallState.CANCELLED, error=reason)
            task = self._tasks.get(record.call_id)
            if task is not None and not task.done():
                task.cancel()
            changed += 1
        if changed:
            log.info("scheduler.cancel_all", cancelled=changed)
        self._check_complete()
        return changed

    @staticmethod
    def to_response(record: ToolCallRecord) -> ToolCallResponse:
        """Convert a terminal record into the part fed back to the backend."""
        if not record.is_terminal:
            raise ValueError(f"Record {record.call_id} is not terminal ({record.state.value})")

        if record.state == ToolCallState.SUCCESS and record.result is not None:
            content = record.result.content
            display = record.result.display
            error = None
            is_error = False
        elif record.state == ToolCallState.CANCELLED:
            content = CANCELLED_RESPONSE_TEXT
            display = CANCELLED_RESPONSE_TEXT
            error = None
            is_error = False
        else:
            error = record.error or "Unknown error"
            content = f"Error: {error}"
            display = content
            is_error = True

        return ToolCallResponse(
            call_id=record.call_id,
            response=FunctionResponse(
                call_id=record.call_id,
                name=record.tool_name,
                content=content,
                is_error=is_error,
            ),
            display=display,
            error=error,
            state=record.state,
        )

    # ── Intake ────────────────────────────────────────────────────────────────

    async def _intake(self, record: ToolCallRecord, cancel: "CancellationToken") -> None:
        tool = self.registry.lookup(record.tool_name)
        if tool is None:
            self._finish(record, ToolCallState.ERROR, error=f'Tool "{record.tool_name}" not found in registry.')
            return

        try:
            problem = tool.validate(record.request.args)
        except Exception as e:
            problem = f"Validator raised {type(e).__name__}: {e}"
        if problem:
            self._finish(record, ToolCallState.ERROR, error=problem)
            return

        if cancel.cancelled:
            self._finish(record, ToolCallState.CANCELLED)
            return

        if self.approval_mode == ApprovalMode.AUTO:
            self._transition(record, ToolCallState.SCHEDULED)
            return

        if self.allow_list.is_allowed(tool.name, tool.kind):
            log.debug("scheduler.preapproved", call_id=record.call_id, tool=tool.name)
            self._transition(record, ToolCallState.SCHEDULED)
            return

        try:
            details = await tool.should_confirm(record.request.args, cancel)
        except Exception as e:
            self._finish(record, ToolCallState.ERROR, error=f"Confirmation check failed: {e}")
            return

        if details is None:
            self._transition(record, ToolCallState.SCHEDULED)
        else:
            record.confirmation = details
            self._transition(record, ToolCallState.AWAITING_APPROVAL)

    # ── Execution ─────────────────────────────────────────────────────────────

    def _start(self, record: ToolCallRecord) -> None:
        tool = self.registry.lookup(record.tool_name)
        if tool is None or self._cancel is None:  # unregistered since intake
            self._finish(record, ToolCallState.ERROR, error=f'Tool "{record.tool_name}" not found in registry.')
            self._check_complete()
            return
        self._transition(record, ToolCallState.EXECUTING)
        self._tasks[record.call_id] = asyncio.ensure_future(self._run(record, tool, self._cancel))

    async def _run(self, record: ToolCallRecord, tool: BaseTool, cancel: "CancellationToken") -> None:
        call_id = record.call_id

        def forward(chunk: str) -> None:
            self._forward_output(call_id, chunk)

        exec_task = asyncio.ensure_future(tool.execute(record.request.args, cancel, forward))
        cancel_wait = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({exec_task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            exec_task.cancel()
            raise
        finally:
            cancel_wait.cancel()

        try:
            if cancel.cancelled:
                if not exec_task.done():
                    exec_task.cancel()
                await asyncio.gather(exec_task, return_exceptions=True)
                self._finish(record, ToolCallState.CANCELLED)
                return

            try:
                raw = exec_task.result()
            except Exception as e:
                log.warning(
                    "scheduler.tool_error",
                    call_id=call_id,
                    tool=record.tool_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self._finish(record, ToolCallState.ERROR, error=str(e) or type(e).__name__)
                return

            output = raw if isinstance(raw, ToolOutput) else ToolOutput(content="" if raw is None else str(raw))
            self._finish(record, ToolCallState.SUCCESS, result=output)
        finally:
            self._check_complete()

    def _forward_output(self, call_id: str, chunk: str) -> None:
        record = self._records.get(call_id)
        if record is None or record.is_terminal:
            return
        record.live_output = chunk

        now = time.monotonic()
        last = self._last_output_at.get(call_id)
        if last is not None and now - last < self.output_interval:
            return
        self._last_output_at[call_id] = now
        if self._on_output is not None:
            self._on_output(call_id, chunk)

    # ── State changes ─────────────────────────────────────────────────────────

    def _transition(self, record: ToolCallRecord, state: ToolCallState) -> bool:
        if record.is_terminal:
            log.debug(
                "scheduler.transition_ignored",
                call_id=record.call_id,
                current=record.state.value,
                requested=state.value,
            )
            return False
        record.state = state
        log.debug("scheduler.transition", call_id=record.call_id, tool=record.tool_name, state=state.value)
        self._notify_update()
        return True

    def _finish(
        self,
        record: ToolCallRecord,
        state: ToolCallState,
        result: Optional[ToolOutput] = None,
        error: Optional[str] = None,
    ) -> None:
        if record.is_terminal:
            return
        record.result = result
        record.error = error
        record.confirmation = None
        record.finished_at = time.time()
        self._transition(record, state)
        log.info(
            "scheduler.record_done",
            call_id=record.call_id,
            tool=record.tool_name,
            state=state.value,
            duration_ms=record.duration_ms,
            error=error,
        )

    def _cancel_awaiting_approval(self) -> None:
        for record in self._records.values():
            if record.state == ToolCallState.AWAITING_APPROVAL:
                self._finish(record, ToolCallState.CANCELLED)
        self._check_complete()

    def _check_complete(self) -> None:
        if self._completion_fired or self._batch_done is None or self.is_running:
            return
        self._completion_fired = True
        self._batch_done.set()
        if self._on_all_complete is not None:
            self._on_all_complete(self.records)

    def _notify_update(self) -> None:
        if self._on_records_update is not None:
            self._on_records_update(self.records)

    def __repr__(self) -> str:
        return f"<ToolCallScheduler mode={self.approval_mode.value} records={len(self._records)}>"
