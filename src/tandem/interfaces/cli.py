"""
interfaces/cli.py — Tandem CLI Interface

Interactive REPL over either runtime:

  - driver mode     ChatSession + ToolCallScheduler + AgentDriver; events are
                    rendered as they stream, approvals are asked inline
  - two-agent mode  Orchestrator; the planner's acknowledgement is shown
                    at once, the final answer after the executor finishes

Uses rich for terminal rendering and aioconsole for async input.
Ctrl+C during a run cancels it; Ctrl+C or Ctrl+D at the prompt exits.

Commands: /help, /status, /clear, /exit
"""

from __future__ import annotations

import asyncio
import signal
from typing import Awaitable, Callable, Optional

import aioconsole
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from tandem.a2a.orchestrator import Orchestrator
from tandem.a2a.planner import COORDINATING_ACK
from tandem.agent.compressor import ChatCompressor
from tandem.agent.continuation import LLMContinuationPolicy
from tandem.agent.driver import AgentDriver
from tandem.agent.events import (
    ChatCompressedEvent,
    ContentEvent,
    DriverEvent,
    ErrorEvent,
    MaxTurnsReachedEvent,
    ThoughtEvent,
    ToolCallRequestEvent,
    ToolCallsCompletedEvent,
    UserCancelledEvent,
)
from tandem.agent.session import ChatSession, new_session_id
from tandem.agent.utils import fire_and_forget
from tandem.brain.llm_client import BaseLLMClient
from tandem.brain.types import LLMConfig
from tandem.cancellation import CancellationToken
from tandem.config.settings import Settings
from tandem.observability.logger import get_logger
from tandem.tools.registry import ToolRegistry
from tandem.tools.scheduler import ToolCallScheduler
from tandem.tools.types import ApprovalOutcome, ToolCallRecord, ToolCallState

log = get_logger(__name__)

InputFn = Callable[[str], Awaitable[str]]

_HELP_TEXT = """
## Tandem CLI Commands

| Command | Description |
|---------|-------------|
| `/status` | Session and message statistics |
| `/clear` | Start a fresh conversation |
| `/help` | Show this table |
| `/exit` | Quit (Ctrl+D works too) |

Anything else is sent to the agent. Press Ctrl+C to cancel a running request.
"""

_STATE_STYLE = {
    ToolCallState.SUCCESS: "green",
    ToolCallState.ERROR: "red",
    ToolCallState.CANCELLED: "yellow",
}

_APPROVAL_ANSWERS = {
    "y": ApprovalOutcome.PROCEED_ONCE,
    "yes": ApprovalOutcome.PROCEED_ONCE,
    "a": ApprovalOutcome.PROCEED_ALWAYS,
    "always": ApprovalOutcome.PROCEED_ALWAYS,
}


class TandemCLI:
    def __init__(
        self,
        settings: Settings,
        llm: BaseLLMClient,
        registry: ToolRegistry,
        console: Optional[Console] = None,
        input_fn: Optional[InputFn] = None,
    ):
        self.settings = settings
        self.llm = llm
        self.registry = registry
        self.console = console or Console()
        self._input: InputFn = input_fn or aioconsole.ainput

        self.two_agent = settings.two_agent_enabled
        self.driver: Optional[AgentDriver] = None
        self.orchestrator: Optional[Orchestrator] = None

        self._approval_lock = asyncio.Lock()
        self._prompted: set[str] = set()

    # ── Setup ─────────────────────────────────────────────────────────────────

    def _build_driver(self) -> AgentDriver:
        cfg = self.settings
        session = ChatSession(
            llm=self.llm,
            config=LLMConfig(
                model=cfg.llm.model,
                temperature=cfg.llm.temperature,
                max_tokens=cfg.llm.max_tokens,
                system_instruction=f"You are {cfg.agent.name}, a helpful assistant that can use tools.",
            ),
            tools=self.registry.schemas(),
        )
        scheduler = ToolCallScheduler(
            self.registry,
            approval_mode=cfg.scheduler.approval_mode,
            on_records_update=self._on_records_update,
            on_output=self._on_tool_output,
            output_interval=cfg.scheduler.output_update_interval_seconds,
        )
        continuation = LLMContinuationPolicy(self.llm, cfg.llm.model)
        compressor = ChatCompressor.from_settings(cfg, self.llm)
        return AgentDriver.from_settings(cfg, session, scheduler, continuation, compressor)

    async def start(self) -> None:
        if self.two_agent:
            self.orchestrator = Orchestrator.from_settings(self.settings, self.llm, self.registry)
            self.driver = None
            session_id = new_session_id()
            await self.orchestrator.initialize(session_id)
        else:
            self.driver = self._build_driver()
        log.info("cli.started", two_agent=self.two_agent)

    async def stop(self) -> None:
        if self.orchestrator is not None and self.orchestrator.is_initialized:
            await self.orchestrator.shutdown()
        log.info("cli.stopped")

    # ── REPL Loop ─────────────────────────────────────────────────────────────

    async def run(self) -> None:
        await self.start()
        mode = "planner/executor" if self.two_agent else "single agent"
        self.console.print(
            Panel(f"[bold]{self.settings.agent.name}[/] · {mode} · /help for commands", expand=False)
        )
        try:
            while True:
                try:
                    raw = await self._input(f"{self.settings.agent.name}> ")
                except (EOFError, KeyboardInterrupt):
                    self.console.print("\n[dim]Goodbye.[/]")
                    break

                text = raw.strip()
                if not text:
                    continue
                if text.lower() in ("/exit", "exit", "quit"):
                    self.console.print("[dim]Goodbye.[/]")
                    break
                await self.dispatch(text)
        finally:
            await self.stop()

    async def dispatch(self, text: str) -> None:
        if text.startswith("/"):
            cmd = text.split(maxsplit=1)[0].lower()
            handlers = {
                "/help": self._cmd_help,
                "/status": self._cmd_status,
                "/clear": self._cmd_clear,
            }
            handler = handlers.get(cmd)
            if handler is None:
                self.console.print(f"[yellow]Unknown command: {cmd}. Type /help for commands.[/]")
                return
            await handler()
            return

        if self.two_agent:
            await self._ask_two_agent(text)
        else:
            await self._ask_driver(text)

    # ── Driver mode ───────────────────────────────────────────────────────────

    async def _ask_driver(self, text: str) -> None:
        assert self.driver is not None
        token = CancellationToken()
        self._prompted.clear()
        installed = self._install_sigint(token)
        try:
            async for event in self.driver.run(text, token):
                self.render(event)
        finally:
            if installed:
                asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
        self.console.print()

    def render(self, event: DriverEvent) -> None:
        if isinstance(event, ContentEvent):
            self.console.print(event.text, end="", markup=False, highlight=False)
        elif isinstance(event, ThoughtEvent):
            label = f"[bold]{event.subject}[/] " if event.subject else ""
            self.console.print(f"[dim italic]{label}{event.description}[/]")
        elif isinstance(event, ToolCallRequestEvent):
            self.console.print(f"\n[cyan]→ {event.request.name}[/] [dim]{event.request.args}[/]")
        elif isinstance(event, ToolCallsCompletedEvent):
            for record in event.records:
                style = _STATE_STYLE.get(record.state, "white")
                detail = record.error or (record.result.display or record.result.content if record.result else "")
                self.console.print(f"[{style}]  {record.state.value}[/] {record.tool_name} [dim]{detail[:200]}[/]")
        elif isinstance(event, ChatCompressedEvent):
            self.console.print(
                f"[dim]History compressed: {event.original_tokens} → {event.new_tokens} tokens[/]"
            )
        elif isinstance(event, UserCancelledEvent):
            self.console.print(f"\n[yellow]Cancelled{': ' + event.reason if event.reason else ''}[/]")
        elif isinstance(event, ErrorEvent):
            status = f" ({event.status})" if event.status else ""
            self.console.print(f"\n[red]Error{status}: {event.message}[/]")
        elif isinstance(event, MaxTurnsReachedEvent):
            self.console.print(f"\n[yellow]Stopped after reaching the {event.max_turns}-turn limit.[/]")

    def _on_records_update(self, records: list[ToolCallRecord]) -> None:
        for record in records:
            if record.state != ToolCallState.AWAITING_APPROVAL or record.call_id in self._prompted:
                continue
            self._prompted.add(record.call_id)
            fire_and_forget(self._ask_approval(record), label=f"approval:{record.call_id}")

    async def _ask_approval(self, record: ToolCallRecord) -> None:
        async with self._approval_lock:
            details = record.confirmation
            self.console.print(Panel(
                details.prompt if details else str(record.request.args),
                title=details.title if details else record.tool_name,
                border_style="yellow",
                expand=False,
            ))
            try:
                answer = await self._input("Allow? [y]es / [a]lways / [N]o ")
            except (EOFError, KeyboardInterrupt):
                answer = "n"
        outcome = _APPROVAL_ANSWERS.get(answer.strip().lower(), ApprovalOutcome.REJECT)
        assert self.driver is not None
        self.driver.scheduler.resolve_pending_approval(record.call_id, outcome)

    def _on_tool_output(self, call_id: str, chunk: str) -> None:
        self.console.print(f"[dim]  {call_id}: {chunk[-200:]}[/]")

    def _install_sigint(self, token: CancellationToken) -> bool:
        try:
            asyncio.get_running_loop().add_signal_handler(signal.SIGINT, token.cancel)
        except (NotImplementedError, RuntimeError):
            log.debug("cli.sigint_handler_unavailable")
            return False
        return True

    # ── Two-agent mode ────────────────────────────────────────────────────────

    async def _ask_two_agent(self, text: str) -> None:
        assert self.orchestrator is not None
        answered = len(self.orchestrator.planner.final_answers)
        reply = await self.orchestrator.handle_user_input(text)
        self.console.print(Markdown(reply))
        if reply != COORDINATING_ACK:
            return

        with self.console.status("Executor running tools..."):
            await self.orchestrator.drain()
        for answer in self.orchestrator.planner.final_answers[answered:]:
            self.console.print(Panel(Markdown(answer), border_style="green"))

    # ── Commands ──────────────────────────────────────────────────────────────

    async def _cmd_help(self) -> None:
        self.console.print(Markdown(_HELP_TEXT))

    async def _cmd_status(self) -> None:
        table = Table(title="Status", show_header=False)
        if self.orchestrator is not None:
            status = self.orchestrator.get_status()
            table.add_row("state", status["state"])
            table.add_row("session", str(status["session_id"]))
            table.add_row("planner model", status["planner"]["model"])
            for key, value in status["communication_stats"].items():
                table.add_row(key.replace("_", " "), str(value))
        elif self.driver is not None:
            session = self.driver.session
            table.add_row("session", session.id)
            table.add_row("user turns", str(session.turn_count))
            table.add_row("messages", str(len(session.history)))
            table.add_row("estimated tokens", str(session.token_count()))
            table.add_row("input tokens", str(session.total_input_tokens))
            table.add_row("output tokens", str(session.total_output_tokens))
            table.add_row("tools", ", ".join(self.registry.list_names()) or "none")
        self.console.print(table)

    async def _cmd_clear(self) -> None:
        if self.orchestrator is not None:
            if self.orchestrator.is_initialized:
                await self.orchestrator.shutdown()
            self.orchestrator.reset()
            self.orchestrator.planner.final_answers.clear()
            session_id = new_session_id()
            await self.orchestrator.initialize(session_id)
        elif self.driver is not None:
            self.driver.session.clear()
        self.console.print("[dim]Conversation cleared.[/]")


async def run_cli(settings: Settings, llm: BaseLLMClient, registry: ToolRegistry) -> None:
    await TandemCLI(settings, llm, registry).run()
