"""
tests/unit/test_cli.py — CLI Interface Unit Tests

Drives TandemCLI with scripted keyboard input and a scripted backend; the
rich Console writes to a StringIO so rendered output can be asserted on.

Run with:
    pytest tests/unit/test_cli.py -v
"""

from __future__ import annotations

import json
from io import StringIO

import pytest
from rich.console import Console

from conftest import ConfirmingTool, EchoTool, ScriptedLLM, call_chunk, reply, text_chunks
from tandem.a2a.orchestrator import OrchestratorState
from tandem.agent.events import ErrorEvent, MaxTurnsReachedEvent, UserCancelledEvent
from tandem.config.settings import Settings
from tandem.interfaces.cli import TandemCLI
from tandem.tools.registry import ToolRegistry

USER_VERDICT = reply('{"reasoning": "answered", "next_speaker": "user"}')


# ── Helpers ───────────────────────────────────────────────────────────────────


class ScriptedInput:
    """Stands in for aioconsole.ainput; EOF once the script runs out."""

    def __init__(self, *answers: str):
        self.answers = list(answers)
        self.prompts: list[str] = []

    async def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)


def make_cli(llm: ScriptedLLM, *answers: str, tools=None, two_agent: bool = False):
    settings = Settings(two_agent={"enabled": two_agent})
    console = Console(file=StringIO(), width=120, force_terminal=False, color_system=None)
    keyboard = ScriptedInput(*answers)
    cli = TandemCLI(settings, llm, ToolRegistry(tools or []), console=console, input_fn=keyboard)
    return cli, keyboard


def output(cli: TandemCLI) -> str:
    return cli.console.file.getvalue()


# ── Driver mode ───────────────────────────────────────────────────────────────


class TestDriverMode:
    @pytest.mark.asyncio
    async def test_answer_is_rendered(self):
        llm = ScriptedLLM(streams=[text_chunks("Hi there")], responses=[USER_VERDICT])
        cli, keyboard = make_cli(llm, "hello", "/exit")

        await cli.run()

        assert "Hi there" in output(cli)
        assert "Goodbye." in output(cli)
        assert keyboard.prompts == ["Tandem> ", "Tandem> "]
        assert cli.driver.session.turn_count == 1

    @pytest.mark.asyncio
    async def test_eof_ends_the_loop(self):
        cli, _ = make_cli(ScriptedLLM())
        await cli.run()
        assert "Goodbye." in output(cli)

    @pytest.mark.asyncio
    async def test_tool_approval_prompt(self):
        tool = ConfirmingTool()
        llm = ScriptedLLM(
            streams=[
                [call_chunk("write_file", {"path": "notes.txt"}, call_id="w1")],
                text_chunks("Saved."),
            ],
            responses=[USER_VERDICT],
        )
        cli, keyboard = make_cli(llm, "save my notes", "y", "/exit", tools=[tool])

        await cli.run()

        assert tool.executions == 1
        assert keyboard.prompts[1].startswith("Allow?")
        text = output(cli)
        assert "Write to notes.txt?" in text
        assert "success" in text
        assert "Saved." in text

    @pytest.mark.asyncio
    async def test_rejected_tool_is_not_run(self):
        tool = ConfirmingTool()
        llm = ScriptedLLM(
            streams=[
                [call_chunk("write_file", {"path": "notes.txt"}, call_id="w1")],
                text_chunks("Okay, I left it alone."),
            ],
            responses=[USER_VERDICT],
        )
        cli, _ = make_cli(llm, "save my notes", "n", tools=[tool])

        await cli.run()

        assert tool.executions == 0
        assert "Rejected by user." in output(cli)

    @pytest.mark.asyncio
    async def test_clear_resets_history(self):
        llm = ScriptedLLM(streams=[text_chunks("first")], responses=[USER_VERDICT])
        cli, _ = make_cli(llm, "one", "/clear")

        await cli.run()

        assert cli.driver.session.history == []
        assert "Conversation cleared." in output(cli)

    @pytest.mark.asyncio
    async def test_status_and_unknown_command(self):
        cli, _ = make_cli(ScriptedLLM(), "/status", "/frobnicate", tools=[EchoTool()])
        await cli.run()
        text = output(cli)
        assert "estimated tokens" in text
        assert "echo" in text
        assert "Unknown command: /frobnicate" in text


class TestRender:
    def test_terminal_events(self):
        cli, _ = make_cli(ScriptedLLM())
        cli.render(ErrorEvent(message="backend down", status=503))
        cli.render(UserCancelledEvent(reason="ctrl-c"))
        cli.render(MaxTurnsReachedEvent(max_turns=5))
        text = output(cli)
        assert "Error (503): backend down" in text
        assert "Cancelled: ctrl-c" in text
        assert "5-turn limit" in text


# ── Two-agent mode ────────────────────────────────────────────────────────────


class TestTwoAgentMode:
    @pytest.mark.asyncio
    async def test_final_answer_after_delegation(self):
        decision = json.dumps({"tool_calls": [{"name": "echo", "args": {"text": "hi"}}]})
        llm = ScriptedLLM(responses=[reply(decision), reply("The echo tool replied hi.")])
        cli, _ = make_cli(llm, "echo hi", "/status", tools=[EchoTool()], two_agent=True)

        await cli.run()

        text = output(cli)
        assert "The echo tool replied hi." in text
        assert "total messages" in text
        assert cli.orchestrator.state == OrchestratorState.SHUT_DOWN

    @pytest.mark.asyncio
    async def test_clear_starts_new_session(self):
        cli, _ = make_cli(ScriptedLLM(), two_agent=True)
        await cli.start()
        first_session = cli.orchestrator.session_id

        await cli.dispatch("/clear")

        assert cli.orchestrator.state == OrchestratorState.READY
        assert cli.orchestrator.session_id != first_session
        await cli.stop()
