"""
a2a/planner.py — Planner actor

Reasons and talks to the user; never runs tools. For each user input the
backend returns a JSON decision:

    {"answer": "..."}                                   → reply directly
    {"tool_calls": [{"name": "...", "args": {...}}]}    → ToolExecutionRequest

Inbound messages:
    PlanningRequest        → PlanningResponse to the sender
    ToolExecutionResponse  → final answer synthesised, StatusUpdate
                             "tool_results_processed" back to the executor
    StatusUpdate           → logged, no reply
    anything else          → logged, ignored
"""

from __future__ import annotations

import json
from typing import Any, Optional

from tandem.a2a.actor import BaseActor
from tandem.a2a.messages import (
    ActorType,
    AgentMessage,
    ErrorNotice,
    PlanningRequest,
    PlanningResponse,
    StatusUpdate,
    ToolExecutionRequest,
    ToolExecutionResponse,
    new_message_id,
    reply_id,
)
from tandem.a2a.roles import PLANNER_ROLE
from tandem.agent.turn import generate_call_id
from tandem.brain.llm_client import BaseLLMClient, call_with_retry
from tandem.brain.types import LLMConfig, Message, ToolSchema
from tandem.exceptions import LLMError
from tandem.observability.logger import get_logger
from tandem.tools.types import ToolCallRequest

log = get_logger(__name__)

COORDINATING_ACK = (
    "I've analyzed your request and am coordinating with the executor to run "
    "the necessary operations. Please wait..."
)

TOOL_RESULTS_PROCESSED = "tool_results_processed"

_DECISION_INSTRUCTIONS = """
Reply with a single JSON object and nothing else:
  {"answer": "<your reply to the user>"}
when no tool is needed, or
  {"tool_calls": [{"name": "<tool name>", "args": {...}}]}
when the executor must run tools first. Only use tools from this list:
"""


def _build_system_prompt(tools: list[ToolSchema]) -> str:
    tool_lines = "\n".join(f"- {t.name}: {t.description}" for t in tools) or "- (no tools available)"
    return PLANNER_ROLE.describe() + "\n" + _DECISION_INSTRUCTIONS + tool_lines


def parse_decision(text: str) -> tuple[Optional[str], list[ToolCallRequest]]:
    """
    Decode the planner's JSON decision.

    Returns (answer, tool_calls). Text that is not a JSON object is taken
    as a plain answer. Malformed tool-call entries are dropped.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return text, []
    if not isinstance(data, dict):
        return text, []

    calls: list[ToolCallRequest] = []
    for entry in data.get("tool_calls") or []:
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            log.warning("planner.bad_tool_call", entry=str(entry)[:200])
            continue
        args = entry.get("args") or {}
        if not isinstance(args, dict):
            log.warning("planner.bad_tool_args", tool=entry["name"])
            continue
        calls.append(ToolCallRequest(
            call_id=entry.get("id") or generate_call_id(entry["name"]),
            name=entry["name"],
            args=args,
        ))

    if calls:
        return None, calls
    answer = data.get("answer")
    return (answer if isinstance(answer, str) else text), []


class PlannerAgent(BaseActor):
    actor = ActorType.PLANNER
    role = PLANNER_ROLE

    def __init__(
        self,
        llm: BaseLLMClient,
        model: str,
        tools: Optional[list[ToolSchema]] = None,
        temperature: float = 0.7,
        max_attempts: int = 3,
    ):
        super().__init__()
        self.llm = llm
        self.model = model
        self.tools: list[ToolSchema] = list(tools or [])
        self.temperature = temperature
        self.max_attempts = max_attempts
        self.final_answers: list[str] = []

    @property
    def history(self) -> list[Message]:
        return list(self.context.conversation_history) if self.context else []

    @property
    def available_tool_names(self) -> list[str]:
        return [t.name for t in self.tools]

    # ── Entry point ───────────────────────────────────────────────────────────

    async def handle_user_input(self, text: str) -> str:
        """
        Answer directly, or hand tool calls to the executor and return an
        acknowledgement. Backend errors propagate to the orchestrator.
        """
        context = self._require_context()
        config = LLMConfig(
            model=self.model,
            temperature=self.temperature,
            system_instruction=_build_system_prompt(self.tools),
            json_mode=True,
        )
        messages = context.conversation_history + [Message.user(text)]
        response = await call_with_retry(
            self.llm, messages, config, max_attempts=self.max_attempts
        )
        answer, calls = parse_decision(response.text)

        context.conversation_history.append(Message.user(text))

        if calls:
            context.current_task = text
            log.info("planner.delegating", calls=len(calls), tools=[c.name for c in calls])
            request = ToolExecutionRequest(
                id=new_message_id("tool_request"),
                from_actor=ActorType.PLANNER,
                to_actor=ActorType.EXECUTOR,
                content=f"Execute tools for: {text}",
                tool_calls=calls,
                context=list(context.conversation_history),
            )
            await self._emit(request)
            return COORDINATING_ACK

        reply = answer or ""
        context.conversation_history.append(Message.assistant(reply))
        log.info("planner.answered", chars=len(reply))
        return reply

    # ── Inbound messages ──────────────────────────────────────────────────────

    async def process_message(self, message: AgentMessage) -> Optional[AgentMessage]:
        try:
            if isinstance(message, PlanningRequest):
                return await self._handle_planning_request(message)
            if isinstance(message, ToolExecutionResponse):
                return await self._handle_tool_execution_response(message)
            if isinstance(message, StatusUpdate):
                log.info("planner.status_received", status=message.status, content=message.content[:200])
                return None
            log.warning("planner.unexpected_message", variant=message.variant, message_id=message.id)
            return None
        except Exception as e:
            log.error(
                "planner.process_failed",
                message_id=message.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ErrorNotice(
                from_actor=ActorType.PLANNER,
                to_actor=message.from_actor,
                reply_to=message.id,
                content="Planner failed to process message",
                error=str(e) or type(e).__name__,
            )

    async def _handle_planning_request(self, request: PlanningRequest) -> PlanningResponse:
        prompt = (
            "The executor is asking for guidance on how to handle this situation:\n\n"
            f"Situation: {request.situation}\n"
            f"Available Tools: {', '.join(request.available_tools)}\n\n"
            "Provide a clear plan, one step per line, naming which tools to use "
            "in what order. Focus on strategy, not detailed execution."
        )
        config = LLMConfig(model=self.model, temperature=self.temperature)
        try:
            response = await call_with_retry(
                self.llm, [Message.user(prompt)], config, max_attempts=self.max_attempts
            )
            plan = response.text
            metadata: dict[str, Any] = {}
        except LLMError as e:
            log.warning("planner.planning_failed", error=str(e), error_type=type(e).__name__)
            plan = ""
            metadata = {"error": str(e)}

        lowered = plan.lower()
        return PlanningResponse(
            id=reply_id(request),
            reply_to=request.id,
            from_actor=ActorType.PLANNER,
            to_actor=request.from_actor,
            content=plan or "Planning failed.",
            plan=plan,
            next_steps=[line.strip() for line in plan.splitlines() if line.strip()],
            tools_to_use=[t for t in request.available_tools if t.lower() in lowered],
            metadata=metadata,
        )

    async def _handle_tool_execution_response(self, response: ToolExecutionResponse) -> Optional[StatusUpdate]:
        if self.context is None:
            log.warning("planner.response_without_session", message_id=response.id)
            return None

        final = await self._synthesise(response)
        self.context.conversation_history.append(Message.assistant(final))
        self.context.current_task = None
        self.final_answers.append(final)
        log.info("planner.final_answer", chars=len(final), success=response.success)

        return StatusUpdate(
            from_actor=ActorType.PLANNER,
            to_actor=response.from_actor,
            reply_to=response.id,
            content=final,
            status=TOOL_RESULTS_PROCESSED,
            metadata={
                "final_response": True,
                "call_ids": [r.call_id for r in response.tool_results],
            },
        )

    async def _synthesise(self, response: ToolExecutionResponse) -> str:
        lines = [
            f"Tool {r.call_id}: {r.display or r.response.content or 'Executed successfully'}"
            for r in response.tool_results
        ]
        if not response.success and response.error:
            lines.append(f"Execution error: {response.error}")
        results_text = "\n".join(lines) or "No tools were run."

        prompt = (
            "Based on the following tool execution results, give the user a clear "
            "and helpful answer:\n\n"
            f"{results_text}\n\n"
            "Synthesise these results into a coherent response that addresses the "
            "user's request."
        )
        task = self.context.current_task if self.context else None
        if task:
            prompt = f"User request: {task}\n\n" + prompt

        config = LLMConfig(model=self.model, temperature=self.temperature)
        try:
            result = await call_with_retry(
                self.llm, [Message.user(prompt)], config, max_attempts=self.max_attempts
            )
        except LLMError as e:
            log.warning("planner.synthesis_failed", error=str(e), error_type=type(e).__name__)
            return f"Tool execution finished, but I could not summarise the results.\n{results_text}"
        return result.text or results_text
