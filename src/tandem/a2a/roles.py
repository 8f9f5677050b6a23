"""
a2a/roles.py — Actor role descriptions

Human-readable statement of what each actor may and may not do. Surfaced
through get_status() and used to build each actor's system prompt.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from tandem.a2a.messages import ActorType


class ActorRole(BaseModel):
    actor: ActorType
    name: str
    description: str
    capabilities: list[str] = Field(default_factory=list)
    restrictions: list[str] = Field(default_factory=list)

    def describe(self) -> str:
        lines = [f"You are the {self.name}. {self.description}.", "", "You can:"]
        lines += [f"- {c}" for c in self.capabilities]
        lines += ["", "You must not:"]
        lines += [f"- {r}" for r in self.restrictions]
        return "\n".join(lines)


PLANNER_ROLE = ActorRole(
    actor=ActorType.PLANNER,
    name="Planner",
    description="Responsible for reasoning, planning and talking to the user",
    capabilities=[
        "User interaction",
        "Planning and strategy",
        "Code analysis",
        "Problem decomposition",
        "Response generation",
        "Conversation management",
    ],
    restrictions=[
        "Cannot execute tools directly",
        "Must delegate tool execution to the executor",
        "Cannot access the file system directly",
        "Cannot run shell commands",
    ],
)

EXECUTOR_ROLE = ActorRole(
    actor=ActorType.EXECUTOR,
    name="Executor",
    description="Responsible for running tools exactly as requested",
    capabilities=[
        "File system operations",
        "Shell command execution",
        "Code editing and writing",
        "Search and grep operations",
        "Web fetching",
        "Tool orchestration",
    ],
    restrictions=[
        "Cannot make strategic decisions",
        "Must follow explicit instructions",
        "Cannot interact with the user directly",
    ],
)
