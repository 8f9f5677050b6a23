"""
tools/registry.py — Tool Registry

Maps tool names to BaseTool instances. The scheduler resolves every
request through lookup(); the backend sees schemas().

Usage:
    registry = ToolRegistry()
    registry.register(ReadFile())
    tool = registry.lookup("read_file")
"""

from __future__ import annotations

from typing import Optional

from tandem.brain.types import ToolSchema
from tandem.exceptions import ToolNotFoundError
from tandem.observability.logger import get_logger
from tandem.tools.base import BaseTool

log = get_logger(__name__)


class ToolRegistry:
    """
    Registry that maps tool names to tool instances.

    Safe for concurrent reads (dict lookups). Not designed for concurrent writes.
    """

    def __init__(self, tools: Optional[list[BaseTool]] = None):
        self._tools: dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> BaseTool:
        if not tool.name:
            raise ValueError(f"{tool!r} has no name")
        if tool.name in self._tools:
            log.warning("tool.replaced", tool=tool.name)
        self._tools[tool.name] = tool
        log.debug("tool.registered", tool=tool.name, kind=tool.kind)
        return tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def lookup(self, name: str) -> Optional[BaseTool]:
        """Return the tool, or None if not found."""
        return self._tools.get(name)

    def get(self, name: str) -> BaseTool:
        """Return the tool or raise ToolNotFoundError."""
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(f'Tool "{name}" not found in registry.')
        return tool

    def is_registered(self, name: str) -> bool:
        return name in self._tools

    def list_names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[ToolSchema]:
        """All registered tools in the format the backend expects."""
        return [t.schema() for t in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __repr__(self) -> str:
        return f"<ToolRegistry tools={list(self._tools)}>"
