"""
tools/approvals.py — Session-scoped pre-approvals

"Proceed always" answers are remembered here for the rest of the session.
Each ToolCallScheduler owns (or is handed) its own AllowList; there is no
process-wide state.
"""

from __future__ import annotations

from typing import Iterable, Optional


class AllowList:
    """Tool names and tool kinds that skip confirmation."""

    def __init__(self, tools: Optional[Iterable[str]] = None, kinds: Optional[Iterable[str]] = None):
        self._tools: set[str] = set(tools or ())
        self._kinds: set[str] = set(kinds or ())

    def allow(self, tool_name: str, kind: Optional[str] = None) -> None:
        self._tools.add(tool_name)
        if kind:
            self._kinds.add(kind)

    def is_allowed(self, tool_name: str, kind: Optional[str] = None) -> bool:
        return tool_name in self._tools or (kind is not None and kind in self._kinds)

    def clear(self) -> None:
        self._tools.clear()
        self._kinds.clear()

    @property
    def tools(self) -> frozenset[str]:
        return frozenset(self._tools)

    @property
    def kinds(self) -> frozenset[str]:
        return frozenset(self._kinds)

    def __repr__(self) -> str:
        return f"<AllowList tools={sorted(self._tools)} kinds={sorted(self._kinds)}>"
