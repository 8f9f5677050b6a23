"""
agent/utils.py — Shared Agent Utilities

Small helpers shared across the agent and a2a packages.
"""

from __future__ import annotations

import asyncio
from typing import Coroutine

from tandem.observability.logger import get_logger

log = get_logger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Fire-and-forget helper
# ─────────────────────────────────────────────────────────────────────────────

# Strong references so asyncio cannot GC a task mid-flight.
# Tasks remove themselves in the done-callback.
_BG_TASKS: set[asyncio.Task] = set()


def fire_and_forget(coro: Coroutine, label: str = "bg_task") -> asyncio.Task:
    """
    Schedule a coroutine as a background asyncio task.

    Unlike a bare asyncio.create_task(), this:
      1. Holds a strong reference until the task finishes.
      2. Logs any unhandled exception with the label attached.
      3. Drops the reference when the task completes.
    """
    task = asyncio.create_task(coro)
    _BG_TASKS.add(task)

    def _on_done(t: asyncio.Task) -> None:
        _BG_TASKS.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            log.warning(
                "bg_task.failed",
                label=label,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    task.add_done_callback(_on_done)
    return task