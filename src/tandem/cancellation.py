"""
cancellation.py — Cooperative Cancellation Token

One token is threaded from the outermost caller through the Turn, the
scheduler, and into every tool's execute(). Cancelling is sticky: once
signalled, a token stays signalled.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from tandem.observability.logger import get_logger

log = get_logger(__name__)


class CancellationToken:
    """asyncio.Event wrapper with a human-readable reason."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by user") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        log.info("cancellation.signalled", reason=reason)

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        await self._event.wait()

    def __repr__(self) -> str:
        return f"<CancellationToken cancelled={self.cancelled}>"
