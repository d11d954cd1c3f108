"""
Cooperative cancellation for agent runs.
"""

import asyncio


class AbortSignal:
    """
    Abort signal for graceful cancellation of an agent run.

    Based on asyncio.Event, supports:
    - Synchronous abort status check
    - Async wait for abort signal
    - Recording abort reason

    The engine checks the signal before each round trip and before each
    tool batch; work already in flight is never interrupted.

    Examples:
        >>> signal = AbortSignal()
        >>> signal.abort("User cancelled")
        >>> signal.is_aborted()
        True
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: str | None = None

    def abort(self, reason: str = "Operation cancelled"):
        """Trigger abort signal. The first reason is kept."""
        if not self._event.is_set():
            self._reason = reason
        self._event.set()

    def is_aborted(self) -> bool:
        return self._event.is_set()

    async def wait(self):
        """Async wait for abort signal."""
        await self._event.wait()

    @property
    def reason(self) -> str | None:
        return self._reason

    def reset(self):
        """Reset abort signal for reuse."""
        self._event.clear()
        self._reason = None


__all__ = ["AbortSignal"]
