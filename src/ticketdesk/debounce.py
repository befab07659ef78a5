from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Cancellable settle timer on the running event loop.

    arm() cancels any pending timer and starts a new one; when the window
    elapses without another arm(), the callback runs once and the timer
    clears itself.
    """

    def __init__(self, delay_seconds: float, callback: Callable[[], Awaitable[None]]) -> None:
        self._delay = delay_seconds
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush(self) -> None:
        """Fire immediately if armed."""
        if not self.pending:
            return
        self.cancel()
        await self._callback()

    async def _run(self) -> None:
        await asyncio.sleep(self._delay)
        # Cleared before firing so the callback may re-arm.
        self._task = None
        try:
            await self._callback()
        except Exception:
            logger.exception("debounced callback failed")
