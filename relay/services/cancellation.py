"""Cooperative cancellation for a running turn."""

import asyncio


class CancelToken:
    """Cancellation flag checked before every suspension point of a turn.

    Setting it never interrupts work already in flight; the orchestrator
    observes it at its next check and returns without emitting or persisting
    anything further.
    """

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()
