"""Cancellation token shared by the drivers and the worker pool."""

import asyncio
import logging
import signal

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-way flag set on SIGINT/SIGTERM.

    The token is only checked at fixed points (before spawning a worker,
    after reaping one, between phases); nothing is torn down from inside a
    signal handler.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        logger.warning("Received %s, finishing current tables and stopping", reason)
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Cancel on SIGINT and SIGTERM delivered to the running loop."""
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.cancel, sig.name)

    def remove_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
