"""
Crash Recovery - graceful shutdown on SIGINT/SIGTERM.

The first signal only raises a flag; the sequencer checks it before each
file, so the file in flight finishes and its row is flushed. The final
full snapshot is written at most once.
"""
import asyncio
import logging
import signal
from typing import Awaitable, Callable, Dict, Iterable, Optional

from ..errors import StoreError

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CrashRecoveryHandler:
    """
    Installs shutdown signal handlers for the lifetime of a run.

    Usage:
        async with CrashRecoveryHandler() as recovery:
            ...
            if recovery.shutting_down:
                await recovery.final_flush(lambda: reconciler.write_snapshot(channel))
    """

    def __init__(self, signals: Iterable[signal.Signals] = DEFAULT_SIGNALS):
        self._signals = tuple(signals)
        self._shutting_down = False
        self._reason: Optional[str] = None
        self._flushed = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous: Dict[signal.Signals, object] = {}

    async def __aenter__(self):
        self._loop = asyncio.get_running_loop()
        for sig in self._signals:
            try:
                previous = signal.getsignal(sig)
                self._loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # No loop signal support here (e.g. Windows, non-main thread)
                logger.debug(f"Cannot install handler for {sig.name}: {e}")
                continue
            self._previous[sig] = previous
        return self

    async def __aexit__(self, *args):
        for sig, previous in self._previous.items():
            self._loop.remove_signal_handler(sig)
            if previous is not None:
                signal.signal(sig, previous)
        self._previous.clear()

    def _on_signal(self, sig: signal.Signals) -> None:
        self.request_shutdown(f"received {sig.name}")

    def request_shutdown(self, reason: str = "shutdown requested") -> bool:
        """Raise the shutdown flag. Returns False if it was already raised."""
        if self._shutting_down:
            logger.debug("Shutdown already in progress, ignoring: %s", reason)
            return False
        self._shutting_down = True
        self._reason = reason
        logger.warning("Shutdown requested (%s) - finishing current file", reason)
        return True

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    @property
    def flushed(self) -> bool:
        return self._flushed

    async def final_flush(self, flush: Callable[[], Awaitable[None]]) -> bool:
        """
        Run the final snapshot write once.

        Returns:
            True if the flush ran and succeeded. A store failure is logged,
            not raised, since the process is on its way out.
        """
        if self._flushed:
            logger.debug("Final flush already done")
            return False
        self._flushed = True
        try:
            await flush()
        except StoreError as e:
            logger.error(f"Final flush failed: {e}")
            return False
        logger.info("Final state flushed")
        return True
