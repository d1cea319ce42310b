"""
Process-level shutdown handling.
"""

import asyncio
import logging
import signal
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class GracefulShutdownHandler:
    """
    Routes SIGINT and SIGTERM to shutdown callbacks on the event loop.

    Uses the loop's native signal support where available and falls back
    to ``signal.signal`` with a thread-safe hand-off otherwise.
    """

    def __init__(self, signals=(signal.SIGINT, signal.SIGTERM)):
        self.signals = tuple(signals)
        self._shutdown_callbacks: List[Callable[[], None]] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous_handlers: Dict[int, Any] = {}
        self._is_shutting_down = False
        self.received_signal: Optional[int] = None

    @property
    def is_shutting_down(self) -> bool:
        return self._is_shutting_down

    def register_shutdown_callback(self, callback: Callable[[], None]) -> None:
        """
        Register a callback to be called on the event loop when a signal arrives.

        Args:
            callback: Synchronous callable, e.g. ``ReportScheduler.request_stop``
        """
        self._shutdown_callbacks.append(callback)
        logger.debug(f"Registered shutdown callback: {getattr(callback, '__name__', callback)}")

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Install the signal handlers on the given (or running) loop."""
        self._loop = loop or asyncio.get_running_loop()
        for sig in self.signals:
            self._previous_handlers[sig] = signal.getsignal(sig)
            try:
                self._loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError):
                signal.signal(sig, self._signal_handler)

    def uninstall(self) -> None:
        """Restore the signal handlers that were in place before install()."""
        for sig, previous in self._previous_handlers.items():
            try:
                if self._loop is not None:
                    self._loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass
            signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def _signal_handler(self, signum: int, frame) -> None:
        """Handle a signal delivered outside the event loop."""
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._handle_signal, signum)

    def _handle_signal(self, signum: int) -> None:
        if self._is_shutting_down:
            logger.debug(f"Received signal {signum} again, shutdown already in progress")
            return

        self._is_shutting_down = True
        self.received_signal = signum
        logger.info("Interrupted, exiting...")

        for callback in self._shutdown_callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Shutdown callback failed: {e}")
