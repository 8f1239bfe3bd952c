"""
Graceful shutdown manager.

Handles:
- Signal registration (SIGTERM, SIGINT)
- Uncaught event loop exceptions
- Shutdown state tracking
- Shutdown callback sequencing
"""

import asyncio
import signal
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from shared.reporter import SystemReporter
from shared.reporter.emojis import Emoji


class ShutdownState(Enum):
    """Shutdown state enum."""

    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    SHUTDOWN = "shutdown"


class ShutdownManager:
    """
    Manages graceful shutdown of the Relay service.

    Coordinates shutdown sequence:
    1. Catch shutdown trigger (signal, uncaught error, remote request)
    2. Set shutdown flag (new connections are refused)
    3. Run registered callbacks in order (notify, snapshot, close)
    4. Mark complete

    Attributes:
        state: Current shutdown state
        shutdown_timeout: Max seconds to wait for shutdown
        grace_period: Seconds between client notice and socket close
        shutdown_started_at: Timestamp when shutdown initiated
        shutdown_reason: What triggered the shutdown
    """

    def __init__(
        self,
        shutdown_timeout: int = 30,
        grace_period: float = 1.0,
        reporter: Optional[SystemReporter] = None,
    ):
        """
        Initialize shutdown manager.

        Args:
            shutdown_timeout: Maximum seconds to wait for complete shutdown
            grace_period: Seconds to wait before closing client sockets
            reporter: Optional reporter for logging
        """
        self.shutdown_timeout = shutdown_timeout
        self.grace_period = grace_period
        self.reporter = reporter

        self.state = ShutdownState.RUNNING
        self.shutdown_started_at: Optional[datetime] = None
        self.shutdown_reason: Optional[str] = None
        self._complete_event = asyncio.Event()
        self._shutdown_callbacks: List[Callable] = []
        self._original_handlers: Dict[int, Any] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_task: Optional[asyncio.Task] = None

    def is_shutting_down(self) -> bool:
        """True from the first trigger on, including after completion."""
        return self.state in (ShutdownState.SHUTTING_DOWN, ShutdownState.SHUTDOWN)

    def is_running(self) -> bool:
        return self.state == ShutdownState.RUNNING

    def register_shutdown_callback(self, callback: Callable) -> None:
        """
        Register callback to be called on shutdown.

        Callbacks are called in registration order.

        Args:
            callback: Sync or async function taking the shutdown reason
        """
        self._shutdown_callbacks.append(callback)

    def setup_signal_handlers(self) -> None:
        """
        Setup signal handlers for graceful shutdown.

        Registers handlers for:
        - SIGTERM (service manager stop)
        - SIGINT (Ctrl+C)

        Must be called from the running event loop. Preserves original
        handlers for restoration.
        """
        self._loop = asyncio.get_running_loop()

        self._original_handlers = {
            signal.SIGTERM: signal.getsignal(signal.SIGTERM),
            signal.SIGINT: signal.getsignal(signal.SIGINT),
        }

        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, self._handle_signal)

    def restore_signal_handlers(self) -> None:
        """Put back the handlers saved by setup_signal_handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers = {}

    def install_exception_handler(self) -> None:
        """Treat uncaught event loop exceptions as a shutdown trigger."""
        self._loop = asyncio.get_running_loop()
        self._loop.set_exception_handler(self._handle_loop_exception)

    def _handle_signal(self, signum: int, frame) -> None:
        sig_name = signal.Signals(signum).name
        self.trigger(sig_name)

    def _handle_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]
    ) -> None:
        exception = context.get("exception")
        message = context.get("message", "Unhandled exception")

        if self.reporter:
            self.reporter.critical(
                f"{Emoji.ERROR.CRITICAL} Uncaught error: {message} "
                f"({type(exception).__name__ if exception else 'no exception'}: "
                f"{exception})",
                context="ShutdownManager",
            )

        self.trigger("uncaught-exception")

    def trigger(self, reason: str) -> None:
        """
        Schedule shutdown from synchronous code (signal or error handlers).

        Args:
            reason: Reason for shutdown
        """
        if self._loop is None or self._loop.is_closed():
            return

        self._loop.call_soon_threadsafe(self.request_shutdown, reason)

    def request_shutdown(self, reason: str) -> asyncio.Task:
        """
        Run the shutdown sequence in a background task.

        Must be called from the running event loop. Repeated requests
        return the task of the first one.
        """
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.get_running_loop().create_task(
                self.initiate_shutdown(reason)
            )
        return self._shutdown_task

    async def initiate_shutdown(self, reason: str = "manual") -> None:
        """
        Initiate graceful shutdown sequence.

        Args:
            reason: Reason for shutdown (signal name, manual, etc.)
        """
        if self.state != ShutdownState.RUNNING:
            return  # Already shutting down

        self.state = ShutdownState.SHUTTING_DOWN
        self.shutdown_started_at = datetime.utcnow()
        self.shutdown_reason = reason

        if self.reporter:
            self.reporter.warning(
                f"{Emoji.SYSTEM.SHUTDOWN} Graceful shutdown initiated (reason={reason})",
                context="ShutdownManager",
            )

        for callback in self._shutdown_callbacks:
            try:
                result = callback(reason)
                if asyncio.iscoroutine(result):
                    await asyncio.wait_for(result, timeout=self.shutdown_timeout)
            except Exception as e:
                # Continue shutdown even if callback fails
                if self.reporter:
                    self.reporter.error(
                        f"Shutdown callback {getattr(callback, '__name__', callback)} "
                        f"failed: {type(e).__name__}: {e}",
                        context="ShutdownManager",
                    )

        self.mark_shutdown_complete()

    async def wait_for_shutdown_complete(self, timeout: Optional[int] = None) -> bool:
        """
        Wait for shutdown to complete.

        Args:
            timeout: Optional timeout in seconds (uses shutdown_timeout if None)

        Returns:
            True if shutdown completed within timeout, False if timed out
        """
        timeout = timeout or self.shutdown_timeout

        try:
            await asyncio.wait_for(self._complete_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def mark_shutdown_complete(self) -> None:
        self.state = ShutdownState.SHUTDOWN
        self._complete_event.set()

    def get_shutdown_info(self) -> dict:
        """Shutdown state for the stats endpoint."""
        return {
            "state": self.state.value,
            "is_shutting_down": self.is_shutting_down(),
            "reason": self.shutdown_reason,
            "shutdown_started_at": (
                self.shutdown_started_at.isoformat()
                if self.shutdown_started_at
                else None
            ),
            "shutdown_timeout": self.shutdown_timeout,
            "grace_period": self.grace_period,
        }
