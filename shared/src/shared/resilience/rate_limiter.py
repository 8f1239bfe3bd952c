"""
Rate limiting using fixed rolling windows.

Counts events per key inside a window that restarts once it has fully
elapsed. Used by the relay abuse guard for per-IP connection attempts and
per-connection message rates.
"""

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateWindowConfig:
    """Configuration for a windowed rate limiter."""

    max_events: int = 60
    """Maximum number of events allowed inside one window"""

    window_seconds: float = 60.0
    """Window length in seconds"""


class RateWindow:
    """
    Counter for a single key inside a rolling window.

    The count resets when ``now - window_start > window_seconds``. A window
    is "blocked" once its count has gone over the configured maximum.

    Example:
        window = RateWindow(RateWindowConfig(max_events=3, window_seconds=60))

        if window.hit(now):
            handle_event()
        else:
            print("Rate limited!")
    """

    def __init__(self, config: RateWindowConfig, now: float):
        self.config = config
        self.count = 0
        self.window_start = now

    def is_expired(self, now: float) -> bool:
        """Check if the window has fully elapsed."""
        return now - self.window_start > self.config.window_seconds

    def hit(self, now: float) -> bool:
        """
        Record one event.

        Args:
            now: Current timestamp in seconds

        Returns:
            True if the event fits in the window, False if over the limit
        """
        if self.is_expired(now):
            self.count = 0
            self.window_start = now

        self.count += 1
        return self.count <= self.config.max_events

    def is_blocked(self, now: float) -> bool:
        """Check if the window is currently over its limit."""
        return not self.is_expired(now) and self.count > self.config.max_events

    def retry_after(self, now: float) -> float:
        """Seconds until the window restarts (0 if already expired)."""
        remaining = self.config.window_seconds - (now - self.window_start)
        return max(0.0, remaining)

    def __repr__(self) -> str:
        return (
            f"RateWindow(count={self.count}, limit={self.config.max_events}, "
            f"window={self.config.window_seconds}s)"
        )


class RateWindowRegistry:
    """
    Registry of rate windows keyed by an identifier (IP, connection id).

    Windows are created lazily on first hit and removed by ``sweep_expired``.
    Unknown keys count as zero usage.

    Example:
        registry = RateWindowRegistry(
            RateWindowConfig(max_events=10, window_seconds=300)
        )

        if not registry.hit("10.0.0.5"):
            block("10.0.0.5")
    """

    def __init__(
        self,
        config: Optional[RateWindowConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or RateWindowConfig()
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._lock = Lock()

    def hit(self, key: str) -> bool:
        """
        Record one event for key.

        Returns:
            True if allowed, False if the window is over its limit
        """
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                window = RateWindow(self.config, now)
                self._windows[key] = window

            allowed = window.hit(now)

        if not allowed:
            logger.debug(
                f"Rate window exceeded for {key}: "
                f"{window.count}/{self.config.max_events}"
            )
        return allowed

    def retry_after(self, key: str) -> float:
        """Seconds until the window for key restarts."""
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                return 0.0
            return window.retry_after(self._clock())

    def remove(self, key: str) -> None:
        """Remove window for key."""
        with self._lock:
            self._windows.pop(key, None)

    def sweep_expired(self) -> List[str]:
        """
        Remove windows that have fully elapsed.

        Returns:
            Keys that were removed
        """
        now = self._clock()
        with self._lock:
            expired = [
                key for key, window in self._windows.items() if window.is_expired(now)
            ]
            for key in expired:
                del self._windows[key]

        if expired:
            logger.debug(f"Swept {len(expired)} expired rate windows")
        return expired

    def __len__(self) -> int:
        return len(self._windows)


__all__ = [
    "RateWindow",
    "RateWindowConfig",
    "RateWindowRegistry",
]
