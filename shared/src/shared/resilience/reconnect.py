"""
Reconnect policy and state machine with exponential backoff.

Pure, clock-free building blocks for the relay client: the delay function
and the connection state machine never sleep or touch timers, so callers
decide how to wait.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set

from shared.resilience.exceptions import InvalidReconnectTransition

logger = logging.getLogger(__name__)


class ReconnectState(str, Enum):
    """Client connection states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    EXHAUSTED = "exhausted"


_TRANSITIONS: Dict[ReconnectState, Set[ReconnectState]] = {
    ReconnectState.IDLE: {ReconnectState.CONNECTING},
    ReconnectState.CONNECTING: {ReconnectState.CONNECTED, ReconnectState.IDLE},
    ReconnectState.CONNECTED: {ReconnectState.RECONNECTING, ReconnectState.IDLE},
    ReconnectState.RECONNECTING: {
        ReconnectState.CONNECTED,
        ReconnectState.EXHAUSTED,
        ReconnectState.IDLE,
    },
    ReconnectState.EXHAUSTED: {ReconnectState.CONNECTING, ReconnectState.IDLE},
}


@dataclass
class ReconnectPolicy:
    """Configuration for reconnect behavior."""

    base_delay: float = 1.0
    """Base delay in seconds, doubled on every attempt"""

    max_delay: float = 30.0
    """Maximum delay between attempts in seconds"""

    max_attempts: int = 5
    """Reconnect attempts before giving up"""

    connect_timeout: float = 10.0
    """Handshake timeout in seconds"""

    heartbeat_interval: float = 30.0
    """Interval between client pings in seconds"""


def compute_backoff_delay(attempt: int, base: float = 1.0, cap: float = 30.0) -> float:
    """
    Calculate delay before a reconnect attempt.

    Args:
        attempt: Attempt number (1 for the first reconnect)
        base: Base delay in seconds
        cap: Upper bound in seconds

    Returns:
        ``min(base * 2**attempt, cap)``

    Example:
        >>> [compute_backoff_delay(n) for n in range(1, 6)]
        [2.0, 4.0, 8.0, 16.0, 30.0]
    """
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    return float(min(base * (2**attempt), cap))


class ReconnectStateMachine:
    """
    Connection state machine for a reconnecting client.

    States:
        IDLE -> CONNECTING -> CONNECTED -> RECONNECTING(attempt) -> EXHAUSTED

    A user-initiated disconnect returns to IDLE from any state. A failed
    initial connect also returns to IDLE without scheduling reconnects.

    Example:
        machine = ReconnectStateMachine(ReconnectPolicy(max_attempts=3))
        machine.begin_connect()
        machine.on_connected()

        machine.on_connection_lost()
        delay = machine.next_delay()
        while delay is not None:
            await asyncio.sleep(delay)
            if await try_connect():
                machine.on_connected()
                break
            delay = machine.next_delay()
    """

    def __init__(self, policy: Optional[ReconnectPolicy] = None):
        self.policy = policy or ReconnectPolicy()
        self.state = ReconnectState.IDLE
        self.attempt = 0

    def _transition(self, target: ReconnectState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidReconnectTransition(self.state.value, target.value)

        logger.debug(f"Reconnect state: {self.state.value} -> {target.value}")
        self.state = target

    @property
    def is_connected(self) -> bool:
        return self.state == ReconnectState.CONNECTED

    @property
    def is_exhausted(self) -> bool:
        return self.state == ReconnectState.EXHAUSTED

    def begin_connect(self) -> None:
        """Start a user-requested connect."""
        self._transition(ReconnectState.CONNECTING)
        self.attempt = 0

    def on_connected(self) -> None:
        """Handshake succeeded; resets the attempt counter."""
        self._transition(ReconnectState.CONNECTED)
        self.attempt = 0

    def on_connect_failed(self) -> None:
        """Initial handshake failed; no reconnects are scheduled."""
        self._transition(ReconnectState.IDLE)

    def on_connection_lost(self) -> None:
        """Transport dropped without the user asking for it."""
        self._transition(ReconnectState.RECONNECTING)
        self.attempt = 0

    def next_delay(self) -> Optional[float]:
        """
        Reserve the next reconnect attempt.

        Returns:
            Delay in seconds before the attempt, or None once the attempt
            attempts are used up (state becomes EXHAUSTED)
        """
        if self.state != ReconnectState.RECONNECTING:
            raise InvalidReconnectTransition(
                self.state.value, ReconnectState.RECONNECTING.value
            )

        if self.attempt >= self.policy.max_attempts:
            self._transition(ReconnectState.EXHAUSTED)
            return None

        self.attempt += 1
        return compute_backoff_delay(
            self.attempt, self.policy.base_delay, self.policy.max_delay
        )

    def on_user_disconnect(self) -> None:
        """User closed the connection; stops any reconnect cycle."""
        if self.state != ReconnectState.IDLE:
            self._transition(ReconnectState.IDLE)
        self.attempt = 0

    def __repr__(self) -> str:
        return (
            f"ReconnectStateMachine(state={self.state.value}, "
            f"attempt={self.attempt}/{self.policy.max_attempts})"
        )


__all__ = [
    "ReconnectPolicy",
    "ReconnectState",
    "ReconnectStateMachine",
    "compute_backoff_delay",
]
