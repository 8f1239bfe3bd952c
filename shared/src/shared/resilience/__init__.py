"""
Resilience patterns for the realtime platform.

This module provides:
- Rate Limiting: Fixed rolling-window counters keyed by IP or connection
- Reconnect: Pure exponential backoff and client connection state machine
"""

from shared.resilience.exceptions import (
    InvalidReconnectTransition,
    ReconnectError,
    ReconnectExhausted,
)
from shared.resilience.rate_limiter import (
    RateWindow,
    RateWindowConfig,
    RateWindowRegistry,
)
from shared.resilience.reconnect import (
    ReconnectPolicy,
    ReconnectState,
    ReconnectStateMachine,
    compute_backoff_delay,
)

__all__ = [
    # Rate Limiting
    "RateWindow",
    "RateWindowConfig",
    "RateWindowRegistry",
    # Reconnect
    "ReconnectPolicy",
    "ReconnectState",
    "ReconnectStateMachine",
    "compute_backoff_delay",
    "ReconnectError",
    "ReconnectExhausted",
    "InvalidReconnectTransition",
]
