"""
Session registry infrastructure.
"""

from relay.infrastructure.sessions.session_registry import (
    AuthenticationResult,
    SessionRegistry,
)

__all__ = ["AuthenticationResult", "SessionRegistry"]
