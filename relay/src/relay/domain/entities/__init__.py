"""
Domain entities for Relay.
"""

from relay.domain.entities.connection import (
    Connection,
    ConnectionState,
    generate_connection_id,
)
from relay.domain.entities.session import Session

__all__ = [
    "Connection",
    "ConnectionState",
    "Session",
    "generate_connection_id",
]
