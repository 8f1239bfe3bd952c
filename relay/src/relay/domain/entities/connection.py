"""
Connection entity - represents one live transport connection.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Set
from uuid import uuid4


class ConnectionState(str, Enum):
    """Connection lifecycle states."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


_ALLOWED: Dict[ConnectionState, Set[ConnectionState]] = {
    ConnectionState.CONNECTING: {ConnectionState.CONNECTED, ConnectionState.CLOSED},
    ConnectionState.CONNECTED: {ConnectionState.AUTHENTICATED, ConnectionState.CLOSED},
    ConnectionState.AUTHENTICATED: {
        ConnectionState.AUTHENTICATED,
        ConnectionState.CLOSED,
    },
    ConnectionState.CLOSED: set(),
}


def generate_connection_id() -> str:
    """Generate unique connection ID for tracking."""
    return f"conn_{uuid4().hex[:12]}"


class Connection:
    """
    Connection entity representing a WebSocket client.

    Attributes:
        id: Opaque connection identifier
        client_ip: Remote IP address
        websocket: Transport handle (anything with send_json/close)
        state: Lifecycle state
        user_id: Bound user ID once authenticated
        last_seen: Epoch seconds of the last heartbeat or message
        connected_at: Accept timestamp
        messages_processed: Frames handled on this connection
        rate_limit_hits: Frames rejected by the message-rate guard
    """

    def __init__(
        self,
        client_ip: str,
        websocket: Any = None,
        connection_id: Optional[str] = None,
        last_seen: float = 0.0,
        connected_at: Optional[datetime] = None,
    ):
        self.id: str = connection_id or generate_connection_id()
        self.client_ip: str = client_ip
        self.websocket: Any = websocket
        self.state: ConnectionState = ConnectionState.CONNECTING
        self.user_id: Optional[str] = None
        self.last_seen: float = last_seen
        self.connected_at: datetime = connected_at or datetime.utcnow()
        self.messages_processed: int = 0
        self.rate_limit_hits: int = 0

    def _transition(self, target: ConnectionState) -> None:
        if target not in _ALLOWED[self.state]:
            raise ValueError(
                f"Invalid connection transition: {self.state.value} -> {target.value}"
            )
        self.state = target

    def mark_connected(self) -> None:
        self._transition(ConnectionState.CONNECTED)

    def mark_authenticated(self, user_id: str) -> None:
        self._transition(ConnectionState.AUTHENTICATED)
        self.user_id = user_id

    def mark_closed(self) -> None:
        """Close the connection. Closing twice is a no-op."""
        if self.state != ConnectionState.CLOSED:
            self._transition(ConnectionState.CLOSED)

    def touch(self, now: float) -> None:
        """Refresh last-seen timestamp."""
        self.last_seen = now

    def is_authenticated(self) -> bool:
        return self.state == ConnectionState.AUTHENTICATED

    def is_open(self) -> bool:
        return self.state != ConnectionState.CLOSED

    def is_stale(self, now: float, timeout: float) -> bool:
        """Check if the connection has been silent for longer than timeout."""
        return now - self.last_seen > timeout

    def __eq__(self, other) -> bool:
        """Check equality based on connection ID."""
        if not isinstance(other, Connection):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on connection ID."""
        return hash(self.id)

    def __repr__(self) -> str:
        """String representation."""
        user = f"user_id={self.user_id}" if self.user_id else "unauthenticated"
        return (
            f"Connection(id={self.id}, ip={self.client_ip}, "
            f"state={self.state.value}, {user})"
        )
