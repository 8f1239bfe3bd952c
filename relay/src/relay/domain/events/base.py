"""
Base event types for Relay.

Inbound frames are classified into an EventKind; relayed events travel
as DomainEvent with an opaque payload.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def utc_timestamp() -> str:
    """ISO 8601 UTC timestamp with millisecond precision and Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class EventKind(str, Enum):
    """Dispatch category of an inbound event."""

    AUTHENTICATE = "authenticate"
    PING = "ping"
    HEARTBEAT = "heartbeat"
    SHUTDOWN = "shutdown"
    RELAY = "relay"
    UNKNOWN = "unknown"


class RelayScope(str, Enum):
    """Fan-out scope of a relayed event."""

    ALL_EXCEPT_SENDER = "all_except_sender"
    SINGLE_TARGET = "single_target"
    ALL_INCLUDING_SENDER = "all_including_sender"


class ServerEvent(str, Enum):
    """Events emitted by the server."""

    AUTHENTICATED = "authenticated"
    AUTH_REQUIRED = "auth:required"
    AUTHENTICATION_ERROR = "authentication:error"
    PONG = "pong"
    HEARTBEAT_ACK = "heartbeat-ack"
    USER_CONNECTED = "user:connected"
    USER_DISCONNECTED = "user:disconnected"
    RATE_LIMIT_EXCEEDED = "rate-limit-exceeded"
    SESSION_REPLACED = "session-replaced"
    SERVER_SHUTDOWN = "server-shutdown"
    DIRECTORY_UPDATED = "uby-data-updated"
    ERROR = "error"


class DomainEvent(BaseModel):
    """
    Event relayed between clients.

    Attributes:
        type: Inbound event name (e.g. 'schedule:update')
        payload: Opaque client data, never interpreted
        sender: Sender connection ID
        timestamp: Server receive time
    """

    type: str = Field(..., description="Inbound event name")
    payload: Any = Field(default=None, description="Opaque event payload")
    sender: Optional[str] = Field(None, description="Sender connection ID")
    timestamp: str = Field(default_factory=utc_timestamp)
