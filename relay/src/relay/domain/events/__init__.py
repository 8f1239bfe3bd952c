"""
Event types and relay catalog for Relay.
"""

from relay.domain.events.base import (
    DomainEvent,
    EventKind,
    RelayScope,
    ServerEvent,
    utc_timestamp,
)
from relay.domain.events.catalog import (
    CONTROL_EVENTS,
    RELAY_CATALOG,
    RelayRoute,
    classify_event,
    get_route,
)

__all__ = [
    "DomainEvent",
    "EventKind",
    "RelayScope",
    "ServerEvent",
    "utc_timestamp",
    "CONTROL_EVENTS",
    "RELAY_CATALOG",
    "RelayRoute",
    "classify_event",
    "get_route",
]
