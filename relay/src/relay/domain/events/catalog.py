"""
Relay catalog.

Maps each relayable inbound event to its outbound name, the envelope key
carrying the sender identity, and the fan-out scope.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from relay.domain.events.base import EventKind, RelayScope


@dataclass(frozen=True)
class RelayRoute:
    """Routing rule for one inbound event."""

    inbound: str
    outbound: str
    actor_key: str
    scope: RelayScope = RelayScope.ALL_EXCEPT_SENDER
    target_field: Optional[str] = None


RELAY_CATALOG: Dict[str, RelayRoute] = {
    route.inbound: route
    for route in (
        # Schedules
        RelayRoute("schedule:create", "schedule:broadcast", "createdBy"),
        RelayRoute("schedule:update", "schedule:update", "updatedBy"),
        RelayRoute("schedule:share", "schedule:shared", "sharedBy"),
        # Users
        RelayRoute("user:create", "user:created", "createdBy"),
        RelayRoute("user:update", "user:updated", "updatedBy"),
        RelayRoute("user:delete", "user:deleted", "deletedBy"),
        # Drivers
        RelayRoute("drivers:sync", "drivers:sync", "syncedBy"),
        RelayRoute("drivers:add", "drivers:add", "addedBy"),
        RelayRoute("drivers:remove", "drivers:remove", "removedBy"),
        # Schedule status
        RelayRoute("status:update", "status:updated", "updatedBy"),
        RelayRoute("status:complete", "status:completed", "completedBy"),
        RelayRoute("status:cancel", "status:cancelled", "cancelledBy"),
        # Notifications
        RelayRoute(
            "notification:send",
            "notification:received",
            "from",
            scope=RelayScope.SINGLE_TARGET,
            target_field="targetUserId",
        ),
    )
}

CONTROL_EVENTS: Dict[str, EventKind] = {
    "authenticate": EventKind.AUTHENTICATE,
    "ping": EventKind.PING,
    "heartbeat": EventKind.HEARTBEAT,
    "shutdown-server": EventKind.SHUTDOWN,
}


def classify_event(event: str) -> EventKind:
    """
    Classify an inbound event name.

    Args:
        event: Event name from the wire frame

    Returns:
        EventKind for dispatch
    """
    if event in CONTROL_EVENTS:
        return CONTROL_EVENTS[event]
    if event in RELAY_CATALOG:
        return EventKind.RELAY
    return EventKind.UNKNOWN


def get_route(event: str) -> Optional[RelayRoute]:
    """Get relay route for inbound event, if it is relayable."""
    return RELAY_CATALOG.get(event)
