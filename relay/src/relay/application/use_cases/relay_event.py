"""
Use case for relaying domain events between clients.
"""

from typing import Any, Dict, Optional

from shared.reporter import SystemReporter
from shared.reporter.emojis import Emoji

from relay.domain.events import DomainEvent, RelayScope, get_route
from relay.domain.exceptions import AuthRequiredError
from relay.infrastructure.sessions import SessionRegistry
from relay.infrastructure.websocket import ConnectionManager

DEFAULT_ACTOR_KEY = "sender"


class RelayEventUseCase:
    """
    Use case for fanning out a client event to its peers.

    The outbound envelope is built by the server::

        {"payload": <opaque>, "<actorKey>": {userId, displayName, userName},
         "timestamp": "<ISO-8601>"}

    The sender identity always comes from the session registry, so
    identity fields supplied by the client inside the payload carry no
    authority.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        connection_manager: ConnectionManager,
        reporter: Optional[SystemReporter] = None,
    ):
        self.registry = registry
        self.connection_manager = connection_manager
        self.reporter = reporter

    async def execute(
        self,
        sender_connection_id: str,
        event_type: str,
        payload: Any,
        scope: Optional[RelayScope] = None,
        target_user_id: Optional[str] = None,
    ) -> int:
        """
        Relay event from sender to its audience.

        Args:
            sender_connection_id: Connection that sent the event
            event_type: Inbound event name
            payload: Opaque event data
            scope: Fan-out scope (catalog default when None)
            target_user_id: Recipient for SINGLE_TARGET (read from the
                payload's target field when None)

        Returns:
            Number of connections that received the event

        Raises:
            AuthRequiredError: If the sender has no live session
        """
        session = self.registry.get_by_connection(sender_connection_id)
        if session is None or session.restored:
            raise AuthRequiredError(event_type, sender_connection_id)

        event = DomainEvent(type=event_type, payload=payload, sender=sender_connection_id)

        route = get_route(event_type)
        outbound = route.outbound if route else event_type
        actor_key = route.actor_key if route else DEFAULT_ACTOR_KEY
        scope = scope or (route.scope if route else RelayScope.ALL_EXCEPT_SENDER)

        envelope: Dict[str, Any] = {
            "payload": event.payload,
            actor_key: session.identity(),
            "timestamp": event.timestamp,
        }

        if scope == RelayScope.SINGLE_TARGET:
            if target_user_id is None and route and route.target_field:
                if isinstance(payload, dict):
                    target_user_id = payload.get(route.target_field)

            delivered = await self._send_to_user(target_user_id, outbound, envelope)

        elif scope == RelayScope.ALL_INCLUDING_SENDER:
            delivered = await self.connection_manager.broadcast(
                outbound, envelope, authenticated_only=True
            )

        else:
            delivered = await self.connection_manager.broadcast(
                outbound,
                envelope,
                exclude=sender_connection_id,
                authenticated_only=True,
            )

        if self.reporter:
            self.reporter.debug(
                f"{Emoji.NETWORK.BROADCAST} {event_type} -> {outbound} by "
                f"{session.display_name} [scope={scope.value}] [delivered={delivered}]",
                context="Relay",
            )

        return delivered

    async def _send_to_user(
        self, user_id: Optional[str], event: str, envelope: Dict[str, Any]
    ) -> int:
        if user_id is None:
            return 0

        connection_id = self.registry.lookup_by_user_id(str(user_id))
        if connection_id is None:
            return 0

        sent = await self.connection_manager.send_event(connection_id, event, envelope)
        return 1 if sent else 0
