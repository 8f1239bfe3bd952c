"""
WebSocket connection manager infrastructure with production logging.
"""

from typing import Any, Dict, List, Optional, Set

from shared.reporter import SystemReporter
from shared.reporter.emojis import Emoji

from relay.domain.entities import Connection


class ConnectionManager:
    """
    Registry of live connections and their transports.

    Sends are fire-and-forget: a send to an unknown, closed or broken
    connection returns False and never raises.
    """

    def __init__(self, reporter: Optional[SystemReporter] = None):
        self.connections: Dict[str, Connection] = {}
        self.reporter = reporter
        self.stats = {"messages_sent": 0, "send_failures": 0}

    def add(self, connection: Connection) -> Connection:
        """Register connection."""
        self.connections[connection.id] = connection

        if self.reporter:
            self.reporter.info(
                f"{Emoji.NETWORK.CONNECTED} Connection added: {connection.id} "
                f"(ip={connection.client_ip}, total={self.count()})",
                context="ConnectionManager",
                verbose_level=2,
            )
        return connection

    def remove(self, connection_id: str) -> Optional[Connection]:
        """Unregister connection. Unknown IDs are ignored."""
        connection = self.connections.pop(connection_id, None)

        if self.reporter and connection:
            self.reporter.info(
                f"{Emoji.NETWORK.DISCONNECT} Connection removed: {connection_id} "
                f"(user={connection.user_id}, total={self.count()})",
                context="ConnectionManager",
                verbose_level=2,
            )
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    def all(self) -> List[Connection]:
        return list(self.connections.values())

    def ids(self) -> Set[str]:
        return set(self.connections)

    def count(self) -> int:
        """Get total number of live connections."""
        return len(self.connections)

    async def send_event(
        self, connection_id: str, event: str, data: Optional[Any] = None
    ) -> bool:
        """
        Send one frame to a connection.

        Returns:
            True if handed to the transport, False otherwise
        """
        connection = self.connections.get(connection_id)
        if connection is None or not connection.is_open():
            return False

        return await self._send(connection, event, data)

    async def send_to(
        self, connection: Connection, event: str, data: Optional[Any] = None
    ) -> bool:
        """Send to a connection object, registered or not."""
        if not connection.is_open():
            return False
        return await self._send(connection, event, data)

    async def _send(self, connection: Connection, event: str, data: Optional[Any]) -> bool:
        frame = {"event": event, "data": {} if data is None else data}

        try:
            await connection.websocket.send_json(frame)
            self.stats["messages_sent"] += 1
            return True
        except Exception as e:
            self.stats["send_failures"] += 1
            if self.reporter:
                self.reporter.debug(
                    f"Send failed [conn={connection.id}] [event={event}]: "
                    f"{type(e).__name__}: {e}",
                    context="ConnectionManager",
                )
            return False

    async def broadcast(
        self,
        event: str,
        data: Optional[Any] = None,
        exclude: Optional[str] = None,
        authenticated_only: bool = False,
    ) -> int:
        """
        Send one frame to every live connection.

        Args:
            event: Event name
            data: Event payload
            exclude: Connection ID to skip (usually the sender)
            authenticated_only: Skip connections that have not authenticated

        Returns:
            Number of connections that received the frame
        """
        sent = 0
        for connection in list(self.connections.values()):
            if connection.id == exclude:
                continue
            if authenticated_only and not connection.is_authenticated():
                continue
            if await self.send_to(connection, event, data):
                sent += 1
        return sent

    async def close_connection(
        self, connection: Connection, code: int = 1000, reason: str = ""
    ) -> bool:
        """
        Close a connection's transport with code and reason.

        Returns:
            False if the transport was already gone
        """
        try:
            await connection.websocket.close(code=code, reason=reason)
            return True
        except Exception as e:
            if self.reporter:
                self.reporter.debug(
                    f"Close failed [conn={connection.id}]: {type(e).__name__}: {e}",
                    context="ConnectionManager",
                )
            return False
