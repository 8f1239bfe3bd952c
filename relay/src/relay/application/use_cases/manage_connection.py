"""
Use case for the lifecycle of relay connections.

accept -> authenticate -> heartbeat monitor -> close/cleanup.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

from fastapi import status
from shared.reporter import SystemReporter
from shared.reporter.emojis import Emoji

from relay.application.dto import AuthenticatePayload, InboundMessage
from relay.application.use_cases.relay_event import RelayEventUseCase
from relay.config.settings import Settings
from relay.domain.entities import Connection, Session
from relay.domain.events import EventKind, ServerEvent, utc_timestamp
from relay.domain.exceptions import (
    AuthenticationError,
    AuthRequiredError,
    MessageFormatError,
)
from relay.infrastructure.abuse import AbuseGuard
from relay.infrastructure.persistence import StateStore
from relay.infrastructure.sessions import SessionRegistry
from relay.infrastructure.shutdown import ShutdownManager
from relay.infrastructure.websocket import ConnectionManager

CONNECTION_RATE_MESSAGE = (
    "Muitas tentativas de conexão. Tente novamente mais tarde."
)
MESSAGE_RATE_MESSAGE = "Muitas mensagens por minuto"
AUTH_REQUIRED_MESSAGE = "Autenticação necessária"
SESSION_REPLACED_MESSAGE = "Sua sessão foi substituída por uma nova conexão"
SHUTDOWN_MESSAGE = "Servidor sendo desligado"


class ManageConnectionUseCase:
    """
    Drives every connection through its states.

    Connection states:
        CONNECTING -> CONNECTED -> AUTHENTICATED -> CLOSED
        CONNECTING -> CLOSED (admission refused)

    Inbound frames are classified into an EventKind and dispatched from
    handle_frame. Every per-frame error ends as a notice to the sender or
    a silent drop.
    """

    def __init__(
        self,
        settings: Settings,
        guard: AbuseGuard,
        registry: SessionRegistry,
        store: StateStore,
        connection_manager: ConnectionManager,
        relay_use_case: RelayEventUseCase,
        shutdown_manager: ShutdownManager,
        reporter: Optional[SystemReporter] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.guard = guard
        self.registry = registry
        self.store = store
        self.connection_manager = connection_manager
        self.relay_use_case = relay_use_case
        self.shutdown_manager = shutdown_manager
        self.reporter = reporter
        self._clock = clock

        self.stats: Dict[str, int] = {
            "total_connections": 0,
            "total_messages": 0,
            "connections_refused": 0,
            "rate_limit_hits": 0,
            "invalid_messages": 0,
            "auth_failures": 0,
            "auth_required": 0,
            "sessions_replaced": 0,
            "heartbeat_timeouts": 0,
        }

    # ================================================================
    # Accept
    # ================================================================

    async def open_connection(self, websocket: Any, client_ip: str) -> Optional[Connection]:
        """
        Admit and accept a transport connection.

        Args:
            websocket: Transport handle (accept/send_json/close)
            client_ip: Remote IP address

        Returns:
            Connected Connection, or None if it was refused and closed
        """
        if self.shutdown_manager.is_shutting_down():
            self.stats["connections_refused"] += 1
            self._log_warning(
                f"Connection rejected: server shutting down [ip={client_ip}]"
            )
            await websocket.close(
                code=status.WS_1001_GOING_AWAY,
                reason="Server is shutting down",
            )
            return None

        connection = Connection(client_ip, websocket, last_seen=self._clock())

        if not self.guard.admit_connection(client_ip):
            self.stats["connections_refused"] += 1
            retry_after = self.guard.retry_after_seconds(ip=client_ip)

            self._log_warning(
                f"{Emoji.SECURITY.BLOCKED} Connection rejected [ip={client_ip}] "
                f"[conn={connection.id}] [retry_after={retry_after}s]"
            )

            await websocket.accept()
            await self.connection_manager.send_to(
                connection,
                ServerEvent.RATE_LIMIT_EXCEEDED.value,
                {"error": CONNECTION_RATE_MESSAGE, "retryAfter": retry_after},
            )
            connection.mark_closed()
            await self.connection_manager.close_connection(
                connection,
                code=status.WS_1008_POLICY_VIOLATION,
                reason="Rate limit exceeded",
            )
            return None

        await websocket.accept()
        connection.mark_connected()
        self.connection_manager.add(connection)
        self.stats["total_connections"] += 1

        if self.reporter:
            self.reporter.info(
                f"{Emoji.NETWORK.CONNECTED} Client connected [conn={connection.id}] "
                f"[ip={client_ip}] [total={self.connection_manager.count()}]",
                context="Lifecycle",
                verbose_level=2,
            )

        return connection

    # ================================================================
    # Dispatch
    # ================================================================

    async def handle_frame(self, connection: Connection, raw: str) -> None:
        """
        Handle one inbound text frame.

        Frames from one connection are handled one at a time, so relays
        leave in the order they arrived.
        """
        if not connection.is_open():
            return

        self.stats["total_messages"] += 1
        connection.messages_processed += 1
        connection.touch(self._clock())

        try:
            message = InboundMessage.parse_frame(raw, self.settings.max_message_size)
        except MessageFormatError as e:
            # Malformed frames still count against the message window
            if not self.guard.admit_message(connection.id):
                await self._reject_message_rate(connection)
                return

            self.stats["invalid_messages"] += 1
            self._log_debug(f"Invalid frame [conn={connection.id}]: {e.message}")
            await self.connection_manager.send_to(
                connection,
                ServerEvent.ERROR.value,
                {"code": e.code, "message": e.message},
            )
            return

        if not self.guard.admit_message(connection.id, message.event):
            await self._reject_message_rate(connection)
            return

        kind = message.kind

        if kind == EventKind.AUTHENTICATE:
            await self._authenticate(connection, message)

        elif kind == EventKind.PING:
            await self.connection_manager.send_to(
                connection, ServerEvent.PONG.value, {"timestamp": utc_timestamp()}
            )

        elif kind == EventKind.HEARTBEAT:
            await self.connection_manager.send_to(
                connection,
                ServerEvent.HEARTBEAT_ACK.value,
                {"timestamp": utc_timestamp()},
            )

        elif kind == EventKind.SHUTDOWN:
            await self._remote_shutdown(connection)

        elif kind == EventKind.RELAY:
            await self._relay(connection, message)

        else:
            self._log_debug(
                f"Dropping unknown event '{message.event}' [conn={connection.id}]"
            )

    async def _reject_message_rate(self, connection: Connection) -> None:
        self.stats["rate_limit_hits"] += 1
        connection.rate_limit_hits += 1
        await self.connection_manager.send_to(
            connection,
            ServerEvent.RATE_LIMIT_EXCEEDED.value,
            {
                "error": MESSAGE_RATE_MESSAGE,
                "retryAfter": self.guard.retry_after_seconds(connection_id=connection.id),
            },
        )

    async def _authenticate(self, connection: Connection, message: InboundMessage) -> None:
        payload = AuthenticatePayload.from_message(message)

        try:
            result = self.registry.authenticate(
                connection.id,
                payload.user_id,
                payload.user_name,
                payload.display_name,
                client_ip=connection.client_ip,
            )
        except AuthenticationError as e:
            self.stats["auth_failures"] += 1
            self._log_warning(
                f"{Emoji.SECURITY.AUTH_FAILED} Authentication failed "
                f"[conn={connection.id}] [user={e.user_name}]: {e.message}"
            )
            await self.connection_manager.send_to(
                connection,
                ServerEvent.AUTHENTICATION_ERROR.value,
                {"message": e.message},
            )
            return

        session = result.session
        connection.mark_authenticated(session.user_id)

        if result.replaced:
            await self._evict(result.replaced_connection_id)

        await self.connection_manager.send_to(
            connection,
            ServerEvent.AUTHENTICATED.value,
            {
                "success": True,
                "userId": session.user_id,
                "userName": session.user_name,
                "displayName": session.display_name,
                "connectedUsers": self.registry.live_count(),
            },
        )

        await self.connection_manager.broadcast(
            ServerEvent.USER_CONNECTED.value,
            session.identity(),
            exclude=connection.id,
            authenticated_only=True,
        )

        self.store.request_snapshot(self.registry.all())

    async def _evict(self, connection_id: str) -> None:
        """Notify and close a connection whose session was taken over."""
        old = self.connection_manager.get(connection_id)
        if old is None:
            return

        self.stats["sessions_replaced"] += 1
        await self.connection_manager.send_to(
            old,
            ServerEvent.SESSION_REPLACED.value,
            {"message": SESSION_REPLACED_MESSAGE},
        )
        old.mark_closed()
        await self.connection_manager.close_connection(
            old, code=status.WS_1000_NORMAL_CLOSURE, reason="Session replaced"
        )

    async def _relay(self, connection: Connection, message: InboundMessage) -> None:
        try:
            await self.relay_use_case.execute(connection.id, message.event, message.data)
        except AuthRequiredError as e:
            self.stats["auth_required"] += 1
            self._log_debug(f"{e} [conn={connection.id}]")
            await self.connection_manager.send_to(
                connection,
                ServerEvent.AUTH_REQUIRED.value,
                {"message": AUTH_REQUIRED_MESSAGE},
            )

    async def _remote_shutdown(self, connection: Connection) -> None:
        if not connection.is_authenticated():
            self.stats["auth_required"] += 1
            await self.connection_manager.send_to(
                connection,
                ServerEvent.AUTH_REQUIRED.value,
                {"message": AUTH_REQUIRED_MESSAGE},
            )
            return

        if not self.settings.allow_remote_shutdown:
            await self.connection_manager.send_to(
                connection,
                ServerEvent.ERROR.value,
                {"code": "FORBIDDEN", "message": "Remote shutdown is disabled"},
            )
            return

        self._log_warning(
            f"{Emoji.SYSTEM.SHUTDOWN} Remote shutdown requested by "
            f"{connection.user_id} [conn={connection.id}]"
        )
        self.shutdown_manager.request_shutdown("remote-request")

    # ================================================================
    # Close
    # ================================================================

    async def close_connection(self, connection: Connection) -> Optional[Session]:
        """
        Clean up after a connection ended.

        Safe to call more than once for the same connection.

        Returns:
            The session that was unbound, if any
        """
        connection.mark_closed()
        self.guard.forget_connection(connection.id)
        removed = self.connection_manager.remove(connection.id)

        session = self.registry.unbind(connection.id)

        if removed is not None and self.reporter:
            self.reporter.info(
                f"{Emoji.NETWORK.DISCONNECT} Client disconnected [conn={connection.id}] "
                f"[user={session.user_name if session else None}] "
                f"[messages={connection.messages_processed}]",
                context="Lifecycle",
                verbose_level=2,
            )

        # During shutdown the last snapshot must keep every session
        if session is None or self.shutdown_manager.is_shutting_down():
            return session

        await self.connection_manager.broadcast(
            ServerEvent.USER_DISCONNECTED.value,
            session.identity(),
            authenticated_only=True,
        )
        self.store.request_snapshot(self.registry.all())
        return session

    # ================================================================
    # Housekeeping
    # ================================================================

    async def sweep_heartbeats(self) -> List[str]:
        """
        Force-close connections that have gone silent.

        Also prunes restored sessions that nobody reclaimed.

        Returns:
            IDs of the closed connections
        """
        now = self._clock()
        timeout = self.settings.heartbeat_timeout

        stale = [
            connection
            for connection in self.connection_manager.all()
            if connection.is_stale(now, timeout)
        ]

        for connection in stale:
            self.stats["heartbeat_timeouts"] += 1
            if self.reporter:
                self.reporter.info(
                    f"{Emoji.NETWORK.TIMEOUT} Heartbeat timeout [conn={connection.id}] "
                    f"[user={connection.user_id}] "
                    f"[silent={now - connection.last_seen:.0f}s]",
                    context="Lifecycle",
                )
            await self.connection_manager.close_connection(
                connection,
                code=status.WS_1001_GOING_AWAY,
                reason="Heartbeat timeout",
            )
            await self.close_connection(connection)

        pruned = self.registry.prune_restored(self.connection_manager.ids(), timeout)
        if pruned:
            self.store.request_snapshot(self.registry.all())

        return [connection.id for connection in stale]

    async def shutdown(self, reason: str) -> None:
        """
        Shutdown sequence: warn clients, snapshot, close sockets.

        Registered as a ShutdownManager callback.
        """
        sent = await self.connection_manager.broadcast(
            ServerEvent.SERVER_SHUTDOWN.value,
            {
                "message": SHUTDOWN_MESSAGE,
                "reason": reason,
                "timestamp": utc_timestamp(),
            },
        )
        if self.reporter:
            self.reporter.info(
                f"{Emoji.NETWORK.BROADCAST} Shutdown notice sent to {sent} clients",
                context="Lifecycle",
            )

        await self.store.flush()
        self.store.snapshot(self.registry.all())

        if self.shutdown_manager.grace_period > 0:
            await asyncio.sleep(self.shutdown_manager.grace_period)

        for connection in self.connection_manager.all():
            await self.connection_manager.close_connection(
                connection,
                code=status.WS_1001_GOING_AWAY,
                reason="Server shutdown",
            )
            await self.close_connection(connection)

    def get_stats(self) -> Dict[str, int]:
        return {**self.stats, "live_connections": self.connection_manager.count()}

    def _log_warning(self, msg: str) -> None:
        if self.reporter:
            self.reporter.warning(msg, context="Lifecycle")

    def _log_debug(self, msg: str) -> None:
        if self.reporter:
            self.reporter.debug(msg, context="Lifecycle")
