"""
Relay WebSocket client with automatic reconnection.

Connects desktop clients to the relay server, authenticates, keeps the
connection alive with pings and reconnects with exponential backoff after
an unexpected disconnect. Authentication is replayed after every
successful reconnect.
"""

import asyncio
import inspect
import json
import logging
import ssl
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse, urlunparse

import httpx
import websockets
from websockets.exceptions import ConnectionClosed

from shared.resilience.exceptions import ReconnectExhausted
from shared.resilience.reconnect import (
    ReconnectPolicy,
    ReconnectState,
    ReconnectStateMachine,
)

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]
Handler = Callable[[Dict[str, Any]], Any]

# Events the client may send before the server confirms authentication
PRE_AUTH_EVENTS = frozenset({"authenticate", "ping", "heartbeat"})


class RelayClient:
    """
    WebSocket client for the relay server.

    Attributes:
        host: Server host used for discovery
        port: Plaintext port
        tls_port: TLS port probed first during discovery
        policy: Reconnect/heartbeat policy
        server_url: WebSocket URL of the current server (ws:// or wss://)

    Examples:
        client = RelayClient("localhost")
        client.on("schedule:update", handle_update)

        if await client.connect():
            await client.authenticate("u1", "alice", "Alice")
            await client.send_schedule_update("update", {"id": 42})

        await client.disconnect()
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 3000,
        tls_port: int = 3443,
        policy: Optional[ReconnectPolicy] = None,
        connector: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        http_timeout: float = 3.0,
        verify_tls: bool = True,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize relay client.

        Args:
            host: Server host used when no explicit address is given
            port: Plaintext HTTP/WebSocket port
            tls_port: TLS port probed first
            policy: Reconnect policy (backoff, attempts, timeouts)
            connector: Coroutine factory opening a WebSocket for a URL
            sleep: Awaitable used to wait between reconnect attempts
            http_timeout: Timeout for the discovery status probe
            verify_tls: Verify server certificates (disable for self-signed)
            http_transport: Optional httpx transport for the status probe
        """
        self.host = host
        self.port = port
        self.tls_port = tls_port
        self.policy = policy or ReconnectPolicy()
        self.http_timeout = http_timeout
        self.verify_tls = verify_tls
        self.server_url: Optional[str] = None

        self._connector = connector or self._default_connector
        self._sleep = sleep
        self._http_transport = http_transport

        self._machine = ReconnectStateMachine(self.policy)
        self._ws: Optional[Any] = None
        self._handlers: Dict[str, List[Handler]] = {}

        self._identity: Optional[Dict[str, str]] = None
        self._authenticated = False
        self._connected_users = 0
        self._user_closed = False
        self._last_error = ""
        self._exhausted_error: Optional[ReconnectExhausted] = None
        self._closed_event = asyncio.Event()

        self._receive_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None

    # ================================================================
    # Properties
    # ================================================================

    @property
    def state(self) -> ReconnectState:
        return self._machine.state

    @property
    def is_connected(self) -> bool:
        return self._machine.is_connected and self._ws is not None

    @property
    def is_authenticated(self) -> bool:
        return self.is_connected and self._authenticated

    # ================================================================
    # Connection
    # ================================================================

    async def discover_server(self) -> str:
        """
        Find a reachable server base URL.

        Probes ``GET https://<host>:<tls_port>/status`` first and falls back
        to ``http://<host>:<port>``.

        Returns:
            HTTP(S) base URL of the server
        """
        candidates = [
            f"https://{self.host}:{self.tls_port}",
            f"http://{self.host}:{self.port}",
        ]

        async with httpx.AsyncClient(
            timeout=self.http_timeout,
            verify=self.verify_tls,
            transport=self._http_transport,
        ) as client:
            for base_url in candidates:
                try:
                    response = await client.get(f"{base_url}/status")
                    if response.status_code == 200:
                        logger.info(f"Relay server found at {base_url}")
                        return base_url

                    logger.debug(
                        f"Status probe {base_url} returned HTTP {response.status_code}"
                    )

                except (httpx.HTTPError, httpx.InvalidURL) as e:
                    logger.debug(f"Status probe {base_url} failed: {e}")

        logger.warning(
            f"No relay server answered status probes, using {candidates[-1]}"
        )
        return candidates[-1]

    async def connect(self, server_address: Optional[str] = None) -> bool:
        """
        Connect to the relay server.

        Args:
            server_address: http(s):// or ws(s):// address. When omitted the
                server is discovered (TLS first, then plaintext).

        Returns:
            True if connected, False on failure (never raises)
        """
        if self._machine.state not in (ReconnectState.IDLE, ReconnectState.EXHAUSTED):
            logger.warning(f"connect() ignored in state {self.state.value}")
            return self.is_connected

        self._user_closed = False
        self._exhausted_error = None
        self._closed_event.clear()
        self._machine.begin_connect()

        try:
            address = server_address or await self.discover_server()
            self.server_url = self.to_ws_url(address)
        except (httpx.InvalidURL, ValueError) as e:
            self._last_error = f"{type(e).__name__}: {e}"
            logger.warning(f"Invalid server address: {self._last_error}")
            self._machine.on_connect_failed()
            return False

        if not await self._open():
            self._machine.on_connect_failed()
            return False

        self._machine.on_connected()
        self._start_background_tasks()
        logger.info(f"Connected to relay server at {self.server_url}")

        await self._emit_local("connect", {"url": self.server_url})

        if self._identity:
            await self._send_authenticate()

        return True

    async def disconnect(self) -> None:
        """Close the connection. No reconnect is attempted afterwards."""
        self._user_closed = True
        self._authenticated = False
        self._machine.on_user_disconnect()

        self._stop_heartbeat()

        current = asyncio.current_task()
        if self._receive_task and self._receive_task is not current:
            self._receive_task.cancel()
        self._receive_task = None

        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Error closing websocket: {e}")

        logger.info("Disconnected from relay server")
        self._closed_event.set()

    async def wait_closed(self) -> None:
        """
        Wait until the client stops for good.

        Raises:
            ReconnectExhausted: If the client gave up reconnecting
        """
        await self._closed_event.wait()
        if self._exhausted_error is not None:
            raise self._exhausted_error

    async def _open(self) -> bool:
        """Open the transport with the connect timeout."""
        try:
            self._ws = await asyncio.wait_for(
                self._connector(self.server_url),
                timeout=self.policy.connect_timeout,
            )
            return True

        except asyncio.TimeoutError:
            self._last_error = f"timeout after {self.policy.connect_timeout}s"
            logger.warning(f"Connect to {self.server_url} timed out")

        except Exception as e:
            self._last_error = f"{type(e).__name__}: {e}"
            logger.warning(f"Connect to {self.server_url} failed: {self._last_error}")

        self._ws = None
        return False

    async def _default_connector(self, url: str) -> Any:
        kwargs: Dict[str, Any] = {}
        if url.startswith("wss://") and not self.verify_tls:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            kwargs["ssl"] = context

        return await websockets.connect(url, open_timeout=None, **kwargs)

    @staticmethod
    def to_ws_url(address: str) -> str:
        """
        Convert a server address to its WebSocket endpoint URL.

        Examples:
            http://localhost:3000   -> ws://localhost:3000/ws
            https://10.0.0.2:3443   -> wss://10.0.0.2:3443/ws
            ws://relay:3000/custom  -> ws://relay:3000/custom
        """
        parsed = urlparse(address)
        scheme = {"http": "ws", "https": "wss"}.get(parsed.scheme, parsed.scheme)
        path = parsed.path if parsed.path not in ("", "/") else "/ws"
        return urlunparse((scheme, parsed.netloc, path, "", parsed.query, ""))

    # ================================================================
    # Background tasks
    # ================================================================

    def _start_background_tasks(self) -> None:
        self._receive_task = asyncio.create_task(self._receive_loop(self._ws))
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
        self._heartbeat_task = None

    async def _heartbeat_loop(self) -> None:
        """Send ping at the heartbeat interval while connected."""
        while True:
            await asyncio.sleep(self.policy.heartbeat_interval)
            if not self.is_connected:
                return
            await self._send_raw("ping", {})

    async def _receive_loop(self, ws: Any) -> None:
        """Read frames until the transport closes."""
        reason = "closed"
        try:
            while True:
                raw = await ws.recv()
                await self._handle_frame(raw)

        except ConnectionClosed as e:
            reason = f"connection closed ({e})"

        except OSError as e:
            reason = f"transport error ({e})"

        except Exception as e:
            logger.error(f"Receive loop failed: {type(e).__name__}: {e}", exc_info=True)
            reason = f"receive error ({type(e).__name__})"
            try:
                await ws.close()
            except Exception as close_error:
                logger.debug(f"Error closing websocket: {close_error}")

        if ws is not self._ws:
            return

        if self._user_closed:
            await self.disconnect()
            return

        await self._on_connection_lost(reason)

    async def _on_connection_lost(self, reason: str) -> None:
        """Run the reconnect cycle after an unexpected disconnect."""
        logger.warning(f"Connection lost: {reason}")

        self._authenticated = False
        self._stop_heartbeat()
        self._ws = None
        self._machine.on_connection_lost()
        await self._emit_local("disconnect", {"reason": reason})

        while True:
            delay = self._machine.next_delay()

            if delay is None:
                self._exhausted_error = ReconnectExhausted(
                    self.policy.max_attempts, self._last_error
                )
                logger.error(str(self._exhausted_error))
                await self._emit_local(
                    "reconnect:exhausted",
                    {
                        "attempts": self.policy.max_attempts,
                        "lastError": self._last_error,
                    },
                )
                self._closed_event.set()
                return

            logger.info(
                f"Reconnect attempt {self._machine.attempt}/"
                f"{self.policy.max_attempts} in {delay:.1f}s"
            )
            await self._sleep(delay)

            if self._user_closed:
                return

            if await self._open():
                if self._user_closed:
                    ws, self._ws = self._ws, None
                    await ws.close()
                    return

                self._machine.on_connected()
                self._start_background_tasks()
                logger.info(f"Reconnected to {self.server_url}")
                await self._emit_local("reconnect", {"url": self.server_url})

                if self._identity:
                    await self._send_authenticate()
                return

    # ================================================================
    # Inbound
    # ================================================================

    async def _handle_frame(self, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-JSON frame: {str(raw)[:100]}")
            return

        if not isinstance(message, dict) or "event" not in message:
            logger.warning(f"Ignoring frame without event: {str(raw)[:100]}")
            return

        event = message["event"]
        data = message.get("data")
        if not isinstance(data, dict):
            data = {}

        if event == "authenticated":
            self._authenticated = bool(data.get("success", True))
            self._connected_users = data.get("connectedUsers", self._connected_users)
            logger.info(f"Authenticated as {data.get('displayName')}")

        elif event in ("authentication:error", "auth:required"):
            self._authenticated = False
            logger.warning(f"{event}: {data.get('message')}")

        elif event == "session-replaced":
            # Another login took over this user; reconnecting would evict it back
            logger.warning("Session replaced by another connection")
            self._user_closed = True
            self._authenticated = False

        elif event == "server-shutdown":
            logger.warning(f"Server shutting down: {data.get('message')}")

        await self._emit_local(event, data)

    def on(self, event: str, handler: Handler) -> None:
        """Register handler for a server or local event."""
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Optional[Handler] = None) -> None:
        """Remove one handler, or every handler for event when omitted."""
        if handler is None:
            self._handlers.pop(event, None)
            return

        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def _emit_local(self, event: str, data: Dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Handler for '{event}' failed: {e}", exc_info=True)

    # ================================================================
    # Outbound
    # ================================================================

    async def authenticate(
        self, user_id: str, user_name: str, display_name: Optional[str] = None
    ) -> bool:
        """
        Store identity and authenticate.

        The identity is kept and replayed after every reconnect.

        Returns:
            True if the authenticate frame was sent
        """
        self._identity = {"userId": user_id, "userName": user_name}
        if display_name:
            self._identity["displayName"] = display_name

        if not self.is_connected:
            logger.warning("Not connected, authentication deferred until connect")
            return False

        return await self._send_authenticate()

    async def _send_authenticate(self) -> bool:
        self._authenticated = False
        return await self._send_raw("authenticate", dict(self._identity or {}))

    async def send(self, event: str, data: Optional[Dict[str, Any]] = None) -> bool:
        """
        Send an application event.

        Returns:
            False if disconnected or not yet authenticated
        """
        if not self.is_connected:
            logger.warning(f"Not connected, dropping '{event}'")
            return False

        if event not in PRE_AUTH_EVENTS and not self._authenticated:
            logger.warning(f"Not authenticated, dropping '{event}'")
            return False

        return await self._send_raw(event, data or {})

    async def _send_raw(self, event: str, data: Dict[str, Any]) -> bool:
        ws = self._ws
        if ws is None:
            return False

        try:
            await ws.send(json.dumps({"event": event, "data": data}))
            return True
        except (ConnectionClosed, OSError) as e:
            logger.warning(f"Send '{event}' failed: {e}")
            return False

    # Schedule events
    async def send_schedule_update(self, action: str, schedule: Dict[str, Any]) -> bool:
        event = "schedule:create" if action == "create" else "schedule:update"
        return await self.send(event, {"action": action, "schedule": schedule})

    async def share_schedule(
        self, to_user_id: str, schedule: Dict[str, Any], message: str = ""
    ) -> bool:
        return await self.send(
            "schedule:share",
            {"toUserId": to_user_id, "schedule": schedule, "message": message},
        )

    # Notifications
    async def send_notification(
        self, target_user_id: str, notification: Dict[str, Any]
    ) -> bool:
        return await self.send(
            "notification:send",
            {"targetUserId": target_user_id, "notification": notification},
        )

    # Status events
    async def send_status_update(
        self, schedule_id: Any, new_status: str, reason: str = ""
    ) -> bool:
        return await self.send(
            "status:update",
            {"scheduleId": schedule_id, "status": new_status, "reason": reason},
        )

    async def send_status_complete(self, schedule_id: Any, notes: str = "") -> bool:
        return await self.send(
            "status:complete", {"scheduleId": schedule_id, "notes": notes}
        )

    async def send_status_cancel(self, schedule_id: Any, reason: str = "") -> bool:
        return await self.send(
            "status:cancel", {"scheduleId": schedule_id, "reason": reason}
        )

    # Drivers
    async def send_drivers_sync(self, drivers: Any) -> bool:
        return await self.send("drivers:sync", {"drivers": drivers})

    async def send_drivers_add(self, city: str, driver: Any) -> bool:
        return await self.send("drivers:add", {"city": city, "driver": driver})

    async def send_drivers_remove(self, city: str, driver: Any) -> bool:
        return await self.send("drivers:remove", {"city": city, "driver": driver})

    def get_connection_status(self) -> Dict[str, Any]:
        """Get connection status snapshot."""
        identity = self._identity or {}
        return {
            "is_connected": self.is_connected,
            "is_authenticated": self.is_authenticated,
            "state": self.state.value,
            "server_url": self.server_url,
            "user_id": identity.get("userId"),
            "user_name": identity.get("userName"),
            "display_name": identity.get("displayName"),
            "reconnect_attempts": self._machine.attempt,
            "max_reconnect_attempts": self.policy.max_attempts,
            "connected_users": self._connected_users,
        }

    # Context manager support
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
