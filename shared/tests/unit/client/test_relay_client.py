"""
Unit tests for RelayClient.

Drives the client against in-memory websockets: connect, authenticate
replay, reconnect backoff, exhaustion and server discovery.

Usage:
    pytest shared/tests/unit/client/test_relay_client.py
"""

import asyncio
import json
from typing import Any, Callable, List, Optional

import httpx
import pytest
from websockets.exceptions import ConnectionClosedError

from shared.relay_client import RelayClient
from shared.resilience import ReconnectExhausted, ReconnectPolicy, ReconnectState


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self.sent: List[dict] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def recv(self) -> str:
        item = await self._inbox.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, raw: str) -> None:
        if self.closed:
            raise ConnectionClosedError(None, None)
        self.sent.append(json.loads(raw))

    async def close(self) -> None:
        self.closed = True

    def push(self, event: str, data: Any = None) -> None:
        self._inbox.put_nowait(json.dumps({"event": event, "data": data or {}}))

    def push_raw(self, frame: Any) -> None:
        self._inbox.put_nowait(json.dumps(frame))

    def drop(self, error: Optional[Exception] = None) -> None:
        self._inbox.put_nowait(error or ConnectionClosedError(None, None))

    def events(self) -> List[str]:
        return [frame["event"] for frame in self.sent]


class FakeConnector:
    """Returns queued outcomes: a FakeWebSocket or an exception to raise."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.urls: List[str] = []

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if not self.outcomes:
            raise ConnectionRefusedError("no server")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


def make_client(connector: FakeConnector, sleep=None, **policy) -> RelayClient:
    return RelayClient(
        host="relay.local",
        policy=ReconnectPolicy(heartbeat_interval=3600, **policy),
        connector=connector,
        sleep=sleep or RecordingSleep(),
    )


class TestRelayClientConnect:
    """Connect, authenticate and send tests."""

    # ================================================================
    # URL tests
    # ================================================================

    @pytest.mark.parametrize(
        "address,expected",
        [
            ("http://localhost:3000", "ws://localhost:3000/ws"),
            ("https://10.0.0.2:3443", "wss://10.0.0.2:3443/ws"),
            ("ws://relay:3000/custom", "ws://relay:3000/custom"),
        ],
    )
    def test_to_ws_url(self, address, expected):
        """Test server addresses map to WebSocket endpoints."""
        assert RelayClient.to_ws_url(address) == expected

    # ================================================================
    # Connect tests
    # ================================================================

    async def test_connect_success(self):
        """Test connect opens the socket and emits a local connect event."""
        ws = FakeWebSocket()
        connector = FakeConnector(ws)
        client = make_client(connector)
        seen = []
        client.on("connect", seen.append)

        assert await client.connect("http://relay.local:3000") is True

        assert client.state == ReconnectState.CONNECTED
        assert client.is_connected is True
        assert connector.urls == ["ws://relay.local:3000/ws"]
        assert seen == [{"url": "ws://relay.local:3000/ws"}]

        await client.disconnect()

    async def test_connect_failure_returns_false(self):
        """Test a refused connect returns False without raising."""
        client = make_client(FakeConnector(ConnectionRefusedError("refused")))

        assert await client.connect("http://relay.local:3000") is False
        assert client.state == ReconnectState.IDLE
        assert client.is_connected is False

    async def test_connect_timeout_returns_false(self):
        """Test the connect timeout aborts a hanging handshake."""

        async def hanging_connector(url):
            await asyncio.sleep(10)

        client = RelayClient(
            policy=ReconnectPolicy(connect_timeout=0.05),
            connector=hanging_connector,
        )

        assert await client.connect("http://relay.local:3000") is False
        assert client.state == ReconnectState.IDLE

    # ================================================================
    # Authentication tests
    # ================================================================

    async def test_authenticate_deferred_until_connect(self):
        """Test identity set before connect is sent right after connect."""
        ws = FakeWebSocket()
        client = make_client(FakeConnector(ws))

        assert await client.authenticate("1", "admin", "Administrador") is False
        await client.connect("http://relay.local:3000")

        assert ws.sent == [
            {
                "event": "authenticate",
                "data": {
                    "userId": "1",
                    "userName": "admin",
                    "displayName": "Administrador",
                },
            }
        ]
        await client.disconnect()

    async def test_send_refused_until_authenticated(self):
        """Test application events wait for the authenticated ack."""
        ws = FakeWebSocket()
        client = make_client(FakeConnector(ws))
        await client.connect("http://relay.local:3000")
        await client.authenticate("1", "admin")

        assert await client.send("schedule:update", {"id": 1}) is False
        assert await client.send("ping") is True

        ws.push("authenticated", {"success": True, "connectedUsers": 2})
        await wait_until(lambda: client.is_authenticated)

        assert await client.send("schedule:update", {"id": 1}) is True
        assert ws.events() == ["authenticate", "ping", "schedule:update"]
        assert client.get_connection_status()["connected_users"] == 2

        await client.disconnect()

    async def test_send_when_disconnected(self):
        """Test send returns False without a connection."""
        client = make_client(FakeConnector())

        assert await client.send("ping") is False

    # ================================================================
    # Helper tests
    # ================================================================

    async def test_typed_helpers_build_payloads(self):
        """Test helper methods map to the relay event catalog."""
        ws = FakeWebSocket()
        client = make_client(FakeConnector(ws))
        await client.connect("http://relay.local:3000")
        await client.authenticate("1", "admin")
        ws.push("authenticated", {"success": True})
        await wait_until(lambda: client.is_authenticated)

        await client.send_schedule_update("create", {"id": 7})
        await client.send_schedule_update("update", {"id": 7})
        await client.send_notification("3", {"title": "Oi"})
        await client.send_status_cancel(7, reason="chuva")

        assert ws.sent[1:] == [
            {"event": "schedule:create", "data": {"action": "create", "schedule": {"id": 7}}},
            {"event": "schedule:update", "data": {"action": "update", "schedule": {"id": 7}}},
            {
                "event": "notification:send",
                "data": {"targetUserId": "3", "notification": {"title": "Oi"}},
            },
            {"event": "status:cancel", "data": {"scheduleId": 7, "reason": "chuva"}},
        ]
        await client.disconnect()

    async def test_handlers_sync_async_and_off(self):
        """Test sync and async handlers receive events and can be removed."""
        ws = FakeWebSocket()
        client = make_client(FakeConnector(ws))
        received = []

        async def async_handler(data):
            received.append(("async", data["n"]))

        def sync_handler(data):
            received.append(("sync", data["n"]))

        client.on("schedule:update", async_handler)
        client.on("schedule:update", sync_handler)
        await client.connect("http://relay.local:3000")

        ws.push("schedule:update", {"n": 1})
        await wait_until(lambda: len(received) == 2)

        client.off("schedule:update", sync_handler)
        ws.push("schedule:update", {"n": 2})
        await wait_until(lambda: len(received) == 3)

        assert received == [("async", 1), ("sync", 1), ("async", 2)]
        await client.disconnect()


class TestRelayClientReconnect:
    """Reconnect cycle tests."""

    async def test_reconnect_replays_authenticate(self):
        """Test a dropped connection reconnects with backoff and re-authenticates."""
        first, second = FakeWebSocket(), FakeWebSocket()
        connector = FakeConnector(first, ConnectionRefusedError("down"), second)
        sleep = RecordingSleep()
        client = make_client(connector, sleep=sleep)
        reconnects = []
        client.on("reconnect", reconnects.append)

        await client.connect("http://relay.local:3000")
        await client.authenticate("1", "admin")
        first.push("authenticated", {"success": True})
        await wait_until(lambda: client.is_authenticated)

        first.drop()
        await wait_until(lambda: client.is_connected and second.sent)

        assert sleep.delays == [2.0, 4.0]
        assert second.events() == ["authenticate"]
        assert client.is_authenticated is False
        assert len(reconnects) == 1

        # Application sends wait for the new ack
        assert await client.send("schedule:update", {}) is False

        await client.disconnect()

    async def test_exhaustion_surfaces_error(self):
        """Test giving up after max_attempts raises from wait_closed."""
        ws = FakeWebSocket()
        sleep = RecordingSleep()
        client = make_client(FakeConnector(ws), sleep=sleep, max_attempts=3)
        exhausted = []
        client.on("reconnect:exhausted", exhausted.append)

        await client.connect("http://relay.local:3000")
        ws.drop()

        with pytest.raises(ReconnectExhausted) as exc_info:
            await asyncio.wait_for(client.wait_closed(), timeout=1.0)

        assert sleep.delays == [2.0, 4.0, 8.0]
        assert exc_info.value.attempts == 3
        assert exhausted[0]["attempts"] == 3
        assert "ConnectionRefusedError" in exhausted[0]["lastError"]
        assert client.state == ReconnectState.EXHAUSTED

    async def test_session_replaced_does_not_reconnect(self):
        """Test an evicted client stops instead of reconnecting."""
        ws = FakeWebSocket()
        connector = FakeConnector(ws, FakeWebSocket())
        client = make_client(connector)
        replaced = []
        client.on("session-replaced", replaced.append)

        await client.connect("http://relay.local:3000")
        ws.push("session-replaced", {"message": "replaced"})
        ws.drop()

        await asyncio.wait_for(client.wait_closed(), timeout=1.0)

        assert len(replaced) == 1
        assert len(connector.urls) == 1
        assert client.state == ReconnectState.IDLE

    async def test_user_disconnect_does_not_reconnect(self):
        """Test disconnect() closes the socket without scheduling reconnects."""
        ws = FakeWebSocket()
        connector = FakeConnector(ws, FakeWebSocket())
        client = make_client(connector)

        async with client:
            await client.connect("http://relay.local:3000")

        assert ws.closed is True
        assert client.state == ReconnectState.IDLE
        assert len(connector.urls) == 1
        await asyncio.wait_for(client.wait_closed(), timeout=1.0)


class TestServerDiscovery:
    """Status probe tests."""

    async def test_prefers_tls(self):
        """Test the TLS port wins when it answers."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "running"})

        client = RelayClient(
            host="relay.local", http_transport=httpx.MockTransport(handler)
        )

        assert await client.discover_server() == "https://relay.local:3443"

    async def test_falls_back_to_plaintext(self):
        """Test plaintext is used when the TLS probe fails."""
        probed = []

        def handler(request: httpx.Request) -> httpx.Response:
            probed.append(str(request.url))
            if request.url.scheme == "https":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"status": "running"})

        client = RelayClient(
            host="relay.local", http_transport=httpx.MockTransport(handler)
        )

        assert await client.discover_server() == "http://relay.local:3000"
        assert probed == [
            "https://relay.local:3443/status",
            "http://relay.local:3000/status",
        ]

    async def test_connect_without_address_uses_discovery(self):
        """Test connect() probes and then opens the matching ws URL."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503 if request.url.scheme == "https" else 200)

        ws = FakeWebSocket()
        connector = FakeConnector(ws)
        client = RelayClient(
            host="relay.local",
            connector=connector,
            http_transport=httpx.MockTransport(handler),
            policy=ReconnectPolicy(heartbeat_interval=3600),
        )

        assert await client.connect() is True
        assert connector.urls == ["ws://relay.local:3000/ws"]
        await client.disconnect()

    async def test_connect_with_unparseable_address(self):
        """Test a malformed address returns False and leaves the client reusable."""
        ws = FakeWebSocket()
        connector = FakeConnector(ws)
        client = make_client(connector)

        assert await client.connect("http://[::1") is False
        assert client.state == ReconnectState.IDLE
        assert connector.urls == []

        assert await client.connect("http://relay.local:3000") is True
        await client.disconnect()

    async def test_discovery_with_invalid_host(self):
        """Test a host httpx cannot build a URL for does not escape connect()."""
        ws = FakeWebSocket()

        async def connector(url: str) -> FakeWebSocket:
            if "bad host" in url:
                raise ConnectionRefusedError("bad address")
            return ws

        client = RelayClient(
            host="bad host\x00",
            connector=connector,
            policy=ReconnectPolicy(heartbeat_interval=3600),
        )

        assert await client.connect() is False
        assert client.state == ReconnectState.IDLE

        assert await client.connect("http://relay.local:3000") is True
        assert client.state == ReconnectState.CONNECTED
        await client.disconnect()


class TestRelayClientInbound:
    """Inbound frame handling tests."""

    async def test_non_object_data_reaches_handlers_as_empty(self):
        """Test a scalar data field is delivered as an empty payload."""
        ws = FakeWebSocket()
        client = make_client(FakeConnector(ws))
        received = []
        client.on("server-shutdown", received.append)
        client.on("authenticated", received.append)
        await client.connect("http://relay.local:3000")
        await client.authenticate("1", "admin")

        ws.push_raw({"event": "server-shutdown", "data": "bye"})
        ws.push_raw({"event": "authenticated", "data": ["not", "an", "object"]})
        await wait_until(lambda: len(received) == 2)

        assert received == [{}, {}]
        assert client.state == ReconnectState.CONNECTED
        assert client.is_authenticated is True

        await client.disconnect()

    async def test_receive_failure_starts_reconnect(self):
        """Test an unexpected receive error closes the socket and reconnects."""
        first, second = FakeWebSocket(), FakeWebSocket()
        connector = FakeConnector(first, second)
        client = make_client(connector)
        disconnects = []
        client.on("disconnect", disconnects.append)

        await client.connect("http://relay.local:3000")
        await client.authenticate("1", "admin")
        first.drop(RuntimeError("decoder state corrupted"))

        await wait_until(lambda: client.is_connected and second.sent)

        assert first.closed is True
        assert disconnects == [{"reason": "receive error (RuntimeError)"}]
        assert second.events() == ["authenticate"]
        assert len(connector.urls) == 2

        await client.disconnect()
