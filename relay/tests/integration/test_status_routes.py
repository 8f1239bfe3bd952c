"""
Integration tests for /status, /info and /api/stats.

Usage:
    pytest relay/tests/integration/test_status_routes.py
"""

from fastapi.testclient import TestClient

from relay import __version__
from relay.domain.entities import Session
from relay.infrastructure.persistence import StateStore
from relay.main import RelayApp


class TestStatusRoutes:
    """Integration tests for the read-only HTTP endpoints."""

    def test_status(self, client):
        """Test /status reports a running server."""
        response = client.get("/status")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "running"
        assert body["port"] == 3000
        assert body["connectedUsers"] == 0
        assert isinstance(body["uptime"], int)
        assert body["timestamp"].endswith("Z")

    def test_status_counts_authenticated_users(self, client):
        """Test connected users counts live sessions only."""
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json(
                {"event": "authenticate", "data": {"userId": "1", "userName": "admin"}}
            )
            websocket.receive_json()

            assert client.get("/status").json()["connectedUsers"] == 1

    def test_info(self, client):
        """Test /info returns banner, version and features."""
        body = client.get("/info").json()

        assert body["message"] == "Servidor WebSocket UBY Agendamentos Unificado"
        assert body["version"] == __version__
        assert "rate-limiting" in body["features"]
        assert "tls" not in body["features"]
        assert "directory-sync" in body["features"]

    def test_stats(self, client):
        """Test /api/stats aggregates component counters."""
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"event": "ping"})
            websocket.receive_json()

        body = client.get("/api/stats").json()

        assert body["server"]["totalConnections"] == 1
        assert body["server"]["totalMessages"] == 1
        assert body["server"]["liveConnections"] == 0
        assert body["server"]["startTime"].endswith("Z")
        assert body["guard"]["connections_admitted"] == 1
        assert body["registry"]["sessions"] == 0
        assert body["uby"]["totalUsers"] == 4
        assert body["uby"]["activeUsers"] == 0
        assert body["shutdown"]["state"] == "running"
        assert "snapshots_written" in body["persistence"]
        assert body["system"]["pid"] > 0

    def test_restored_sessions_on_startup(self, settings, container):
        """Test a snapshot is loaded at startup without counting as live."""
        settings.restore_on_startup = True
        StateStore(settings.state_file).snapshot(
            [
                Session(
                    user_id="u1",
                    user_name="nathan",
                    display_name="Nathan",
                    connection_id="conn_before_restart",
                )
            ]
        )

        with TestClient(RelayApp(settings, container).app) as client:
            stats = client.get("/api/stats").json()
            status = client.get("/status").json()

        assert stats["registry"]["restored_at_startup"] == 1
        assert stats["registry"]["sessions"] == 1
        assert status["connectedUsers"] == 0
