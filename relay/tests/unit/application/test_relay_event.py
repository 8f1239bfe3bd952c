"""
Unit tests for RelayEventUseCase.

Usage:
    pytest relay/tests/unit/application/test_relay_event.py
"""

import pytest

from relay.domain.entities import Session
from relay.domain.events import RelayScope
from relay.domain.exceptions import AuthRequiredError

pytestmark = pytest.mark.usefixtures("store_flush")


@pytest.fixture
def relay(container):
    """Provide the relay use case."""
    return container.get_relay_use_case()


class TestBroadcastRelay:
    """Unit tests for ALL_EXCEPT_SENDER relays."""

    async def test_schedule_create_reaches_peers(self, relay, join):
        """Test schedule:create becomes schedule:broadcast for everyone else."""
        admin, admin_ws = await join("1", "admin")
        nathan, nathan_ws = await join("u1", "nathan")

        delivered = await relay.execute(nathan.id, "schedule:create", {"title": "X"})

        assert delivered == 1
        envelope = admin_ws.last("schedule:broadcast")
        assert envelope["payload"] == {"title": "X"}
        assert envelope["createdBy"] == {
            "userId": "u1",
            "displayName": "Nathan",
            "userName": "nathan",
        }
        assert envelope["timestamp"].endswith("Z")
        assert nathan_ws.frames("schedule:broadcast") == []

    async def test_identity_comes_from_registry(self, relay, join):
        """Test client-supplied identity fields stay inside the payload."""
        admin, admin_ws = await join("1", "admin")
        nathan, _ = await join("u1", "nathan")

        forged = {"updatedBy": {"userId": "1", "userName": "admin"}, "id": 9}
        await relay.execute(nathan.id, "schedule:update", forged)

        envelope = admin_ws.last("schedule:update")
        assert envelope["updatedBy"]["userId"] == "u1"
        assert envelope["payload"] == forged

    async def test_unauthenticated_peers_do_not_receive(
        self, relay, join, lifecycle, websocket_factory
    ):
        """Test anonymous connections are left out of relays."""
        nathan, _ = await join("u1", "nathan")
        anonymous_ws = websocket_factory()
        await lifecycle.open_connection(anonymous_ws, "10.0.0.9")

        delivered = await relay.execute(nathan.id, "drivers:sync", [1, 2])

        assert delivered == 0
        assert anonymous_ws.sent == []

    async def test_all_including_sender(self, relay, join):
        """Test the explicit scope also reaches the sender."""
        admin, admin_ws = await join("1", "admin")
        nathan, nathan_ws = await join("u1", "nathan")

        delivered = await relay.execute(
            nathan.id, "status:update", {"id": 3}, scope=RelayScope.ALL_INCLUDING_SENDER
        )

        assert delivered == 2
        assert nathan_ws.last("status:updated")["payload"] == {"id": 3}
        assert admin_ws.last("status:updated")["updatedBy"]["userId"] == "u1"


class TestTargetedRelay:
    """Unit tests for SINGLE_TARGET relays."""

    async def test_notification_reaches_target_only(self, relay, join):
        """Test notification:send is delivered to targetUserId only."""
        admin, admin_ws = await join("1", "admin")
        operador, operador_ws = await join("2", "operador")
        nathan, _ = await join("u1", "nathan")

        payload = {"targetUserId": "1", "message": "Olá"}
        delivered = await relay.execute(nathan.id, "notification:send", payload)

        assert delivered == 1
        envelope = admin_ws.last("notification:received")
        assert envelope["payload"] == payload
        assert envelope["from"]["userName"] == "nathan"
        assert operador_ws.frames("notification:received") == []

    async def test_numeric_target_is_matched(self, relay, join):
        """Test numeric target ids match string user ids."""
        admin, admin_ws = await join("1", "admin")
        nathan, _ = await join("u1", "nathan")

        await relay.execute(nathan.id, "notification:send", {"targetUserId": 1})

        assert len(admin_ws.frames("notification:received")) == 1

    @pytest.mark.parametrize("payload", [{"message": "sem alvo"}, {"targetUserId": "42"}, []])
    async def test_missing_or_offline_target(self, relay, join, payload):
        """Test notifications without a live target are dropped."""
        nathan, _ = await join("u1", "nathan")

        assert await relay.execute(nathan.id, "notification:send", payload) == 0


class TestRelayAuthorization:
    """Unit tests for sender authorization."""

    async def test_unauthenticated_sender(self, relay, lifecycle, websocket_factory):
        """Test relays from anonymous connections raise AuthRequiredError."""
        connection = await lifecycle.open_connection(websocket_factory(), "10.0.0.5")

        with pytest.raises(AuthRequiredError) as exc_info:
            await relay.execute(connection.id, "schedule:create", {})

        assert exc_info.value.event == "schedule:create"

    async def test_restored_session_cannot_relay(self, relay, container):
        """Test a restored session is not a live sender."""
        container.session_registry.load(
            [
                Session(
                    user_id="u1",
                    user_name="nathan",
                    display_name="Nathan",
                    connection_id="conn_old",
                )
            ]
        )

        with pytest.raises(AuthRequiredError):
            await relay.execute("conn_old", "schedule:create", {})
