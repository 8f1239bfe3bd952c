"""
Test fixtures and configuration for Relay.
"""

import json
import logging
from typing import Any, List, Optional

import pytest

from shared.reporter import SystemReporter

from relay.config.settings import Settings
from relay.di import Container
from relay.infrastructure.directory import DirectoryUser, UserDirectory


class FakeClock:
    """Manually advanced time source (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWebSocket:
    """Server-side stand-in for a Starlette WebSocket."""

    def __init__(self, fail_send: bool = False):
        self.fail_send = fail_send
        self.accepted = False
        self.closed = False
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.sent: List[dict] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: Any) -> None:
        if self.fail_send or self.closed:
            raise RuntimeError("Cannot call 'send' once a close message has been sent.")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code
        self.close_reason = reason

    def events(self) -> List[str]:
        return [frame["event"] for frame in self.sent]

    def frames(self, event: str) -> List[Any]:
        return [frame["data"] for frame in self.sent if frame["event"] == event]

    def last(self, event: str) -> Any:
        frames = self.frames(event)
        return frames[-1] if frames else None


DIRECTORY_USERS = [
    DirectoryUser(user_name="admin", display_name="Administrador", user_id="1"),
    DirectoryUser(user_name="operador", display_name="Operador", user_id="2"),
    DirectoryUser(user_name="motorista", display_name="Motorista", user_id="3"),
    DirectoryUser(user_name="nathan", display_name="Nathan", user_id="u1"),
]


@pytest.fixture
def clock() -> FakeClock:
    """Provide a fake clock starting at a fixed epoch."""
    return FakeClock()


@pytest.fixture
def reporter() -> SystemReporter:
    """Provide a quiet stdout-only reporter."""
    return SystemReporter(name="relay-test", level=logging.WARNING, verbose=0)


@pytest.fixture
def directory() -> UserDirectory:
    """Provide a directory with the standard test users."""
    return UserDirectory(DIRECTORY_USERS)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Provide settings isolated in a temporary data directory."""
    return Settings(
        ENV="test",
        data_dir=str(tmp_path / "data"),
        users_file=None,
        restore_on_startup=False,
        shutdown_grace_period=0,
        log_level="warning",
        verbose=0,
    )


@pytest.fixture
def container(settings, reporter, clock, directory) -> Container:
    """Provide a container with fake clock and the test directory."""
    container = Container(settings, reporter=reporter, clock=clock)
    container._user_directory = directory
    return container


@pytest.fixture
def lifecycle(container):
    """Provide the connection lifecycle use case."""
    return container.get_manage_connection_use_case()


@pytest.fixture
def websocket_factory():
    """Create FakeWebSocket instances."""

    def factory(**kwargs) -> FakeWebSocket:
        return FakeWebSocket(**kwargs)

    return factory


@pytest.fixture
def join(lifecycle, websocket_factory):
    """Open a connection and authenticate it as a directory user."""

    async def factory(user_id: str, user_name: str, client_ip: str = "10.0.0.5"):
        websocket = websocket_factory()
        connection = await lifecycle.open_connection(websocket, client_ip)
        await lifecycle.handle_frame(
            connection,
            json.dumps(
                {"event": "authenticate", "data": {"userId": user_id, "userName": user_name}}
            ),
        )
        return connection, websocket

    return factory


@pytest.fixture
async def store_flush(container):
    """Wait for background snapshot writes before the test loop closes."""
    yield
    await container.state_store.flush()
