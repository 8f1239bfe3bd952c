"""
Fixtures for Relay integration tests.
"""

import pytest
from fastapi.testclient import TestClient

from relay.main import RelayApp


@pytest.fixture
def client(settings, container):
    """Provide a TestClient running the relay lifespan."""
    relay_app = RelayApp(settings, container)
    with TestClient(relay_app.app) as client:
        yield client
