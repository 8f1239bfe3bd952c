"""
API routes for Relay.
"""

from relay.presentation.api.routes.status import router as status_router
from relay.presentation.api.routes.websocket import router as websocket_router

__all__ = ["status_router", "websocket_router"]
