"""
WebSocket infrastructure.
"""

from relay.infrastructure.websocket.connection_manager import ConnectionManager

__all__ = ["ConnectionManager"]
