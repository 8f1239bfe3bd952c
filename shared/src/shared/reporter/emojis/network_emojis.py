"""
Network operations and communication emoji definitions.

Covers WebSocket connections, relays and heartbeats.

Usage:
    >>> from shared.reporter.emojis.network_emojis import NetworkEmoji
    >>> print(f"{NetworkEmoji.CONNECTED} WebSocket connected")
    🔗 WebSocket connected
"""

from shared.reporter.emojis.base_emojis import ComponentEmoji


class NetworkEmoji(ComponentEmoji):
    """
    Network operations and communication.

    Categories:
        - Connection: Connect, disconnect, heartbeat timeout
        - Data Flow: Relay and server broadcasts
    """

    # ============================================================
    # Connection States
    # ============================================================

    CONNECTED = "🔗"  # Connection established
    DISCONNECT = "🔌"  # Connection closed
    DISCONNECTED = "⚠️"  # Connection lost
    TIMEOUT = "⏱️"  # Heartbeat timeout

    # ============================================================
    # Data Flow
    # ============================================================

    BROADCAST = "📡"  # Fan-out to clients
