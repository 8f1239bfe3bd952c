"""
Response schemas for Relay API.
"""

from relay.presentation.schemas.status import (
    InfoResponse,
    ServerStats,
    StatsResponse,
    StatusResponse,
)

__all__ = ["InfoResponse", "ServerStats", "StatsResponse", "StatusResponse"]
