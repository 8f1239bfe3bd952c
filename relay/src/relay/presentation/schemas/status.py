"""
Schemas for status, info and statistics endpoints.
"""

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class StatusResponse(BaseModel):
    """Response of GET /status, also used by clients to probe a port."""

    model_config = ConfigDict(populate_by_name=True)

    status: str = Field(default="running", description="Service status")
    port: int = Field(..., description="Port that answered")
    connected_users: int = Field(..., alias="connectedUsers")
    timestamp: str = Field(..., description="Server time (ISO 8601)")
    uptime: int = Field(..., description="Server uptime in seconds")


class InfoResponse(BaseModel):
    """Response of GET /info."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., description="Service banner")
    version: str = Field(..., description="Service version")
    port: int = Field(..., description="Port that answered")
    connected_users: int = Field(..., alias="connectedUsers")
    features: List[str] = Field(default_factory=list)


class ServerStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uptime: int
    connected_users: int = Field(..., alias="connectedUsers")
    live_connections: int = Field(..., alias="liveConnections")
    total_connections: int = Field(..., alias="totalConnections")
    total_messages: int = Field(..., alias="totalMessages")
    start_time: str = Field(..., alias="startTime")


class StatsResponse(BaseModel):
    """
    Response of GET /api/stats.

    Aggregates counters of every relay component.
    """

    server: ServerStats
    lifecycle: Dict[str, int]
    guard: Dict[str, Any]
    registry: Dict[str, int]
    uby: Dict[str, Any]
    persistence: Dict[str, Any]
    shutdown: Dict[str, Any]
    system: Dict[str, Any]
