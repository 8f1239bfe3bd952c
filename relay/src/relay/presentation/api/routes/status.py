"""
Status, info and statistics routes.

Read-only observability endpoints. Clients also probe /status to pick
between the TLS and plaintext ports.
"""

import os
import platform

from fastapi import APIRouter, Depends, Request

from relay import __version__
from relay.di import Container
from relay.domain.events import utc_timestamp
from relay.presentation.api.dependencies import get_container
from relay.presentation.schemas import (
    InfoResponse,
    ServerStats,
    StatsResponse,
    StatusResponse,
)

router = APIRouter(tags=["status"])

SERVICE_BANNER = "Servidor WebSocket UBY Agendamentos Unificado"

FEATURES = [
    "rate-limiting",
    "session-replacement",
    "state-persistence",
    "heartbeat-monitor",
]


def _port(request: Request, container: Container) -> int:
    return request.url.port or container.settings.port


def _uptime(container: Container) -> int:
    return int(container.get_uptime_seconds())


@router.get("/status", response_model=StatusResponse, response_model_by_alias=True)
def get_status(request: Request, container: Container = Depends(get_container)):
    """
    Get service status.

    Returns:
        Status with live user count and uptime
    """
    return StatusResponse(
        port=_port(request, container),
        connected_users=container.session_registry.live_count(),
        timestamp=utc_timestamp(),
        uptime=_uptime(container),
    )


@router.get("/info", response_model=InfoResponse, response_model_by_alias=True)
def get_info(request: Request, container: Container = Depends(get_container)):
    """Get version and feature flags."""
    features = list(FEATURES)
    if container.settings.tls_enabled:
        features.append("tls")
    if container.settings.rate_limit_exempt_heartbeat:
        features.append("heartbeat-rate-exempt")
    if container.settings.directory_reload_interval > 0:
        features.append("directory-sync")

    return InfoResponse(
        message=SERVICE_BANNER,
        version=__version__,
        port=_port(request, container),
        connected_users=container.session_registry.live_count(),
        features=features,
    )


@router.get("/api/stats", response_model=StatsResponse, response_model_by_alias=True)
def get_stats(container: Container = Depends(get_container)):
    """
    Get Relay service statistics.

    Returns operational metrics including:
    - Connection and message counters
    - Abuse guard counters
    - Session registry size
    - User directory totals
    - Snapshot writer counters
    - Shutdown state
    """
    lifecycle = container.get_manage_connection_use_case()
    registry = container.session_registry
    store = container.state_store

    return StatsResponse(
        server=ServerStats(
            uptime=_uptime(container),
            connected_users=registry.live_count(),
            live_connections=container.connection_manager.count(),
            total_connections=lifecycle.stats["total_connections"],
            total_messages=lifecycle.stats["total_messages"],
            start_time=container.stats["start_time"].isoformat() + "Z",
        ),
        lifecycle=lifecycle.get_stats(),
        guard=container.abuse_guard.get_stats(),
        registry={
            "sessions": registry.count(),
            "live_sessions": registry.live_count(),
            "restored_at_startup": container.stats["sessions_restored"],
        },
        uby=container.get_sync_directory_use_case().get_stats(),
        persistence={
            **store.stats,
            "path": str(store.path),
            "last_saved_at": store.last_saved_at,
        },
        shutdown=container.shutdown_manager.get_shutdown_info(),
        system={
            "platform": platform.system().lower(),
            "python_version": platform.python_version(),
            "pid": os.getpid(),
        },
    )
