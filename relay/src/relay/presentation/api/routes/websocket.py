"""
WebSocket endpoint for the relay protocol.

Frames are JSON objects: {"event": "<name>", "data": {...}}.
"""

import time

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from relay.di import Container
from relay.presentation.api.dependencies import get_container

router = APIRouter(tags=["websocket"])

UNKNOWN_CLIENT_IP = "unknown"


def _client_ip(websocket: WebSocket) -> str:
    if websocket.client is None or not websocket.client.host:
        return UNKNOWN_CLIENT_IP
    return websocket.client.host


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    container: Container = Depends(get_container),
):
    """
    WebSocket endpoint for realtime sync.

    Admission (blocked IPs, connection rate, shutdown) is checked before
    the first frame is read. Cleanup always runs when the loop ends.

    Connection examples:
        - ws://localhost:3000/ws
        - wss://localhost:3443/ws
    """
    reporter = container.reporter
    lifecycle = container.get_manage_connection_use_case()
    client_ip = _client_ip(websocket)

    connection = await lifecycle.open_connection(websocket, client_ip)
    if connection is None:
        return

    connection_start_time = time.time()

    try:
        while connection.is_open():
            raw = await websocket.receive_text()
            await lifecycle.handle_frame(connection, raw)

    except WebSocketDisconnect:
        reporter.debug(
            f"Client disconnected [conn={connection.id}] [ip={client_ip}]",
            context="WebSocket",
        )

    except Exception as e:
        reporter.error(
            f"WebSocket connection error [conn={connection.id}]: "
            f"{type(e).__name__}: {str(e)}",
            context="WebSocket",
        )

    finally:
        await lifecycle.close_connection(connection)

        reporter.debug(
            f"Connection closed [conn={connection.id}] "
            f"[duration={time.time() - connection_start_time:.2f}s] "
            f"[messages={connection.messages_processed}] "
            f"[rate_limit_hits={connection.rate_limit_hits}]",
            context="WebSocket",
        )
