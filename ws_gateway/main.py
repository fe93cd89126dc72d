"""
WebSocket Gateway wiring.

The gateway runs inside the REST application's process: REST handlers
dispatch events through the same in-memory registry the sockets are
registered in. This module provides the router and the lifespan hook the
application factory mounts.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import APIRouter, Request, WebSocket

from shared.config.logging import ws_gateway_logger as logger
from shared.config.settings import settings
from ws_gateway.components.endpoints.handlers import SyncEndpoint
from ws_gateway.connection_manager import ConnectionManager

router = APIRouter(tags=["realtime"])


@asynccontextmanager
async def gateway_lifespan(manager: ConnectionManager) -> AsyncIterator[ConnectionManager]:
    """
    Start the liveness monitor for the lifetime of the application and
    close every socket on shutdown.
    """
    logger.info(
        "Starting realtime gateway",
        heartbeat_interval=manager.heartbeat_interval,
        env=settings.environment,
    )
    await manager.start()
    try:
        yield manager
    finally:
        logger.info("Shutting down realtime gateway")
        await manager.stop()


# =============================================================================
# Health
# =============================================================================


@router.get("/ws/health")
async def ws_health_check(request: Request):
    """Gateway health with registry, liveness and dispatch statistics."""
    manager: ConnectionManager = request.app.state.manager
    try:
        stats = manager.get_stats()
    except Exception as e:
        logger.warning("Failed to get stats in health check", error=str(e))
        stats = {"error": "stats_unavailable"}
    return {
        "status": "healthy",
        "service": "ws-gateway",
        "environment": getattr(request.app.state, "settings", settings).environment,
        **stats,
    }


# =============================================================================
# WebSocket Endpoint
# =============================================================================


@router.websocket("/ws")
async def sync_websocket(websocket: WebSocket):
    """
    Realtime sync endpoint.

    Connects unauthenticated; the client sends ``authenticate{token}``.
    """
    manager: ConnectionManager = websocket.app.state.manager
    endpoint = SyncEndpoint(
        websocket, manager, app_settings=getattr(websocket.app.state, "settings", None)
    )
    await endpoint.run()
