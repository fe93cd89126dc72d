"""
Connection bookkeeping: registry and liveness monitor.
"""

from ws_gateway.components.connection.registry import (
    Connection,
    ConnectionRegistry,
    LivenessState,
)
from ws_gateway.components.connection.heartbeat import LivenessMonitor

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "LivenessState",
    "LivenessMonitor",
]
