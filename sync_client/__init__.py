"""
Realtime sync client: session manager, transport, REST client and the
store/sync bridge.
"""

from sync_client.api import ApiError, ApiService
from sync_client.bridge import StoreSyncBridge, SyncConflict, SyncOutcome
from sync_client.config import SessionSettings
from sync_client.policy import ReconnectPolicy
from sync_client.queue import BoundedMessageQueue
from sync_client.session import (
    STATUS_EVENT,
    WILDCARD,
    ClientConnectionState,
    ClientSessionManager,
    ConnectionStatus,
)
from sync_client.state import InMemoryStateStore, LocalStateStore, SyncTimestampMap
from sync_client.transport import (
    Transport,
    TransportClosed,
    TransportFactory,
    WebsocketsTransport,
    websockets_transport_factory,
)

__all__ = [
    "ApiError",
    "ApiService",
    "StoreSyncBridge",
    "SyncConflict",
    "SyncOutcome",
    "SessionSettings",
    "ReconnectPolicy",
    "BoundedMessageQueue",
    "STATUS_EVENT",
    "WILDCARD",
    "ClientConnectionState",
    "ClientSessionManager",
    "ConnectionStatus",
    "InMemoryStateStore",
    "LocalStateStore",
    "SyncTimestampMap",
    "Transport",
    "TransportClosed",
    "TransportFactory",
    "WebsocketsTransport",
    "websockets_transport_factory",
]
