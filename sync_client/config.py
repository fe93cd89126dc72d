"""
Client session settings.

Loaded from ``FINTRACK_CLIENT_*`` environment variables. All durations are
in seconds.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class SessionSettings(BaseSettings):
    """Realtime client defaults."""

    url: str = "ws://localhost:8000/ws"
    api_base_url: str = "http://localhost:8000"

    # Reconnect backoff: delay(n) = min(max_delay, base_delay * backoff_rate ** n)
    base_delay: float = Field(default=1.0, gt=0)
    backoff_rate: float = Field(default=1.5, ge=1)
    max_delay: float = Field(default=30.0, gt=0)
    # After this many failed attempts the session stays in "error" until reconnect()
    max_reconnect_attempts: int = Field(default=10, ge=0)

    # Client heartbeat: pings without a pong before the connection is treated as dead
    heartbeat_interval: float = Field(default=30.0, gt=0)
    max_missed_heartbeats: int = Field(default=3, ge=1)

    auth_timeout: float = Field(default=5.0, gt=0)
    connect_timeout: float = Field(default=5.0, gt=0)

    # Outbound messages held while not authenticated; oldest dropped on overflow
    max_queue_size: int = Field(default=100, ge=1)

    class Config:
        env_prefix = "FINTRACK_CLIENT_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"
