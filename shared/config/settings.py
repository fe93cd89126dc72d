"""
Server configuration, read from the environment (and ``.env``) by
pydantic-settings. Field names map to upper-case variables, e.g.
``WS_HEARTBEAT_INTERVAL=15``.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings

_DEV_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

_KNOWN_WEAK_SECRETS = frozenset({
    "dev-secret-change-me-in-production",
    "changeme",
    "default",
    "password",
    "secret",
})


class Settings(BaseSettings):
    environment: str = "development"
    debug: bool = True

    # HTTP
    rest_api_host: str = "0.0.0.0"
    rest_api_port: int = 8000
    # Comma separated; empty means the local dev servers
    allowed_origins: str = ""

    # Access tokens (HS256). The gateway accepts nothing else.
    jwt_secret: str = "dev-secret-change-me-in-production"
    jwt_issuer: str = "fintrack"
    jwt_audience: str = "fintrack-users"
    jwt_access_token_expire_minutes: int = 60

    # Realtime gateway, durations in seconds
    ws_heartbeat_interval: float = 30.0
    ws_send_timeout: float = 5.0
    ws_max_message_size: int = 64 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def cors_origins(self) -> list[str]:
        """Origins allowed for CORS and for the websocket upgrade."""
        configured = [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return configured or list(_DEV_ORIGINS)

    def validate_production_secrets(self) -> list[str]:
        """
        Problems that make this configuration unsafe to run in production.

        Always empty outside production.
        """
        if self.environment != "production":
            return []

        problems = []
        if self.jwt_secret in _KNOWN_WEAK_SECRETS or len(self.jwt_secret) < 32:
            problems.append("JWT_SECRET must be a non-default value of at least 32 characters")
        if self.debug:
            problems.append("DEBUG must be disabled")
        if not self.allowed_origins.strip():
            problems.append("ALLOWED_ORIGINS must list the production front-end origins")
        return problems


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
