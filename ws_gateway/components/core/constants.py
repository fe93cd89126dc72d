"""
WebSocket Gateway Constants.

Centralized constants with documentation explaining rationale for each value,
plus the closed enumerations of the realtime wire protocol.
"""

from enum import Enum, IntEnum
from typing import Final

from shared.config.logging import get_logger

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "InboundType",
    "OutboundType",
    "ErrorCode",
    "PRE_AUTH_TYPES",
    "validate_websocket_origin",
]

logger = get_logger(__name__)


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the gateway.

    Standard codes (1000-1999) from RFC 6455.
    Authentication failures do not close the socket, so there is no
    application-specific auth close code.
    """

    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down or connection evicted by liveness monitor
    POLICY_VIOLATION = 1008  # Generic policy violation (rejected origin)
    MESSAGE_TOO_BIG = 1009  # Message too large to process
    SERVER_ERROR = 1011  # Unexpected server error


class WSConstants:
    """
    WebSocket Gateway operational constants.

    These are defaults used when a component is built without explicit
    values. At runtime the ConnectionManager reads the corresponding
    values from `shared.config.settings.settings`, which take precedence.

    Configurable via settings.py:
    - HEARTBEAT_INTERVAL -> settings.ws_heartbeat_interval
    - MAX_MESSAGE_SIZE -> settings.ws_max_message_size
    - SEND_TIMEOUT -> settings.ws_send_timeout
    """

    # ==========================================================================
    # Liveness
    # ==========================================================================

    # HEARTBEAT_INTERVAL: 30 seconds
    # Rationale: A connection that ignores probes is evicted on the second
    # tick, so a half-open socket lives at most 2 x 30s = 60s.
    HEARTBEAT_INTERVAL: Final[float] = 30.0

    # ==========================================================================
    # Message handling
    # ==========================================================================

    # MAX_MESSAGE_SIZE: 64 KB
    # Rationale: Inbound frames are authenticate/ping/mutation echoes. A full
    # entity payload is well under 4 KB; 64 KB leaves headroom while bounding
    # json.loads cost per frame.
    MAX_MESSAGE_SIZE: Final[int] = 64 * 1024

    # MAX_LOGGED_MESSAGE_LENGTH: 100 characters
    # Rationale: Enough to identify a malformed frame in logs without copying
    # user data wholesale.
    MAX_LOGGED_MESSAGE_LENGTH: Final[int] = 100

    # ==========================================================================
    # Fan-out
    # ==========================================================================

    # SEND_TIMEOUT: 5 seconds
    # Rationale: A single stalled client must not hold the dispatch lock
    # indefinitely; after the timeout the write counts as failed and the
    # liveness monitor will reap the connection.
    SEND_TIMEOUT: Final[float] = 5.0

    # ==========================================================================
    # Shutdown
    # ==========================================================================

    # SHUTDOWN_CLOSE_TIMEOUT: 2 seconds
    # Rationale: Bounded wait per socket when closing everything on shutdown.
    SHUTDOWN_CLOSE_TIMEOUT: Final[float] = 2.0


class InboundType(str, Enum):
    """Message types a client may send."""

    AUTHENTICATE = "authenticate"
    PING = "ping"
    PONG = "pong"

    # Mutation echoes, relayed to the sender's other sessions
    ADD_TRANSACTION = "addTransaction"
    UPDATE_TRANSACTION = "updateTransaction"
    DELETE_TRANSACTION = "deleteTransaction"
    ADD_BUDGET = "addBudget"
    UPDATE_BUDGET = "updateBudget"
    DELETE_BUDGET = "deleteBudget"
    ADD_SAVINGS_GOAL = "addSavingsGoal"
    UPDATE_SAVINGS_GOAL = "updateSavingsGoal"
    DELETE_SAVINGS_GOAL = "deleteSavingsGoal"


class OutboundType(str, Enum):
    """Control message types the gateway sends. Domain events use EventName."""

    WELCOME = "welcome"
    AUTHENTICATED = "authenticated"
    UNAUTHORIZED = "unauthorized"
    ERROR = "error"
    PING = "ping"
    PONG = "pong"


class ErrorCode(str, Enum):
    """Machine-readable codes carried in error.payload.code."""

    INVALID_FORMAT = "invalid_format"
    MISSING_TYPE = "missing_type"
    UNKNOWN_TYPE = "unknown_type"
    UNAUTHENTICATED = "unauthenticated"
    MESSAGE_TOO_LARGE = "message_too_large"
    INTERNAL_ERROR = "internal_error"


# Inbound types accepted before authentication completes.
# Only liveness traffic is exempt; domain data always requires a bound user.
PRE_AUTH_TYPES: Final[frozenset[InboundType]] = frozenset({
    InboundType.AUTHENTICATE,
    InboundType.PING,
    InboundType.PONG,
})


# ==========================================================================
# Origin Validation
# ==========================================================================


def validate_websocket_origin(origin: str | None, settings: object) -> bool:
    """
    Validate WebSocket origin header against allowed origins.

    Non-browser clients (CLI, tests) send no Origin header; that is accepted
    in development only.

    Args:
        origin: The Origin header value, or None if not present.
        settings: Settings object with environment and cors_origins attributes.

    Returns:
        True if origin is allowed, False otherwise.
    """
    allowed = list(getattr(settings, "cors_origins", []))

    if not origin:
        if getattr(settings, "environment", "production") == "development":
            return True
        logger.warning("WebSocket connection rejected: missing Origin header in production")
        return False

    if origin in allowed:
        return True

    logger.warning(
        "WebSocket connection rejected: origin not in allowed list",
        origin=origin,
        allowed_count=len(allowed),
    )
    return False

