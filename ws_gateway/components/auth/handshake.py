"""
Authentication Handshake for the WebSocket Gateway.

Sockets connect unauthenticated. An ``authenticate`` message carries a
bearer token; the handshake verifies it through the injected TokenVerifier,
binds the user to the connection in the registry and replies
``authenticated{userId}``. Any failure is answered with
``unauthorized{message}`` and leaves the socket open so the client can
retry with a fresh credential.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any

from shared.config.logging import get_logger, mask_token
from shared.security.auth import TokenVerificationError, TokenVerifier
from ws_gateway.components.connection.registry import ConnectionRegistry
from ws_gateway.components.core.constants import OutboundType
from ws_gateway.components.core.context import WebSocketContext

logger = get_logger(__name__)


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True, slots=True)
class AuthResult:
    """
    Result of an authentication attempt.

    Attributes:
        success: Whether authentication succeeded.
        user_id: Bound user id if successful.
        error_message: Client-safe message if failed.
        audit_reason: Short reason code for audit logging.
    """

    success: bool
    user_id: str | None = None
    error_message: str | None = None
    audit_reason: str | None = None

    @classmethod
    def ok(cls, user_id: str) -> "AuthResult":
        """Create successful authentication result."""
        return cls(success=True, user_id=user_id)

    @classmethod
    def fail(cls, message: str, audit_reason: str = "auth_failed") -> "AuthResult":
        """Create failed authentication result."""
        return cls(success=False, error_message=message, audit_reason=audit_reason)

    def to_message(self) -> dict[str, Any]:
        """Reply frame for the client."""
        if self.success:
            return {
                "type": OutboundType.AUTHENTICATED.value,
                "payload": {"userId": self.user_id},
            }
        return {
            "type": OutboundType.UNAUTHORIZED.value,
            "payload": {"message": self.error_message, "reason": self.audit_reason},
        }


# =============================================================================
# Handshake
# =============================================================================


class AuthenticationHandshake:
    """
    Binds a verified user identity to a registered connection.

    Verification errors are per-connection: they are reported to that one
    caller and never raised.
    """

    def __init__(self, registry: ConnectionRegistry, verifier: TokenVerifier) -> None:
        self._registry = registry
        self._verifier = verifier
        self._successes = 0
        self._failures = 0

    async def handle(
        self,
        handle: Any,
        token: str | None,
        context: WebSocketContext | None = None,
    ) -> AuthResult:
        """
        Verify the credential and reply on the socket.

        A failed attempt on an already-authenticated connection keeps its
        existing binding.
        """
        result = await self._verify(token)

        if result.success:
            connection = self._registry.authenticate(handle, result.user_id)
            if connection is None:
                # Socket closed while the token was being verified
                return AuthResult.fail("Connection closed", audit_reason="connection_closed")
            self._successes += 1
            if context is not None:
                context.user_id = result.user_id
                context.audit("AUTHENTICATED")
        else:
            self._failures += 1
            if context is not None:
                context.audit(
                    "AUTH_FAILED",
                    reason=result.audit_reason,
                    token=mask_token(token),
                )

        await self._reply(handle, result)
        return result

    async def _verify(self, token: str | None) -> AuthResult:
        if not token:
            return AuthResult.fail("No token provided", audit_reason="missing_token")

        try:
            user_id = self._verifier.verify(token)
            if inspect.isawaitable(user_id):
                user_id = await user_id
        except TokenVerificationError as e:
            return AuthResult.fail(e.message, audit_reason=e.reason)
        except Exception as e:
            logger.error("Token verifier raised unexpectedly", error=str(e), exc_info=True)
            return AuthResult.fail("Invalid token", audit_reason="verifier_error")

        if not user_id:
            return AuthResult.fail("Invalid token", audit_reason="invalid_claims")
        return AuthResult.ok(str(user_id))

    async def _reply(self, handle: Any, result: AuthResult) -> None:
        try:
            await handle.send_json(result.to_message())
        except Exception as e:
            logger.debug("Failed to send auth reply", error=str(e))

    def get_stats(self) -> dict[str, int]:
        return {
            "auth_successes": self._successes,
            "auth_failures": self._failures,
        }
