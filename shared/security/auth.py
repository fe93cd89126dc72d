"""
Authentication utilities.
Handles JWT access tokens for the REST API and the realtime gateway.

Token issuance belongs to the login flow; this module only signs development
tokens (CLI, tests) and verifies what clients present.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Protocol, runtime_checkable

import jwt
from fastapi import HTTPException, status

from shared.config.settings import settings
from shared.config.logging import get_logger

logger = get_logger(__name__)


class TokenVerificationError(Exception):
    """
    Raised when a presented credential cannot be accepted.

    Attributes:
        message: Client-safe description, sent back to the caller as-is.
        reason: Machine-readable code (missing_token, token_expired,
            invalid_token, invalid_claims) used for audit logging.
    """

    def __init__(self, message: str, reason: str = "invalid_token"):
        super().__init__(message)
        self.message = message
        self.reason = reason


# =============================================================================
# JWT Functions
# =============================================================================


def sign_jwt(
    payload: dict[str, Any],
    ttl_seconds: int | None = None,
    secret: str | None = None,
) -> str:
    """
    Sign a JWT token with the given payload.

    Args:
        payload: Claims to include in the token (sub, email, ...).
        ttl_seconds: Token lifetime in seconds. Defaults to access token expiry.
        secret: Signing key. Defaults to the configured JWT secret.

    Returns:
        Signed JWT token string.
    """
    if ttl_seconds is None:
        ttl_seconds = settings.jwt_access_token_expire_minutes * 60

    now = int(time.time())
    data = {
        **payload,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + ttl_seconds,
        "type": "access",
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(data, secret or settings.jwt_secret, algorithm="HS256")


def sign_access_token(user_id: str, ttl_seconds: int | None = None, **claims: Any) -> str:
    """Create an access token whose subject is the given user id."""
    return sign_jwt({"sub": str(user_id), **claims}, ttl_seconds=ttl_seconds)


def decode_access_token(
    token: str | None,
    secret: str | None = None,
    issuer: str | None = None,
    audience: str | None = None,
) -> dict[str, Any]:
    """
    Verify signature, expiry and required claims of an access token.

    Raises:
        TokenVerificationError: With a client-safe message and a reason code.
    """
    if not token:
        raise TokenVerificationError("No token provided", reason="missing_token")

    try:
        payload = jwt.decode(
            token,
            secret or settings.jwt_secret,
            algorithms=["HS256"],
            audience=audience or settings.jwt_audience,
            issuer=issuer or settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        raise TokenVerificationError("Token has expired", reason="token_expired")
    except jwt.InvalidTokenError as e:
        # Actual error stays in the log; the client gets a generic message
        logger.warning("JWT validation failed", error=str(e))
        raise TokenVerificationError("Invalid token", reason="invalid_token")

    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub.strip():
        raise TokenVerificationError(
            "Invalid token: missing subject claim", reason="invalid_claims"
        )

    if payload.get("type", "access") != "access":
        raise TokenVerificationError(
            "Invalid token: invalid type claim", reason="invalid_claims"
        )

    return payload


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract bearer token from Authorization header.

    Raises:
        HTTPException: If header is missing or malformed.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
        )
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header format. Expected: Bearer <token>",
        )
    return authorization.split(" ", 1)[1].strip()


# =============================================================================
# Token verifier collaborator (realtime gateway)
# =============================================================================


@runtime_checkable
class TokenVerifier(Protocol):
    """Resolves a bearer credential to a user id or raises TokenVerificationError."""

    def verify(self, token: str | None) -> str:
        ...


class JWTTokenVerifier:
    """
    TokenVerifier backed by the HS256 access tokens issued by the REST API.

    The bound user id is the token's ``sub`` claim.
    """

    def __init__(
        self,
        secret: str | None = None,
        issuer: str | None = None,
        audience: str | None = None,
    ) -> None:
        self._secret = secret
        self._issuer = issuer
        self._audience = audience

    def verify(self, token: str | None) -> str:
        claims = decode_access_token(
            token,
            secret=self._secret,
            issuer=self._issuer,
            audience=self._audience,
        )
        return claims["sub"]
