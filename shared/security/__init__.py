"""
Security module: token signing and verification.
"""

from shared.security.auth import (
    sign_jwt,
    sign_access_token,
    decode_access_token,
    get_bearer_token,
    TokenVerificationError,
    TokenVerifier,
    JWTTokenVerifier,
)

__all__ = [
    "sign_jwt",
    "sign_access_token",
    "decode_access_token",
    "get_bearer_token",
    "TokenVerificationError",
    "TokenVerifier",
    "JWTTokenVerifier",
]
