"""
Post-connect authentication handshake.
"""

from ws_gateway.components.auth.handshake import AuthResult, AuthenticationHandshake

__all__ = [
    "AuthResult",
    "AuthenticationHandshake",
]
