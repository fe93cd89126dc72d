"""
FastAPI dependencies shared by the REST routers.

The store, the realtime manager and the token verifier live on
``app.state`` so that ``create_app`` can inject test doubles.
"""

import inspect

from fastapi import Depends, Header, HTTPException, Request, status

from shared.config.logging import rest_api_logger as logger
from shared.security.auth import TokenVerificationError, TokenVerifier, get_bearer_token
from rest_api.store import RecordStore
from ws_gateway.connection_manager import ConnectionManager


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_manager(request: Request) -> ConnectionManager | None:
    return getattr(request.app.state, "manager", None)


def get_verifier(request: Request) -> TokenVerifier:
    return request.app.state.verifier


async def current_user_id(
    authorization: str | None = Header(default=None, alias="Authorization"),
    verifier: TokenVerifier = Depends(get_verifier),
) -> str:
    """
    Resolve the bearer token to the acting user id.

    Uses the same verifier as the realtime authentication handshake, so a
    token accepted on the socket is accepted here and vice versa.
    """
    token = get_bearer_token(authorization)
    try:
        user_id = verifier.verify(token)
        if inspect.isawaitable(user_id):
            user_id = await user_id
        return user_id
    except TokenVerificationError as e:
        logger.info("REST request rejected", reason=e.reason)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
