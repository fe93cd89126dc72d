"""
Request correlation for the REST API.

Every request gets an id, taken from ``X-Request-ID`` when the client sent a
usable one. The id is bound to a context variable for the duration of the
request, so each log line written while handling a mutation, including the
realtime fan-out it triggers, carries it.
"""

import logging
import re
import uuid
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

REQUEST_ID_HEADER = "X-Request-ID"

# Client-supplied ids end up in logs; anything else is replaced
_ACCEPTED_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a request id for the request and echoes it in the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _ACCEPTED_REQUEST_ID.match(incoming) else uuid.uuid4().hex

        request.state.request_id = request_id
        reset_token = _request_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _request_id.reset(reset_token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class CorrelationIdFilter(logging.Filter):
    """Copies the bound request id onto every record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or "-"
        return True
