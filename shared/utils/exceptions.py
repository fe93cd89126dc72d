"""
HTTP errors raised by the REST routers.

Each error logs itself when raised, with the keyword context given to it,
so handlers do not log and raise separately.

Usage:
    from shared.utils.exceptions import NotFoundError, DuplicateEntityError

    raise NotFoundError("Transaction", transaction_id)
    raise DuplicateEntityError("Budget for category", "groceries", user_id=user_id)
"""

from typing import Any

from fastapi import HTTPException, status

from shared.config.logging import rest_api_logger as logger


class AppException(HTTPException):
    """
    HTTPException that writes a warning (or ``log_level``) line on creation.

    Subclasses set ``status_code`` as a class attribute.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    log_level: str = "warning"

    def __init__(self, detail: str, headers: dict[str, str] | None = None, **log_context: Any):
        getattr(logger, self.log_level)(detail, status_code=self.status_code, **log_context)
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)


class NotFoundError(AppException):
    """
    404. Also used for records owned by another user, so ids of other users'
    records cannot be probed.
    """

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: str | None = None, **log_context: Any):
        detail = f"{entity} {entity_id} not found" if entity_id is not None else f"{entity} not found"
        super().__init__(detail, entity=entity, entity_id=entity_id, **log_context)


class ValidationError(AppException):
    """400 for requests that parse but make no sense (e.g. an empty update)."""

    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(AppException):
    status_code = status.HTTP_409_CONFLICT


class DuplicateEntityError(ConflictError):
    """409 for a uniqueness rule, e.g. one budget per category."""

    def __init__(self, entity: str, identifier: str | None = None, **log_context: Any):
        detail = f"{entity} '{identifier}' already exists" if identifier else f"{entity} already exists"
        super().__init__(detail, entity=entity, identifier=identifier, **log_context)
