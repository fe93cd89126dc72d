"""
Utilities module: exceptions.
"""

from shared.utils.exceptions import (
    AppException,
    NotFoundError,
    ValidationError,
    ConflictError,
    DuplicateEntityError,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DuplicateEntityError",
]
