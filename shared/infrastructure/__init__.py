"""
Infrastructure module: request correlation.
"""

from shared.infrastructure.correlation import (
    REQUEST_ID_HEADER,
    CorrelationIdFilter,
    CorrelationIdMiddleware,
)

__all__ = [
    "REQUEST_ID_HEADER",
    "CorrelationIdFilter",
    "CorrelationIdMiddleware",
]
