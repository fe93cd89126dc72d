"""
Structured logging shared by the server and the sync client.

Modules log with keyword context instead of formatted strings:

    logger = get_logger(__name__)
    logger.info("Event dispatched", event="transaction:added", sent=2)

The keywords travel on the record as ``extra_data``. Production output is
one JSON object per line; development output is a coloured single line.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings


def _context_of(record: logging.LogRecord) -> dict[str, Any] | None:
    return getattr(record, "extra_data", None)


def _request_id_of(record: logging.LogRecord) -> str | None:
    request_id = getattr(record, "request_id", None)
    return request_id if request_id and request_id != "-" else None


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        request_id = _request_id_of(record)
        if request_id:
            entry["request_id"] = request_id
        context = _context_of(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        if settings.debug:
            entry["at"] = f"{record.pathname}:{record.lineno}"
        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL [request] logger: message (key=value ...)`` with ANSI colours."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        parts = [f"{color}{clock} {record.levelname:<8}{self.RESET}"]

        request_id = _request_id_of(record)
        if request_id:
            parts.append(f"{self.DIM}[{request_id[:8]}]{self.RESET}")
        parts.append(f"{record.name}: {record.getMessage()}")

        context = _context_of(record)
        if context:
            parts.append("(" + " ".join(f"{key}={value}" for key, value in context.items()) + ")")

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose methods accept arbitrary keyword context.

    ``exc_info``, ``extra``, ``stack_info`` and ``stacklevel`` keep their
    standard meaning; every other keyword is collected into ``extra_data``.
    """

    def _log(
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **context: Any,
    ) -> None:
        merged = dict(extra or {})
        merged["extra_data"] = context or None
        # One extra frame (this override) between the caller and logging
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=merged,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """
    Install the stdout handler on the root logger. Called once at startup;
    calling it again replaces the previous handler.
    """
    from shared.infrastructure.correlation import CorrelationIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(
        StructuredFormatter() if settings.environment == "production" else DevelopmentFormatter()
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "httpcore", "websockets"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore[return-value]


def mask_token(token: str | None) -> str:
    """First 8 characters of a credential, enough to correlate failed attempts."""
    if not token:
        return "<no-token>"
    if len(token) <= 8:
        return "***"
    return f"{token[:8]}..."


rest_api_logger = get_logger("rest_api")
ws_gateway_logger = get_logger("ws_gateway")
sync_client_logger = get_logger("sync_client")
security_audit_logger = get_logger("security.audit")


# =============================================================================
# Realtime security audit trail
# =============================================================================

# Audit events logged at WARNING; the rest are INFO
_AUDIT_WARNING_EVENTS = frozenset({"AUTH_FAILED", "EVICTED"})


def audit_ws_connection(
    event_type: str,
    endpoint: str,
    user_id: str | None = None,
    origin: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Record a realtime connection event.

    Args:
        event_type: CONNECT, AUTHENTICATED, AUTH_FAILED, DISCONNECT or EVICTED.
        endpoint: Socket path, e.g. "/ws".
        user_id: Bound user, once authenticated.
        origin: Origin header of the upgrade request.
        reason: Failure or disconnect reason.
    """
    level = logging.WARNING if event_type in _AUDIT_WARNING_EVENTS else logging.INFO
    security_audit_logger.log(
        level,
        f"WS_AUDIT: {event_type}",
        event_type=event_type,
        endpoint=endpoint,
        user_id=user_id,
        origin=origin,
        reason=reason,
        **extra,
    )
