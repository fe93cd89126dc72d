"""
Inbound Message Value Objects for the WebSocket Gateway.

Parses raw client frames into validated, immutable messages and maps
mutation echoes onto the domain event they announce.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Self

from shared.events import EventName
from ws_gateway.components.core.constants import ErrorCode, InboundType


class InboundMessageError(ValueError):
    """Frame could not be parsed into an InboundMessage."""

    def __init__(self, message: str, code: ErrorCode):
        super().__init__(message)
        self.message = message
        self.code = code


# Mutation echo -> domain event announced to the sender's other sessions
ECHO_EVENT_MAP: dict[InboundType, EventName] = {
    InboundType.ADD_TRANSACTION: EventName.TRANSACTION_ADDED,
    InboundType.UPDATE_TRANSACTION: EventName.TRANSACTION_UPDATED,
    InboundType.DELETE_TRANSACTION: EventName.TRANSACTION_DELETED,
    InboundType.ADD_BUDGET: EventName.BUDGET_ADDED,
    InboundType.UPDATE_BUDGET: EventName.BUDGET_UPDATED,
    InboundType.DELETE_BUDGET: EventName.BUDGET_DELETED,
    InboundType.ADD_SAVINGS_GOAL: EventName.SAVINGS_GOAL_ADDED,
    InboundType.UPDATE_SAVINGS_GOAL: EventName.SAVINGS_GOAL_UPDATED,
    InboundType.DELETE_SAVINGS_GOAL: EventName.SAVINGS_GOAL_DELETED,
}

VALID_INBOUND_TYPES: frozenset[str] = frozenset(t.value for t in InboundType)


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """
    Immutable, validated client frame.

    Attributes:
        type: The message discriminator.
        payload: Message body (empty dict when absent).
        token: Credential carried by authenticate messages, top-level or in payload.
    """

    type: InboundType
    payload: dict[str, Any] = field(default_factory=dict)
    token: str | None = None

    @classmethod
    def parse(cls, raw: str) -> Self:
        """
        Parse a text frame.

        Raises:
            InboundMessageError: Invalid JSON, missing discriminator or unknown type.
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            raise InboundMessageError("Invalid message format", ErrorCode.INVALID_FORMAT)

        if not isinstance(data, dict):
            raise InboundMessageError("Invalid message format", ErrorCode.INVALID_FORMAT)

        msg_type = data.get("type", data.get("event"))
        if not msg_type or not isinstance(msg_type, str):
            raise InboundMessageError("Message type is required", ErrorCode.MISSING_TYPE)

        if msg_type not in VALID_INBOUND_TYPES:
            raise InboundMessageError(
                f"Unknown message type: {msg_type[:50]}", ErrorCode.UNKNOWN_TYPE
            )

        payload = data.get("payload")
        if payload is None:
            payload = data.get("data") or {}
        if not isinstance(payload, dict):
            raise InboundMessageError("Message payload must be an object", ErrorCode.INVALID_FORMAT)

        token = data.get("token")
        if token is None:
            token = payload.get("token")
        if token is not None and not isinstance(token, str):
            token = None

        return cls(type=InboundType(msg_type), payload=payload, token=token)

    @property
    def echo_event(self) -> EventName | None:
        """Domain event announced by a mutation echo, None for control messages."""
        return ECHO_EVENT_MAP.get(self.type)
