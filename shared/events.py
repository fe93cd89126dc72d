"""
Domain event schema shared by the REST API, the realtime gateway and the
sync client.

Event names form a closed set: ``{entity}:{added|updated|deleted}`` for
transactions, budgets and savings goals. Anything outside that set is
rejected at construction time.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Self


# =============================================================================
# Event Types
# =============================================================================


class EntityType(str, Enum):
    """Tracked entity collections."""

    TRANSACTION = "transaction"
    BUDGET = "budget"
    SAVINGS_GOAL = "savingsGoal"


class EventAction(str, Enum):
    """Completed mutation kinds."""

    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


class EventName(str, Enum):
    """Closed set of domain event names."""

    TRANSACTION_ADDED = "transaction:added"
    TRANSACTION_UPDATED = "transaction:updated"
    TRANSACTION_DELETED = "transaction:deleted"
    BUDGET_ADDED = "budget:added"
    BUDGET_UPDATED = "budget:updated"
    BUDGET_DELETED = "budget:deleted"
    SAVINGS_GOAL_ADDED = "savingsGoal:added"
    SAVINGS_GOAL_UPDATED = "savingsGoal:updated"
    SAVINGS_GOAL_DELETED = "savingsGoal:deleted"

    @property
    def entity_type(self) -> EntityType:
        return EntityType(self.value.split(":", 1)[0])

    @property
    def action(self) -> EventAction:
        return EventAction(self.value.split(":", 1)[1])

    @classmethod
    def for_entity(cls, entity_type: EntityType, action: EventAction) -> "EventName":
        """Build the event name for a mutation of the given entity type."""
        return cls(f"{entity_type.value}:{action.value}")


# Set for O(1) lookup
VALID_EVENT_NAMES: frozenset[str] = frozenset(e.value for e in EventName)


# =============================================================================
# Event Schema
# =============================================================================


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """
    Immutable notification of a completed mutation.

    Attributes:
        event_name: One of EventName.
        payload: Full resulting entity, or ``{"id": ...}`` for deletions.
        target_user_id: User whose sessions receive the event. None means
            broadcast to every authenticated connection.
    """

    event_name: EventName
    payload: dict[str, Any] = field(default_factory=dict)
    target_user_id: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.event_name, EventName):
            raise ValueError(f"Unknown event name: {self.event_name!r}")
        if not isinstance(self.payload, dict):
            raise ValueError("Event payload must be a dict")
        if self.event_name.action is EventAction.DELETED and "id" not in self.payload:
            raise ValueError("Deletion events must carry the entity id")
        if self.target_user_id is not None and (
            not isinstance(self.target_user_id, str) or not self.target_user_id
        ):
            raise ValueError("target_user_id must be a non-empty string or None")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """
        Create a DomainEvent from raw input.

        Accepts ``event`` or ``type`` as the name field.

        Raises:
            ValueError: If data fails validation.
        """
        if not isinstance(data, dict):
            raise ValueError("Event must be a dictionary")

        name = data.get("event", data.get("type"))
        if name not in VALID_EVENT_NAMES:
            raise ValueError(f"Unknown event name: {name!r}")

        return cls(
            event_name=EventName(name),
            payload=copy.deepcopy(data.get("payload") or {}),
            target_user_id=data.get("target_user_id"),
        )

    @property
    def entity_type(self) -> EntityType:
        return self.event_name.entity_type

    @property
    def action(self) -> EventAction:
        return self.event_name.action

    def to_message(self) -> dict[str, Any]:
        """Wire form sent to clients. The target user is routing data, not content."""
        return {"type": self.event_name.value, "payload": copy.deepcopy(self.payload)}
