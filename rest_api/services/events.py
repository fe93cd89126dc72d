"""
Publication of domain events after REST mutations.

Events go to the acting user's realtime sessions through the in-process
ConnectionManager. Publication is awaited inline after the record store
write so that events leave the dispatcher in the order the mutations
completed. A publication failure never fails the HTTP request: the
record is already stored and clients recover through resync.
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from shared.config.logging import get_logger
from shared.events import DomainEvent, EntityType, EventAction, EventName

if TYPE_CHECKING:
    from ws_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


def _event_payload(action: EventAction, record: dict[str, Any]) -> dict[str, Any]:
    if action is EventAction.DELETED:
        return {"id": record["id"]}
    return record


async def publish_entity_event(
    manager: "ConnectionManager | None",
    entity_type: EntityType,
    action: EventAction,
    user_id: str,
    record: dict[str, Any],
) -> None:
    """
    Publish ``{entity}:{action}`` to every session of ``user_id``.

    Args:
        manager: Realtime connection manager. None disables publication
            (e.g. an app built without the gateway).
        entity_type: Collection the record belongs to.
        action: Completed mutation.
        user_id: Acting user; the only recipient.
        record: JSON-compatible record, or at least ``{"id": ...}`` for deletions.
    """
    if manager is None:
        return

    try:
        event = DomainEvent(
            event_name=EventName.for_entity(entity_type, action),
            payload=_event_payload(action, record),
            target_user_id=user_id,
        )
        result = await manager.dispatch(event)
        logger.debug(
            "Entity event published",
            event_name=event.event_name.value,
            entity_id=record.get("id"),
            sent=result.sent,
            failed=result.failed,
        )
    except Exception as e:
        logger.error(
            "Failed to publish entity event",
            entity_type=entity_type.value,
            action=action.value,
            entity_id=record.get("id"),
            error=str(e),
            error_type=type(e).__name__,
        )
