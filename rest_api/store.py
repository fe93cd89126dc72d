"""
Record store for tracked entities.

The persistent store is an external collaborator; the REST layer depends
only on the RecordStore protocol. InMemoryRecordStore backs development
and tests.
"""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, runtime_checkable

from shared.events import EntityType


@runtime_checkable
class RecordStore(Protocol):
    """Create/read/update/delete per entity type, keyed by id and owning user id."""

    def list(self, entity_type: EntityType, user_id: str) -> list[dict[str, Any]]:
        ...

    def get(self, entity_type: EntityType, user_id: str, record_id: str) -> dict[str, Any] | None:
        ...

    def create(self, entity_type: EntityType, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        ...

    def update(
        self,
        entity_type: EntityType,
        user_id: str,
        record_id: str,
        data: dict[str, Any],
    ) -> dict[str, Any] | None:
        ...

    def delete(self, entity_type: EntityType, user_id: str, record_id: str) -> bool:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRecordStore:
    """
    Dict-backed RecordStore.

    Records are isolated per user: a record is only visible to the user who
    created it. Returned dicts are copies.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        # entity_type -> record_id -> (owner_id, record)
        self._records: dict[EntityType, dict[str, tuple[str, dict[str, Any]]]] = {
            entity_type: {} for entity_type in EntityType
        }

    def list(self, entity_type: EntityType, user_id: str) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(record)
            for owner_id, record in self._records[entity_type].values()
            if owner_id == user_id
        ]

    def get(self, entity_type: EntityType, user_id: str, record_id: str) -> dict[str, Any] | None:
        entry = self._records[entity_type].get(record_id)
        if entry is None or entry[0] != user_id:
            return None
        return copy.deepcopy(entry[1])

    def create(self, entity_type: EntityType, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        now = self._clock()
        record = {
            **copy.deepcopy(data),
            "id": uuid.uuid4().hex,
            "created_at": now,
            "updated_at": now,
        }
        self._records[entity_type][record["id"]] = (user_id, record)
        return copy.deepcopy(record)

    def update(
        self,
        entity_type: EntityType,
        user_id: str,
        record_id: str,
        data: dict[str, Any],
    ) -> dict[str, Any] | None:
        entry = self._records[entity_type].get(record_id)
        if entry is None or entry[0] != user_id:
            return None
        record = entry[1]
        for key, value in data.items():
            if key in ("id", "created_at", "updated_at"):
                continue
            record[key] = copy.deepcopy(value)
        record["updated_at"] = self._clock()
        return copy.deepcopy(record)

    def delete(self, entity_type: EntityType, user_id: str, record_id: str) -> bool:
        entry = self._records[entity_type].get(record_id)
        if entry is None or entry[0] != user_id:
            return False
        del self._records[entity_type][record_id]
        return True
