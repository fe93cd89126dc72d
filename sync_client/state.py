"""
Local client state: the cached entity collections and their sync points.
"""

from __future__ import annotations

import copy
import time
from typing import Any, Callable, Iterable, Protocol, runtime_checkable

from shared.events import EntityType


@runtime_checkable
class LocalStateStore(Protocol):
    """
    Client-side cache of entity collections keyed by id.

    ``upsert`` / ``replace_all`` / ``remove`` apply server state and clear the
    local last-modified marker; ``modify`` records a local edit and sets it.
    """

    def get(self, entity_type: EntityType, record_id: str) -> dict[str, Any] | None:
        ...

    def all(self, entity_type: EntityType) -> list[dict[str, Any]]:
        ...

    def upsert(self, entity_type: EntityType, record: dict[str, Any]) -> None:
        ...

    def remove(self, entity_type: EntityType, record_id: str) -> bool:
        ...

    def replace_all(self, entity_type: EntityType, records: Iterable[dict[str, Any]]) -> None:
        ...

    def modify(self, entity_type: EntityType, record: dict[str, Any]) -> None:
        ...

    def modified_at(self, entity_type: EntityType, record_id: str) -> float | None:
        ...


class InMemoryStateStore:
    """Dict-backed LocalStateStore. Records are stored as deep copies."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._records: dict[EntityType, dict[str, dict[str, Any]]] = {e: {} for e in EntityType}
        self._modified: dict[EntityType, dict[str, float]] = {e: {} for e in EntityType}

    def get(self, entity_type: EntityType, record_id: str) -> dict[str, Any] | None:
        record = self._records[entity_type].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def all(self, entity_type: EntityType) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._records[entity_type].values()]

    def upsert(self, entity_type: EntityType, record: dict[str, Any]) -> None:
        record_id = _record_id(record)
        self._records[entity_type][record_id] = copy.deepcopy(record)
        self._modified[entity_type].pop(record_id, None)

    def remove(self, entity_type: EntityType, record_id: str) -> bool:
        self._modified[entity_type].pop(record_id, None)
        return self._records[entity_type].pop(record_id, None) is not None

    def replace_all(self, entity_type: EntityType, records: Iterable[dict[str, Any]]) -> None:
        self._records[entity_type] = {_record_id(r): copy.deepcopy(r) for r in records}
        self._modified[entity_type] = {}

    def modify(self, entity_type: EntityType, record: dict[str, Any]) -> None:
        record_id = _record_id(record)
        self._records[entity_type][record_id] = copy.deepcopy(record)
        self._modified[entity_type][record_id] = self._clock()

    def modified_at(self, entity_type: EntityType, record_id: str) -> float | None:
        return self._modified[entity_type].get(record_id)

    def __len__(self) -> int:
        return sum(len(records) for records in self._records.values())


class SyncTimestampMap:
    """Last successful sync point per entity type. Never moves backwards."""

    def __init__(self, initial: float) -> None:
        self._timestamps: dict[EntityType, float] = {e: initial for e in EntityType}

    def get(self, entity_type: EntityType) -> float:
        return self._timestamps[entity_type]

    def advance(self, entity_type: EntityType, timestamp: float) -> float:
        current = self._timestamps[entity_type]
        if timestamp > current:
            self._timestamps[entity_type] = timestamp
        return self._timestamps[entity_type]

    def as_dict(self) -> dict[str, float]:
        return {e.value: ts for e, ts in self._timestamps.items()}


def _record_id(record: dict[str, Any]) -> str:
    record_id = record.get("id")
    if record_id is None:
        raise ValueError("Record has no id")
    return str(record_id)
