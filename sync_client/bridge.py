"""
Store/Sync Bridge.

Applies server-pushed domain events to the local state store and repairs
missed events with a full resync after a reconnect.

Conflict policy is server-wins for every entity type: if the local copy was
edited after the collection's last sync point, the server payload still
replaces it. Each such conflict is reported to ``on_conflict`` subscribers
and logged, so the application can tell the user a local edit was
overwritten.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from shared.config.logging import sync_client_logger as logger
from shared.events import EntityType, EventAction, EventName
from sync_client.api import ApiService
from sync_client.session import STATUS_EVENT, ClientSessionManager, ConnectionStatus
from sync_client.state import LocalStateStore, SyncTimestampMap

__all__ = ["StoreSyncBridge", "SyncConflict", "SyncOutcome"]


class SyncOutcome(str, Enum):
    APPLIED = "applied"
    CONFLICT_RESOLVED = "conflict_resolved"
    IGNORED = "ignored"


@dataclass(frozen=True)
class SyncConflict:
    """A local edit that a server event overwrote."""

    entity_type: EntityType
    record_id: str
    local: dict[str, Any] | None
    server: dict[str, Any] | None
    local_modified_at: float
    last_sync: float


ConflictCallback = Callable[[SyncConflict], Any]


class StoreSyncBridge:
    """
    Connects a ClientSessionManager to a LocalStateStore.

    Args:
        session: Source of domain events and connection status changes.
        store: Local entity cache.
        api: REST client used by resync().
        clock: Returns the current time in seconds; also seeds the sync
            timestamps.
    """

    def __init__(
        self,
        session: ClientSessionManager,
        store: LocalStateStore,
        api: ApiService,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session = session
        self.store = store
        self.api = api
        self._clock = clock
        self.timestamps = SyncTimestampMap(clock())
        self._conflict_callbacks: list[ConflictCallback] = []
        self._unsubscribers: list[Callable[[], None]] = []
        self._was_authenticated = False
        self._resync_task: asyncio.Task | None = None

    # =========================================================================
    # Subscription
    # =========================================================================

    def attach(self) -> None:
        """Register persistent handlers on the session. Idempotent."""
        if self._unsubscribers:
            return
        for event_name in EventName:
            self._unsubscribers.append(
                self.session.on_persistent(event_name.value, self._make_event_handler(event_name))
            )
        self._unsubscribers.append(
            self.session.on_persistent(STATUS_EVENT, self._on_status)
        )
        logger.debug("Store sync bridge attached")

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self._resync_task is not None and not self._resync_task.done():
            self._resync_task.cancel()
        self._resync_task = None

    def on_conflict(self, callback: ConflictCallback) -> Callable[[], None]:
        self._conflict_callbacks.append(callback)
        return lambda: self._conflict_callbacks.remove(callback)

    def _make_event_handler(self, event_name: EventName) -> Callable[[Any], SyncOutcome]:
        def handler(payload: Any) -> SyncOutcome:
            return self.on_server_event(event_name, payload)
        return handler

    def _on_status(self, data: dict[str, Any]) -> None:
        status = data.get("status")
        if status == ConnectionStatus.AUTHENTICATED.value:
            self._was_authenticated = True
        elif status == ConnectionStatus.CONNECTED.value and self._was_authenticated:
            # Events dispatched while we were away are gone; refetch everything
            if self._resync_task is None or self._resync_task.done():
                self._resync_task = asyncio.ensure_future(self.resync())

    # =========================================================================
    # Event application
    # =========================================================================

    def on_server_event(self, event_name: EventName | str, payload: Any) -> SyncOutcome:
        """
        Apply one domain event to the local store.

        Unknown event names and payloads without an id are ignored.
        """
        try:
            name = EventName(event_name)
        except ValueError:
            logger.warning("Ignoring unknown event", event=str(event_name))
            return SyncOutcome.IGNORED
        if not isinstance(payload, dict) or payload.get("id") is None:
            logger.warning("Ignoring event without entity id", event=name.value)
            return SyncOutcome.IGNORED

        entity_type = name.entity_type
        record_id = str(payload["id"])
        received_at = self._clock()

        local = self.store.get(entity_type, record_id)
        local_modified_at = self.store.modified_at(entity_type, record_id)
        last_sync = self.timestamps.get(entity_type)
        conflict = local_modified_at is not None and local_modified_at > last_sync

        if name.action is EventAction.DELETED:
            self.store.remove(entity_type, record_id)
        else:
            self.store.upsert(entity_type, payload)
        self.timestamps.advance(entity_type, received_at)

        if not conflict:
            return SyncOutcome.APPLIED

        logger.warning(
            "Local edit overwritten by server",
            entity_type=entity_type.value,
            entity_id=record_id,
            event=name.value,
        )
        self._report_conflict(
            SyncConflict(
                entity_type=entity_type,
                record_id=record_id,
                local=local,
                server=None if name.action is EventAction.DELETED else payload,
                local_modified_at=local_modified_at,
                last_sync=last_sync,
            )
        )
        return SyncOutcome.CONFLICT_RESOLVED

    def _report_conflict(self, conflict: SyncConflict) -> None:
        for callback in list(self._conflict_callbacks):
            try:
                callback(conflict)
            except Exception as e:
                logger.error(
                    "Conflict callback failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )

    # =========================================================================
    # Resync
    # =========================================================================

    async def resync(self) -> dict[EntityType, bool]:
        """
        Refetch every collection and replace local state wholesale.

        Collections are fetched concurrently. A failed collection keeps its
        local state and sync timestamp. Returns success per entity type.
        """
        logger.info("Resyncing with server")
        entity_types = list(EntityType)
        responses = await asyncio.gather(
            *(self.api.list(entity_type) for entity_type in entity_types),
            return_exceptions=True,
        )

        results: dict[EntityType, bool] = {}
        for entity_type, response in zip(entity_types, responses):
            if isinstance(response, asyncio.CancelledError):
                raise response
            if isinstance(response, BaseException):
                logger.error(
                    "Resync failed for collection",
                    entity_type=entity_type.value,
                    error=str(response),
                    error_type=type(response).__name__,
                )
                results[entity_type] = False
                continue
            self.store.replace_all(entity_type, response or [])
            self.timestamps.advance(entity_type, self._clock())
            results[entity_type] = True

        logger.info(
            "Resync complete",
            synced=[e.value for e, ok in results.items() if ok],
            failed=[e.value for e, ok in results.items() if not ok],
        )
        return results
