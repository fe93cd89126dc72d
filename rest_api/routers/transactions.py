"""
Transaction endpoints.
"""

from fastapi import APIRouter, Depends, Response, status

from shared.events import EntityType, EventAction
from shared.utils.exceptions import NotFoundError
from rest_api.deps import current_user_id, get_manager, get_store
from rest_api.schemas import TransactionCreate, TransactionOutput, TransactionUpdate, update_changes
from rest_api.services.events import publish_entity_event
from rest_api.store import RecordStore
from ws_gateway.connection_manager import ConnectionManager


router = APIRouter(prefix="/api/transactions", tags=["transactions"])


@router.get("", response_model=list[TransactionOutput])
def list_transactions(
    store: RecordStore = Depends(get_store),
    user_id: str = Depends(current_user_id),
) -> list[TransactionOutput]:
    """List the user's transactions, newest first."""
    records = store.list(EntityType.TRANSACTION, user_id)
    records.sort(key=lambda r: (r["date"], r["created_at"]), reverse=True)
    return [TransactionOutput.model_validate(r) for r in records]


@router.get("/{transaction_id}", response_model=TransactionOutput)
def get_transaction(
    transaction_id: str,
    store: RecordStore = Depends(get_store),
    user_id: str = Depends(current_user_id),
) -> TransactionOutput:
    record = store.get(EntityType.TRANSACTION, user_id, transaction_id)
    if record is None:
        raise NotFoundError("Transaction", transaction_id)
    return TransactionOutput.model_validate(record)


@router.post("", response_model=TransactionOutput, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    body: TransactionCreate,
    store: RecordStore = Depends(get_store),
    manager: ConnectionManager | None = Depends(get_manager),
    user_id: str = Depends(current_user_id),
) -> TransactionOutput:
    """Record an income or expense and notify the user's other sessions."""
    record = store.create(EntityType.TRANSACTION, user_id, body.model_dump())
    output = TransactionOutput.model_validate(record)

    await publish_entity_event(
        manager, EntityType.TRANSACTION, EventAction.ADDED, user_id,
        output.model_dump(mode="json"),
    )
    return output


@router.patch("/{transaction_id}", response_model=TransactionOutput)
async def update_transaction(
    transaction_id: str,
    body: TransactionUpdate,
    store: RecordStore = Depends(get_store),
    manager: ConnectionManager | None = Depends(get_manager),
    user_id: str = Depends(current_user_id),
) -> TransactionOutput:
    changes = update_changes(body)

    record = store.update(EntityType.TRANSACTION, user_id, transaction_id, changes)
    if record is None:
        raise NotFoundError("Transaction", transaction_id)
    output = TransactionOutput.model_validate(record)

    await publish_entity_event(
        manager, EntityType.TRANSACTION, EventAction.UPDATED, user_id,
        output.model_dump(mode="json"),
    )
    return output


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(
    transaction_id: str,
    store: RecordStore = Depends(get_store),
    manager: ConnectionManager | None = Depends(get_manager),
    user_id: str = Depends(current_user_id),
) -> Response:
    if not store.delete(EntityType.TRANSACTION, user_id, transaction_id):
        raise NotFoundError("Transaction", transaction_id)

    await publish_entity_event(
        manager, EntityType.TRANSACTION, EventAction.DELETED, user_id,
        {"id": transaction_id},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
