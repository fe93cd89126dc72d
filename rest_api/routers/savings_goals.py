"""
Savings goal endpoints.
"""

from fastapi import APIRouter, Depends, Response, status

from shared.events import EntityType, EventAction
from shared.utils.exceptions import NotFoundError
from rest_api.deps import current_user_id, get_manager, get_store
from rest_api.schemas import SavingsGoalCreate, SavingsGoalOutput, SavingsGoalUpdate, update_changes
from rest_api.services.events import publish_entity_event
from rest_api.store import RecordStore
from ws_gateway.connection_manager import ConnectionManager


router = APIRouter(prefix="/api/savings-goals", tags=["savings-goals"])


@router.get("", response_model=list[SavingsGoalOutput])
def list_savings_goals(
    store: RecordStore = Depends(get_store),
    user_id: str = Depends(current_user_id),
) -> list[SavingsGoalOutput]:
    """List the user's savings goals by due date."""
    records = store.list(EntityType.SAVINGS_GOAL, user_id)
    records.sort(key=lambda r: r["due_date"])
    return [SavingsGoalOutput.model_validate(r) for r in records]


@router.get("/{goal_id}", response_model=SavingsGoalOutput)
def get_savings_goal(
    goal_id: str,
    store: RecordStore = Depends(get_store),
    user_id: str = Depends(current_user_id),
) -> SavingsGoalOutput:
    record = store.get(EntityType.SAVINGS_GOAL, user_id, goal_id)
    if record is None:
        raise NotFoundError("Savings goal", goal_id)
    return SavingsGoalOutput.model_validate(record)


@router.post("", response_model=SavingsGoalOutput, status_code=status.HTTP_201_CREATED)
async def create_savings_goal(
    body: SavingsGoalCreate,
    store: RecordStore = Depends(get_store),
    manager: ConnectionManager | None = Depends(get_manager),
    user_id: str = Depends(current_user_id),
) -> SavingsGoalOutput:
    record = store.create(EntityType.SAVINGS_GOAL, user_id, body.model_dump())
    output = SavingsGoalOutput.model_validate(record)

    await publish_entity_event(
        manager, EntityType.SAVINGS_GOAL, EventAction.ADDED, user_id,
        output.model_dump(mode="json"),
    )
    return output


@router.patch("/{goal_id}", response_model=SavingsGoalOutput)
async def update_savings_goal(
    goal_id: str,
    body: SavingsGoalUpdate,
    store: RecordStore = Depends(get_store),
    manager: ConnectionManager | None = Depends(get_manager),
    user_id: str = Depends(current_user_id),
) -> SavingsGoalOutput:
    """Update a goal; contributions are sent as a new ``current_amount``."""
    changes = update_changes(body)

    record = store.update(EntityType.SAVINGS_GOAL, user_id, goal_id, changes)
    if record is None:
        raise NotFoundError("Savings goal", goal_id)
    output = SavingsGoalOutput.model_validate(record)

    await publish_entity_event(
        manager, EntityType.SAVINGS_GOAL, EventAction.UPDATED, user_id,
        output.model_dump(mode="json"),
    )
    return output


@router.delete("/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_savings_goal(
    goal_id: str,
    store: RecordStore = Depends(get_store),
    manager: ConnectionManager | None = Depends(get_manager),
    user_id: str = Depends(current_user_id),
) -> Response:
    if not store.delete(EntityType.SAVINGS_GOAL, user_id, goal_id):
        raise NotFoundError("Savings goal", goal_id)

    await publish_entity_event(
        manager, EntityType.SAVINGS_GOAL, EventAction.DELETED, user_id,
        {"id": goal_id},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
