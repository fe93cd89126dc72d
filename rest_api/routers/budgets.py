"""
Budget endpoints.

One budget per category per user. Listing attaches ``current_spending``:
the sum of this month's expense transactions in the budget's category.
"""

import datetime as dt
from typing import Any

from fastapi import APIRouter, Depends, Response, status

from shared.events import EntityType, EventAction
from shared.utils.exceptions import DuplicateEntityError, NotFoundError
from rest_api.deps import current_user_id, get_manager, get_store
from rest_api.schemas import BudgetCreate, BudgetOutput, BudgetUpdate
from rest_api.services.events import publish_entity_event
from rest_api.store import RecordStore
from ws_gateway.connection_manager import ConnectionManager


router = APIRouter(prefix="/api/budgets", tags=["budgets"])


def _monthly_spending(
    transactions: list[dict[str, Any]],
    today: dt.date | None = None,
) -> dict[str, float]:
    """Expense totals per category for the month containing ``today``."""
    today = today or dt.date.today()
    month_start = today.replace(day=1)
    totals: dict[str, float] = {}
    for tx in transactions:
        if tx["type"] != "expense":
            continue
        if not (month_start <= tx["date"] <= today):
            continue
        totals[tx["category"]] = totals.get(tx["category"], 0.0) + tx["amount"]
    return totals


@router.get("", response_model=list[BudgetOutput])
def list_budgets(
    store: RecordStore = Depends(get_store),
    user_id: str = Depends(current_user_id),
) -> list[BudgetOutput]:
    """List budgets with this month's spending per category."""
    spending = _monthly_spending(store.list(EntityType.TRANSACTION, user_id))
    budgets = store.list(EntityType.BUDGET, user_id)
    budgets.sort(key=lambda b: b["category"])
    return [
        BudgetOutput.model_validate({**b, "current_spending": spending.get(b["category"], 0.0)})
        for b in budgets
    ]


@router.get("/{budget_id}", response_model=BudgetOutput)
def get_budget(
    budget_id: str,
    store: RecordStore = Depends(get_store),
    user_id: str = Depends(current_user_id),
) -> BudgetOutput:
    record = store.get(EntityType.BUDGET, user_id, budget_id)
    if record is None:
        raise NotFoundError("Budget", budget_id)
    return BudgetOutput.model_validate(record)


@router.post("", response_model=BudgetOutput, status_code=status.HTTP_201_CREATED)
async def create_budget(
    body: BudgetCreate,
    store: RecordStore = Depends(get_store),
    manager: ConnectionManager | None = Depends(get_manager),
    user_id: str = Depends(current_user_id),
) -> BudgetOutput:
    """Create a budget. Fails with 409 if the category already has one."""
    existing = store.list(EntityType.BUDGET, user_id)
    if any(b["category"] == body.category for b in existing):
        raise DuplicateEntityError("Budget for category", body.category, user_id=user_id)

    record = store.create(EntityType.BUDGET, user_id, body.model_dump())
    output = BudgetOutput.model_validate(record)

    await publish_entity_event(
        manager, EntityType.BUDGET, EventAction.ADDED, user_id,
        output.model_dump(mode="json", exclude_none=True),
    )
    return output


@router.patch("/{budget_id}", response_model=BudgetOutput)
async def update_budget(
    budget_id: str,
    body: BudgetUpdate,
    store: RecordStore = Depends(get_store),
    manager: ConnectionManager | None = Depends(get_manager),
    user_id: str = Depends(current_user_id),
) -> BudgetOutput:
    record = store.update(EntityType.BUDGET, user_id, budget_id, body.model_dump())
    if record is None:
        raise NotFoundError("Budget", budget_id)
    output = BudgetOutput.model_validate(record)

    await publish_entity_event(
        manager, EntityType.BUDGET, EventAction.UPDATED, user_id,
        output.model_dump(mode="json", exclude_none=True),
    )
    return output


@router.delete("/{budget_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_budget(
    budget_id: str,
    store: RecordStore = Depends(get_store),
    manager: ConnectionManager | None = Depends(get_manager),
    user_id: str = Depends(current_user_id),
) -> Response:
    if not store.delete(EntityType.BUDGET, user_id, budget_id):
        raise NotFoundError("Budget", budget_id)

    await publish_entity_event(
        manager, EntityType.BUDGET, EventAction.DELETED, user_id,
        {"id": budget_id},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
