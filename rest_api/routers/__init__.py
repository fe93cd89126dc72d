"""
REST routers, one per tracked entity collection.
"""

from rest_api.routers.transactions import router as transactions_router
from rest_api.routers.budgets import router as budgets_router
from rest_api.routers.savings_goals import router as savings_goals_router

__all__ = ["transactions_router", "budgets_router", "savings_goals_router"]
