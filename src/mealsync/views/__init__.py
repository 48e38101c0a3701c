"""
MealSync UI boundary: one live view per entity kind.
"""

from mealsync.views.base import LiveView, SyncCore
from mealsync.views.dashboard import DashboardView
from mealsync.views.inventory import InventoryView
from mealsync.views.meal_plans import MealPlanView
from mealsync.views.notifications import NotificationsView
from mealsync.views.preferences import PreferencesView, ProfileView
from mealsync.views.recipes import RecipesView
from mealsync.views.shopping import FoldFailure, FoldResult, ShoppingListView

__all__ = [
    "DashboardView",
    "FoldFailure",
    "FoldResult",
    "InventoryView",
    "LiveView",
    "MealPlanView",
    "NotificationsView",
    "PreferencesView",
    "ProfileView",
    "RecipesView",
    "ShoppingListView",
    "SyncCore",
]
