"""
MealSync Derivation Engine.

Pure functions computing one entity from others.
"""

from mealsync.derive.dashboard import DashboardStats, dashboard_stats
from mealsync.derive.meal_plan import (
    PlanOptions,
    build_recipe_pool,
    generate_meal_plan,
    normalize_generated_plan,
    prepare_manual_plan,
)
from mealsync.derive.shopping import (
    FoldStep,
    Requirement,
    aggregate_shopping_items,
    plan_fold,
    plan_requirements,
)

__all__ = [
    "DashboardStats",
    "FoldStep",
    "PlanOptions",
    "Requirement",
    "aggregate_shopping_items",
    "build_recipe_pool",
    "dashboard_stats",
    "generate_meal_plan",
    "normalize_generated_plan",
    "plan_fold",
    "plan_requirements",
    "prepare_manual_plan",
]
