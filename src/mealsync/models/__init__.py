"""
MealSync - Entity models.
"""

from mealsync.models.entities import (
    ENTITY_MODELS,
    SINGLETON_KINDS,
    Day,
    EntityKind,
    InventoryItem,
    Meal,
    MealPlan,
    Notification,
    NotificationPreferences,
    Nutrition,
    Recipe,
    RecipeIngredient,
    ShoppingItem,
    ShoppingList,
    UserProfile,
    to_record,
)

__all__ = [
    "ENTITY_MODELS",
    "SINGLETON_KINDS",
    "Day",
    "EntityKind",
    "InventoryItem",
    "Meal",
    "MealPlan",
    "Notification",
    "NotificationPreferences",
    "Nutrition",
    "Recipe",
    "RecipeIngredient",
    "ShoppingItem",
    "ShoppingList",
    "UserProfile",
    "to_record",
]
