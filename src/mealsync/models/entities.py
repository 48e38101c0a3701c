"""
MealSync - Entity Models.

These models map to the remote store collections. They are used for:
- Typed views delivered by the Subscription Manager
- Payloads written through the Entity Repository
- Results of the Derivation Engine

All entities are immutable-by-replacement: a mutation produces a new
value via `model_copy(update=...)` that replaces the old one.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field


class EntityKind(str, Enum):
    """Entity kinds known to the sync core. Values are store table names."""

    INVENTORY = "inventory"
    RECIPES = "recipes"
    MEAL_PLANS = "meal_plans"
    SHOPPING_LISTS = "shopping_lists"
    NOTIFICATIONS = "notifications"
    NOTIFICATION_PREFERENCES = "notification_preferences"
    USER_PROFILES = "user_profiles"


# Kinds with exactly one record per user (id == user_id)
SINGLETON_KINDS = {
    EntityKind.NOTIFICATION_PREFERENCES,
    EntityKind.USER_PROFILES,
}


InventoryCategory = Literal["Protein", "Grains", "Produce", "Dairy", "Oils", "Other"]
MealType = Literal["breakfast", "lunch", "dinner", "snack"]
NotificationType = Literal[
    "meal_reminder", "plan_update", "recipe_update", "shopping_reminder", "system"
]


class _Entity(BaseModel):
    """Shared config: frozen values, unknown store columns ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")


# =============================================================================
# Inventory & Recipes
# =============================================================================


class Nutrition(_Entity):
    """Nutrition facts (per serving for recipes)."""

    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0


class InventoryItem(_Entity):
    """Item the user currently holds."""

    id: str | None = None
    user_id: str | None = None
    name: str
    quantity: float
    unit: str
    category: InventoryCategory = "Other"
    nutrition: Nutrition = Field(default_factory=Nutrition)
    expiry_date: datetime | None = None
    added_at: datetime | None = None
    updated_at: datetime | None = None


class RecipeIngredient(_Entity):
    """One line of a recipe's ordered ingredient list."""

    name: str
    amount: float
    unit: str


class Recipe(_Entity):
    """
    A recipe - either discovered (catalog) or custom (user-created).

    AI-generated recipes are custom recipes with creation_method
    "ai-generated"; after creation they behave like manual ones.
    """

    id: str | None = None
    user_id: str | None = None
    name: str
    description: str | None = None
    cuisine: str = ""
    difficulty: Literal["Easy", "Medium", "Hard"] = "Medium"
    prep_time_minutes: int = 0
    cook_time_minutes: int = 0
    servings: int = 1
    ingredients: list[RecipeIngredient] = Field(default_factory=list)
    instructions: str = ""
    nutrition: Nutrition = Field(default_factory=Nutrition)
    source: Literal["custom", "discovered"] = "custom"
    creation_method: Literal["manual", "ai-generated"] = "manual"
    ai_prompt: str | None = None
    is_public: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


# =============================================================================
# Meal Plans
# =============================================================================


class Meal(_Entity):
    """A planned meal. Nutrition is denormalized from its source recipe."""

    name: str
    type: MealType
    recipe_id: str | None = None
    cuisine: str = ""
    calories: int = 0
    protein: int = 0
    carbs: int = 0
    fat: int = 0
    completed: bool = False


class Day(_Entity):
    """One day of a plan. Totals are always the exact sums of its meals."""

    name: str
    date: datetime | None = None
    meals: list[Meal] = Field(default_factory=list)

    @computed_field
    @property
    def total_calories(self) -> int:
        return sum(m.calories for m in self.meals)

    @computed_field
    @property
    def total_protein(self) -> int:
        return sum(m.protein for m in self.meals)


class MealPlan(_Entity):
    """A 7 or 30 day plan. At most one plan per user is active."""

    id: str | None = None
    user_id: str | None = None
    name: str = ""
    duration: Literal[7, 30]
    selected_cuisines: list[str] = Field(default_factory=list)
    include_custom_recipes: bool = False
    days: list[Day] = Field(default_factory=list)
    start_date: datetime | None = None
    end_date: datetime | None = None
    active: bool = False
    creation_method: Literal["auto", "ai-generated", "manual"] = "auto"
    ai_prompt: str | None = None
    created_at: datetime | None = None

    def with_meal_completed(
        self, day_index: int, meal_index: int, completed: bool
    ) -> "MealPlan":
        """Copy with one meal's completed flag set. IndexError if out of range."""
        if not 0 <= day_index < len(self.days):
            raise IndexError(f"Day {day_index} not in plan")
        day = self.days[day_index]
        if not 0 <= meal_index < len(day.meals):
            raise IndexError(f"Meal {meal_index} not in day {day_index}")
        meals = list(day.meals)
        meals[meal_index] = meals[meal_index].model_copy(update={"completed": completed})
        days = list(self.days)
        days[day_index] = day.model_copy(update={"meals": meals})
        return self.model_copy(update={"days": days})


# =============================================================================
# Shopping Lists
# =============================================================================


class ShoppingItem(_Entity):
    """A line on a shopping list."""

    id: str
    name: str
    quantity: float
    unit: str
    category: InventoryCategory = "Other"
    checked: bool = False
    checked_at: datetime | None = None

    def with_checked(self, checked: bool) -> "ShoppingItem":
        return self.model_copy(
            update={
                "checked": checked,
                "checked_at": datetime.now(timezone.utc) if checked else None,
            }
        )


class ShoppingList(_Entity):
    """Shopping list, optionally tied to a meal plan."""

    id: str | None = None
    user_id: str | None = None
    meal_plan_id: str | None = None
    items: list[ShoppingItem] = Field(default_factory=list)
    active: bool = True
    created_at: datetime | None = None

    @property
    def checked_items(self) -> list[ShoppingItem]:
        return [item for item in self.items if item.checked]

    def with_item_checked(self, item_id: str, checked: bool) -> "ShoppingList":
        """Copy with one item checked or unchecked. KeyError if absent."""
        if not any(item.id == item_id for item in self.items):
            raise KeyError(item_id)
        items = [
            item.with_checked(checked) if item.id == item_id else item
            for item in self.items
        ]
        return self.model_copy(update={"items": items})


# =============================================================================
# Notifications
# =============================================================================


class Notification(_Entity):
    """A user notification. Created by backend events, read/cleared here."""

    id: str | None = None
    user_id: str | None = None
    type: NotificationType = "system"
    title: str
    message: str
    priority: Literal["low", "medium", "high"] = "medium"
    read: bool = False
    action_url: str | None = None
    created_at: datetime | None = None


class NotificationPreferences(_Entity):
    """Per-user notification toggles. Singleton: id == user_id."""

    id: str | None = None
    user_id: str | None = None
    push_enabled: bool = True
    email_enabled: bool = True
    meal_reminders: bool = True
    plan_updates: bool = True
    recipe_updates: bool = False
    shopping_reminders: bool = True


# =============================================================================
# User Profile
# =============================================================================


class UserProfile(_Entity):
    """
    User's dietary profile and planning preferences.

    Singleton per user (id == user_id).
    """

    id: str | None = None
    user_id: str | None = None
    diet_type: str = "None"
    allergies: list[str] = Field(default_factory=list)
    dislikes: list[str] = Field(default_factory=list)
    goal: str | None = None
    target_weight: float | None = None
    current_weight: float | None = None
    target_calories: int | None = None
    meals_per_day: int = Field(default=3, ge=1, le=4)
    preferred_cuisines: list[str] = Field(default_factory=list)
    max_cooking_time: str | None = None
    subscription_tier: str = "free"


ENTITY_MODELS: dict[EntityKind, type[BaseModel]] = {
    EntityKind.INVENTORY: InventoryItem,
    EntityKind.RECIPES: Recipe,
    EntityKind.MEAL_PLANS: MealPlan,
    EntityKind.SHOPPING_LISTS: ShoppingList,
    EntityKind.NOTIFICATIONS: Notification,
    EntityKind.NOTIFICATION_PREFERENCES: NotificationPreferences,
    EntityKind.USER_PROFILES: UserProfile,
}


def to_record(entity: BaseModel) -> dict:
    """Serialize an entity for the store (JSON-safe, without id)."""
    return entity.model_dump(mode="json", exclude={"id"})
