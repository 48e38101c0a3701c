"""
MealSync - Meal plan derivation.

Pure functions: recipe pool + options -> MealPlan. Nothing here reads or
writes the store.

Selection per meal slot scores every candidate recipe:
- 60% ingredient availability (share of ingredients already in the
  inventory or on the current shopping list)
- 40% calorie fit for the slot

A recipe is not repeated within a day while alternatives exist. Across
days, used recipes are avoided for a window of REUSE_WINDOW_DAYS days.
When the pool runs out, reuse is allowed.
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

from mealsync.derive.normalize import normalize_name
from mealsync.errors import ValidationFailed
from mealsync.generation.schemas import GeneratedMealPlan
from mealsync.models.entities import (
    Day,
    InventoryItem,
    Meal,
    MealPlan,
    MealType,
    Recipe,
    ShoppingList,
)

logger = logging.getLogger(__name__)

MEAL_SLOTS: dict[int, tuple[MealType, ...]] = {
    1: ("dinner",),
    2: ("lunch", "dinner"),
    3: ("breakfast", "lunch", "dinner"),
    4: ("breakfast", "lunch", "dinner", "snack"),
}

# (min, max, ideal) calories
CALORIE_RANGES: dict[str, tuple[int, int, int]] = {
    "breakfast": (300, 500, 400),
    "lunch": (400, 600, 500),
    "dinner": (500, 800, 650),
    "snack": (100, 300, 200),
}

INGREDIENT_WEIGHT = 0.6
NUTRITION_WEIGHT = 0.4
REUSE_WINDOW_DAYS = 3

# Candidates scoring within this of the best are picked from at random
TIE_TOLERANCE = 1.0

VALID_DURATIONS = (7, 30)


@dataclass(frozen=True)
class PlanOptions:
    """User-chosen inputs of a generated plan."""

    duration: int
    cuisines: tuple[str, ...] = ()
    include_custom: bool = False
    start_date: datetime | None = None
    name: str | None = None

    def __post_init__(self):
        if self.duration not in VALID_DURATIONS:
            raise ValidationFailed(
                f"Plan duration must be 7 or 30 days, got {self.duration}",
                fields=["duration"],
            )


@dataclass
class _UsageTracker:
    """Recipes used today and within the current reuse window."""

    window: set[str] = field(default_factory=set)
    today: set[str] = field(default_factory=set)

    def end_day(self, day_index: int) -> None:
        self.window |= self.today
        self.today = set()
        if (day_index + 1) % REUSE_WINDOW_DAYS == 0:
            self.window.clear()


def slots_for(meals_per_day: int) -> tuple[MealType, ...]:
    try:
        return MEAL_SLOTS[meals_per_day]
    except KeyError:
        raise ValidationFailed(
            f"Meals per day must be between 1 and 4, got {meals_per_day}",
            fields=["meals_per_day"],
        ) from None


def build_recipe_pool(recipes: Iterable[Recipe], options: PlanOptions) -> list[Recipe]:
    """
    Discovered recipes, plus custom ones when enabled, filtered by cuisine.

    An empty cuisine selection means no filter. Raises ValidationFailed
    when nothing is left.
    """
    wanted = {normalize_name(c) for c in options.cuisines if c.strip()}
    pool = []
    for recipe in recipes:
        if recipe.source == "custom" and not options.include_custom:
            continue
        if wanted and normalize_name(recipe.cuisine) not in wanted:
            continue
        pool.append(recipe)

    if not pool:
        raise ValidationFailed(
            "No recipes available for this plan. Add recipes or adjust the cuisine filters.",
            fields=["cuisines"],
        )
    return pool


def score_ingredients(recipe: Recipe, available: set[str]) -> float:
    """Percentage (0-100) of the recipe's ingredients already at hand."""
    if not recipe.ingredients:
        return 0.0
    matched = sum(1 for ing in recipe.ingredients if normalize_name(ing.name) in available)
    return matched / len(recipe.ingredients) * 100


def score_nutrition(recipe: Recipe, meal_type: str) -> float:
    """
    Calorie fit for a slot, 0-100.

    In range: 50-100 depending on distance to the ideal.
    Out of range: 0-50, losing a point per 10 kcal outside.
    """
    low, high, ideal = CALORIE_RANGES[meal_type]
    calories = recipe.nutrition.calories
    if low <= calories <= high:
        return 100 - abs(calories - ideal) / (high - low) * 50
    distance = low - calories if calories < low else calories - high
    return max(0.0, 50 - distance / 10)


def score_recipe(recipe: Recipe, meal_type: str, available: set[str]) -> float:
    return (
        score_ingredients(recipe, available) * INGREDIENT_WEIGHT
        + score_nutrition(recipe, meal_type) * NUTRITION_WEIGHT
    )


def select_recipe(
    pool: Sequence[Recipe],
    meal_type: str,
    usage: _UsageTracker,
    available: set[str],
    rng: random.Random,
) -> Recipe:
    """Best-scoring recipe for a slot, honoring the reuse rules."""
    candidates = [r for r in pool if r.id not in usage.window and r.id not in usage.today]
    if not candidates:
        candidates = [r for r in pool if r.id not in usage.today]
    if not candidates:
        candidates = list(pool)

    scored = [(score_recipe(r, meal_type, available), r) for r in candidates]
    best = max(score for score, _ in scored)
    top = [r for score, r in scored if best - score <= TIE_TOLERANCE]
    return rng.choice(top)


def meal_from_recipe(recipe: Recipe, meal_type: MealType) -> Meal:
    """A meal whose nutrition is the recipe's, truncated to whole units."""
    return Meal(
        name=recipe.name,
        type=meal_type,
        recipe_id=recipe.id,
        cuisine=recipe.cuisine,
        calories=int(recipe.nutrition.calories),
        protein=int(recipe.nutrition.protein),
        carbs=int(recipe.nutrition.carbs),
        fat=int(recipe.nutrition.fat),
    )


def _day_name(start: datetime, index: int) -> tuple[str, datetime]:
    date = start + timedelta(days=index)
    return date.strftime("%A"), date


def _available_names(
    inventory: Iterable[InventoryItem], shopping_list: ShoppingList | None
) -> set[str]:
    names = {normalize_name(item.name) for item in inventory}
    if shopping_list is not None:
        names |= {normalize_name(item.name) for item in shopping_list.items}
    return names


def generate_meal_plan(
    options: PlanOptions,
    pool: Sequence[Recipe],
    meals_per_day: int,
    inventory: Iterable[InventoryItem] = (),
    shopping_list: ShoppingList | None = None,
    rng: random.Random | None = None,
) -> MealPlan:
    """
    Build an (inactive, unsaved) plan from a recipe pool.

    Every meal copies its recipe's nutrition; every day's totals are the
    sums of its meals.
    """
    if not pool:
        raise ValidationFailed("Recipe pool is empty", fields=["recipes"])
    slots = slots_for(meals_per_day)
    rng = rng or random.Random()
    start = options.start_date or datetime.now(timezone.utc)
    available = _available_names(inventory, shopping_list)

    usage = _UsageTracker()
    days = []
    for i in range(options.duration):
        meals = []
        for meal_type in slots:
            recipe = select_recipe(pool, meal_type, usage, available, rng)
            usage.today.add(recipe.id)
            meals.append(meal_from_recipe(recipe, meal_type))
        name, date = _day_name(start, i)
        days.append(Day(name=name, date=date, meals=meals))
        usage.end_day(i)

    logger.debug(
        f"Generated {options.duration}-day plan with {len(slots)} meals/day "
        f"from {len(pool)} recipes"
    )
    return MealPlan(
        name=options.name or f"{options.duration}-Day Meal Plan",
        duration=options.duration,
        selected_cuisines=list(options.cuisines),
        include_custom_recipes=options.include_custom,
        days=days,
        start_date=start,
        end_date=start + timedelta(days=options.duration),
        active=False,
        creation_method="auto",
    )


def normalize_generated_plan(
    generated: GeneratedMealPlan,
    duration: int,
    custom_recipes: Iterable[Recipe] = (),
    prompt: str | None = None,
    start_date: datetime | None = None,
    meals_per_day: int | None = None,
) -> MealPlan:
    """
    Turn a validated generator payload into a MealPlan.

    Meals whose name matches one of the user's custom recipes are linked
    to it and take its nutrition. Day totals are recomputed from meals.
    Raises ValidationFailed when the day count is not the duration, or,
    when meals_per_day is given, when a day has another number of meals.
    """
    if duration not in VALID_DURATIONS:
        raise ValidationFailed(f"Plan duration must be 7 or 30 days, got {duration}", ["duration"])
    if len(generated.days) != duration:
        raise ValidationFailed(
            f"Generated plan has {len(generated.days)} days, expected {duration}",
            fields=["days"],
        )
    if meals_per_day is not None:
        wrong = [
            i for i, day in enumerate(generated.days) if len(day.meals) != meals_per_day
        ]
        if wrong:
            raise ValidationFailed(
                f"Generated plan has days without exactly {meals_per_day} meals",
                fields=[f"days.{i}.meals" for i in wrong],
            )

    by_name = {normalize_name(r.name): r for r in custom_recipes if r.id}
    start = start_date or datetime.now(timezone.utc)
    days = []
    linked = 0
    for i, generated_day in enumerate(generated.days):
        meals = []
        for gm in generated_day.meals:
            recipe = by_name.get(normalize_name(gm.name))
            if recipe is not None:
                linked += 1
                meals.append(meal_from_recipe(recipe, gm.type))
                continue
            meals.append(
                Meal(
                    name=gm.name,
                    type=gm.type,
                    cuisine=gm.cuisine,
                    calories=int(gm.calories),
                    protein=int(gm.protein),
                    carbs=int(gm.carbs),
                    fat=int(gm.fat),
                )
            )
        _, date = _day_name(start, i)
        days.append(Day(name=generated_day.name, date=date, meals=meals))

    if linked:
        logger.debug(f"Linked {linked} generated meals to custom recipes")

    return MealPlan(
        name=generated.name or f"AI {duration}-Day Meal Plan",
        duration=duration,
        days=days,
        include_custom_recipes=bool(by_name),
        start_date=start,
        end_date=start + timedelta(days=duration),
        active=False,
        creation_method="ai-generated",
        ai_prompt=prompt,
    )


def prepare_manual_plan(plan: MealPlan, start_date: datetime | None = None) -> MealPlan:
    """
    Check and complete a plan the user built by hand.

    The day count must equal the duration. Missing name and dates are
    filled in; day dates follow the start date.
    """
    if len(plan.days) != plan.duration:
        raise ValidationFailed(
            f"Manual plan has {len(plan.days)} days, expected {plan.duration}",
            fields=["days"],
        )
    start = plan.start_date or start_date or datetime.now(timezone.utc)
    days = []
    for i, day in enumerate(plan.days):
        if day.date is None:
            _, date = _day_name(start, i)
            day = day.model_copy(update={"date": date})
        days.append(day)

    return plan.model_copy(
        update={
            "id": None,
            "name": plan.name or f"My {plan.duration}-Day Meal Plan",
            "days": days,
            "start_date": start,
            "end_date": plan.end_date or start + timedelta(days=plan.duration),
            "active": False,
            "creation_method": "manual",
            "ai_prompt": None,
        }
    )
