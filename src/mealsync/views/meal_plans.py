"""
MealSync - Meal plan view.

Holds the active plan. Generating a plan is a multi-step, awaited flow:

1. Read recipes, profile, inventory, current shopping list
2. Derive the plan (pure)
3. Persist it inactive, then activate it atomically
4. Derive and persist its shopping list

Readers may see the new plan before its shopping list exists.
"""

import logging
import random

from mealsync.config import settings
from mealsync.db.adapter import Scope
from mealsync.derive.meal_plan import (
    PlanOptions,
    build_recipe_pool,
    generate_meal_plan,
    normalize_generated_plan,
    prepare_manual_plan,
)
from mealsync.errors import NotFound
from mealsync.models.entities import EntityKind, MealPlan, Recipe
from mealsync.views.base import LiveView
from mealsync.views.shopping import rebuild_shopping_list

logger = logging.getLogger(__name__)


class MealPlanView(LiveView[MealPlan]):
    """The active meal plan (None when the user has none)."""

    kind = EntityKind.MEAL_PLANS

    def scope(self) -> Scope:
        return Scope.for_owner(self.user_id, active=True)

    @property
    def value(self) -> MealPlan | None:
        return self.records[0] if self.records else None

    async def all_plans(self) -> list[MealPlan]:
        """Plan history, newest first."""
        return await self.repository.list_meal_plans(self.session)

    async def generate_plan(
        self,
        duration: int,
        cuisines: tuple[str, ...] | list[str] = (),
        include_custom: bool = False,
        rng: random.Random | None = None,
    ) -> str:
        """Generate, save and activate a plan from the recipe pool. Returns its id."""
        options = PlanOptions(
            duration=duration, cuisines=tuple(cuisines), include_custom=include_custom
        )
        recipes = await self.repository.list_recipes(self.session)
        pool = build_recipe_pool(recipes, options)

        profile = await self.repository.get_user_profile(self.session)
        meals_per_day = profile.meals_per_day if profile else settings.default_meals_per_day
        inventory = await self.repository.list_inventory(self.session)
        shopping_list = await self.repository.get_active_shopping_list(self.session)

        plan = generate_meal_plan(
            options, pool, meals_per_day, inventory, shopping_list, rng=rng
        )
        return await self._save_and_activate(plan, recipes, inventory)

    async def generate_ai_plan(self, prompt: str, duration: int = 7) -> str:
        """
        Generate a plan with the external generator, using the user's
        custom recipes as context. Nothing is saved unless the payload
        validates.
        """
        gateway = self.core.require_gateway()
        custom = await self.repository.list_recipes(self.session, source="custom")
        profile = await self.repository.get_user_profile(self.session)
        generated = await gateway.generate_meal_plan(prompt, duration, custom, profile)
        plan = normalize_generated_plan(
            generated,
            duration,
            custom,
            prompt=prompt,
            meals_per_day=profile.meals_per_day if profile else None,
        )
        return await self._save_and_activate(plan, custom)

    async def create_manual_plan(self, plan: MealPlan) -> str:
        """Save a hand-built plan, activate it and derive its shopping list."""
        return await self._save_and_activate(prepare_manual_plan(plan))

    async def _save_and_activate(
        self, plan: MealPlan, recipes: list[Recipe] | None = None, inventory=None
    ) -> str:
        plan_id = await self.repository.create_meal_plan(self.session, plan)
        await self.repository.set_active_meal_plan(self.session, plan_id)
        logger.info(f"Activated {plan.duration}-day plan {plan_id} ({plan.creation_method})")
        await rebuild_shopping_list(
            self.repository,
            self.session,
            plan.model_copy(update={"id": plan_id}),
            recipes=recipes,
            inventory=inventory,
        )
        return plan_id

    async def toggle_meal_complete(self, day_index: int, meal_index: int) -> None:
        """Flip one meal's completed flag on the active plan (optimistic)."""
        plan = self.value
        if plan is None or plan.id is None:
            raise NotFound("No active meal plan")
        if not 0 <= day_index < len(plan.days):
            raise NotFound(f"Day {day_index} not in plan")
        meals = plan.days[day_index].meals
        if not 0 <= meal_index < len(meals):
            raise NotFound(f"Meal {meal_index} not in day {day_index}")
        completed = not meals[meal_index].completed

        # Only this meal is written; the rest of the stored plan is kept
        await self._optimistic(
            plan.id,
            lambda old: old.with_meal_completed(day_index, meal_index, completed),
            lambda: self.repository.set_meal_completed(
                self.session, plan.id, day_index, meal_index, completed
            ),
            f"set meal {day_index}/{meal_index} of plan {plan.id} completed={completed}",
        )

    async def set_active_plan(self, plan_id: str) -> None:
        """Activate a plan from history (atomic, not optimistic)."""
        await self.repository.set_active_meal_plan(self.session, plan_id)

    async def delete_plan(self, plan_id: str) -> None:
        await self.repository.delete_meal_plan(self.session, plan_id)
