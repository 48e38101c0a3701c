"""
MealSync - Recipes view.
"""

import logging
from typing import Any, Literal

from pydantic_core import to_jsonable_python

from mealsync.db.adapter import Scope
from mealsync.models.entities import EntityKind, Recipe
from mealsync.views.base import LiveView

logger = logging.getLogger(__name__)


class RecipesView(LiveView[Recipe]):
    """Recipes of the user, optionally only custom or only discovered ones."""

    kind = EntityKind.RECIPES

    def __init__(self, core, session, source: Literal["custom", "discovered"] | None = None):
        super().__init__(core, session)
        self.source = source

    def scope(self) -> Scope:
        if self.source:
            return Scope.for_owner(self.user_id, source=self.source)
        return Scope.for_owner(self.user_id)

    @property
    def recipes(self) -> list[Recipe]:
        return self.records

    async def create_recipe(self, recipe: Recipe) -> str:
        """Save a manually written recipe. Returns its id."""
        recipe = recipe.model_copy(update={"creation_method": "manual"})
        return await self.repository.create_recipe(self.session, recipe)

    async def generate_recipe(self, prompt: str) -> str:
        """
        Generate a recipe from a prompt and save it.

        The payload is validated before anything is written; a malformed
        one raises ValidationFailed and no recipe is created.
        """
        gateway = self.core.require_gateway()
        profile = await self.repository.get_user_profile(self.session)
        recipe = await gateway.generate_recipe(prompt, profile)
        recipe_id = await self.repository.create_recipe(self.session, recipe)
        logger.info(f"Saved generated recipe '{recipe.name}' ({recipe_id})")
        return recipe_id

    async def update_recipe(self, recipe_id: str, **changes: Any) -> None:
        # Recipes change only through explicit, awaited updates
        payload = {name: to_jsonable_python(value) for name, value in changes.items()}
        await self.repository.update_recipe(self.session, recipe_id, payload)

    async def delete_recipe(self, recipe_id: str) -> None:
        await self._optimistic(
            recipe_id,
            lambda old: None,
            lambda: self.repository.delete_recipe(self.session, recipe_id),
            f"delete recipe {recipe_id}",
        )
