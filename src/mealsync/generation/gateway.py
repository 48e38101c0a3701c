"""
MealSync - Generation Gateway.

Boundary to an external generator (LLM or otherwise):

    GenerationRequest {kind, prompt, context}
        -> Generator.generate()
    GenerationResponse {status: ok, payload} | {status: error, message}

The gateway builds the context payload, then validates the returned
payload against the schema for the kind. It fails closed: a malformed
payload raises ValidationFailed and nothing derived from it exists yet,
so nothing can be persisted.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Literal, Protocol

from pydantic import BaseModel, ValidationError

from mealsync.errors import RemoteFailure, SyncError, ValidationFailed
from mealsync.generation.schemas import GeneratedMealPlan, GeneratedRecipe
from mealsync.models.entities import Nutrition, Recipe, RecipeIngredient, UserProfile

logger = logging.getLogger(__name__)


class GenerationKind(str, Enum):
    RECIPE = "recipe"
    MEAL_PLAN = "meal_plan"


RESPONSE_SCHEMAS: dict[GenerationKind, type[BaseModel]] = {
    GenerationKind.RECIPE: GeneratedRecipe,
    GenerationKind.MEAL_PLAN: GeneratedMealPlan,
}


@dataclass(frozen=True)
class GenerationRequest:
    kind: GenerationKind
    prompt: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GenerationResponse:
    status: Literal["ok", "error"]
    payload: dict[str, Any] | None = None
    message: str | None = None

    @classmethod
    def ok(cls, payload: dict[str, Any]) -> "GenerationResponse":
        return cls(status="ok", payload=payload)

    @classmethod
    def error(cls, message: str) -> "GenerationResponse":
        return cls(status="error", message=message)


class Generator(Protocol):
    """External generation capability. Single request, single response."""

    async def generate(self, request: GenerationRequest) -> GenerationResponse: ...


def recipe_context(recipe: Recipe) -> dict[str, Any]:
    """The minimal fields of a custom recipe the generator needs."""
    return {
        "name": recipe.name,
        "cuisine": recipe.cuisine,
        "servings": recipe.servings,
        "prep_time_minutes": recipe.prep_time_minutes,
        "cook_time_minutes": recipe.cook_time_minutes,
        "ingredients": [
            {"name": i.name, "amount": i.amount, "unit": i.unit} for i in recipe.ingredients
        ],
        "nutrition": {
            "calories": recipe.nutrition.calories,
            "protein": recipe.nutrition.protein,
        },
    }


def profile_context(profile: UserProfile | None) -> dict[str, Any]:
    if profile is None:
        return {}
    return {
        "diet_type": profile.diet_type,
        "allergies": list(profile.allergies),
        "dislikes": list(profile.dislikes),
    }


def validate_payload(kind: GenerationKind, payload: Any) -> BaseModel:
    """Schema-check a generator payload; ValidationFailed lists bad fields."""
    if not isinstance(payload, dict):
        raise ValidationFailed(f"Generated {kind.value} payload is not an object")
    try:
        return RESPONSE_SCHEMAS[kind].model_validate(payload)
    except ValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        logger.warning(f"Generated {kind.value} failed validation: {fields}")
        raise ValidationFailed(
            f"Generated {kind.value} is malformed: {', '.join(fields)}", fields=fields
        ) from e


class GenerationGateway:
    """Validating front for a Generator."""

    def __init__(self, generator: Generator):
        self.generator = generator

    async def generate(
        self, kind: GenerationKind, prompt: str, context: dict[str, Any] | None = None
    ) -> BaseModel:
        """
        Send one request and return the validated payload model.

        Raises:
            ValidationFailed: empty prompt or malformed payload
            RemoteFailure: generator error status or exception
        """
        if not prompt or not prompt.strip():
            raise ValidationFailed("Prompt must not be empty", fields=["prompt"])

        request = GenerationRequest(kind=kind, prompt=prompt.strip(), context=context or {})
        try:
            response = await self.generator.generate(request)
        except SyncError:
            raise
        except Exception as e:
            logger.warning(f"Generator call failed for {kind.value}: {e}")
            raise RemoteFailure(f"Generation of {kind.value} failed: {e}") from e

        if response.status != "ok":
            raise RemoteFailure(
                f"Generation of {kind.value} failed: {response.message or 'unknown error'}"
            )
        return validate_payload(kind, response.payload)

    async def generate_recipe(
        self, prompt: str, profile: UserProfile | None = None
    ) -> Recipe:
        """An unsaved, AI-generated custom recipe."""
        generated: GeneratedRecipe = await self.generate(
            GenerationKind.RECIPE, prompt, profile_context(profile)
        )
        return Recipe(
            name=generated.name,
            description=generated.description,
            cuisine=generated.cuisine,
            difficulty=generated.difficulty,
            prep_time_minutes=generated.prep_time_minutes,
            cook_time_minutes=generated.cook_time_minutes,
            servings=generated.servings,
            ingredients=[
                RecipeIngredient(name=i.name, amount=i.amount, unit=i.unit)
                for i in generated.ingredients
            ],
            instructions=generated.instructions,
            nutrition=Nutrition(**generated.nutrition.model_dump()),
            source="custom",
            creation_method="ai-generated",
            ai_prompt=prompt,
            is_public=False,
        )

    async def generate_meal_plan(
        self,
        prompt: str,
        duration: int,
        custom_recipes: Iterable[Recipe] = (),
        profile: UserProfile | None = None,
    ) -> GeneratedMealPlan:
        """Validated plan payload; MealPlan construction is a derivation step."""
        context = {
            **profile_context(profile),
            "duration": duration,
            "custom_recipes": [recipe_context(r) for r in custom_recipes],
        }
        if profile is not None:
            context["meals_per_day"] = profile.meals_per_day
        return await self.generate(GenerationKind.MEAL_PLAN, prompt, context)
