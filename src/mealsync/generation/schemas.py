"""
MealSync - Generation payload schemas.

Shapes a generator must return. Every field the core relies on is
required; a payload missing one fails validation as a whole and nothing
built from it is persisted.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from mealsync.models.entities import MealType


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GeneratedNutrition(_Payload):
    calories: float = Field(ge=0)
    protein: float = Field(ge=0)
    carbs: float = Field(ge=0)
    fat: float = Field(ge=0)


class GeneratedIngredient(_Payload):
    name: str = Field(min_length=1)
    amount: float = Field(gt=0)
    unit: str


class GeneratedRecipe(_Payload):
    """A recipe as returned by the generator."""

    name: str = Field(min_length=1)
    description: str = ""
    cuisine: str = ""
    difficulty: Literal["Easy", "Medium", "Hard"] = "Medium"
    prep_time_minutes: int = Field(default=0, ge=0)
    cook_time_minutes: int = Field(default=0, ge=0)
    servings: int = Field(default=1, ge=1)
    ingredients: list[GeneratedIngredient] = Field(min_length=1)
    instructions: str = Field(min_length=1)
    nutrition: GeneratedNutrition


class GeneratedMeal(_Payload):
    name: str = Field(min_length=1)
    type: MealType
    cuisine: str = ""
    calories: float = Field(ge=0)
    protein: float = Field(ge=0)
    carbs: float = Field(default=0, ge=0)
    fat: float = Field(default=0, ge=0)


class GeneratedDay(_Payload):
    # Any totals the generator sends are ignored; they are recomputed
    name: str = Field(min_length=1)
    meals: list[GeneratedMeal] = Field(min_length=1)


class GeneratedMealPlan(_Payload):
    """A meal plan as returned by the generator."""

    name: str = ""
    days: list[GeneratedDay] = Field(min_length=1)
