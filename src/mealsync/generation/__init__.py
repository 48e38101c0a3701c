"""
MealSync Generation Gateway.

Validating boundary to an external recipe / meal plan generator.
"""

from mealsync.generation.gateway import (
    GenerationGateway,
    GenerationKind,
    GenerationRequest,
    GenerationResponse,
    Generator,
)
from mealsync.generation.schemas import GeneratedMealPlan, GeneratedRecipe

__all__ = [
    "GeneratedMealPlan",
    "GeneratedRecipe",
    "GenerationGateway",
    "GenerationKind",
    "GenerationRequest",
    "GenerationResponse",
    "Generator",
]
