"""
Pytest configuration and fixtures for MealSync tests.
"""

import os

import pytest

# Set test environment before importing mealsync modules
os.environ["MEALSYNC_ENV"] = "development"
os.environ["LOG_LEVEL"] = "DEBUG"

from mealsync.db.memory import InMemoryStore
from mealsync.models.entities import (
    InventoryItem,
    Nutrition,
    Recipe,
    RecipeIngredient,
)
from mealsync.repository import EntityRepository
from mealsync.session import UserSession
from mealsync.views.base import SyncCore


@pytest.fixture
def store():
    """Fresh in-memory remote store."""
    return InMemoryStore()


@pytest.fixture
def session():
    return UserSession(user_id="user-1")


@pytest.fixture
def other_session():
    return UserSession(user_id="user-2")


@pytest.fixture
def repository(store):
    return EntityRepository(store)


@pytest.fixture
def core(store):
    return SyncCore.create(store)


@pytest.fixture
def sample_recipe_records():
    """Raw recipe records, as the store holds them."""
    return [
        {
            "name": "Shakshuka",
            "cuisine": "Mediterranean",
            "source": "discovered",
            "ingredients": [
                {"name": "Egg", "amount": 2, "unit": "piece"},
                {"name": "Tomato", "amount": 250, "unit": "g"},
            ],
            "nutrition": {"calories": 380, "protein": 18, "carbs": 20, "fat": 22},
        },
        {
            "name": "Chicken Rice Bowl",
            "cuisine": "Asian",
            "source": "discovered",
            "ingredients": [
                {"name": "Chicken Breast", "amount": 200, "unit": "g"},
                {"name": "Rice", "amount": 150, "unit": "g"},
            ],
            "nutrition": {"calories": 560, "protein": 42, "carbs": 60, "fat": 12},
        },
        {
            "name": "Tomato Pasta",
            "cuisine": "Italian",
            "source": "discovered",
            "ingredients": [
                {"name": "Pasta", "amount": 120, "unit": "g"},
                {"name": "Tomato", "amount": 300, "unit": "g"},
            ],
            "nutrition": {"calories": 640, "protein": 20, "carbs": 95, "fat": 16},
        },
        {
            "name": "Grandma's Lentil Soup",
            "cuisine": "Turkish",
            "source": "custom",
            "ingredients": [
                {"name": "Red Lentils", "amount": 200, "unit": "g"},
                {"name": "Onion", "amount": 1, "unit": "piece"},
            ],
            "nutrition": {"calories": 420.7, "protein": 24.9, "carbs": 60, "fat": 8},
        },
    ]


@pytest.fixture
def sample_recipes(sample_recipe_records):
    """Recipe models with ids (recipe-1 ...)."""
    return [
        Recipe.model_validate({**record, "id": f"recipe-{i}", "user_id": "user-1"})
        for i, record in enumerate(sample_recipe_records, start=1)
    ]


@pytest.fixture
def sample_inventory():
    return [
        InventoryItem(id="inv-1", name="Tomato", quantity=200, unit="g", category="Produce"),
        InventoryItem(id="inv-2", name="Rice", quantity=1000, unit="g", category="Grains"),
    ]


@pytest.fixture
def single_recipe():
    """One recipe of 500 kcal / 25 g protein."""
    return Recipe(
        id="recipe-solo",
        name="Power Bowl",
        cuisine="Fusion",
        source="discovered",
        ingredients=[RecipeIngredient(name="Quinoa", amount=100, unit="g")],
        nutrition=Nutrition(calories=500, protein=25, carbs=50, fat=15),
    )
