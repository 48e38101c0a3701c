"""
MealSync - Shopping list derivation.

    plan + recipes  --plan_requirements-->   [Requirement]
    requirements + inventory --aggregate_shopping_items--> [ShoppingItem]
    checked item + inventory --plan_fold--> FoldStep (create or increment)

Matching is by normalized name and unit. Different units are never
reconciled: 2 piece of tomato does not cover 500 g of tomato.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, Mapping

from mealsync.derive.normalize import display_name, ingredient_key, normalize_name
from mealsync.models.entities import InventoryItem, MealPlan, Recipe, ShoppingItem

logger = logging.getLogger(__name__)

# Float sums of amounts are rounded to this many decimals
_PRECISION = 6

_ITEM_NAMESPACE = uuid.UUID("6f1c2a7e-3b7d-4f61-9a55-0c8e4d2b9f10")


@dataclass(frozen=True)
class Requirement:
    """Total amount of one ingredient (name + unit) a plan needs."""

    name: str
    unit: str
    quantity: float

    @property
    def key(self) -> tuple[str, str]:
        return ingredient_key(self.name, self.unit)


def shopping_item_id(name: str, unit: str) -> str:
    """Stable id for a (name, unit) line, so re-aggregation yields the same set."""
    key_name, key_unit = ingredient_key(name, unit)
    return str(uuid.uuid5(_ITEM_NAMESPACE, f"{key_name}|{key_unit}"))


def plan_requirements(plan: MealPlan, recipes: Mapping[str, Recipe]) -> list[Requirement]:
    """
    Sum every meal's recipe ingredients across the plan.

    Meals without a recipe contribute nothing. Meals whose recipe no
    longer exists are skipped with a warning.
    """
    totals: dict[tuple[str, str], Requirement] = {}
    missing: set[str] = set()

    for day in plan.days:
        for meal in day.meals:
            if not meal.recipe_id:
                continue
            recipe = recipes.get(meal.recipe_id)
            if recipe is None:
                missing.add(meal.recipe_id)
                continue
            for ing in recipe.ingredients:
                key = ingredient_key(ing.name, ing.unit)
                current = totals.get(key)
                if current is None:
                    totals[key] = Requirement(display_name(ing.name), key[1], ing.amount)
                else:
                    totals[key] = Requirement(
                        current.name, current.unit, current.quantity + ing.amount
                    )

    if missing:
        logger.warning(
            f"Skipped meals of plan {plan.id} whose recipes no longer exist: {sorted(missing)}"
        )
    return [
        Requirement(r.name, r.unit, round(r.quantity, _PRECISION)) for r in totals.values()
    ]


def inventory_holdings(inventory: Iterable[InventoryItem]) -> dict[tuple[str, str], float]:
    held: dict[tuple[str, str], float] = {}
    for item in inventory:
        key = ingredient_key(item.name, item.unit)
        held[key] = held.get(key, 0.0) + item.quantity
    return held


def aggregate_shopping_items(
    requirements: Iterable[Requirement], inventory: Iterable[InventoryItem]
) -> list[ShoppingItem]:
    """
    Minimal list: one item per requirement not covered by inventory.

    Emits exactly the remainder (required - held) when positive, nothing
    otherwise. Pure and idempotent for the same inputs.
    """
    inventory = list(inventory)
    held = inventory_holdings(inventory)
    categories = {normalize_name(item.name): item.category for item in inventory}

    items = []
    for req in requirements:
        remaining = round(req.quantity - held.get(req.key, 0.0), _PRECISION)
        if remaining <= 0:
            continue
        items.append(
            ShoppingItem(
                id=shopping_item_id(req.name, req.unit),
                name=req.name,
                quantity=remaining,
                unit=req.unit,
                category=categories.get(normalize_name(req.name), "Other"),
            )
        )
    return items


@dataclass(frozen=True)
class FoldStep:
    """How one checked item lands in inventory."""

    item: ShoppingItem
    existing: InventoryItem | None

    @property
    def creates(self) -> bool:
        return self.existing is None

    @property
    def new_quantity(self) -> float:
        base = self.existing.quantity if self.existing else 0.0
        return round(base + self.item.quantity, _PRECISION)

    def new_inventory_item(self) -> InventoryItem:
        return InventoryItem(
            name=self.item.name,
            quantity=self.item.quantity,
            unit=self.item.unit,
            category=self.item.category,
        )


def plan_fold(item: ShoppingItem, inventory: Iterable[InventoryItem]) -> FoldStep:
    """Match a shopping item to an inventory item of the same name and unit."""
    key = ingredient_key(item.name, item.unit)
    for existing in inventory:
        if ingredient_key(existing.name, existing.unit) == key:
            return FoldStep(item=item, existing=existing)
    return FoldStep(item=item, existing=None)
