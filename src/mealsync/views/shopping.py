"""
MealSync - Shopping list view and fold-back.

Fold-back moves checked items into inventory one at a time, each step
awaited against the store:
1. Re-read the list; the item must still be on it and checked
2. Create or increment the matching inventory item
3. Remove the item from the list

Items that fail are reported in FoldResult.failed, with whether the
inventory write had already happened (step 2 done, step 3 failed).
Items folded before a failure stay folded.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

from mealsync.db.adapter import Scope
from mealsync.derive.shopping import aggregate_shopping_items, plan_fold, plan_requirements
from mealsync.errors import ConflictingState, NotFound, SyncError
from mealsync.models.entities import (
    EntityKind,
    InventoryItem,
    MealPlan,
    Recipe,
    ShoppingItem,
    ShoppingList,
)
from mealsync.repository import EntityRepository
from mealsync.session import UserSession, require_session
from mealsync.views.base import LiveView

logger = logging.getLogger(__name__)


@dataclass
class FoldFailure:
    item: ShoppingItem
    error: SyncError
    inventory_applied: bool = False


@dataclass
class FoldResult:
    folded: list[ShoppingItem] = field(default_factory=list)
    failed: list[FoldFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


async def rebuild_shopping_list(
    repository: EntityRepository,
    session: UserSession | None,
    plan: MealPlan,
    recipes: Iterable[Recipe] | None = None,
    inventory: Iterable[InventoryItem] | None = None,
) -> str:
    """
    Aggregate the plan's requirements against inventory and save the
    result as the new active list (previous lists are deactivated).
    Returns the new list id.
    """
    session = require_session(session)
    if recipes is None:
        recipes = await repository.list_recipes(session)
    if inventory is None:
        inventory = await repository.list_inventory(session)

    requirements = plan_requirements(plan, {r.id: r for r in recipes if r.id})
    items = aggregate_shopping_items(requirements, inventory)

    await repository.deactivate_shopping_lists(session)
    list_id = await repository.create_shopping_list(
        session, ShoppingList(meal_plan_id=plan.id, items=items, active=True)
    )
    logger.info(f"Shopping list {list_id} for plan {plan.id}: {len(items)} items")
    return list_id


class ShoppingListView(LiveView[ShoppingList]):
    """The active shopping list, optionally of a specific plan."""

    kind = EntityKind.SHOPPING_LISTS

    def __init__(self, core, session, plan_id: str | None = None):
        super().__init__(core, session)
        self.plan_id = plan_id
        self._folding: set[str] = set()

    def scope(self) -> Scope:
        if self.plan_id:
            return Scope.for_owner(self.user_id, active=True, meal_plan_id=self.plan_id)
        return Scope.for_owner(self.user_id, active=True)

    @property
    def value(self) -> ShoppingList | None:
        return self.records[0] if self.records else None

    def _require_list(self) -> ShoppingList:
        current = self.value
        if current is None or current.id is None:
            raise NotFound("No active shopping list")
        return current

    # =========================================================================
    # Actions
    # =========================================================================

    async def toggle_item(self, item_id: str) -> None:
        """Flip one item's checked flag (optimistic)."""
        current = self._require_list()
        item = next((i for i in current.items if i.id == item_id), None)
        if item is None:
            raise NotFound(f"Shopping item '{item_id}' not found")
        checked = not item.checked

        def transform(old: ShoppingList) -> ShoppingList:
            if not any(i.id == item_id for i in old.items):
                return old
            return old.with_item_checked(item_id, checked)

        # Only this item is written; other pending toggles stay independent
        await self._optimistic(
            current.id,
            transform,
            lambda: self.repository.set_shopping_item_checked(
                self.session, current.id, item_id, checked
            ),
            f"{'check' if checked else 'uncheck'} shopping item {item_id}",
        )

    async def add_checked_to_inventory(self) -> FoldResult:
        """Fold every checked item into inventory (not optimistic)."""
        session = require_session(self.session)
        current = self._require_list()
        result = FoldResult()

        for item in current.checked_items:
            if item.id in self._folding:
                result.failed.append(
                    FoldFailure(item, ConflictingState(f"'{item.name}' is already being folded"))
                )
                continue

            self._folding.add(item.id)
            inventory_applied = False
            try:
                folded = await self._fold_item(session, current.id, item)
                inventory_applied = True
                await self.repository.remove_shopping_items(session, current.id, [item.id])
            except SyncError as e:
                logger.warning(f"Fold of '{item.name}' failed: {e}")
                result.failed.append(FoldFailure(item, e, inventory_applied))
            else:
                result.folded.append(folded)
            finally:
                self._folding.discard(item.id)

        logger.info(
            f"Folded {len(result.folded)} items into inventory, {len(result.failed)} failed"
        )
        return result

    async def _fold_item(
        self, session: UserSession, list_id: str, item: ShoppingItem
    ) -> ShoppingItem:
        authoritative = await self.repository.get_shopping_list(session, list_id)
        live = next((i for i in authoritative.items if i.id == item.id), None)
        if live is None:
            raise ConflictingState(f"'{item.name}' was already folded or removed")
        if not live.checked:
            raise ConflictingState(f"'{item.name}' is no longer checked")

        step = plan_fold(live, await self.repository.list_inventory(session))
        if step.creates:
            await self.repository.add_inventory_item(session, step.new_inventory_item())
        else:
            await self.repository.update_inventory_item(
                session, step.existing.id, {"quantity": step.new_quantity}
            )
        return live

    async def clear_checked_items(self) -> int:
        """Remove checked items from the list without touching inventory."""
        session = require_session(self.session)
        current = self._require_list()
        authoritative = await self.repository.get_shopping_list(session, current.id)
        checked = [item.id for item in authoritative.checked_items]
        if checked:
            await self.repository.remove_shopping_items(session, current.id, checked)
        return len(checked)

    async def regenerate(self) -> str:
        """Re-aggregate the list from its plan and the current inventory."""
        session = require_session(self.session)
        if self.plan_id:
            plan = await self.repository.get_meal_plan(session, self.plan_id)
        else:
            plan = await self.repository.get_active_meal_plan(session)
            if plan is None:
                raise NotFound("No active meal plan")
        return await rebuild_shopping_list(self.repository, session, plan)
