"""
MealSync - Inventory view.
"""

from typing import Any

from mealsync.errors import ValidationFailed
from mealsync.models.entities import EntityKind, InventoryItem
from mealsync.views.base import LiveView

_EDITABLE = {"name", "quantity", "unit", "category", "nutrition", "expiry_date"}


class InventoryView(LiveView[InventoryItem]):
    """The user's inventory, in the order items were added."""

    kind = EntityKind.INVENTORY

    @property
    def items(self) -> list[InventoryItem]:
        return self.records

    async def add_item(self, item: InventoryItem) -> str:
        """Create an item (awaited, not optimistic). Returns its id."""
        return await self.repository.add_inventory_item(self.session, item)

    async def update_item(self, item_id: str, **changes: Any) -> None:
        unknown = set(changes) - _EDITABLE
        if unknown:
            raise ValidationFailed(f"Cannot update inventory fields: {sorted(unknown)}", sorted(unknown))
        if "quantity" in changes and changes["quantity"] < 0:
            raise ValidationFailed("Quantity must not be negative", ["quantity"])
        await self._patch(
            item_id,
            changes,
            lambda payload: self.repository.update_inventory_item(self.session, item_id, payload),
            f"update inventory item {item_id}",
        )

    async def delete_item(self, item_id: str) -> None:
        await self._optimistic(
            item_id,
            lambda old: None,
            lambda: self.repository.delete_inventory_item(self.session, item_id),
            f"delete inventory item {item_id}",
        )
