"""
MealSync - Entity Repository.

Typed accessors to the remote store, one group per entity kind.

Rules shared by every method:
- The session is checked first (NotAuthenticated, fail fast)
- Exceptions from the store are wrapped in RemoteFailure (cause chained)
- Asking for a specific id that has no record raises NotFound
"""

import logging
from typing import Any, Awaitable, TypeVar

from pydantic import BaseModel, ValidationError

from mealsync.db.adapter import (
    ErrorCallback,
    RemoteStore,
    RemoteSubscription,
    Scope,
    SnapshotCallback,
)
from mealsync.errors import (
    NotAuthenticated,
    NotFound,
    RemoteFailure,
    SyncError,
    ValidationFailed,
)
from mealsync.models.entities import (
    ENTITY_MODELS,
    EntityKind,
    InventoryItem,
    MealPlan,
    Notification,
    NotificationPreferences,
    Recipe,
    ShoppingItem,
    ShoppingList,
    UserProfile,
    to_record,
)
from mealsync.session import UserSession, require_session

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_record(kind: EntityKind, record: dict) -> BaseModel:
    """Convert a raw store record into its entity model."""
    try:
        return ENTITY_MODELS[kind].model_validate(record)
    except ValidationError as e:
        raise RemoteFailure(f"Malformed {kind.value} record from store: {e}") from e


class EntityRepository:
    """
    Typed CRUD over a RemoteStore.

    Stateless apart from the store handle; safe to share.
    """

    def __init__(self, store: RemoteStore):
        self.store = store

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _call(self, description: str, awaitable: Awaitable[T]) -> T:
        """Await a store call, mapping foreign exceptions to RemoteFailure."""
        try:
            return await awaitable
        except SyncError:
            raise
        except KeyError as e:
            raise NotFound(f"Failed to {description}: record not found") from e
        except Exception as e:
            logger.warning(f"Store call failed ({description}): {e}")
            raise RemoteFailure(f"Failed to {description}: {e}") from e

    async def _get_required(
        self, session: UserSession, kind: EntityKind, record_id: str
    ) -> BaseModel:
        record = await self._call(
            f"read {kind.value}", self.store.get(kind, session.user_id, record_id)
        )
        if record is None:
            raise NotFound(f"{kind.value} '{record_id}' not found")
        return parse_record(kind, record)

    async def _list(self, session: UserSession, kind: EntityKind, scope: Scope) -> list:
        if scope.owner_id != session.user_id:
            raise NotAuthenticated("Scope owner does not match the session user")
        rows = await self._call(f"list {kind.value}", self.store.list(kind, scope))
        return [parse_record(kind, row) for row in rows]

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def subscribe(
        self,
        session: UserSession | None,
        kind: EntityKind,
        scope: Scope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> RemoteSubscription:
        """Open a live remote subscription for one (kind, scope)."""
        session = require_session(session)
        if scope.owner_id != session.user_id:
            raise NotAuthenticated("Scope owner does not match the session user")
        return await self._call(
            f"subscribe to {kind.value}",
            self.store.subscribe(kind, scope, on_snapshot, on_error),
        )

    async def read_scope(
        self, session: UserSession | None, kind: EntityKind, scope: Scope | None = None
    ) -> list:
        """One-shot read of a scope (defaults to everything the user owns)."""
        session = require_session(session)
        return await self._list(session, kind, scope or Scope.for_owner(session.user_id))

    # =========================================================================
    # Inventory Operations
    # =========================================================================

    async def add_inventory_item(
        self, session: UserSession | None, item: InventoryItem
    ) -> str:
        """Add an item to inventory. Returns the new id."""
        session = require_session(session)
        return await self._call(
            "add inventory item",
            self.store.create(EntityKind.INVENTORY, session.user_id, to_record(item)),
        )

    async def update_inventory_item(
        self, session: UserSession | None, item_id: str, changes: dict[str, Any]
    ) -> None:
        """Update an inventory item (partial field set)."""
        session = require_session(session)
        await self._call(
            "update inventory item",
            self.store.update(EntityKind.INVENTORY, session.user_id, item_id, changes),
        )

    async def delete_inventory_item(self, session: UserSession | None, item_id: str) -> None:
        session = require_session(session)
        await self._call(
            "delete inventory item",
            self.store.delete(EntityKind.INVENTORY, session.user_id, item_id),
        )

    async def list_inventory(self, session: UserSession | None) -> list[InventoryItem]:
        session = require_session(session)
        return await self._list(session, EntityKind.INVENTORY, Scope.for_owner(session.user_id))

    # =========================================================================
    # Recipe Operations
    # =========================================================================

    async def create_recipe(self, session: UserSession | None, recipe: Recipe) -> str:
        """Create a custom recipe (manual or AI-generated)."""
        session = require_session(session)
        recipe = recipe.model_copy(update={"source": "custom", "user_id": session.user_id})
        return await self._call(
            "create recipe",
            self.store.create(EntityKind.RECIPES, session.user_id, to_record(recipe)),
        )

    async def get_recipe(self, session: UserSession | None, recipe_id: str) -> Recipe:
        session = require_session(session)
        return await self._get_required(session, EntityKind.RECIPES, recipe_id)

    async def update_recipe(
        self, session: UserSession | None, recipe_id: str, changes: dict[str, Any]
    ) -> None:
        session = require_session(session)
        await self._call(
            "update recipe",
            self.store.update(EntityKind.RECIPES, session.user_id, recipe_id, changes),
        )

    async def delete_recipe(self, session: UserSession | None, recipe_id: str) -> None:
        session = require_session(session)
        await self._call(
            "delete recipe",
            self.store.delete(EntityKind.RECIPES, session.user_id, recipe_id),
        )

    async def list_recipes(
        self, session: UserSession | None, source: str | None = None
    ) -> list[Recipe]:
        """List recipes, optionally only "custom" or "discovered" ones."""
        session = require_session(session)
        scope = (
            Scope.for_owner(session.user_id, source=source)
            if source
            else Scope.for_owner(session.user_id)
        )
        return await self._list(session, EntityKind.RECIPES, scope)

    # =========================================================================
    # Meal Plan Operations
    # =========================================================================

    async def create_meal_plan(self, session: UserSession | None, plan: MealPlan) -> str:
        """
        Persist a plan as inactive.

        Activation is a separate, atomic set_active_meal_plan call so the
        one-active-plan invariant never depends on two independent writes.
        """
        session = require_session(session)
        plan = plan.model_copy(update={"active": False})
        return await self._call(
            "create meal plan",
            self.store.create(EntityKind.MEAL_PLANS, session.user_id, to_record(plan)),
        )

    async def get_meal_plan(self, session: UserSession | None, plan_id: str) -> MealPlan:
        session = require_session(session)
        return await self._get_required(session, EntityKind.MEAL_PLANS, plan_id)

    async def list_meal_plans(self, session: UserSession | None) -> list[MealPlan]:
        session = require_session(session)
        return await self._list(session, EntityKind.MEAL_PLANS, Scope.for_owner(session.user_id))

    async def get_active_meal_plan(self, session: UserSession | None) -> MealPlan | None:
        session = require_session(session)
        plans = await self._list(
            session, EntityKind.MEAL_PLANS, Scope.for_owner(session.user_id, active=True)
        )
        return plans[0] if plans else None

    async def set_active_meal_plan(self, session: UserSession | None, plan_id: str) -> None:
        """Deactivate the previous active plan and activate plan_id, atomically."""
        session = require_session(session)
        await self._get_required(session, EntityKind.MEAL_PLANS, plan_id)
        await self._call(
            "set active meal plan",
            self.store.set_active_meal_plan(session.user_id, plan_id),
        )

    async def replace_meal_plan_days(
        self, session: UserSession | None, plan: MealPlan
    ) -> None:
        """Write a plan's days back (meal completion, swaps)."""
        session = require_session(session)
        days = [day.model_dump(mode="json") for day in plan.days]
        await self._call(
            "update meal plan",
            self.store.update(EntityKind.MEAL_PLANS, session.user_id, plan.id, {"days": days}),
        )

    async def set_meal_completed(
        self,
        session: UserSession | None,
        plan_id: str,
        day_index: int,
        meal_index: int,
        completed: bool,
    ) -> None:
        """
        Set one meal's completed flag (read-modify-write on the authoritative
        plan), leaving every other meal as stored.
        """
        session = require_session(session)
        plan = await self._get_required(session, EntityKind.MEAL_PLANS, plan_id)
        try:
            updated = plan.with_meal_completed(day_index, meal_index, completed)
        except IndexError as e:
            raise NotFound(f"{e.args[0]} ({plan_id})") from e
        await self.replace_meal_plan_days(session, updated)

    async def delete_meal_plan(self, session: UserSession | None, plan_id: str) -> None:
        session = require_session(session)
        await self._call(
            "delete meal plan",
            self.store.delete(EntityKind.MEAL_PLANS, session.user_id, plan_id),
        )

    # =========================================================================
    # Shopping List Operations
    # =========================================================================

    async def create_shopping_list(
        self, session: UserSession | None, shopping_list: ShoppingList
    ) -> str:
        session = require_session(session)
        return await self._call(
            "create shopping list",
            self.store.create(
                EntityKind.SHOPPING_LISTS, session.user_id, to_record(shopping_list)
            ),
        )

    async def get_shopping_list(
        self, session: UserSession | None, list_id: str
    ) -> ShoppingList:
        session = require_session(session)
        return await self._get_required(session, EntityKind.SHOPPING_LISTS, list_id)

    async def get_active_shopping_list(
        self, session: UserSession | None, meal_plan_id: str | None = None
    ) -> ShoppingList | None:
        session = require_session(session)
        filters: dict[str, Any] = {"active": True}
        if meal_plan_id:
            filters["meal_plan_id"] = meal_plan_id
        lists = await self._list(
            session, EntityKind.SHOPPING_LISTS, Scope.for_owner(session.user_id, **filters)
        )
        return lists[0] if lists else None

    async def update_shopping_items(
        self, session: UserSession | None, list_id: str, items: list[ShoppingItem]
    ) -> None:
        """Replace a list's items."""
        session = require_session(session)
        payload = [item.model_dump(mode="json") for item in items]
        await self._call(
            "update shopping list",
            self.store.update(
                EntityKind.SHOPPING_LISTS, session.user_id, list_id, {"items": payload}
            ),
        )

    async def remove_shopping_items(
        self, session: UserSession | None, list_id: str, item_ids: list[str]
    ) -> None:
        """Remove items from a list (read-modify-write on the authoritative record)."""
        session = require_session(session)
        current = await self._get_required(session, EntityKind.SHOPPING_LISTS, list_id)
        doomed = set(item_ids)
        remaining = [item for item in current.items if item.id not in doomed]
        await self.update_shopping_items(session, list_id, remaining)

    async def set_shopping_item_checked(
        self, session: UserSession | None, list_id: str, item_id: str, checked: bool
    ) -> None:
        """Check or uncheck one item (read-modify-write on the authoritative record)."""
        session = require_session(session)
        current = await self._get_required(session, EntityKind.SHOPPING_LISTS, list_id)
        try:
            updated = current.with_item_checked(item_id, checked)
        except KeyError as e:
            raise NotFound(f"Shopping item '{item_id}' not on list '{list_id}'") from e
        await self.update_shopping_items(session, list_id, updated.items)

    async def deactivate_shopping_lists(self, session: UserSession | None) -> int:
        """Mark every active list inactive (before a new plan's list is created)."""
        session = require_session(session)
        return await self._call(
            "deactivate shopping lists",
            self.store.update_many(
                EntityKind.SHOPPING_LISTS,
                Scope.for_owner(session.user_id, active=True),
                {"active": False},
            ),
        )

    # =========================================================================
    # Notification Operations
    # =========================================================================

    async def set_notification_read(
        self, session: UserSession | None, notification_id: str, read: bool = True
    ) -> None:
        session = require_session(session)
        await self._call(
            "update notification",
            self.store.update(
                EntityKind.NOTIFICATIONS, session.user_id, notification_id, {"read": read}
            ),
        )

    async def mark_all_notifications_read(self, session: UserSession | None) -> int:
        """Batch-mark every unread notification as read."""
        session = require_session(session)
        return await self._call(
            "mark all notifications read",
            self.store.update_many(
                EntityKind.NOTIFICATIONS,
                Scope.for_owner(session.user_id, read=False),
                {"read": True},
            ),
        )

    async def delete_notification(
        self, session: UserSession | None, notification_id: str
    ) -> None:
        session = require_session(session)
        await self._call(
            "delete notification",
            self.store.delete(EntityKind.NOTIFICATIONS, session.user_id, notification_id),
        )

    async def clear_notifications(self, session: UserSession | None) -> int:
        session = require_session(session)
        return await self._call(
            "clear notifications",
            self.store.delete_many(EntityKind.NOTIFICATIONS, Scope.for_owner(session.user_id)),
        )

    async def list_notifications(
        self, session: UserSession | None, unread_only: bool = False
    ) -> list[Notification]:
        session = require_session(session)
        scope = (
            Scope.for_owner(session.user_id, read=False)
            if unread_only
            else Scope.for_owner(session.user_id)
        )
        return await self._list(session, EntityKind.NOTIFICATIONS, scope)

    # =========================================================================
    # Preferences & Profile
    # =========================================================================

    async def get_notification_preferences(
        self, session: UserSession | None
    ) -> NotificationPreferences | None:
        """The user's preferences record, or None if never saved."""
        session = require_session(session)
        record = await self._call(
            "read notification preferences",
            self.store.get(EntityKind.NOTIFICATION_PREFERENCES, session.user_id, session.user_id),
        )
        return parse_record(EntityKind.NOTIFICATION_PREFERENCES, record) if record else None

    async def upsert_notification_preferences(
        self, session: UserSession | None, preferences: NotificationPreferences
    ) -> None:
        session = require_session(session)
        await self._call(
            "update notification preferences",
            self.store.upsert(
                EntityKind.NOTIFICATION_PREFERENCES, session.user_id, to_record(preferences)
            ),
        )

    async def update_notification_preferences(
        self, session: UserSession | None, changes: dict[str, Any]
    ) -> NotificationPreferences:
        """
        Patch the stored preferences (creating them on first write). Toggles
        not named in changes keep their stored value.
        """
        session = require_session(session)
        current = await self.get_notification_preferences(session) or NotificationPreferences(
            id=session.user_id, user_id=session.user_id
        )
        updated = current.model_copy(update=changes)
        await self.upsert_notification_preferences(session, updated)
        return updated

    async def get_user_profile(self, session: UserSession | None) -> UserProfile | None:
        session = require_session(session)
        record = await self._call(
            "read user profile",
            self.store.get(EntityKind.USER_PROFILES, session.user_id, session.user_id),
        )
        return parse_record(EntityKind.USER_PROFILES, record) if record else None

    async def update_user_profile(
        self, session: UserSession | None, changes: dict[str, Any]
    ) -> UserProfile:
        """Patch the profile (creating it on first write). Returns the new value."""
        session = require_session(session)
        current = await self.get_user_profile(session) or UserProfile(
            id=session.user_id, user_id=session.user_id
        )
        try:
            updated = UserProfile.model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise ValidationFailed(
                f"Invalid profile update: {e}",
                fields=[".".join(str(p) for p in err["loc"]) for err in e.errors()],
            ) from e
        await self._call(
            "update user profile",
            self.store.upsert(EntityKind.USER_PROFILES, session.user_id, to_record(updated)),
        )
        return updated
