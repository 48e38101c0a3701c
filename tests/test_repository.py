"""
Tests for the Entity Repository.

Session checks, error mapping and the one-active-plan rule.
"""

import asyncio

import pytest

from mealsync.db.adapter import Scope
from mealsync.errors import NotAuthenticated, NotFound, RemoteFailure, ValidationFailed
from mealsync.models.entities import (
    Day,
    EntityKind,
    InventoryItem,
    Meal,
    MealPlan,
    Notification,
    Recipe,
    ShoppingItem,
    ShoppingList,
)


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


def _plan(name: str) -> MealPlan:
    return MealPlan(
        name=name,
        duration=7,
        days=[Day(name="Monday", meals=[Meal(name="Soup", type="dinner", calories=400)])],
        active=True,
    )


class TestSession:
    """Calls without a session fail before touching the store."""

    @pytest.mark.parametrize(
        "call",
        [
            lambda repo: repo.list_inventory(None),
            lambda repo: repo.add_inventory_item(None, InventoryItem(name="Egg", quantity=1, unit="piece")),
            lambda repo: repo.create_meal_plan(None, _plan("x")),
            lambda repo: repo.mark_all_notifications_read(None),
            lambda repo: repo.get_notification_preferences(None),
        ],
    )
    def test_no_session(self, store, repository, call):
        with pytest.raises(NotAuthenticated):
            _run(call(repository))
        assert store.calls == []

    def test_foreign_scope_rejected(self, store, repository, session):
        with pytest.raises(NotAuthenticated):
            _run(
                repository.read_scope(
                    session, EntityKind.INVENTORY, Scope.for_owner("someone-else")
                )
            )
        assert store.calls == []

    def test_records_are_owner_scoped(self, store, repository, session, other_session):
        store.seed(EntityKind.INVENTORY, other_session.user_id, {"name": "Egg", "quantity": 6, "unit": "piece"})
        assert _run(repository.list_inventory(session)) == []
        assert len(_run(repository.list_inventory(other_session))) == 1


class TestErrors:
    """Store failures are mapped to sync error kinds."""

    def test_missing_id_is_not_found(self, repository, session):
        with pytest.raises(NotFound):
            _run(repository.get_recipe(session, "nope"))

    def test_update_missing_record_is_not_found(self, repository, session):
        with pytest.raises(NotFound):
            _run(repository.update_inventory_item(session, "nope", {"quantity": 2}))

    def test_other_users_record_is_not_found(self, store, repository, session, other_session):
        record_id = store.seed(EntityKind.RECIPES, other_session.user_id, {"name": "Theirs"})
        with pytest.raises(NotFound):
            _run(repository.get_recipe(session, record_id))

    def test_store_exception_wrapped(self, store, repository, session):
        store.fail_next("create", ConnectionError("connection reset"))
        with pytest.raises(RemoteFailure) as exc_info:
            _run(repository.add_inventory_item(session, InventoryItem(name="Egg", quantity=1, unit="piece")))
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert store.records(EntityKind.INVENTORY) == []

    def test_malformed_record_is_remote_failure(self, store, repository, session):
        store.seed(EntityKind.INVENTORY, session.user_id, {"name": "Egg", "quantity": "lots", "unit": "piece"})
        with pytest.raises(RemoteFailure):
            _run(repository.list_inventory(session))


class TestRecipes:
    def test_created_recipes_are_custom(self, store, repository, session):
        recipe_id = _run(
            repository.create_recipe(session, Recipe(name="Toast", source="discovered"))
        )
        recipe = _run(repository.get_recipe(session, recipe_id))
        assert recipe.source == "custom"
        assert recipe.user_id == session.user_id

    def test_list_by_source(self, store, repository, session, sample_recipe_records):
        for record in sample_recipe_records:
            store.seed(EntityKind.RECIPES, session.user_id, record)
        custom = _run(repository.list_recipes(session, source="custom"))
        assert [r.name for r in custom] == ["Grandma's Lentil Soup"]
        assert len(_run(repository.list_recipes(session))) == 4


class TestMealPlans:
    """At most one active plan per user."""

    def test_create_stores_plan_inactive(self, store, repository, session):
        plan_id = _run(repository.create_meal_plan(session, _plan("Week 1")))
        plan = _run(repository.get_meal_plan(session, plan_id))
        assert plan.active is False
        assert _run(repository.get_active_meal_plan(session)) is None

    def test_set_active_leaves_exactly_one(self, store, repository, session):
        async def scenario():
            first = await repository.create_meal_plan(session, _plan("Week 1"))
            second = await repository.create_meal_plan(session, _plan("Week 2"))
            await repository.set_active_meal_plan(session, first)
            await repository.set_active_meal_plan(session, second)
            return first, second

        first, second = _run(scenario())
        active = [p for p in store.records(EntityKind.MEAL_PLANS) if p["active"]]
        assert [p["id"] for p in active] == [second]
        assert _run(repository.get_active_meal_plan(session)).id == second

    def test_set_active_unknown_plan(self, store, repository, session):
        with pytest.raises(NotFound):
            _run(repository.set_active_meal_plan(session, "nope"))
        assert ("set_active_meal_plan", EntityKind.MEAL_PLANS) not in store.calls

    def test_replace_days(self, store, repository, session):
        async def scenario():
            plan_id = await repository.create_meal_plan(session, _plan("Week 1"))
            plan = await repository.get_meal_plan(session, plan_id)
            done = plan.days[0].meals[0].model_copy(update={"completed": True})
            day = plan.days[0].model_copy(update={"meals": [done]})
            await repository.replace_meal_plan_days(
                session, plan.model_copy(update={"days": [day]})
            )
            return await repository.get_meal_plan(session, plan_id)

        plan = _run(scenario())
        assert plan.days[0].meals[0].completed is True
        assert plan.days[0].total_calories == 400

    def test_set_meal_completed_writes_one_meal(self, store, repository, session):
        async def scenario():
            plan_id = await repository.create_meal_plan(session, _plan("Week 1"))
            await repository.set_meal_completed(session, plan_id, 0, 0, True)
            return await repository.get_meal_plan(session, plan_id)

        plan = _run(scenario())
        assert plan.days[0].meals[0].completed is True
        assert plan.name == "Week 1"

    def test_set_meal_completed_out_of_range(self, repository, session):
        async def scenario():
            plan_id = await repository.create_meal_plan(session, _plan("Week 1"))
            await repository.set_meal_completed(session, plan_id, 0, 3, True)

        with pytest.raises(NotFound):
            _run(scenario())


class TestShoppingLists:
    def test_remove_items_keeps_the_rest(self, repository, session):
        items = [
            ShoppingItem(id="a", name="Tomato", quantity=300, unit="g"),
            ShoppingItem(id="b", name="Basil", quantity=1, unit="bunch"),
        ]

        async def scenario():
            list_id = await repository.create_shopping_list(
                session, ShoppingList(items=items, active=True)
            )
            await repository.remove_shopping_items(session, list_id, ["a"])
            return await repository.get_shopping_list(session, list_id)

        remaining = _run(scenario())
        assert [i.id for i in remaining.items] == ["b"]

    def test_set_item_checked_leaves_other_items(self, repository, session):
        items = [
            ShoppingItem(id="a", name="Tomato", quantity=300, unit="g", checked=True),
            ShoppingItem(id="b", name="Basil", quantity=1, unit="bunch"),
        ]

        async def scenario():
            list_id = await repository.create_shopping_list(
                session, ShoppingList(items=items, active=True)
            )
            await repository.set_shopping_item_checked(session, list_id, "b", True)
            with pytest.raises(NotFound):
                await repository.set_shopping_item_checked(session, list_id, "zz", True)
            return await repository.get_shopping_list(session, list_id)

        shopping = _run(scenario())
        assert [(i.id, i.checked) for i in shopping.items] == [("a", True), ("b", True)]
        assert shopping.items[1].checked_at is not None

    def test_deactivate_all(self, store, repository, session):
        async def scenario():
            await repository.create_shopping_list(session, ShoppingList(active=True))
            await repository.create_shopping_list(session, ShoppingList(active=True))
            count = await repository.deactivate_shopping_lists(session)
            return count, await repository.get_active_shopping_list(session)

        count, active = _run(scenario())
        assert count == 2
        assert active is None


class TestNotifications:
    def test_mark_all_read_counts_unread(self, store, repository, session):
        for read in (False, False, True):
            store.seed(
                EntityKind.NOTIFICATIONS,
                session.user_id,
                Notification(title="t", message="m", read=read).model_dump(mode="json"),
            )
        assert _run(repository.mark_all_notifications_read(session)) == 2
        assert _run(repository.list_notifications(session, unread_only=True)) == []

    def test_clear(self, store, repository, session, other_session):
        store.seed(EntityKind.NOTIFICATIONS, session.user_id, {"title": "a", "message": "m"})
        store.seed(EntityKind.NOTIFICATIONS, other_session.user_id, {"title": "b", "message": "m"})
        assert _run(repository.clear_notifications(session)) == 1
        assert len(store.records(EntityKind.NOTIFICATIONS)) == 1


class TestProfile:
    def test_first_update_creates_profile(self, repository, session):
        profile = _run(repository.update_user_profile(session, {"meals_per_day": 2}))
        assert profile.meals_per_day == 2
        assert _run(repository.get_user_profile(session)).meals_per_day == 2

    def test_invalid_meals_per_day(self, store, repository, session):
        with pytest.raises(ValidationFailed) as exc_info:
            _run(repository.update_user_profile(session, {"meals_per_day": 5}))
        assert "meals_per_day" in exc_info.value.fields
        assert ("upsert", EntityKind.USER_PROFILES) not in store.calls


class TestNotificationPreferences:
    def test_update_keeps_other_toggles(self, repository, session):
        async def scenario():
            await repository.update_notification_preferences(session, {"push_enabled": False})
            await repository.update_notification_preferences(session, {"email_enabled": False})
            return await repository.get_notification_preferences(session)

        preferences = _run(scenario())
        assert preferences.push_enabled is False
        assert preferences.email_enabled is False
        assert preferences.meal_reminders is True
        assert preferences.id == session.user_id
