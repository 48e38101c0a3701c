"""
Tests for the live views against the in-memory store.

Each scenario runs inside one event loop: start the view, let the initial
snapshot land, act, settle, assert.
"""

import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest

from mealsync.errors import ConflictingState, NotFound, RemoteFailure, ValidationFailed
from mealsync.models.entities import Day, EntityKind, Meal, MealPlan, Recipe
from mealsync.views import (
    DashboardView,
    InventoryView,
    MealPlanView,
    NotificationsView,
    PreferencesView,
    RecipesView,
    ShoppingListView,
)
from mealsync.views.shopping import rebuild_shopping_list


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


async def _settle(rounds: int = 10):
    for _ in range(rounds):
        await asyncio.sleep(0)


def _seed_notifications(store, owner_id, count=3):
    return [
        store.seed(
            EntityKind.NOTIFICATIONS,
            owner_id,
            {"title": f"N{i}", "message": "m", "read": False},
        )
        for i in range(count)
    ]


class TestNotificationsView:
    def test_unread_count_follows_actions(self, store, core, session):
        ids = _seed_notifications(store, session.user_id)

        async def scenario():
            view = NotificationsView(core, session)
            await view.start()
            await _settle()
            assert view.unread_count == 3

            await view.toggle_read(ids[0])
            assert view.unread_count == 2
            await view.toggle_read(ids[0])
            assert view.unread_count == 3
            await view.mark_as_read(ids[1])
            await _settle()
            assert view.unread_count == 2

            assert await view.mark_all_as_read() == 2
            await _settle()
            assert view.unread_count == 0

            assert await view.clear_all() == 3
            await _settle()
            assert view.notifications == []
            await view.stop()

        _run(scenario())

    def test_unread_only_view_drops_read_items(self, store, core, session):
        ids = _seed_notifications(store, session.user_id)

        async def scenario():
            everything = NotificationsView(core, session)
            unread = NotificationsView(core, session, unread_only=True)
            await everything.start()
            await unread.start()
            await _settle()

            pending = asyncio.ensure_future(everything.mark_as_read(ids[2]))
            await asyncio.sleep(0)
            # Both views change before the write completes
            assert ids[2] not in {n.id for n in unread.notifications}
            assert len(everything.notifications) == 3
            await pending

        _run(scenario())

    def test_views_share_one_subscription(self, store, core, session):
        _seed_notifications(store, session.user_id)

        async def scenario():
            first = NotificationsView(core, session)
            second = NotificationsView(core, session)
            await first.start()
            await second.start()
            await _settle()
            assert store.live_subscription_count(EntityKind.NOTIFICATIONS) == 1
            assert first.notifications == second.notifications

            await first.stop()
            assert store.live_subscription_count(EntityKind.NOTIFICATIONS) == 1
            await second.stop()
            assert store.live_subscription_count(EntityKind.NOTIFICATIONS) == 0

        _run(scenario())

    def test_listeners_and_remover(self, store, core, session):
        ids = _seed_notifications(store, session.user_id)

        async def scenario():
            view = NotificationsView(core, session)
            seen = []
            remove = view.add_listener(lambda v: seen.append(v.unread_count))
            await view.start()
            await _settle()
            await view.toggle_read(ids[0])
            remove()
            await view.toggle_read(ids[1])
            await _settle()
            return seen

        seen = _run(scenario())
        assert seen[0] == 3
        assert 2 in seen
        assert 1 not in seen

    def test_error_then_restart(self, store, core, session):
        _seed_notifications(store, session.user_id)

        async def scenario():
            view = NotificationsView(core, session)
            await view.start()
            await _settle()

            store.break_subscriptions(EntityKind.NOTIFICATIONS, RuntimeError("permission denied"))
            await _settle()
            assert isinstance(view.error, RemoteFailure)
            assert not view.active
            assert store.live_subscription_count(EntityKind.NOTIFICATIONS) == 0

            await view.restart()
            await _settle()
            assert view.active
            assert view.error is None
            assert len(view.notifications) == 3

        _run(scenario())

    def test_overlapping_toggles_that_both_fail(self, store, core, session):
        [nid] = _seed_notifications(store, session.user_id, count=1)

        async def scenario():
            view = NotificationsView(core, session)
            await view.start()
            await _settle()

            store.fail_next("update", RuntimeError("offline"))
            store.fail_next("update", RuntimeError("offline"))
            results = await asyncio.gather(
                view.toggle_read(nid), view.toggle_read(nid), return_exceptions=True
            )
            await _settle()
            assert [type(r) for r in results] == [RemoteFailure, RemoteFailure]
            assert view.unread_count == 1
            return view.notifications[0].read

        local_read = _run(scenario())
        [stored] = store.records(EntityKind.NOTIFICATIONS)
        assert local_read is stored["read"] is False


class TestPreferencesView:
    def test_update_persists(self, store, core, session):
        async def scenario():
            view = PreferencesView(core, session)
            await view.start()
            await _settle()
            assert view.value.email_enabled is True

            await view.update(email_enabled=False)
            await _settle()
            assert view.value.email_enabled is False

        _run(scenario())
        [record] = store.records(EntityKind.NOTIFICATION_PREFERENCES)
        assert record["email_enabled"] is False
        assert record["id"] == session.user_id

    def test_failed_update_rolls_back(self, store, core, session):
        async def scenario():
            view = PreferencesView(core, session)
            await view.start()
            await _settle()

            store.fail_next("upsert", RuntimeError("offline"))
            with pytest.raises(RemoteFailure):
                await view.update(push_enabled=False)
            await _settle()
            assert view.value.push_enabled is True

        _run(scenario())

    def test_invalid_changes_rejected(self, store, core, session):
        async def scenario():
            view = PreferencesView(core, session)
            await view.start()
            await _settle()
            with pytest.raises(ValidationFailed) as exc_info:
                await view.update(carrier_pigeon=True)
            assert exc_info.value.fields == ["carrier_pigeon"]
            with pytest.raises(ValidationFailed):
                await view.update(push_enabled="sometimes")

        _run(scenario())
        assert ("upsert", EntityKind.NOTIFICATION_PREFERENCES) not in store.calls


class TestInventoryView:
    def test_update_and_rollback(self, store, core, session):
        item_id = store.seed(
            EntityKind.INVENTORY, session.user_id, {"name": "Rice", "quantity": 1000, "unit": "g"}
        )

        async def scenario():
            view = InventoryView(core, session)
            await view.start()
            await _settle()

            await view.update_item(item_id, quantity=750)
            await _settle()
            assert view.items[0].quantity == 750

            store.fail_next("update", RuntimeError("offline"))
            with pytest.raises(RemoteFailure):
                await view.update_item(item_id, quantity=10)
            assert view.items[0].quantity == 750

        _run(scenario())
        assert store.records(EntityKind.INVENTORY)[0]["quantity"] == 750

    def test_invalid_updates(self, store, core, session):
        item_id = store.seed(
            EntityKind.INVENTORY, session.user_id, {"name": "Rice", "quantity": 1000, "unit": "g"}
        )

        async def scenario():
            view = InventoryView(core, session)
            await view.start()
            await _settle()
            with pytest.raises(ValidationFailed):
                await view.update_item(item_id, quantity=-1)
            with pytest.raises(ValidationFailed):
                await view.update_item(item_id, owner="someone")

        _run(scenario())

    def test_delete_is_optimistic(self, store, core, session):
        item_id = store.seed(
            EntityKind.INVENTORY, session.user_id, {"name": "Rice", "quantity": 1000, "unit": "g"}
        )

        async def scenario():
            view = InventoryView(core, session)
            await view.start()
            await _settle()
            pending = asyncio.ensure_future(view.delete_item(item_id))
            await asyncio.sleep(0)
            assert view.items == []
            await pending

        _run(scenario())
        assert store.records(EntityKind.INVENTORY) == []


class TestRecipesView:
    def test_create_update_delete(self, store, core, session):
        async def scenario():
            view = RecipesView(core, session, source="custom")
            await view.start()
            await _settle()

            recipe_id = await view.create_recipe(Recipe(name="Toast", servings=1))
            await _settle()
            assert [r.name for r in view.recipes] == ["Toast"]
            assert view.recipes[0].creation_method == "manual"

            await view.update_recipe(recipe_id, servings=2)
            await _settle()
            assert view.recipes[0].servings == 2

            await view.delete_recipe(recipe_id)
            await _settle()
            assert view.recipes == []

        _run(scenario())


def _recipe_record(name, *ingredients, calories=500, protein=20):
    return {
        "name": name,
        "cuisine": "Italian",
        "source": "discovered",
        "ingredients": [{"name": n, "amount": a, "unit": u} for n, a, u in ingredients],
        "nutrition": {"calories": calories, "protein": protein},
    }


class TestMealPlanView:
    def test_generate_then_complete_meal(self, store, core, session, repository):
        store.seed(
            EntityKind.RECIPES,
            session.user_id,
            _recipe_record("Power Bowl", ("Quinoa", 100, "g")),
        )

        async def scenario():
            await repository.update_user_profile(session, {"meals_per_day": 2})
            view = MealPlanView(core, session)
            await view.start()
            await _settle()
            assert view.value is None

            plan_id = await view.generate_plan(7, rng=random.Random(7))
            await _settle()
            plan = view.value
            assert plan.id == plan_id
            assert len(plan.days) == 7
            assert all(len(day.meals) == 2 for day in plan.days)

            await view.toggle_meal_complete(0, 1)
            assert view.value.days[0].meals[1].completed is True
            assert view.value.days[0].total_calories == 1000
            await _settle()

        _run(scenario())
        [plan] = store.records(EntityKind.MEAL_PLANS)
        assert plan["days"][0]["meals"][1]["completed"] is True
        [shopping] = store.records(EntityKind.SHOPPING_LISTS)
        assert shopping["meal_plan_id"] == plan["id"]
        assert shopping["items"][0]["quantity"] == 1400

    def test_new_plan_replaces_active(self, store, core, session):
        store.seed(
            EntityKind.RECIPES, session.user_id, _recipe_record("Soup", ("Leek", 1, "piece"))
        )

        async def scenario():
            view = MealPlanView(core, session)
            await view.start()
            first = await view.generate_plan(7)
            second = await view.generate_plan(7)
            await _settle()
            assert view.value.id == second
            history = await view.all_plans()
            assert {p.id for p in history} == {first, second}

            await view.set_active_plan(first)
            await _settle()
            assert view.value.id == first

        _run(scenario())
        assert [p["active"] for p in store.records(EntityKind.MEAL_PLANS)].count(True) == 1
        active_lists = [s for s in store.records(EntityKind.SHOPPING_LISTS) if s["active"]]
        assert len(active_lists) == 1

    def test_complete_without_plan(self, core, session):
        async def scenario():
            view = MealPlanView(core, session)
            await view.start()
            await _settle()
            await view.toggle_meal_complete(0, 0)

        with pytest.raises(NotFound):
            _run(scenario())

    def test_failed_meal_toggle_not_persisted_by_later_one(self, store, core, session, repository):
        store.seed(
            EntityKind.RECIPES,
            session.user_id,
            _recipe_record("Power Bowl", ("Quinoa", 100, "g")),
        )

        async def scenario():
            await repository.update_user_profile(session, {"meals_per_day": 2})
            view = MealPlanView(core, session)
            await view.start()
            await view.generate_plan(7, rng=random.Random(3))
            await _settle()

            store.fail_next("update", RuntimeError("offline"))
            results = await asyncio.gather(
                view.toggle_meal_complete(0, 0),
                view.toggle_meal_complete(0, 1),
                return_exceptions=True,
            )
            await _settle()
            assert [type(r) for r in results] == [RemoteFailure, type(None)]
            return [m.completed for m in view.value.days[0].meals]

        local = _run(scenario())
        [plan] = store.records(EntityKind.MEAL_PLANS)
        stored = [m["completed"] for m in plan["days"][0]["meals"]]
        assert local == stored == [False, True]

    def test_manual_plan_is_saved_active_with_its_list(self, store, core, session):
        recipe_id = store.seed(
            EntityKind.RECIPES, session.user_id, _recipe_record("Soup", ("Leek", 2, "piece"))
        )
        days = [
            Day(
                name=f"Day {i + 1}",
                meals=[Meal(name="Soup", type="dinner", recipe_id=recipe_id, calories=300)],
            )
            for i in range(7)
        ]

        async def scenario():
            view = MealPlanView(core, session)
            await view.start()
            plan_id = await view.create_manual_plan(MealPlan(duration=7, days=days))
            await _settle()
            assert view.value.id == plan_id
            assert view.value.creation_method == "manual"

            with pytest.raises(ValidationFailed) as exc_info:
                await view.create_manual_plan(MealPlan(duration=7, days=days[:3]))
            assert exc_info.value.fields == ["days"]

        _run(scenario())
        [plan] = store.records(EntityKind.MEAL_PLANS)
        assert plan["active"] is True
        assert plan["name"] == "My 7-Day Meal Plan"
        [shopping] = store.records(EntityKind.SHOPPING_LISTS)
        assert shopping["meal_plan_id"] == plan["id"]
        assert [(i["name"], i["quantity"]) for i in shopping["items"]] == [("Leek", 14)]


async def _plan_with_list(store, repository, session, inventory=()):
    """Active plan of one salad (Tomato 700 g, Basil 1 bunch) and its list."""
    recipe_id = store.seed(
        EntityKind.RECIPES,
        session.user_id,
        _recipe_record("Caprese", ("Tomato", 700, "g"), ("Basil", 1, "bunch")),
    )
    for name, quantity, unit in inventory:
        store.seed(
            EntityKind.INVENTORY,
            session.user_id,
            {"name": name, "quantity": quantity, "unit": unit},
        )
    plan = MealPlan(
        duration=7,
        days=[Day(name="Monday", meals=[Meal(name="Caprese", type="dinner", recipe_id=recipe_id)])],
    )
    plan_id = await repository.create_meal_plan(session, plan)
    await repository.set_active_meal_plan(session, plan_id)
    await rebuild_shopping_list(
        repository, session, plan.model_copy(update={"id": plan_id})
    )


class TestShoppingFold:
    """Checked items move into inventory; regeneration then needs nothing."""

    def test_fold_then_regenerate_is_empty(self, store, core, session, repository):
        async def scenario():
            await _plan_with_list(store, repository, session, [("Tomato", 200, "g")])
            view = ShoppingListView(core, session)
            await view.start()
            await _settle()
            by_name = {i.name: i for i in view.value.items}
            assert by_name["Tomato"].quantity == 500
            assert by_name["Basil"].quantity == 1

            for item in view.value.items:
                await view.toggle_item(item.id)
            assert all(i.checked for i in view.value.items)

            result = await view.add_checked_to_inventory()
            assert result.ok
            assert len(result.folded) == 2

            old_list = view.value.id
            await view.regenerate()
            await _settle()
            assert view.value.id != old_list
            assert view.value.items == []

        _run(scenario())
        inventory = {r["name"]: r["quantity"] for r in store.records(EntityKind.INVENTORY)}
        assert inventory == {"Tomato": 700, "Basil": 1}

    def test_partial_failure_keeps_folded_items(self, store, core, session, repository):
        async def scenario():
            await _plan_with_list(store, repository, session)
            view = ShoppingListView(core, session)
            await view.start()
            await _settle()
            for item in view.value.items:
                await view.toggle_item(item.id)

            store.fail_next("create", RuntimeError("offline"))
            result = await view.add_checked_to_inventory()
            await _settle()
            assert len(result.folded) == 1
            assert len(result.failed) == 1
            assert result.failed[0].inventory_applied is False
            assert [i.id for i in view.value.items] == [result.failed[0].item.id]

        _run(scenario())
        assert len(store.records(EntityKind.INVENTORY)) == 1

    def test_removal_failure_reports_inventory_applied(self, store, core, session, repository):
        async def scenario():
            await _plan_with_list(store, repository, session)
            view = ShoppingListView(core, session)
            await view.start()
            await _settle()
            basil = next(i for i in view.value.items if i.name == "Basil")
            await view.toggle_item(basil.id)

            store.fail_next("update", RuntimeError("offline"))
            result = await view.add_checked_to_inventory()
            assert not result.ok
            [failure] = result.failed
            assert failure.inventory_applied is True
            assert isinstance(failure.error, RemoteFailure)

            assert await view.clear_checked_items() == 1

        _run(scenario())
        assert [r["name"] for r in store.records(EntityKind.INVENTORY)] == ["Basil"]

    def test_item_removed_elsewhere_is_conflict(self, store, core, session, repository):
        async def scenario():
            await _plan_with_list(store, repository, session)
            view = ShoppingListView(core, session)
            await view.start()
            await _settle()
            tomato = next(i for i in view.value.items if i.name == "Tomato")
            await view.toggle_item(tomato.id)
            await _settle()

            # Another device folds it first; this view has not seen that yet
            await repository.remove_shopping_items(session, view.value.id, [tomato.id])
            result = await view.add_checked_to_inventory()
            [failure] = result.failed
            assert isinstance(failure.error, ConflictingState)
            assert failure.inventory_applied is False

        _run(scenario())
        assert store.records(EntityKind.INVENTORY) == []

    def test_toggle_rolls_back(self, store, core, session, repository):
        async def scenario():
            await _plan_with_list(store, repository, session)
            view = ShoppingListView(core, session)
            await view.start()
            await _settle()
            item = view.value.items[0]

            store.fail_next("update", RuntimeError("offline"))
            with pytest.raises(RemoteFailure):
                await view.toggle_item(item.id)
            assert view.value.items[0].checked is False

        _run(scenario())

    @pytest.mark.parametrize(
        "fail_tomato,fail_basil",
        [(True, True), (True, False), (False, True)],
        ids=["fail-fail", "fail-ok", "ok-fail"],
    )
    def test_overlapping_toggles_write_only_their_item(
        self, store, core, session, repository, fail_tomato, fail_basil
    ):
        async def scenario():
            await _plan_with_list(store, repository, session)
            view = ShoppingListView(core, session)
            await view.start()
            await _settle()
            by_name = {i.name: i.id for i in view.value.items}

            if fail_tomato:
                store.fail_next("update", RuntimeError("offline"))
            if fail_basil:
                store.fail_next("update", RuntimeError("offline"), after=0 if fail_tomato else 1)
            results = await asyncio.gather(
                view.toggle_item(by_name["Tomato"]),
                view.toggle_item(by_name["Basil"]),
                return_exceptions=True,
            )
            await _settle()
            assert [isinstance(r, RemoteFailure) for r in results] == [fail_tomato, fail_basil]
            return {i.name: i.checked for i in view.value.items}

        local = _run(scenario())
        [shopping] = [s for s in store.records(EntityKind.SHOPPING_LISTS) if s["active"]]
        stored = {i["name"]: i["checked"] for i in shopping["items"]}
        assert local == stored == {"Tomato": not fail_tomato, "Basil": not fail_basil}


class TestDashboardView:
    def test_stats_follow_meal_completion(self, store, core, session):
        # The in-memory store stamps records from 2025-01-01
        today = datetime(2025, 1, 1, 12, tzinfo=timezone.utc)
        days = [
            Day(
                name=f"Day {i + 1}",
                date=today + timedelta(days=i),
                meals=[
                    Meal(
                        name="Soup", type="dinner", cuisine="Thai",
                        calories=500, protein=30, carbs=50, fat=20,
                    )
                ],
            )
            for i in range(7)
        ]

        async def scenario():
            plans = MealPlanView(core, session)
            dashboard = DashboardView(core, session, date_range=14)
            await plans.start()
            await dashboard.start()
            await plans.create_manual_plan(MealPlan(duration=7, days=days))
            await _settle()
            assert dashboard.stats(today.date()).meals_completed == 0

            await plans.toggle_meal_complete(0, 0)
            stats = dashboard.stats(today.date())
            assert stats.meals_completed == 1
            assert stats.avg_daily_calories == 500
            assert stats.current_streak == 1
            assert stats.top_cuisine == "Thai"
            assert len(stats.calorie_trend) == 14
            assert stats.calorie_trend[-1].calories == 500

            with pytest.raises(ValidationFailed):
                dashboard.set_range(10)
            dashboard.set_range(30)
            assert len(dashboard.stats(today.date()).completion_rate) == 30

        _run(scenario())
