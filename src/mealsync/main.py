"""
MealSync - CLI Entry Point.

Usage:
    mealsync health            Check configuration
    mealsync version           Show version
    mealsync plan              Generate and activate a meal plan
    mealsync shopping          Show the active shopping list
    mealsync fold              Move checked shopping items into inventory

Every data command accepts --demo to run against a seeded in-memory
store instead of Supabase.
"""

import asyncio
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from mealsync.errors import SyncError

app = typer.Typer(
    name="mealsync",
    help="MealSync - meal plans, shopping lists and inventory, kept in sync.",
    add_completion=False,
)
console = Console()

DEMO_RECIPES = [
    {
        "name": "Shakshuka",
        "cuisine": "Mediterranean",
        "source": "discovered",
        "ingredients": [
            {"name": "Egg", "amount": 2, "unit": "piece"},
            {"name": "Tomato", "amount": 250, "unit": "g"},
            {"name": "Onion", "amount": 1, "unit": "piece"},
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
            {"name": "Soy Sauce", "amount": 2, "unit": "tbsp"},
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
            {"name": "Olive Oil", "amount": 1, "unit": "tbsp"},
        ],
        "nutrition": {"calories": 640, "protein": 20, "carbs": 95, "fat": 16},
    },
]

DEMO_INVENTORY = [
    {"name": "Tomato", "quantity": 200, "unit": "g", "category": "Produce"},
    {"name": "Rice", "quantity": 1000, "unit": "g", "category": "Grains"},
]


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


async def _build_core(demo: bool):
    """SyncCore plus session for the configured dev user."""
    from mealsync.config import settings
    from mealsync.db.memory import InMemoryStore
    from mealsync.models.entities import EntityKind
    from mealsync.session import UserSession
    from mealsync.views.base import SyncCore

    session = UserSession(user_id=settings.dev_user_id)
    generator = None
    if settings.openai_api_key:
        from mealsync.generation.openai_generator import OpenAIGenerator

        generator = OpenAIGenerator()

    if demo:
        store = InMemoryStore()
        for recipe in DEMO_RECIPES:
            store.seed(EntityKind.RECIPES, session.user_id, recipe)
        for item in DEMO_INVENTORY:
            store.seed(EntityKind.INVENTORY, session.user_id, item)
    else:
        from mealsync.db.client import get_store

        store = await get_store()

    return SyncCore.create(store, generator), session


def _print_shopping_list(shopping_list) -> None:
    if shopping_list is None or not shopping_list.items:
        console.print("[dim]Shopping list is empty.[/dim]")
        return
    table = Table(title="Shopping List")
    table.add_column("")
    table.add_column("Item")
    table.add_column("Quantity", justify="right")
    table.add_column("Category")
    for item in shopping_list.items:
        table.add_row(
            "✓" if item.checked else "",
            item.name,
            f"{item.quantity:g} {item.unit}",
            item.category,
        )
    console.print(table)


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except SyncError as e:
        console.print(f"\n[red]❌ {e.kind}: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def health() -> None:
    """Check configuration."""
    from mealsync.config import get_settings

    console.print("\n[bold]MealSync Health Check[/bold]\n")

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"\n[red]❌ Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with required variables.[/dim]")
        raise typer.Exit(1)

    console.print("✅ Configuration loaded")
    console.print(f"   Environment: {settings.mealsync_env}")
    console.print(f"   Log level: {settings.log_level}")

    if settings.supabase_url and settings.supabase_url.startswith("https://"):
        console.print("✅ Supabase URL configured")
    else:
        console.print("❌ Supabase URL missing or invalid")

    if settings.openai_api_key and settings.openai_api_key.startswith("sk-"):
        console.print(f"✅ OpenAI API key configured (model {settings.generation_model})")
    else:
        console.print("ℹ️  OpenAI API key missing, AI generation disabled")


@app.command()
def version() -> None:
    """Show version information."""
    from mealsync import __version__

    console.print(f"MealSync version {__version__}")


@app.command()
def plan(
    duration: int = typer.Option(7, "--duration", "-d", help="Plan length in days (7 or 30)"),
    cuisine: list[str] = typer.Option([], "--cuisine", "-c", help="Cuisine filter (repeatable)"),
    include_custom: bool = typer.Option(False, "--include-custom", help="Use your own recipes too"),
    prompt: str | None = typer.Option(None, "--prompt", "-p", help="Generate with AI from a prompt"),
    demo: bool = typer.Option(False, "--demo", help="Use a seeded in-memory store"),
) -> None:
    """Generate a meal plan, activate it and build its shopping list."""
    from mealsync.config import settings
    from mealsync.views.meal_plans import MealPlanView

    _setup_logging(settings.log_level)

    async def _plan() -> None:
        core, session = await _build_core(demo)
        view = MealPlanView(core, session)
        if prompt:
            plan_id = await view.generate_ai_plan(prompt, duration)
        else:
            plan_id = await view.generate_plan(duration, cuisine, include_custom)
        generated = await core.repository.get_meal_plan(session, plan_id)

        console.print(f"\n[bold green]Plan {plan_id} is active[/bold green]\n")
        for day in generated.days:
            meals = ", ".join(f"{m.type}: {m.name}" for m in day.meals)
            console.print(
                f"[bold]{day.name}[/bold] ({day.total_calories} kcal, "
                f"{day.total_protein} g protein) - {meals}"
            )
        _print_shopping_list(await core.repository.get_active_shopping_list(session, plan_id))
        await core.close()

    _run(_plan())


@app.command()
def shopping(
    demo: bool = typer.Option(False, "--demo", help="Use a seeded in-memory store"),
) -> None:
    """Show the active shopping list."""
    from mealsync.config import settings

    _setup_logging(settings.log_level)

    async def _shopping() -> None:
        core, session = await _build_core(demo)
        _print_shopping_list(await core.repository.get_active_shopping_list(session))
        await core.close()

    _run(_shopping())


@app.command()
def fold(
    demo: bool = typer.Option(False, "--demo", help="Use a seeded in-memory store"),
) -> None:
    """Move checked shopping items into inventory."""
    from mealsync.config import settings
    from mealsync.views.shopping import ShoppingListView

    _setup_logging(settings.log_level)

    async def _fold() -> None:
        core, session = await _build_core(demo)
        view = ShoppingListView(core, session)
        await view.start()
        # Wait for the first snapshot
        while view.loading:
            await asyncio.sleep(0.05)
        if view.error:
            raise view.error

        result = await view.add_checked_to_inventory()
        for item in result.folded:
            console.print(f"✅ {item.name}: {item.quantity:g} {item.unit}")
        for failure in result.failed:
            note = " (inventory already updated)" if failure.inventory_applied else ""
            console.print(f"❌ {failure.item.name}: {failure.error}{note}")
        if not result.folded and not result.failed:
            console.print("[dim]No checked items to fold.[/dim]")

        await view.stop()
        await core.close()
        if not result.ok:
            raise typer.Exit(1)

    _run(_fold())


@app.command()
def dashboard(
    days: int = typer.Option(7, "--days", help="Range in days (7, 14 or 30)"),
    demo: bool = typer.Option(False, "--demo", help="Use a seeded in-memory store"),
) -> None:
    """Show meal statistics for the last days."""
    from mealsync.config import settings
    from mealsync.derive.dashboard import dashboard_stats

    _setup_logging(settings.log_level)

    async def _dashboard() -> None:
        core, session = await _build_core(demo)
        stats = dashboard_stats(await core.repository.list_meal_plans(session), days)
        await core.close()

        table = Table(title=f"Last {stats.date_range} days")
        table.add_column("Metric")
        table.add_column("Value", justify="right")
        table.add_row("Meals completed", str(stats.meals_completed))
        table.add_row("Avg daily calories", str(stats.avg_daily_calories))
        table.add_row("Current streak", f"{stats.current_streak} days")
        table.add_row("Top cuisine", stats.top_cuisine)
        macros = stats.macro_distribution
        table.add_row("Protein / carbs / fat", f"{macros.protein}% / {macros.carbs}% / {macros.fat}%")
        console.print(table)

    _run(_dashboard())


if __name__ == "__main__":
    app()
