"""
MealSync - Dashboard statistics.

Pure derivation over the user's meal plans:

    plans --dashboard_stats(date_range)--> DashboardStats

Only completed meals count towards calories and macros. Per-date series
cover the last `date_range` days up to today, zero-filled. The streak
looks at every plan, not only those in the range, and a today without
completed meals does not break it.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Iterable

from mealsync.errors import ValidationFailed
from mealsync.models.entities import MealPlan

DASHBOARD_RANGES = (7, 14, 30)

MAX_STREAK_DAYS = 365

NO_CUISINE = "None"


@dataclass(frozen=True)
class MacroDistribution:
    """Share of protein, carbs and fat grams, in whole percent."""

    protein: int = 0
    carbs: int = 0
    fat: int = 0


@dataclass(frozen=True)
class DailyCalories:
    date: date
    calories: int


@dataclass(frozen=True)
class DailyCompletion:
    date: date
    completed: int
    total: int


@dataclass(frozen=True)
class DashboardStats:
    date_range: int
    meals_completed: int = 0
    avg_daily_calories: int = 0
    current_streak: int = 0
    top_cuisine: str = NO_CUISINE
    macro_distribution: MacroDistribution = field(default_factory=MacroDistribution)
    calorie_trend: list[DailyCalories] = field(default_factory=list)
    completion_rate: list[DailyCompletion] = field(default_factory=list)


def _round(value: float) -> int:
    # Half up, for non-negative values
    return int(value + 0.5)


def _day_key(value: datetime) -> date:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def _dated_days(plans: Iterable[MealPlan]):
    for plan in plans:
        for day in plan.days:
            if day.date is not None:
                yield _day_key(day.date), day


def _range_dates(today: date, date_range: int) -> list[date]:
    return [today - timedelta(days=i) for i in range(date_range - 1, -1, -1)]


def plans_in_range(plans: Iterable[MealPlan], date_range: int, today: date) -> list[MealPlan]:
    """Plans created within the last date_range days (undated plans count)."""
    since = today - timedelta(days=date_range)
    return [
        p for p in plans if p.created_at is None or _day_key(p.created_at) >= since
    ]


def meals_completed(plans: Iterable[MealPlan]) -> int:
    return sum(1 for plan in plans for day in plan.days for meal in day.meals if meal.completed)


def completed_calories_by_date(plans: Iterable[MealPlan]) -> dict[date, int]:
    """Calories of completed meals per calendar date; dates with none are absent."""
    totals: Counter[date] = Counter()
    for key, day in _dated_days(plans):
        calories = sum(m.calories for m in day.meals if m.completed)
        if calories > 0:
            totals[key] += calories
    return dict(totals)


def average_daily_calories(plans: Iterable[MealPlan]) -> int:
    by_date = completed_calories_by_date(plans)
    if not by_date:
        return 0
    return _round(sum(by_date.values()) / len(by_date))


def current_streak(plans: Iterable[MealPlan], today: date) -> int:
    """Consecutive days, ending today or yesterday, with a completed meal."""
    active_dates = {
        key for key, day in _dated_days(plans) if any(m.completed for m in day.meals)
    }
    streak = 0
    for i in range(MAX_STREAK_DAYS):
        if today - timedelta(days=i) in active_dates:
            streak += 1
        elif i > 0:
            break
    return streak


def top_cuisine(plans: Iterable[MealPlan]) -> str:
    """Most frequent cuisine over selected cuisines and planned meals."""
    counts: Counter[str] = Counter()
    for plan in plans:
        counts.update(plan.selected_cuisines)
        counts.update(meal.cuisine for day in plan.days for meal in day.meals if meal.cuisine)
    if not counts:
        return NO_CUISINE
    # Ties go to the cuisine seen first
    return counts.most_common(1)[0][0]


def macro_distribution(plans: Iterable[MealPlan]) -> MacroDistribution:
    protein = carbs = fat = 0
    for plan in plans:
        for day in plan.days:
            for meal in day.meals:
                if meal.completed:
                    protein += meal.protein
                    carbs += meal.carbs
                    fat += meal.fat
    total = protein + carbs + fat
    if total == 0:
        return MacroDistribution()
    return MacroDistribution(
        protein=_round(protein * 100 / total),
        carbs=_round(carbs * 100 / total),
        fat=_round(fat * 100 / total),
    )


def calorie_trend(plans: Iterable[MealPlan], date_range: int, today: date) -> list[DailyCalories]:
    by_date = completed_calories_by_date(plans)
    return [DailyCalories(d, by_date.get(d, 0)) for d in _range_dates(today, date_range)]


def completion_rate(
    plans: Iterable[MealPlan], date_range: int, today: date
) -> list[DailyCompletion]:
    completed: Counter[date] = Counter()
    total: Counter[date] = Counter()
    for key, day in _dated_days(plans):
        total[key] += len(day.meals)
        completed[key] += sum(1 for m in day.meals if m.completed)
    return [
        DailyCompletion(d, completed[d], total[d]) for d in _range_dates(today, date_range)
    ]


def dashboard_stats(
    plans: Iterable[MealPlan], date_range: int = 7, today: date | None = None
) -> DashboardStats:
    """All dashboard figures for the last date_range (7, 14 or 30) days."""
    if date_range not in DASHBOARD_RANGES:
        raise ValidationFailed(
            f"Dashboard range must be 7, 14 or 30 days, got {date_range}",
            fields=["date_range"],
        )
    today = today or datetime.now(timezone.utc).date()
    plans = list(plans)
    recent = plans_in_range(plans, date_range, today)

    return DashboardStats(
        date_range=date_range,
        meals_completed=meals_completed(recent),
        avg_daily_calories=average_daily_calories(recent),
        current_streak=current_streak(plans, today),
        top_cuisine=top_cuisine(recent),
        macro_distribution=macro_distribution(recent),
        calorie_trend=calorie_trend(recent, date_range, today),
        completion_rate=completion_rate(recent, date_range, today),
    )
