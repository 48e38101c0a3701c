"""
MealSync - Dashboard view.

Live statistics over every meal plan of the user. The figures are
derived from the synchronized plans on each read, so they follow meal
completion as soon as it is applied locally.
"""

from datetime import date

from mealsync.derive.dashboard import DASHBOARD_RANGES, DashboardStats, dashboard_stats
from mealsync.errors import ValidationFailed
from mealsync.models.entities import EntityKind, MealPlan
from mealsync.views.base import LiveView


class DashboardView(LiveView[MealPlan]):
    """All plans of the user, summarized over the last 7, 14 or 30 days."""

    kind = EntityKind.MEAL_PLANS

    def __init__(self, core, session, date_range: int = 7):
        super().__init__(core, session)
        self.date_range = self._check_range(date_range)

    @staticmethod
    def _check_range(date_range: int) -> int:
        if date_range not in DASHBOARD_RANGES:
            raise ValidationFailed(
                f"Dashboard range must be 7, 14 or 30 days, got {date_range}",
                fields=["date_range"],
            )
        return date_range

    def set_range(self, date_range: int) -> None:
        self.date_range = self._check_range(date_range)
        self._emit()

    def stats(self, today: date | None = None) -> DashboardStats:
        return dashboard_stats(self.records, self.date_range, today)
