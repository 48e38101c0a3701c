"""
MealSync - Notification preferences and profile views.

Both are per-user singletons. Preference toggles are optimistic and roll
back by re-reading the stored record; profile edits are awaited.
"""

from typing import Any

from pydantic import ValidationError

from mealsync.errors import ValidationFailed
from mealsync.models.entities import EntityKind, NotificationPreferences, UserProfile
from mealsync.views.base import LiveView


class PreferencesView(LiveView[NotificationPreferences]):
    """Notification toggles; defaults until the user saves any."""

    kind = EntityKind.NOTIFICATION_PREFERENCES

    @property
    def value(self) -> NotificationPreferences:
        if self.records:
            return self.records[0]
        return NotificationPreferences(id=self.user_id, user_id=self.user_id)

    async def update(self, **changes: Any) -> None:
        unknown = set(changes) - (set(NotificationPreferences.model_fields) - {"id", "user_id"})
        if unknown:
            raise ValidationFailed(f"Unknown preferences: {sorted(unknown)}", sorted(unknown))
        try:
            NotificationPreferences.model_validate({**self.value.model_dump(), **changes})
        except ValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise ValidationFailed(f"Invalid preferences: {fields}", fields) from e

        session = self.session
        await self.core.coordinator.apply_singleton(
            session,
            self.kind,
            transform=lambda old: old.model_copy(update=changes),
            remote_call=lambda: self.repository.update_notification_preferences(
                session, changes
            ),
            refetch=lambda: self.repository.get_notification_preferences(session),
            default=self.value,
            description=f"update notification preferences {sorted(changes)}",
        )


class ProfileView(LiveView[UserProfile]):
    """The user's dietary profile (None until created)."""

    kind = EntityKind.USER_PROFILES

    @property
    def value(self) -> UserProfile | None:
        return self.records[0] if self.records else None

    async def update(self, **changes: Any) -> UserProfile:
        return await self.repository.update_user_profile(self.session, changes)
