"""
MealSync - Notifications view.

Single-notification changes are optimistic; mark-all-read and clear-all
are batch writes and wait for the store.
"""

from mealsync.db.adapter import Scope
from mealsync.errors import NotFound
from mealsync.models.entities import EntityKind, Notification
from mealsync.views.base import LiveView


class NotificationsView(LiveView[Notification]):
    """Notifications, newest first; optionally only unread ones."""

    kind = EntityKind.NOTIFICATIONS

    def __init__(self, core, session, unread_only: bool = False):
        super().__init__(core, session)
        self.unread_only = unread_only

    def scope(self) -> Scope:
        if self.unread_only:
            return Scope.for_owner(self.user_id, read=False)
        return Scope.for_owner(self.user_id)

    @property
    def notifications(self) -> list[Notification]:
        return self.records

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.records if not n.read)

    async def mark_as_read(self, notification_id: str) -> None:
        await self._patch(
            notification_id,
            {"read": True},
            lambda payload: self.repository.set_notification_read(
                self.session, notification_id, payload["read"]
            ),
            f"mark notification {notification_id} read",
        )

    async def toggle_read(self, notification_id: str) -> None:
        current = self.core.subscriptions.find_record(self.kind, self.user_id, notification_id)
        if current is None:
            raise NotFound(f"Notification '{notification_id}' not found")
        read = not current.read
        await self._patch(
            notification_id,
            {"read": read},
            lambda payload: self.repository.set_notification_read(
                self.session, notification_id, payload["read"]
            ),
            f"mark notification {notification_id} {'read' if read else 'unread'}",
        )

    async def delete(self, notification_id: str) -> None:
        await self._optimistic(
            notification_id,
            lambda old: None,
            lambda: self.repository.delete_notification(self.session, notification_id),
            f"delete notification {notification_id}",
        )

    async def mark_all_as_read(self) -> int:
        return await self.repository.mark_all_notifications_read(self.session)

    async def clear_all(self) -> int:
        return await self.repository.clear_notifications(self.session)
