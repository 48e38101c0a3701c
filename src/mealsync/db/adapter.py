"""
Remote Store Protocol.

Defines the abstract interface to the authoritative document store.
Implementations: InMemoryStore (tests, demos) and SupabaseStore.

Records are flat dicts keyed by model field names. Every user-owned
record carries `user_id`; singleton records use `id == user_id`.

Subscriptions deliver the FULL current view of a scope on every change
(replace-the-whole-view), never deltas.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, runtime_checkable

from mealsync.models.entities import EntityKind

SnapshotCallback = Callable[[list[dict]], None]
ErrorCallback = Callable[[Exception], None]


# Snapshot ordering per kind: (field, descending)
ORDER_BY: dict[EntityKind, tuple[str, bool]] = {
    EntityKind.NOTIFICATIONS: ("created_at", True),
    EntityKind.MEAL_PLANS: ("created_at", True),
    EntityKind.SHOPPING_LISTS: ("created_at", True),
    EntityKind.INVENTORY: ("added_at", False),
    EntityKind.RECIPES: ("created_at", False),
}


@dataclass(frozen=True)
class Scope:
    """
    Identifies which subset of a collection a subscription targets.

    owner_id plus equality filters on record fields, e.g.:
        Scope.for_owner(uid)                      all of the user's records
        Scope.for_owner(uid, read=False)          unread notifications
        Scope.for_owner(uid, active=True)         the active plan
        Scope.for_owner(uid, meal_plan_id=pid, active=True)

    Hashable, so (kind, scope) can key the subscription registry.
    """

    owner_id: str
    filters: tuple[tuple[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def for_owner(cls, owner_id: str, **filters: Any) -> "Scope":
        return cls(owner_id=owner_id, filters=tuple(sorted(filters.items())))

    def matches(self, record: Any) -> bool:
        """True when a record (dict or model) belongs to this scope."""
        for name, expected in self.filters:
            if isinstance(record, dict):
                actual = record.get(name)
            else:
                actual = getattr(record, name, None)
            if actual != expected:
                return False
        return True

    def describe(self) -> str:
        parts = [f"owner={self.owner_id}"]
        parts.extend(f"{k}={v}" for k, v in self.filters)
        return ",".join(parts)


@runtime_checkable
class RemoteSubscription(Protocol):
    """Handle for one live remote listener."""

    async def close(self) -> None:
        """Tear down the remote listener. Idempotent."""
        ...


@runtime_checkable
class RemoteStore(Protocol):
    """
    Abstract access to the authoritative remote store.

    All methods are coroutines; they are the suspension points of the core.
    """

    async def subscribe(
        self,
        kind: EntityKind,
        scope: Scope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> RemoteSubscription:
        """Start a live listener; on_snapshot gets the full ordered view."""
        ...

    async def list(self, kind: EntityKind, scope: Scope) -> list[dict]:
        """One-shot read of a scope, ordered like snapshots."""
        ...

    async def get(self, kind: EntityKind, owner_id: str, record_id: str) -> dict | None:
        """Read one record, or None."""
        ...

    async def create(self, kind: EntityKind, owner_id: str, data: dict) -> str:
        """Insert a record and return its generated id."""
        ...

    async def update(
        self, kind: EntityKind, owner_id: str, record_id: str, changes: dict
    ) -> None:
        """Apply a partial field set to one record."""
        ...

    async def update_many(
        self, kind: EntityKind, scope: Scope, changes: dict
    ) -> int:
        """Apply the same partial field set to every record of a scope (batch)."""
        ...

    async def delete(self, kind: EntityKind, owner_id: str, record_id: str) -> None:
        """Delete one record."""
        ...

    async def delete_many(self, kind: EntityKind, scope: Scope) -> int:
        """Delete every record of a scope (batch)."""
        ...

    async def upsert(self, kind: EntityKind, owner_id: str, data: dict) -> None:
        """Create or replace a singleton record (id == owner_id)."""
        ...

    async def set_active_meal_plan(self, owner_id: str, plan_id: str) -> None:
        """Atomically deactivate the current active plan and activate plan_id."""
        ...


def sort_records(kind: EntityKind, records: list[dict]) -> list[dict]:
    """Order records the way snapshots of this kind are ordered."""
    order = ORDER_BY.get(kind)
    if not order:
        return records
    name, descending = order
    # Records without the order field keep insertion order at the end
    present = [r for r in records if r.get(name) is not None]
    missing = [r for r in records if r.get(name) is None]
    present.sort(key=lambda r: str(r[name]), reverse=descending)
    return present + missing
