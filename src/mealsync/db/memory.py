"""
In-Memory Remote Store.

Authoritative dict tables living in the current process. Behaves like
the real store from the core's point of view:
- Snapshots are delivered asynchronously (scheduled on the running loop)
  in the order writes happen
- Every write re-emits the full view to each matching subscription
- set_active_meal_plan is a single atomic step

Used by the test-suite and the CLI demo. Failure injection:
    store.fail_next("update", RuntimeError("offline"))
    store.break_subscriptions(EntityKind.NOTIFICATIONS, RuntimeError("denied"))
"""

import asyncio
import copy
import itertools
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from mealsync.db.adapter import (
    ErrorCallback,
    Scope,
    SnapshotCallback,
    sort_records,
)
from mealsync.models.entities import EntityKind

logger = logging.getLogger(__name__)

# Fields stamped on create, keyed by kind
_CREATED_FIELDS = {
    EntityKind.INVENTORY: ("added_at", "updated_at"),
    EntityKind.RECIPES: ("created_at", "updated_at"),
    EntityKind.MEAL_PLANS: ("created_at",),
    EntityKind.SHOPPING_LISTS: ("created_at",),
    EntityKind.NOTIFICATIONS: ("created_at",),
}

_UPDATED_FIELDS = {
    EntityKind.INVENTORY: "updated_at",
    EntityKind.RECIPES: "updated_at",
}


class _MemorySubscription:
    """Live listener registered on an InMemoryStore."""

    def __init__(
        self,
        store: "InMemoryStore",
        sub_id: int,
        kind: EntityKind,
        scope: Scope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ):
        self._store = store
        self.sub_id = sub_id
        self.kind = kind
        self.scope = scope
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._store._subscriptions.pop(self.sub_id, None)


class InMemoryStore:
    """RemoteStore implementation backed by process-local dicts."""

    def __init__(self):
        self._tables: dict[EntityKind, dict[str, dict]] = defaultdict(dict)
        self._subscriptions: dict[int, _MemorySubscription] = {}
        self._sub_ids = itertools.count(1)
        self._failures: dict[str, list[Exception | None]] = defaultdict(list)
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.calls: list[tuple[str, EntityKind | None]] = []

    # =========================================================================
    # Test helpers
    # =========================================================================

    def fail_next(self, op: str, exc: Exception, after: int = 0) -> None:
        """
        Make the next call of `op` ("create", "update", ...) raise exc.

        With after=n, n further calls succeed first.
        """
        self._failures[op].extend([None] * after)
        self._failures[op].append(exc)

    def break_subscriptions(self, kind: EntityKind, exc: Exception) -> None:
        """Deliver exc to every live subscription of kind (remote-side failure)."""
        loop = asyncio.get_running_loop()
        for sub in list(self._subscriptions.values()):
            if sub.kind == kind and not sub.closed:
                loop.call_soon(self._deliver_error, sub, exc)

    def seed(self, kind: EntityKind, owner_id: str, data: dict) -> str:
        """Insert a record without notifying subscribers (test setup)."""
        record_id = data.get("id") or uuid.uuid4().hex
        record = self._stamp_created(kind, {**copy.deepcopy(data), "id": record_id, "user_id": owner_id})
        self._tables[kind][record_id] = record
        return record_id

    def live_subscription_count(self, kind: EntityKind | None = None) -> int:
        return sum(1 for s in self._subscriptions.values() if kind is None or s.kind == kind)

    def records(self, kind: EntityKind) -> list[dict]:
        """All stored records of a kind (copies), for assertions."""
        return [copy.deepcopy(r) for r in self._tables[kind].values()]

    # =========================================================================
    # Internals
    # =========================================================================

    def _check_failure(self, op: str) -> None:
        pending = self._failures.get(op)
        if pending:
            exc = pending.pop(0)
            if exc is not None:
                raise exc

    def _now(self) -> str:
        # Strictly increasing so ordering by timestamp is stable
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def _stamp_created(self, kind: EntityKind, record: dict) -> dict:
        for name in _CREATED_FIELDS.get(kind, ()):
            if not record.get(name):
                record[name] = self._now()
        return record

    def _select(self, kind: EntityKind, scope: Scope) -> list[dict]:
        rows = [
            copy.deepcopy(r)
            for r in self._tables[kind].values()
            if r.get("user_id") == scope.owner_id and scope.matches(r)
        ]
        return sort_records(kind, rows)

    def _emit(self, kind: EntityKind, owner_id: str) -> None:
        """Schedule a full-view snapshot for every subscription of kind/owner."""
        loop = asyncio.get_running_loop()
        for sub in list(self._subscriptions.values()):
            if sub.kind == kind and sub.scope.owner_id == owner_id:
                # The view is taken now, so each write gets its own snapshot
                loop.call_soon(self._deliver_snapshot, sub, self._select(kind, sub.scope))

    def _deliver_snapshot(self, sub: _MemorySubscription, rows: list[dict]) -> None:
        if sub.closed:
            return
        sub.on_snapshot(rows)

    def _deliver_error(self, sub: _MemorySubscription, exc: Exception) -> None:
        if sub.closed:
            return
        sub.closed = True
        self._subscriptions.pop(sub.sub_id, None)
        sub.on_error(exc)

    def _require(self, kind: EntityKind, owner_id: str, record_id: str) -> dict:
        record = self._tables[kind].get(record_id)
        if record is None or record.get("user_id") != owner_id:
            raise KeyError(f"{kind.value}/{record_id} does not exist")
        return record

    # =========================================================================
    # RemoteStore
    # =========================================================================

    async def subscribe(
        self,
        kind: EntityKind,
        scope: Scope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> _MemorySubscription:
        self.calls.append(("subscribe", kind))
        self._check_failure("subscribe")
        sub_id = next(self._sub_ids)
        sub = _MemorySubscription(self, sub_id, kind, scope, on_snapshot, on_error)
        self._subscriptions[sub_id] = sub
        # Initial snapshot, like any live query
        asyncio.get_running_loop().call_soon(
            self._deliver_snapshot, sub, self._select(kind, scope)
        )
        return sub

    async def list(self, kind: EntityKind, scope: Scope) -> list[dict]:
        self.calls.append(("list", kind))
        self._check_failure("list")
        return self._select(kind, scope)

    async def get(self, kind: EntityKind, owner_id: str, record_id: str) -> dict | None:
        self.calls.append(("get", kind))
        self._check_failure("get")
        record = self._tables[kind].get(record_id)
        if record is None or record.get("user_id") != owner_id:
            return None
        return copy.deepcopy(record)

    async def create(self, kind: EntityKind, owner_id: str, data: dict) -> str:
        self.calls.append(("create", kind))
        self._check_failure("create")
        record_id = uuid.uuid4().hex
        record = {**copy.deepcopy(data), "id": record_id, "user_id": owner_id}
        self._tables[kind][record_id] = self._stamp_created(kind, record)
        self._emit(kind, owner_id)
        return record_id

    async def update(
        self, kind: EntityKind, owner_id: str, record_id: str, changes: dict
    ) -> None:
        self.calls.append(("update", kind))
        self._check_failure("update")
        record = self._require(kind, owner_id, record_id)
        record.update(copy.deepcopy(changes))
        if kind in _UPDATED_FIELDS:
            record[_UPDATED_FIELDS[kind]] = self._now()
        self._emit(kind, owner_id)

    async def update_many(self, kind: EntityKind, scope: Scope, changes: dict) -> int:
        self.calls.append(("update_many", kind))
        self._check_failure("update_many")
        count = 0
        for record in self._tables[kind].values():
            if record.get("user_id") == scope.owner_id and scope.matches(record):
                record.update(copy.deepcopy(changes))
                count += 1
        if count:
            self._emit(kind, scope.owner_id)
        return count

    async def delete(self, kind: EntityKind, owner_id: str, record_id: str) -> None:
        self.calls.append(("delete", kind))
        self._check_failure("delete")
        self._require(kind, owner_id, record_id)
        del self._tables[kind][record_id]
        self._emit(kind, owner_id)

    async def delete_many(self, kind: EntityKind, scope: Scope) -> int:
        self.calls.append(("delete_many", kind))
        self._check_failure("delete_many")
        doomed = [
            rid
            for rid, record in self._tables[kind].items()
            if record.get("user_id") == scope.owner_id and scope.matches(record)
        ]
        for rid in doomed:
            del self._tables[kind][rid]
        if doomed:
            self._emit(kind, scope.owner_id)
        return len(doomed)

    async def upsert(self, kind: EntityKind, owner_id: str, data: dict) -> None:
        self.calls.append(("upsert", kind))
        self._check_failure("upsert")
        existing = self._tables[kind].get(owner_id, {})
        self._tables[kind][owner_id] = {
            **existing,
            **copy.deepcopy(data),
            "id": owner_id,
            "user_id": owner_id,
        }
        self._emit(kind, owner_id)

    async def set_active_meal_plan(self, owner_id: str, plan_id: str) -> None:
        self.calls.append(("set_active_meal_plan", EntityKind.MEAL_PLANS))
        self._check_failure("set_active_meal_plan")
        plans = self._tables[EntityKind.MEAL_PLANS]
        self._require(EntityKind.MEAL_PLANS, owner_id, plan_id)
        # Single synchronous block: no observer can see zero or two active plans
        for record in plans.values():
            if record.get("user_id") == owner_id:
                record["active"] = record["id"] == plan_id
        self._emit(EntityKind.MEAL_PLANS, owner_id)
