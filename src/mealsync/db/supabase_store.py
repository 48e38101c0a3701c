"""
Supabase Remote Store.

PostgREST queries for reads/writes, realtime postgres_changes for live
subscriptions. Every change event on a subscribed table re-reads the
scope and delivers the full view, so consumers never merge deltas.

Meal plan activation goes through the `set_active_meal_plan` SQL
function (see migrations/001_set_active_meal_plan.sql) so deactivating
the old plan and activating the new one is one transaction.
"""

import asyncio
import logging
from typing import Any

from realtime import RealtimeSubscribeStates
from supabase import AsyncClient

from mealsync.db.adapter import (
    ORDER_BY,
    ErrorCallback,
    Scope,
    SnapshotCallback,
)
from mealsync.models.entities import EntityKind

logger = logging.getLogger(__name__)


def _apply_scope(query: Any, scope: Scope) -> Any:
    """Apply owner + equality filters of a scope to a PostgREST query."""
    query = query.eq("user_id", scope.owner_id)
    for name, value in scope.filters:
        if isinstance(value, bool):
            query = query.is_(name, "true" if value else "false")
        elif value is None:
            query = query.is_(name, "null")
        else:
            query = query.eq(name, value)
    return query


class _RealtimeSubscription:
    """
    One realtime channel bound to a (kind, scope).

    Change events are coalesced into serial refreshes: a refresh never
    overlaps another, so views are delivered in the order the store
    produced them.
    """

    def __init__(
        self,
        store: "SupabaseStore",
        kind: EntityKind,
        scope: Scope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ):
        self._store = store
        self.kind = kind
        self.scope = scope
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._channel: Any = None
        self._dirty = False
        self._refresher: asyncio.Task | None = None
        self._failed = False
        self.closed = False

    async def open(self) -> None:
        client = self._store.client
        channel_name = f"mealsync:{self.kind.value}:{self.scope.describe()}"
        self._channel = client.channel(channel_name)
        self._channel.on_postgres_changes(
            "*",
            schema="public",
            table=self.kind.value,
            filter=f"user_id=eq.{self.scope.owner_id}",
            callback=self._on_change,
        )
        await self._channel.subscribe(self._on_status)
        # Initial view
        self._schedule_refresh()

    def _on_status(self, status: Any, err: Exception | None = None) -> None:
        if status in (RealtimeSubscribeStates.CHANNEL_ERROR, RealtimeSubscribeStates.TIMED_OUT):
            self._fail(err or RuntimeError(f"Realtime channel {status}"))

    def _on_change(self, payload: Any) -> None:
        self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        if self.closed or self._failed:
            return
        self._dirty = True
        if self._refresher is None or self._refresher.done():
            self._refresher = asyncio.get_running_loop().create_task(self._refresh_loop())

    async def _refresh_loop(self) -> None:
        while self._dirty and not self.closed and not self._failed:
            self._dirty = False
            try:
                rows = await self._store.list(self.kind, self.scope)
            except Exception as e:
                self._fail(e)
                return
            if not self.closed:
                self._on_snapshot(rows)

    def _fail(self, exc: Exception) -> None:
        if self._failed or self.closed:
            return
        self._failed = True
        logger.warning(f"Realtime subscription {self.kind.value} failed: {exc}")
        self._on_error(exc)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._refresher and not self._refresher.done():
            self._refresher.cancel()
        if self._channel is not None:
            await self._store.client.remove_channel(self._channel)


class SupabaseStore:
    """RemoteStore implementation on top of a supabase AsyncClient."""

    def __init__(self, client: AsyncClient):
        self.client = client

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def subscribe(
        self,
        kind: EntityKind,
        scope: Scope,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> _RealtimeSubscription:
        sub = _RealtimeSubscription(self, kind, scope, on_snapshot, on_error)
        await sub.open()
        return sub

    # =========================================================================
    # Reads
    # =========================================================================

    async def list(self, kind: EntityKind, scope: Scope) -> list[dict]:
        query = _apply_scope(self.client.table(kind.value).select("*"), scope)
        order = ORDER_BY.get(kind)
        if order:
            query = query.order(order[0], desc=order[1])
        response = await query.execute()
        return response.data or []

    async def get(self, kind: EntityKind, owner_id: str, record_id: str) -> dict | None:
        response = await (
            self.client.table(kind.value)
            .select("*")
            .eq("id", record_id)
            .eq("user_id", owner_id)  # Security: ensure user owns record
            .maybe_single()
            .execute()
        )
        if response is None:
            return None
        return response.data

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(self, kind: EntityKind, owner_id: str, data: dict) -> str:
        record = {**data, "user_id": owner_id}
        record.pop("id", None)
        response = await self.client.table(kind.value).insert(record).execute()
        return response.data[0]["id"]

    async def update(
        self, kind: EntityKind, owner_id: str, record_id: str, changes: dict
    ) -> None:
        response = await (
            self.client.table(kind.value)
            .update(changes)
            .eq("id", record_id)
            .eq("user_id", owner_id)
            .execute()
        )
        if not response.data:
            raise KeyError(f"{kind.value}/{record_id} does not exist")

    async def update_many(self, kind: EntityKind, scope: Scope, changes: dict) -> int:
        query = _apply_scope(self.client.table(kind.value).update(changes), scope)
        response = await query.execute()
        return len(response.data or [])

    async def delete(self, kind: EntityKind, owner_id: str, record_id: str) -> None:
        response = await (
            self.client.table(kind.value)
            .delete()
            .eq("id", record_id)
            .eq("user_id", owner_id)
            .execute()
        )
        if not response.data:
            raise KeyError(f"{kind.value}/{record_id} does not exist")

    async def delete_many(self, kind: EntityKind, scope: Scope) -> int:
        query = _apply_scope(self.client.table(kind.value).delete(), scope)
        response = await query.execute()
        return len(response.data or [])

    async def upsert(self, kind: EntityKind, owner_id: str, data: dict) -> None:
        record = {**data, "id": owner_id, "user_id": owner_id}
        await self.client.table(kind.value).upsert(record).execute()

    async def set_active_meal_plan(self, owner_id: str, plan_id: str) -> None:
        await self.client.rpc(
            "set_active_meal_plan",
            {"p_user_id": owner_id, "p_plan_id": plan_id},
        ).execute()
