"""
MealSync - Subscription Manager.

Owns exactly one live remote subscription per (entity kind, scope) that
the UI currently asks for, and the local cached view for it.

Registry model:
- Entries are keyed by (kind, scope) and reference-counted by listeners
- Every listener of an entry receives the full current view on change
- The last unsubscribe tears the remote subscription down
- A remote error is delivered once to every listener; the entry is then
  dead and must be re-established with a fresh subscribe() (no silent
  retry)

The cached view is only written by incoming snapshots and by the
Optimistic Mutation Coordinator (replace_local / rebase_local).
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import BaseModel

from mealsync.db.adapter import RemoteSubscription, Scope
from mealsync.errors import RemoteFailure, SyncError
from mealsync.models.entities import EntityKind
from mealsync.repository import EntityRepository, parse_record
from mealsync.session import UserSession, require_session

logger = logging.getLogger(__name__)

SubscriptionKey = tuple[EntityKind, Scope]
ChangeCallback = Callable[[list[Any]], None]
ErrorCallback = Callable[[SyncError], None]

# (index in view, previous record) per subscription key; (None, None) = was absent
PreImages = dict[SubscriptionKey, tuple[int | None, BaseModel | None]]


@dataclass
class _Listener:
    listener_id: int
    on_change: ChangeCallback
    on_error: ErrorCallback | None


@dataclass
class _Entry:
    """One registry slot: remote subscription, listeners and cached view."""

    kind: EntityKind
    scope: Scope
    listeners: dict[int, _Listener] = field(default_factory=dict)
    records: list[BaseModel] | None = None  # None until the first snapshot
    remote: RemoteSubscription | None = None
    opening: asyncio.Future | None = None
    closed: bool = False
    snapshots: int = 0

    @property
    def key(self) -> SubscriptionKey:
        return (self.kind, self.scope)


class SubscriptionHandle:
    """
    Returned by subscribe(); calling (or awaiting unsubscribe()) releases it.

    Releasing twice is a no-op.
    """

    def __init__(self, manager: "SubscriptionManager", entry: _Entry, listener_id: int):
        self._manager = manager
        self._entry = entry
        self.listener_id = listener_id
        self.released = False

    @property
    def kind(self) -> EntityKind:
        return self._entry.kind

    @property
    def scope(self) -> Scope:
        return self._entry.scope

    async def unsubscribe(self) -> None:
        await self._manager._release(self)

    async def __call__(self) -> None:
        await self.unsubscribe()


class SubscriptionManager:
    """Reference-counted registry of live subscriptions keyed by (kind, scope)."""

    def __init__(self, repository: EntityRepository):
        self.repository = repository
        self._entries: dict[SubscriptionKey, _Entry] = {}
        self._listener_ids = itertools.count(1)
        self._background: set[asyncio.Task] = set()

    # =========================================================================
    # Public API
    # =========================================================================

    async def subscribe(
        self,
        session: UserSession | None,
        kind: EntityKind,
        scope: Scope,
        on_change: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> SubscriptionHandle:
        """
        Listen to the full current view of (kind, scope).

        Shares the remote subscription with other listeners of the same
        scope. If the view is already loaded, on_change fires immediately.
        Raises if the remote subscription cannot be opened.
        """
        session = require_session(session)
        key = (kind, scope)
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry(kind=kind, scope=scope)
            self._entries[key] = entry
            entry.opening = asyncio.ensure_future(self._open(session, entry))
            logger.info(f"Opening subscription {kind.value} [{scope.describe()}]")

        listener = _Listener(next(self._listener_ids), on_change, on_error)
        entry.listeners[listener.listener_id] = listener
        handle = SubscriptionHandle(self, entry, listener.listener_id)

        opening = entry.opening
        if not opening.done():
            # Snapshots arriving meanwhile reach this listener through _publish
            try:
                await asyncio.shield(opening)
            except Exception:
                entry.listeners.pop(listener.listener_id, None)
                handle.released = True
                raise
        elif opening.exception() is not None:
            entry.listeners.pop(listener.listener_id, None)
            handle.released = True
            raise opening.exception()
        elif entry.records is not None:
            self._notify(listener, list(entry.records))
        return handle

    def current(self, kind: EntityKind, scope: Scope) -> list | None:
        """Current local view of a live scope, or None if not loaded."""
        entry = self._entries.get((kind, scope))
        if entry is None or entry.records is None:
            return None
        return list(entry.records)

    def listener_count(self, kind: EntityKind, scope: Scope) -> int:
        entry = self._entries.get((kind, scope))
        return len(entry.listeners) if entry else 0

    def live_keys(self) -> list[SubscriptionKey]:
        return list(self._entries)

    async def close(self) -> None:
        """Tear down every subscription (application shutdown)."""
        for entry in list(self._entries.values()):
            entry.listeners.clear()
            await self._teardown(entry)

    # =========================================================================
    # Local cache writes (Optimistic Mutation Coordinator only)
    # =========================================================================

    def find_record(
        self, kind: EntityKind, owner_id: str, record_id: str
    ) -> BaseModel | None:
        """Locally held value of a record, from any loaded view of its owner."""
        for entry in self._loaded_entries(kind, owner_id):
            for record in entry.records:
                if record.id == record_id:
                    return record
        return None

    def replace_local(
        self,
        kind: EntityKind,
        owner_id: str,
        record_id: str,
        new_record: BaseModel | None,
    ) -> PreImages:
        """
        Replace (or remove, when new_record is None) a record in every
        loaded view of its owner, then notify listeners synchronously.

        Views whose scope no longer matches the new value drop it; views
        that newly match gain it. Returns the pre-images for rollback.
        """
        pre_images: PreImages = {}
        for entry in self._loaded_entries(kind, owner_id):
            records = list(entry.records)
            index = next((i for i, r in enumerate(records) if r.id == record_id), None)
            keep = new_record is not None and entry.scope.matches(new_record)

            if index is None:
                if not keep:
                    continue
                pre_images[entry.key] = (None, None)
                records.append(new_record)
            else:
                pre_images[entry.key] = (index, records[index])
                if keep:
                    records[index] = new_record
                else:
                    del records[index]

            entry.records = records
            self._publish(entry)
        return pre_images

    def rebase_local(
        self,
        kind: EntityKind,
        owner_id: str,
        record_id: str,
        value: BaseModel | None,
        pre_images: PreImages,
    ) -> None:
        """
        Set a record to `value` in every loaded view of its owner, at the
        positions captured by replace_local, then notify.

        Used on rollback: value is the last confirmed record with any
        still-pending mutations re-applied. None removes the record.
        """
        for entry in self._loaded_entries(kind, owner_id):
            records = [r for r in entry.records if r.id != record_id]
            present = len(records) != len(entry.records)
            keep = value is not None and entry.scope.matches(value)
            if not present and not keep:
                continue
            if keep:
                index, _ = pre_images.get(entry.key, (None, None))
                position = len(records) if index is None else min(index, len(records))
                records.insert(position, value)
            entry.records = records
            self._publish(entry)

    # =========================================================================
    # Internals
    # =========================================================================

    def _loaded_entries(self, kind: EntityKind, owner_id: str) -> list[_Entry]:
        return [
            e
            for e in self._entries.values()
            if e.kind == kind
            and e.scope.owner_id == owner_id
            and not e.closed
            and e.records is not None
        ]

    async def _open(self, session: UserSession, entry: _Entry) -> None:
        try:
            entry.remote = await self.repository.subscribe(
                session,
                entry.kind,
                entry.scope,
                lambda rows: self._on_snapshot(entry, rows),
                lambda exc: self._on_remote_error(entry, exc),
            )
        except Exception:
            entry.closed = True
            if self._entries.get(entry.key) is entry:
                del self._entries[entry.key]
            raise

        # Everyone left (or the remote died) while we were opening
        if entry.closed or not entry.listeners:
            entry.closed = True
            if self._entries.get(entry.key) is entry:
                del self._entries[entry.key]
            await entry.remote.close()

    def _on_snapshot(self, entry: _Entry, rows: list[dict]) -> None:
        if entry.closed:
            return
        try:
            records = [parse_record(entry.kind, row) for row in rows]
        except RemoteFailure as e:
            self._on_remote_error(entry, e)
            return
        entry.records = records
        entry.snapshots += 1
        logger.debug(
            f"Snapshot #{entry.snapshots} {entry.kind.value} "
            f"[{entry.scope.describe()}]: {len(records)} records"
        )
        self._publish(entry)

    def _on_remote_error(self, entry: _Entry, exc: Exception) -> None:
        if entry.closed:
            return
        entry.closed = True
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]

        error = exc if isinstance(exc, SyncError) else RemoteFailure(
            f"Subscription to {entry.kind.value} failed: {exc}"
        )
        if error is not exc:
            error.__cause__ = exc
        logger.warning(
            f"Subscription {entry.kind.value} [{entry.scope.describe()}] died: {error}"
        )

        listeners = list(entry.listeners.values())
        entry.listeners.clear()
        for listener in listeners:
            if listener.on_error is None:
                continue
            try:
                listener.on_error(error)
            except Exception:
                logger.exception(f"Error callback for {entry.kind.value} raised")

        if entry.remote is not None:
            task = asyncio.ensure_future(entry.remote.close())
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    def _publish(self, entry: _Entry) -> None:
        view = list(entry.records)
        for listener in list(entry.listeners.values()):
            self._notify(listener, view)

    def _notify(self, listener: _Listener, view: list) -> None:
        try:
            listener.on_change(view)
        except Exception:
            logger.exception("Change callback raised")

    async def _release(self, handle: SubscriptionHandle) -> None:
        if handle.released:
            return
        handle.released = True
        entry = handle._entry
        entry.listeners.pop(handle.listener_id, None)
        if entry.closed or entry.listeners:
            return
        await self._teardown(entry)

    async def _teardown(self, entry: _Entry) -> None:
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]
        if entry.closed:
            return
        entry.closed = True
        if entry.opening is not None and not entry.opening.done():
            # _open closes the remote once it resolves
            return
        if entry.remote is not None:
            await entry.remote.close()
        logger.info(f"Closed subscription {entry.kind.value} [{entry.scope.describe()}]")
