"""
MealSync - Live views (UI boundary).

A LiveView is what a screen hook holds: the current synchronized value,
a loading flag, the last error, and action methods. Screens re-render
from add_listener() callbacks.

    core = SyncCore.create(InMemoryStore(), generator)
    view = NotificationsView(core, session)
    await view.start()
    view.unread_count
    await view.mark_as_read(notification_id)
    await view.stop()

After a subscription error the view stays stopped with `error` set;
call restart() to re-establish it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from mealsync.db.adapter import RemoteStore, Scope
from mealsync.errors import RemoteFailure, SyncError
from mealsync.generation.gateway import GenerationGateway, Generator
from mealsync.models.entities import EntityKind
from mealsync.repository import EntityRepository
from mealsync.session import UserSession, require_session
from mealsync.sync.optimistic import Mutation, OptimisticMutationCoordinator, RemoteCall
from mealsync.sync.subscriptions import SubscriptionHandle, SubscriptionManager

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
ViewListener = Callable[["LiveView"], None]


@dataclass
class SyncCore:
    """The collaborating components every view works through."""

    repository: EntityRepository
    subscriptions: SubscriptionManager
    coordinator: OptimisticMutationCoordinator
    gateway: GenerationGateway | None = None

    @classmethod
    def create(cls, store: RemoteStore, generator: Generator | None = None) -> "SyncCore":
        repository = EntityRepository(store)
        subscriptions = SubscriptionManager(repository)
        return cls(
            repository=repository,
            subscriptions=subscriptions,
            coordinator=OptimisticMutationCoordinator(subscriptions),
            gateway=GenerationGateway(generator) if generator else None,
        )

    def require_gateway(self) -> GenerationGateway:
        if self.gateway is None:
            raise RemoteFailure("No generator is configured")
        return self.gateway

    async def close(self) -> None:
        await self.subscriptions.close()


class LiveView(Generic[M]):
    """Base class: one subscription, its records, and change fan-out."""

    kind: EntityKind

    def __init__(self, core: SyncCore, session: UserSession | None):
        self.core = core
        self.session = session
        self.records: list[M] = []
        self.loading = False
        self.error: SyncError | None = None
        self._handle: SubscriptionHandle | None = None
        self._listeners: list[ViewListener] = []

    @property
    def repository(self) -> EntityRepository:
        return self.core.repository

    @property
    def user_id(self) -> str:
        return require_session(self.session).user_id

    @property
    def active(self) -> bool:
        return self._handle is not None

    def scope(self) -> Scope:
        return Scope.for_owner(self.user_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Subscribe; the first snapshot clears `loading`."""
        session = require_session(self.session)
        if self._handle is not None:
            return
        self.loading = True
        self.error = None
        try:
            self._handle = await self.core.subscriptions.subscribe(
                session, self.kind, self.scope(), self._on_change, self._on_error
            )
        except SyncError as e:
            self.loading = False
            self.error = e
            self._emit()
            raise

    async def stop(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            await handle.unsubscribe()

    async def restart(self) -> None:
        await self.stop()
        await self.start()

    def add_listener(self, callback: ViewListener) -> Callable[[], None]:
        """Register a re-render callback. Returns a remover."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    # =========================================================================
    # Subscription callbacks
    # =========================================================================

    def _on_change(self, records: list[M]) -> None:
        self.records = records
        self.loading = False
        self.error = None
        self._emit()

    def _on_error(self, error: SyncError) -> None:
        self._handle = None
        self.loading = False
        self.error = error
        self._emit()

    def _emit(self) -> None:
        for callback in list(self._listeners):
            callback(self)

    # =========================================================================
    # Optimistic helpers
    # =========================================================================

    def _optimistic(
        self,
        record_id: str,
        transform: Callable[[M], M | None],
        remote_call: RemoteCall,
        description: str,
    ) -> Mutation:
        return self.core.coordinator.apply(
            self.session, self.kind, record_id, transform, remote_call, description
        )

    def _patch(
        self,
        record_id: str,
        changes: dict[str, Any],
        remote_write: Callable[[dict[str, Any]], Any],
        description: str,
    ) -> Mutation:
        """Optimistically set fields on one record, then write them remotely."""
        payload = {name: to_jsonable_python(value) for name, value in changes.items()}
        return self._optimistic(
            record_id,
            lambda old: old.model_copy(update=changes),
            lambda: remote_write(payload),
            description,
        )
