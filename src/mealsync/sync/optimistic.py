"""
MealSync - Optimistic Mutation Coordinator.

Applies a single-record change to every cached view at once, issues the
remote write, and reconciles:

    APPLYING --remote ok-------> CONFIRMED    (next snapshot supersedes)
    APPLYING --remote failed---> ROLLED_BACK  (record rebuilt, error raised)

Only single-record updates go through here. Multi-entity operations
(fold-back, mark-all-read, clear-all) await each remote step instead.

Several mutations of the same record may be in flight at once. They are
tracked per record as a chain over a base value (the record before the
oldest pending mutation, advanced by each confirmation). A failure
rebuilds the record from the base with the still-pending transforms
re-applied, so a rolled-back value never survives in a later
mutation's pre-image. Transforms should therefore be re-appliable:
"set checked=True", not "flip checked".

The remote write runs in its own task; cancelling the awaiting caller
(e.g. an unmounted view) does not cancel it, so rollback still happens
for every other listener of the same views.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from mealsync.errors import NotFound, RemoteFailure, SyncError
from mealsync.models.entities import SINGLETON_KINDS, EntityKind
from mealsync.session import UserSession, require_session
from mealsync.sync.subscriptions import PreImages, SubscriptionManager

logger = logging.getLogger(__name__)

Transform = Callable[[BaseModel], BaseModel | None]
RemoteCall = Callable[[], Awaitable[Any]]
Refetch = Callable[[], Awaitable[BaseModel | None]]

# (kind, owner_id, record_id)
RecordKey = tuple[EntityKind, str, str]


class MutationState(str, Enum):
    APPLYING = "applying"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


@dataclass(eq=False)
class Mutation:
    """
    One optimistic mutation and its outcome.

    Awaiting it waits for the remote write; raises the (rolled back)
    error on failure.
    """

    kind: EntityKind
    owner_id: str
    record_id: str
    description: str
    previous: BaseModel | None
    optimistic: BaseModel | None
    transform: Transform = field(repr=False)
    state: MutationState = MutationState.APPLYING
    error: SyncError | None = None
    pre_images: PreImages = field(default_factory=dict, repr=False)
    _task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.state is not MutationState.APPLYING

    @property
    def record_key(self) -> RecordKey:
        return (self.kind, self.owner_id, self.record_id)

    def __await__(self):
        return asyncio.shield(self._task).__await__()


@dataclass(eq=False)
class _RecordChain:
    """Pending mutations of one record, oldest first, over a base value."""

    base: BaseModel | None
    pre_images: PreImages
    pending: list[Mutation] = field(default_factory=list)
    # Singletons: what pending patches apply to when nothing is stored
    default: BaseModel | None = None

    def rebuild(self) -> BaseModel | None:
        value = self.base
        if value is None and self.pending:
            value = self.default
        for mutation in self.pending:
            if value is None:
                break
            value = mutation.transform(value)
        return value


class OptimisticMutationCoordinator:
    """Local-first single-record writes with rollback on failure."""

    def __init__(self, manager: SubscriptionManager):
        self.manager = manager
        self._chains: dict[RecordKey, _RecordChain] = {}

    @property
    def in_flight(self) -> list[Mutation]:
        return [m for chain in self._chains.values() for m in chain.pending]

    def pending_for(self, kind: EntityKind, owner_id: str, record_id: str) -> list[Mutation]:
        chain = self._chains.get((kind, owner_id, record_id))
        return list(chain.pending) if chain else []

    def apply(
        self,
        session: UserSession | None,
        kind: EntityKind,
        record_id: str,
        transform: Transform,
        remote_call: RemoteCall,
        description: str | None = None,
    ) -> Mutation:
        """
        Apply transform(old) -> new locally, then issue remote_call().

        transform returning None removes the record (optimistic delete).
        Listeners are notified before this returns. Raises NotFound if no
        live view holds the record.
        """
        session = require_session(session)
        current = self.manager.find_record(kind, session.user_id, record_id)
        if current is None:
            raise NotFound(f"{kind.value} '{record_id}' is not loaded in any live view")

        mutation = self._start(session, kind, record_id, current, transform, description)

        def rollback() -> None:
            self._rebase(mutation, self._detach(mutation))

        mutation._task = self._spawn(mutation, remote_call, rollback)
        return mutation

    def apply_singleton(
        self,
        session: UserSession | None,
        kind: EntityKind,
        transform: Transform,
        remote_call: RemoteCall,
        refetch: Refetch,
        default: BaseModel,
        description: str | None = None,
    ) -> Mutation:
        """
        Optimistic patch of a per-user singleton (id == user_id).

        Rollback re-reads the authoritative record instead of trusting a
        cached base: several partial toggles may be in flight at once.
        Mutations still pending are re-applied on top of it.
        """
        if kind not in SINGLETON_KINDS:
            raise ValueError(f"{kind.value} is not a per-user singleton")
        session = require_session(session)
        owner_id = session.user_id
        stored = self.manager.find_record(kind, owner_id, owner_id)
        mutation = self._start(
            session, kind, owner_id, stored or default, transform, description, default
        )

        async def rollback() -> None:
            try:
                authoritative = await refetch()
            except Exception as e:
                logger.warning(
                    f"Re-fetch of {kind.value} failed during rollback ({e}); "
                    f"rebuilding from the cached base"
                )
                self._rebase(mutation, self._detach(mutation))
                return
            chain = self._detach(mutation)
            chain.base = authoritative
            self._rebase(mutation, chain)

        mutation._task = self._spawn(mutation, remote_call, rollback)
        return mutation

    # =========================================================================
    # Internals
    # =========================================================================

    def _start(
        self,
        session: UserSession,
        kind: EntityKind,
        record_id: str,
        current: BaseModel,
        transform: Transform,
        description: str | None,
        default: BaseModel | None = None,
    ) -> Mutation:
        mutation = Mutation(
            kind=kind,
            owner_id=session.user_id,
            record_id=record_id,
            description=description or f"update {kind.value}/{record_id}",
            previous=current,
            optimistic=transform(current),
            transform=transform,
        )
        mutation.pre_images = self.manager.replace_local(
            kind, session.user_id, record_id, mutation.optimistic
        )

        chain = self._chains.get(mutation.record_key)
        if chain is None:
            chain = _RecordChain(
                base=None if current is default else current,
                pre_images=dict(mutation.pre_images),
                default=default,
            )
            self._chains[mutation.record_key] = chain
        else:
            # Views that first saw the record during this mutation
            for key, image in mutation.pre_images.items():
                chain.pre_images.setdefault(key, image)
        chain.pending.append(mutation)

        logger.debug(
            f"Optimistic apply: {mutation.description} "
            f"({len(chain.pending)} pending on this record)"
        )
        return mutation

    def _detach(self, mutation: Mutation) -> _RecordChain:
        """Take a settled mutation off its record's chain."""
        chain = self._chains[mutation.record_key]
        chain.pending.remove(mutation)
        if not chain.pending:
            del self._chains[mutation.record_key]
        return chain

    def _confirm(self, mutation: Mutation) -> None:
        chain = self._detach(mutation)
        base = chain.base if chain.base is not None else chain.default
        if base is not None:
            chain.base = mutation.transform(base)

    def _rebase(self, mutation: Mutation, chain: _RecordChain) -> None:
        value = chain.rebuild()
        self.manager.rebase_local(
            mutation.kind, mutation.owner_id, mutation.record_id, value, chain.pre_images
        )
        if chain.pending:
            logger.debug(
                f"Rebuilt {mutation.kind.value}/{mutation.record_id} with "
                f"{len(chain.pending)} pending mutations re-applied"
            )

    def _spawn(
        self,
        mutation: Mutation,
        remote_call: RemoteCall,
        rollback: Callable[[], Any],
    ) -> asyncio.Task:
        task = asyncio.ensure_future(self._settle(mutation, remote_call, rollback))
        # Nobody may await a mutation whose view went away
        task.add_done_callback(lambda t: t.cancelled() or t.exception())
        return task

    async def _settle(
        self,
        mutation: Mutation,
        remote_call: RemoteCall,
        rollback: Callable[[], Any],
    ) -> None:
        try:
            await remote_call()
        except Exception as e:
            error = e if isinstance(e, SyncError) else RemoteFailure(
                f"Failed to {mutation.description}: {e}"
            )
            result = rollback()
            if asyncio.iscoroutine(result):
                await result
            mutation.state = MutationState.ROLLED_BACK
            mutation.error = error
            logger.warning(f"Rolled back {mutation.description}: {error}")
            if error is e:
                raise
            raise error from e
        else:
            self._confirm(mutation)
            mutation.state = MutationState.CONFIRMED
            logger.debug(f"Confirmed: {mutation.description}")
        finally:
            chain = self._chains.get(mutation.record_key)
            if chain is not None and mutation in chain.pending:
                self._detach(mutation)
