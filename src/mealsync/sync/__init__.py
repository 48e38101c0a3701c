"""
MealSync sync layer.

- SubscriptionManager: ref-counted live views per (kind, scope)
- OptimisticMutationCoordinator: local-first single-record writes
"""

from mealsync.sync.optimistic import (
    Mutation,
    MutationState,
    OptimisticMutationCoordinator,
)
from mealsync.sync.subscriptions import SubscriptionHandle, SubscriptionManager

__all__ = [
    "Mutation",
    "MutationState",
    "OptimisticMutationCoordinator",
    "SubscriptionHandle",
    "SubscriptionManager",
]
