"""
MealSync - Remote store access.

The core only depends on the RemoteStore protocol; concrete stores are
InMemoryStore and SupabaseStore (via get_store()).
"""

from mealsync.db.adapter import RemoteStore, RemoteSubscription, Scope
from mealsync.db.memory import InMemoryStore

__all__ = [
    "InMemoryStore",
    "RemoteStore",
    "RemoteSubscription",
    "Scope",
]
