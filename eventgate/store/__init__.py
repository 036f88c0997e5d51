"""
Gate State Stores
=================
Keyed storage for GateState exposing one atomic read-modify-write,
``get_and_update``. Occurrences for the same key are linearized; different
keys never wait on each other.

Backends:
- InMemoryGateStore: per-key lock, single instance
- RedisGateStore: WATCH/MULTI/EXEC with optimistic-conflict retry
- SQLGateStore: SELECT ... FOR UPDATE inside one transaction
"""

from .base import GateStateStore, UpdateFn
from .memory import InMemoryGateStore, KeyedLock
from .redis_store import RedisGateStore
from .sql_store import SQLGateStore

__all__ = [
    "GateStateStore",
    "UpdateFn",
    "InMemoryGateStore",
    "KeyedLock",
    "RedisGateStore",
    "SQLGateStore",
]
