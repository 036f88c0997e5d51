"""
In-process gate store backed by a dict and one lock per active key.
"""

import threading
from contextlib import contextmanager
from typing import Any, Dict, Hashable, List, Optional

from ..clock import Deadline
from ..errors import StoreUnavailable
from ..gate.models import GateKey, GateState
from ..logging_config import get_logger
from .base import GateStateStore, UpdateFn

logger = get_logger(__name__)


class KeyedLock:
    """
    One mutex per key, created on first use and dropped once no thread holds
    or waits for it, so idle keys cost nothing.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, List] = {}  # key -> [lock, holders + waiters]

    @contextmanager
    def hold(self, key: Hashable, timeout: Optional[float] = None):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1

        try:
            if timeout is None:
                acquired = entry[0].acquire()
            else:
                acquired = entry[0].acquire(timeout=timeout)
            if not acquired:
                raise StoreUnavailable(f"timed out waiting for lock on {key}")
            try:
                yield
            finally:
                entry[0].release()
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)


class InMemoryGateStore(GateStateStore):
    """Single-instance store; state is lost on restart"""

    backend = "memory"

    def __init__(self):
        self._states: Dict[GateKey, GateState] = {}
        self._locks = KeyedLock()

    def get_and_update(self, key: GateKey, fn: UpdateFn, deadline: Optional[Deadline] = None) -> Any:
        deadline = deadline or Deadline()
        deadline.check("gate store update")

        with self._locks.hold(key, deadline.remaining()):
            prior = self._states.get(key)
            result, next_state = fn(prior)
            deadline.check("gate store update")
            self._states[key] = next_state

        logger.debug(f"[STORE] {key} count={next_state.count}")
        return result

    def get(self, key: GateKey) -> Optional[GateState]:
        return self._states.get(key)

    def __len__(self):
        return len(self._states)
