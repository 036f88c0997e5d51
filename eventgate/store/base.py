"""
Store contract shared by every gate-state backend.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Tuple

from ..clock import Deadline
from ..gate.models import GateKey, GateState

# fn(prior) -> (result returned to the caller, state to persist)
UpdateFn = Callable[[Optional[GateState]], Tuple[Any, GateState]]


class GateStateStore(ABC):
    """
    Exclusive owner of GateState rows.

    ``get_and_update`` reads the current state for ``key`` (``None`` when the
    key was never seen), passes it to ``fn``, persists the state ``fn``
    returns and hands back ``fn``'s result, all inside one atomic unit scoped
    to ``key``. Nothing is committed when ``fn`` raises or the deadline
    expires first.

    Raises:
        StoreUnavailable: backend failure, timeout or expired deadline
        NotInitialized: the backend handle was never configured
    """

    backend = "base"

    @abstractmethod
    def get_and_update(self, key: GateKey, fn: UpdateFn, deadline: Optional[Deadline] = None) -> Any:
        ...

    @abstractmethod
    def get(self, key: GateKey) -> Optional[GateState]:
        """Committed state for ``key``; read-only, for diagnostics"""
        ...

    def ping(self):
        """Raise if the backend is unreachable"""
