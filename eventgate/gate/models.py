"""
Gate data model: keys, per-key state, and the per-call policy.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Union

from ..clock import ensure_utc
from ..errors import InvalidKey


class DecisionReason(str, Enum):
    """Why the evaluator allowed or denied an occurrence"""
    ADMITTED = "admitted"
    COOLDOWN = "cooldown"
    BELOW_THRESHOLD = "below_threshold"


@dataclass(frozen=True)
class GateKey:
    """One alerting condition from one producer"""
    source: str
    fingerprint: str

    @classmethod
    def create(cls, source: Optional[str], fingerprint: Optional[str]) -> "GateKey":
        source = (source or "").strip()
        fingerprint = (fingerprint or "").strip()
        if not source or not fingerprint:
            raise InvalidKey("source and fingerprint required")
        return cls(source=source, fingerprint=fingerprint)

    def __str__(self):
        return f"{self.source}:{self.fingerprint}"


@dataclass(frozen=True)
class GateState:
    """
    Counters for one GateKey.

    ``suppressed_until`` is ``None`` when no cooldown was ever started or the
    last window expiry cleared it.
    """
    first_seen: datetime
    last_seen: datetime
    count: int
    suppressed_until: Optional[datetime] = None

    def is_suppressed(self, now: datetime) -> bool:
        return self.suppressed_until is not None and now < self.suppressed_until

    def evolve(self, **changes) -> "GateState":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "count": self.count,
            "suppressed_until": self.suppressed_until.isoformat() if self.suppressed_until else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GateState":
        suppressed = data.get("suppressed_until")
        return cls(
            first_seen=ensure_utc(_parse_time(data["first_seen"])),
            last_seen=ensure_utc(_parse_time(data["last_seen"])),
            count=int(data["count"]),
            suppressed_until=ensure_utc(_parse_time(suppressed)) if suppressed else None,
        )


def _parse_time(value: Union[str, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _as_timedelta(value: Union[timedelta, int, float, None]) -> timedelta:
    if value is None:
        return timedelta(0)
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


@dataclass(frozen=True)
class Policy:
    """
    Admission policy supplied with each call.

    window:    counting window, 0 = unbounded
    backoff:   cooldown after an admission, 0 = no suppression
    min_count: occurrences needed within the window to admit
    """
    window: timedelta = field(default_factory=timedelta)
    backoff: timedelta = field(default_factory=timedelta)
    min_count: int = 1

    def __post_init__(self):
        object.__setattr__(self, "window", _as_timedelta(self.window))
        object.__setattr__(self, "backoff", _as_timedelta(self.backoff))
        if self.window < timedelta(0):
            raise ValueError("window must be >= 0")
        if self.backoff < timedelta(0):
            raise ValueError("backoff must be >= 0")
        if self.min_count < 1:
            raise ValueError("min_count must be >= 1")

    @classmethod
    def from_seconds(cls, window: float = 0, backoff: float = 0, min_count: int = 1) -> "Policy":
        return cls(
            window=timedelta(seconds=window),
            backoff=timedelta(seconds=backoff),
            min_count=min_count,
        )


@dataclass(frozen=True)
class GateDecision:
    """Evaluator output: the verdict and the state to persist"""
    allowed: bool
    state: GateState
    reason: DecisionReason
