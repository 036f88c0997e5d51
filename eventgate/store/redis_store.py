"""
Redis gate store.

Each key is a hash updated with WATCH/MULTI/EXEC: the read, the evaluator
call and the write form one optimistic transaction, retried when another
writer touched the key in between. Safe across any number of instances
sharing the same Redis.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

from redis.exceptions import RedisError, WatchError

from ..clock import Deadline
from ..constants import EVENT_GATE_REDIS_MAX_RETRIES, REDIS_KEY_PREFIX
from ..errors import NotInitialized, StoreUnavailable
from ..gate.models import GateKey, GateState
from ..logging_config import get_logger
from ..metrics import STORE_CONFLICTS, STORE_ERRORS, increment_counter
from .base import GateStateStore, UpdateFn

logger = get_logger(__name__)

SUPPRESSED_FIELD = "suppressed_until"


def _text(value) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisGateStore(GateStateStore):

    backend = "redis"

    def __init__(
        self,
        redis_client,
        prefix: str = REDIS_KEY_PREFIX,
        max_retries: int = EVENT_GATE_REDIS_MAX_RETRIES
    ):
        self.redis = redis_client
        self.prefix = prefix
        self.max_retries = max_retries

    def redis_key(self, key: GateKey) -> str:
        # Quoting keeps ':' inside source/fingerprint from colliding
        return f"{self.prefix}:{quote(key.source, safe='')}:{quote(key.fingerprint, safe='')}"

    @staticmethod
    def encode(state: GateState) -> Dict[str, str]:
        mapping = {
            "first_seen": state.first_seen.isoformat(),
            "last_seen": state.last_seen.isoformat(),
            "count": str(state.count),
        }
        if state.suppressed_until is not None:
            mapping[SUPPRESSED_FIELD] = state.suppressed_until.isoformat()
        return mapping

    @staticmethod
    def decode(raw: Optional[Dict]) -> Optional[GateState]:
        if not raw:
            return None
        return GateState.from_dict({_text(k): _text(v) for k, v in raw.items()})

    def _client(self):
        if self.redis is None:
            raise NotInitialized("redis client not configured")
        return self.redis

    def get_and_update(self, key: GateKey, fn: UpdateFn, deadline: Optional[Deadline] = None) -> Any:
        client = self._client()
        deadline = deadline or Deadline()
        name = self.redis_key(key)
        conflicts = 0

        try:
            with client.pipeline() as pipe:
                while True:
                    deadline.check("gate store update")
                    try:
                        pipe.watch(name)
                        prior = self.decode(pipe.hgetall(name))
                        result, next_state = fn(prior)
                        deadline.check("gate store update")

                        pipe.multi()
                        pipe.hset(name, mapping=self.encode(next_state))
                        if next_state.suppressed_until is None:
                            pipe.hdel(name, SUPPRESSED_FIELD)
                        pipe.execute()
                        return result
                    except WatchError:
                        conflicts += 1
                        increment_counter(STORE_CONFLICTS, {"backend": self.backend})
                        if conflicts > self.max_retries:
                            raise StoreUnavailable(
                                f"gave up on {key} after {conflicts} conflicting writes"
                            )
                        logger.debug(f"[STORE] Conflict #{conflicts} on {key}, retrying")
        except RedisError as e:
            increment_counter(STORE_ERRORS, {"backend": self.backend})
            logger.warning(f"[STORE] Redis failure for {key}: {type(e).__name__}: {e}")
            raise StoreUnavailable(f"redis unavailable: {e}") from e

    def get(self, key: GateKey) -> Optional[GateState]:
        try:
            return self.decode(self._client().hgetall(self.redis_key(key)))
        except RedisError as e:
            raise StoreUnavailable(f"redis unavailable: {e}") from e

    def ping(self):
        try:
            self._client().ping()
        except RedisError as e:
            raise StoreUnavailable(f"redis unavailable: {e}") from e
