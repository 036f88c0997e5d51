"""
Gate State Store Tests
Atomic get-and-update across the memory, Redis and SQL backends
"""

import pytest
import sys
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone, timedelta
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import text
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from eventgate.clock import Deadline
from eventgate.errors import NotInitialized, StoreUnavailable
from eventgate.gate import GateKey, GateState, Policy, evaluate
from eventgate.store import InMemoryGateStore, KeyedLock, RedisGateStore, SQLGateStore


T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
KEY = GateKey.create("alertmanager", "fp-disk-full")
OTHER = GateKey.create("alertmanager", "fp-cpu-high")


def gate_fn(now, policy=None):
    policy = policy or Policy()

    def fn(prior):
        decision = evaluate(KEY, now, policy, prior)
        return decision, decision.state
    return fn


def increment(prior):
    state = GateState(first_seen=T0, last_seen=T0, count=1) if prior is None else prior.evolve(count=prior.count + 1)
    return state.count, state


@pytest.fixture(params=["memory", "redis", "sql"])
def store(request, mock_redis, session_factory):
    if request.param == "memory":
        return InMemoryGateStore()
    if request.param == "redis":
        return RedisGateStore(mock_redis)
    return SQLGateStore(session_factory)


class TestStoreContract:
    """Behaviour every backend shares"""

    def test_absent_key_reads_none(self, store):
        assert store.get(KEY) is None

    def test_first_update_receives_none(self, store):
        seen = []

        def fn(prior):
            seen.append(prior)
            return "ok", GateState(first_seen=T0, last_seen=T0, count=1)

        assert store.get_and_update(KEY, fn) == "ok"
        assert seen == [None]
        assert store.get(KEY) == GateState(first_seen=T0, last_seen=T0, count=1)

    def test_persists_optional_cooldown_round_trip(self, store):
        policy = Policy.from_seconds(backoff=600)
        store.get_and_update(KEY, gate_fn(T0, policy))
        assert store.get(KEY).suppressed_until == T0 + timedelta(seconds=600)

        # Window expiry clears the cooldown; the cleared value must persist as None
        expire = Policy.from_seconds(window=60, backoff=0, min_count=2)
        store.get_and_update(KEY, gate_fn(T0 + timedelta(hours=1), expire))
        state = store.get(KEY)
        assert state.suppressed_until is None
        assert state.count == 1

    def test_keys_are_independent(self, store):
        store.get_and_update(KEY, increment)
        store.get_and_update(KEY, increment)
        store.get_and_update(OTHER, increment)
        assert store.get(KEY).count == 2
        assert store.get(OTHER).count == 1

    def test_failed_update_commits_nothing(self, store):
        store.get_and_update(KEY, increment)

        def boom(prior):
            raise RuntimeError("evaluator blew up")

        with pytest.raises(RuntimeError):
            store.get_and_update(KEY, boom)
        assert store.get(KEY).count == 1

    def test_expired_deadline_commits_nothing(self, store):
        with pytest.raises(StoreUnavailable):
            store.get_and_update(KEY, increment, Deadline(0))
        assert store.get(KEY) is None

    def test_scenario_through_store(self, store):
        policy = Policy(window=timedelta(minutes=5), backoff=timedelta(minutes=10), min_count=3)
        results = [
            store.get_and_update(KEY, gate_fn(T0 + timedelta(minutes=m), policy))
            for m in (0, 1, 2, 3, 13)
        ]
        assert [(d.allowed, d.state.count) for d in results] == [
            (False, 1), (False, 2), (True, 3), (False, 4), (False, 1)
        ]


class TestKeyedLock:

    def test_entries_are_released(self):
        locks = KeyedLock()
        with locks.hold("a"):
            with locks.hold("b"):
                assert len(locks) == 2
        assert len(locks) == 0

    def test_timeout_raises_store_unavailable(self):
        locks = KeyedLock()
        with locks.hold("a"):
            with pytest.raises(StoreUnavailable):
                with locks.hold("a", timeout=0.05):
                    pass
        assert len(locks) == 0

    def test_other_keys_do_not_wait(self):
        locks = KeyedLock()
        with locks.hold("a"):
            with locks.hold("b", timeout=0.05):
                pass


class TestInMemoryGateStore:

    def test_concurrent_updates_are_linearized(self):
        store = InMemoryGateStore()
        store.get_and_update(KEY, increment)
        barrier = threading.Barrier(16)

        def worker(_):
            barrier.wait()
            for _ in range(25):
                store.get_and_update(KEY, increment)

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(worker, range(16)))

        assert store.get(KEY).count == 1 + 16 * 25

    def test_lock_wait_respects_deadline(self):
        store = InMemoryGateStore()
        with store._locks.hold(KEY):
            with pytest.raises(StoreUnavailable):
                store.get_and_update(KEY, increment, Deadline(0.05))
        assert store.get(KEY) is None


class TestRedisGateStore:

    def test_key_layout(self, mock_redis):
        store = RedisGateStore(mock_redis, prefix="event_gate")
        assert store.redis_key(GateKey.create("ci:cd", "a/b")) == "event_gate:ci%3Acd:a%2Fb"

    def test_conflicting_write_is_retried(self, mock_redis):
        store = RedisGateStore(mock_redis)
        store.get_and_update(KEY, increment)
        name = store.redis_key(KEY)
        injected = []

        def concurrent_writer():
            if not injected:
                injected.append(True)
                mock_redis.hset(name, mapping={"count": "5"})

        mock_redis.before_execute = concurrent_writer
        assert store.get_and_update(KEY, increment) == 6
        assert store.get(KEY).count == 6

    def test_gives_up_after_max_retries(self, mock_redis):
        store = RedisGateStore(mock_redis, max_retries=3)
        store.get_and_update(KEY, increment)
        name = store.redis_key(KEY)
        mock_redis.before_execute = lambda: mock_redis.hset(name, mapping={"count": "1"})

        with pytest.raises(StoreUnavailable):
            store.get_and_update(KEY, increment)

    def test_concurrent_updates_are_linearized(self, mock_redis):
        store = RedisGateStore(mock_redis, max_retries=1000)
        store.get_and_update(KEY, increment)
        barrier = threading.Barrier(12)

        def worker(_):
            barrier.wait()
            for _ in range(10):
                store.get_and_update(KEY, increment)

        with ThreadPoolExecutor(max_workers=12) as pool:
            list(pool.map(worker, range(12)))

        assert store.get(KEY).count == 1 + 12 * 10

    def test_connection_failure_is_store_unavailable(self, mock_redis):
        store = RedisGateStore(mock_redis)
        mock_redis.fail_with = RedisConnectionError("connection refused")

        with pytest.raises(StoreUnavailable) as exc_info:
            store.get_and_update(KEY, increment)
        assert isinstance(exc_info.value.__cause__, RedisConnectionError)
        assert exc_info.value.retryable is True

        with pytest.raises(StoreUnavailable):
            store.ping()

    def test_unconfigured_client(self):
        with pytest.raises(NotInitialized):
            RedisGateStore(None).get_and_update(KEY, increment)


class TestSQLGateStore:

    def test_missing_table_is_store_unavailable(self, engine, session_factory):
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE event_gates"))

        with pytest.raises(StoreUnavailable):
            SQLGateStore(session_factory).get_and_update(KEY, increment)

    def test_unconfigured_database(self, monkeypatch):
        from eventgate import database
        monkeypatch.setattr(database, "SessionLocal", None)

        with pytest.raises(NotInitialized):
            SQLGateStore().get_and_update(KEY, increment)

    def test_ping(self, session_factory):
        SQLGateStore(session_factory).ping()

    def test_pool_exhaustion_is_store_unavailable(self, exhausted_session_factory):
        store = SQLGateStore(exhausted_session_factory)

        with pytest.raises(StoreUnavailable) as exc_info:
            store.get_and_update(KEY, increment)
        assert isinstance(exc_info.value.__cause__, PoolTimeoutError)

        with pytest.raises(StoreUnavailable):
            store.get(KEY)
        with pytest.raises(StoreUnavailable):
            store.ping()

    def test_concurrent_updates_are_linearized(self, file_session_factory):
        store = SQLGateStore(file_session_factory)
        store.get_and_update(KEY, increment)
        barrier = threading.Barrier(8)

        def worker(_):
            barrier.wait()
            for _ in range(10):
                store.get_and_update(KEY, increment)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(worker, range(8)))

        assert store.get(KEY).count == 1 + 8 * 10
