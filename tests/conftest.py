"""
Shared fixtures: in-memory SQLite databases, a frozen clock and a Redis
double with WATCH/MULTI/EXEC semantics.
"""

import pytest
import sys
import os
import threading
from datetime import datetime, timezone
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from redis.exceptions import WatchError
from sqlalchemy.pool import QueuePool

from eventgate.clock import FrozenClock
from eventgate.database import build_engine, build_session_factory
from eventgate.models import Base


T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class MockRedis:
    """Hash commands plus optimistic transactions, enough for RedisGateStore"""

    def __init__(self):
        self.hashes = {}
        self.versions = {}
        self.lock = threading.Lock()
        self.fail_with = None        # exception raised by every command
        self.before_execute = None   # hook run just before EXEC
        self.executed = 0

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def _bump(self, key):
        self.versions[key] = self.versions.get(key, 0) + 1

    def ping(self):
        self._check()
        return True

    def hgetall(self, key):
        self._check()
        with self.lock:
            return {k.encode(): v.encode() for k, v in self.hashes.get(key, {}).items()}

    def hset(self, key, mapping=None):
        self._check()
        with self.lock:
            self.hashes.setdefault(key, {}).update(mapping or {})
            self._bump(key)
        return len(mapping or {})

    def hdel(self, key, *fields):
        with self.lock:
            removed = 0
            for field in fields:
                if self.hashes.get(key, {}).pop(field, None) is not None:
                    removed += 1
            self._bump(key)
            return removed

    def pipeline(self):
        return MockPipeline(self)


class MockPipeline:

    def __init__(self, redis):
        self.redis = redis
        self.watched = {}
        self.queue = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.reset()

    def reset(self):
        self.watched = {}
        self.queue = None

    def watch(self, *keys):
        self.redis._check()
        with self.redis.lock:
            for key in keys:
                self.watched[key] = self.redis.versions.get(key, 0)

    def hgetall(self, key):
        return self.redis.hgetall(key)

    def multi(self):
        self.queue = []

    def hset(self, key, mapping=None):
        self.queue.append(("hset", key, dict(mapping or {})))

    def hdel(self, key, *fields):
        self.queue.append(("hdel", key, fields))

    def execute(self):
        if self.redis.before_execute is not None:
            self.redis.before_execute()
        self.redis._check()

        with self.redis.lock:
            for key, version in self.watched.items():
                if self.redis.versions.get(key, 0) != version:
                    self.reset()
                    raise WatchError("Watched variable changed.")

            results = []
            for command, key, arg in self.queue:
                if command == "hset":
                    self.redis.hashes.setdefault(key, {}).update(arg)
                    results.append(len(arg))
                else:
                    fields = self.redis.hashes.get(key, {})
                    results.append(sum(1 for f in arg if fields.pop(f, None) is not None))
                self.redis._bump(key)
            self.redis.executed += 1

        self.reset()
        return results


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def file_session_factory(tmp_path):
    """SQLite on disk, so each session gets its own pooled connection"""
    engine = build_engine(f"sqlite:///{tmp_path / 'eventgate.db'}")
    Base.metadata.create_all(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def exhausted_session_factory(tmp_path):
    """Session factory whose single pooled connection is already checked out"""
    engine = build_engine(
        f"sqlite:///{tmp_path / 'exhausted.db'}",
        poolclass=QueuePool,
        pool_size=1,
        max_overflow=0,
        pool_timeout=0.1,
    )
    Base.metadata.create_all(engine)
    held = engine.connect()
    yield build_session_factory(engine)
    held.close()
    engine.dispose()
