"""
Alert Lifecycle Tests
Upsert semantics of the canonical alert record and event identity helpers
"""

import pytest
import sys
import os
from datetime import datetime, timezone, timedelta
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import func, select, text
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from eventgate.alerts import (
    AlertLifecycleTracker,
    AlertStatus,
    encode_payload,
    event_fingerprint,
    event_id,
    extract_severity,
)
from eventgate.errors import InvalidFingerprint, NotInitialized, StoreUnavailable
from eventgate.models import AlertEventRow


class TestAlertLifecycleTracker:

    @pytest.fixture
    def tracker(self, session_factory, clock):
        return AlertLifecycleTracker(session_factory, clock)

    def count_rows(self, session_factory):
        with session_factory() as db:
            return db.execute(select(func.count()).select_from(AlertEventRow)).scalar_one()

    def test_defaults(self, tracker, clock):
        alert_id = tracker.upsert("  fp-1 ")
        assert alert_id == "fp-1"

        record = tracker.get("fp-1")
        assert record.fingerprint == "fp-1"
        assert record.status == AlertStatus.FIRING.value
        assert record.started_at == clock.now()
        assert record.updated_at == clock.now()
        assert record.payload is None

    @pytest.mark.parametrize("fingerprint", ["", "   ", None])
    def test_rejects_empty_fingerprint(self, tracker, session_factory, fingerprint):
        with pytest.raises(InvalidFingerprint):
            tracker.upsert(fingerprint, "firing")
        assert self.count_rows(session_factory) == 0

    def test_started_at_fixed_at_first_insert(self, tracker, clock):
        first_start = clock.now() - timedelta(minutes=10)
        tracker.upsert("fp-1", "firing", first_start, {"v": 1})

        clock.advance(60)
        tracker.upsert("fp-1", "resolved", clock.now(), {"v": 2})

        record = tracker.get("fp-1")
        assert record.started_at == first_start
        assert record.status == "resolved"
        assert record.updated_at == clock.now()
        assert record.payload_json() == {"v": 2}

    def test_no_status_transition_graph(self, tracker):
        for status in ["resolved", "firing", "resolved", "firing"]:
            tracker.upsert("fp-1", status)
        assert tracker.get("fp-1").status == "firing"

    def test_idempotent(self, tracker, session_factory):
        for _ in range(3):
            tracker.upsert("fp-1", AlertStatus.FIRING, payload=b"raw")
        assert self.count_rows(session_factory) == 1
        assert tracker.get("fp-1").payload == b"raw"

    def test_updated_at_is_monotonic(self, tracker, clock):
        tracker.upsert("fp-1", "firing")
        latest = clock.now()

        clock.set(latest - timedelta(hours=1))
        tracker.upsert("fp-1", "resolved", payload="late delivery")

        record = tracker.get("fp-1")
        assert record.updated_at == latest
        assert record.status == "resolved"
        assert record.payload_json() == "late delivery"

    def test_missing_record(self, tracker):
        assert tracker.get("nope") is None

    def test_database_failure_is_store_unavailable(self, tracker, engine):
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE alert_events"))
        with pytest.raises(StoreUnavailable):
            tracker.upsert("fp-1", "firing")

    def test_pool_exhaustion_is_store_unavailable(self, exhausted_session_factory, clock):
        tracker = AlertLifecycleTracker(exhausted_session_factory, clock)

        with pytest.raises(StoreUnavailable) as exc_info:
            tracker.upsert("fp-1", "firing")
        assert isinstance(exc_info.value.__cause__, PoolTimeoutError)

        with pytest.raises(StoreUnavailable):
            tracker.get("fp-1")

    def test_unconfigured_database(self, monkeypatch, clock):
        from eventgate import database
        monkeypatch.setattr(database, "SessionLocal", None)
        with pytest.raises(NotInitialized):
            AlertLifecycleTracker(clock=clock).upsert("fp-1")

    def test_record_to_dict(self, tracker):
        tracker.upsert("fp-1", "firing", payload={"alertname": "DiskFull"})
        data = tracker.get("fp-1").to_dict()
        assert data["alert_id"] == "fp-1"
        assert data["payload"] == {"alertname": "DiskFull"}
        assert data["started_at"].endswith("+00:00")


class TestPayloadEncoding:

    def test_structured_payload_is_canonical_json(self):
        assert encode_payload({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'

    def test_passthrough(self):
        assert encode_payload(b"\x00raw") == b"\x00raw"
        assert encode_payload("text") == b"text"
        assert encode_payload(None) is None


class TestEventIdentity:

    def test_producer_fingerprint_wins(self):
        assert event_fingerprint("am", {"fingerprint": " abc123 ", "x": 1}) == "abc123"

    def test_derived_fingerprint_is_stable(self):
        first = event_fingerprint("am", {"b": 2, "a": 1})
        second = event_fingerprint("am", {"a": 1, "b": 2})
        assert first == second
        assert len(first) == 64

    def test_derived_fingerprint_depends_on_source(self):
        assert event_fingerprint("am", {"a": 1}) != event_fingerprint("argo", {"a": 1})

    def test_event_id(self):
        assert event_id(b"") == ""
        assert event_id(b"{}") == event_id(b"{}")
        assert event_id(b"{}") != event_id(b"{ }")

    @pytest.mark.parametrize("payload,expected", [
        ({"severity": " Critical "}, "critical"),
        ({"alerts": [{"labels": {"severity": "HIGH"}}]}, "high"),
        ({"alerts": [{"labels": {}}, {"labels": {"severity": "low"}}]}, "low"),
        ({"commonLabels": {"severity": "warning"}}, "warning"),
        ({"alerts": "bogus"}, ""),
        ({}, ""),
        (None, ""),
    ])
    def test_extract_severity(self, payload, expected):
        assert extract_severity(payload) == expected
