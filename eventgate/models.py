"""
Database Models - Event Gate Schema
Core tables: event_gates (per-key admission state), alert_events (alert lifecycle)
"""

from sqlalchemy import (
    Column, String, Integer, DateTime, LargeBinary, Index
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class EventGateRow(Base):
    """
    Admission counters for one (source, fingerprint).
    Owned by SQLGateStore; only mutated inside its locked transaction.
    """
    __tablename__ = "event_gates"

    source = Column(String(255), primary_key=True)
    fingerprint = Column(String(255), primary_key=True)

    first_seen = Column(DateTime(timezone=True), nullable=False)
    last_seen = Column(DateTime(timezone=True), nullable=False)
    count = Column(Integer, nullable=False, default=1)
    suppressed_until = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<EventGate {self.source}:{self.fingerprint} count={self.count}>"


class AlertEventRow(Base):
    """Canonical alert record, one per fingerprint (last writer wins)"""
    __tablename__ = "alert_events"

    alert_id = Column(String(255), primary_key=True)
    fingerprint = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False, default="firing")

    # started_at is written once on insert
    started_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    payload_json = Column(LargeBinary, nullable=True)

    __table_args__ = (
        Index('idx_alert_events_status_updated', 'status', 'updated_at'),
    )

    def __repr__(self):
        return f"<AlertEvent {self.alert_id} {self.status}>"
