"""
Alert Lifecycle Tracker
=======================
Keeps one canonical record per alert fingerprint.

Every delivery overwrites status, updated_at and payload; started_at is
written only when the record is first inserted. The tracker never branches
on prior state, so it can run concurrently with the gate for the same
fingerprint without coordination.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from sqlalchemy import case, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..clock import Clock, SystemClock, ensure_utc
from ..database import get_session_factory, session_scope
from ..errors import InvalidFingerprint, StoreUnavailable
from ..logging_config import get_logger
from ..metrics import STORE_ERRORS, increment_counter
from ..models import AlertEventRow

logger = get_logger(__name__)


class AlertStatus(str, Enum):
    FIRING = "firing"
    RESOLVED = "resolved"


@dataclass
class AlertRecord:
    alert_id: str
    fingerprint: str
    status: str
    started_at: datetime
    updated_at: datetime
    payload: Optional[bytes]

    def payload_json(self) -> Any:
        """Payload decoded as JSON, or the raw text when it is not JSON"""
        if self.payload is None:
            return None
        text = self.payload.decode("utf-8", errors="replace")
        try:
            return json.loads(text)
        except ValueError:
            return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "fingerprint": self.fingerprint,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "payload": self.payload_json(),
        }


def encode_payload(payload: Union[bytes, str, Dict, list, None]) -> Optional[bytes]:
    """Opaque blob for storage; structured payloads become canonical JSON"""
    if payload is None or isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def _record(row: AlertEventRow) -> AlertRecord:
    return AlertRecord(
        alert_id=row.alert_id,
        fingerprint=row.fingerprint,
        status=row.status,
        started_at=ensure_utc(row.started_at),
        updated_at=ensure_utc(row.updated_at),
        payload=row.payload_json,
    )


class AlertLifecycleTracker:
    """
    SQL-backed alert lifecycle store.

    Uses the dialect's INSERT ... ON CONFLICT on PostgreSQL and SQLite and a
    locked read-then-write elsewhere.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None, clock: Optional[Clock] = None):
        self._session_factory = session_factory
        self.clock = clock or SystemClock()

    @property
    def session_factory(self) -> sessionmaker:
        return self._session_factory or get_session_factory()

    def upsert(
        self,
        fingerprint: str,
        status: Union[AlertStatus, str, None] = "",
        started_at: Optional[datetime] = None,
        payload: Union[bytes, str, Dict, list, None] = None
    ) -> str:
        """
        Insert or overwrite the record for ``fingerprint``.

        Returns:
            alert_id, which is the trimmed fingerprint

        Raises:
            InvalidFingerprint: fingerprint empty after trimming
            StoreUnavailable: database failure
        """
        fingerprint = (fingerprint or "").strip()
        if not fingerprint:
            raise InvalidFingerprint("fingerprint required")

        if isinstance(status, AlertStatus):
            status = status.value
        status = (status or "").strip().lower() or AlertStatus.FIRING.value

        now = self.clock.now()
        values = {
            "alert_id": fingerprint,
            "fingerprint": fingerprint,
            "status": status,
            "started_at": ensure_utc(started_at) if started_at else now,
            "updated_at": now,
            "payload_json": encode_payload(payload),
        }

        try:
            with session_scope(self.session_factory) as db:
                dialect = db.get_bind().dialect.name
                if dialect in ("postgresql", "sqlite"):
                    db.execute(self._on_conflict_statement(dialect, values))
                else:
                    self._upsert_portable(db, values)
        except SQLAlchemyError as e:
            increment_counter(STORE_ERRORS, {"backend": "lifecycle"})
            logger.warning(f"[LIFECYCLE] Upsert failed for {fingerprint}: {type(e).__name__}")
            raise StoreUnavailable(f"database unavailable: {e}") from e

        logger.debug(f"[LIFECYCLE] {fingerprint} -> {status}")
        return fingerprint

    @staticmethod
    def _on_conflict_statement(dialect: str, values: Dict[str, Any]):
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert

        table = AlertEventRow.__table__
        stmt = insert(table).values(**values)
        excluded = stmt.excluded
        return stmt.on_conflict_do_update(
            index_elements=[table.c.alert_id],
            set_={
                "status": excluded.status,
                "payload_json": excluded.payload_json,
                # updated_at never moves backwards
                "updated_at": case(
                    (table.c.updated_at > excluded.updated_at, table.c.updated_at),
                    else_=excluded.updated_at,
                ),
            },
        )

    @staticmethod
    def _upsert_portable(db, values: Dict[str, Any]):
        row = db.execute(
            select(AlertEventRow)
            .where(AlertEventRow.alert_id == values["alert_id"])
            .with_for_update()
        ).scalar_one_or_none()

        if row is None:
            db.add(AlertEventRow(**values))
            return

        row.status = values["status"]
        row.payload_json = values["payload_json"]
        if ensure_utc(row.updated_at) < values["updated_at"]:
            row.updated_at = values["updated_at"]

    def get(self, alert_id: str) -> Optional[AlertRecord]:
        alert_id = (alert_id or "").strip()
        if not alert_id:
            raise InvalidFingerprint("alert_id required")
        try:
            with session_scope(self.session_factory) as db:
                row = db.get(AlertEventRow, alert_id)
                return _record(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"database unavailable: {e}") from e
