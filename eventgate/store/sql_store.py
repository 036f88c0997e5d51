"""
SQL gate store.

The row for a key is read with ``SELECT ... FOR UPDATE`` and rewritten in
the same transaction, so concurrent admissions on any instance serialize on
the row lock. A process-local per-key lock in front of it keeps same-process
callers from queuing inside the database.
"""

from typing import Any, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..clock import Deadline, ensure_utc
from ..database import get_session_factory, session_scope
from ..errors import StoreUnavailable
from ..gate.models import GateKey, GateState
from ..logging_config import get_logger
from ..metrics import STORE_CONFLICTS, STORE_ERRORS, increment_counter
from ..models import EventGateRow
from .base import GateStateStore, UpdateFn
from .memory import KeyedLock

logger = get_logger(__name__)


def _row_state(row: EventGateRow) -> GateState:
    return GateState(
        first_seen=ensure_utc(row.first_seen),
        last_seen=ensure_utc(row.last_seen),
        count=row.count,
        suppressed_until=ensure_utc(row.suppressed_until) if row.suppressed_until else None,
    )


class SQLGateStore(GateStateStore):

    backend = "sql"

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory
        self._local = KeyedLock()

    @property
    def session_factory(self) -> sessionmaker:
        return self._session_factory or get_session_factory()

    def get_and_update(self, key: GateKey, fn: UpdateFn, deadline: Optional[Deadline] = None) -> Any:
        factory = self.session_factory
        deadline = deadline or Deadline()
        deadline.check("gate store update")

        with self._local.hold(key, deadline.remaining()):
            try:
                return self._update(factory, key, fn, deadline)
            except IntegrityError:
                # Another instance inserted the first row between our SELECT
                # and INSERT; the row exists now, so the retry takes its lock.
                increment_counter(STORE_CONFLICTS, {"backend": self.backend})
                logger.debug(f"[STORE] Insert race on {key}, retrying under row lock")
                try:
                    return self._update(factory, key, fn, deadline)
                except SQLAlchemyError as e:
                    raise self._unavailable(key, e) from e
            except SQLAlchemyError as e:
                raise self._unavailable(key, e) from e

    def _update(self, factory: sessionmaker, key: GateKey, fn: UpdateFn, deadline: Deadline) -> Any:
        with session_scope(factory) as db:
            self._apply_lock_timeout(db, deadline)

            row = db.execute(
                select(EventGateRow)
                .where(EventGateRow.source == key.source, EventGateRow.fingerprint == key.fingerprint)
                .with_for_update()
            ).scalar_one_or_none()

            prior = _row_state(row) if row is not None else None
            result, next_state = fn(prior)
            deadline.check("gate store update")

            if row is None:
                row = EventGateRow(source=key.source, fingerprint=key.fingerprint)
                db.add(row)
            row.first_seen = next_state.first_seen
            row.last_seen = next_state.last_seen
            row.count = next_state.count
            row.suppressed_until = next_state.suppressed_until
            db.flush()
            return result

    @staticmethod
    def _apply_lock_timeout(db, deadline: Deadline):
        remaining = deadline.remaining()
        if remaining is None or db.get_bind().dialect.name != "postgresql":
            return
        # lock_timeout = 0 disables the timeout in PostgreSQL
        millis = max(1, int(remaining * 1000))
        db.execute(text(f"SET LOCAL lock_timeout = {millis}"))

    def _unavailable(self, key: GateKey, error: SQLAlchemyError) -> StoreUnavailable:
        increment_counter(STORE_ERRORS, {"backend": self.backend})
        logger.warning(f"[STORE] Database failure for {key}: {type(error).__name__}")
        return StoreUnavailable(f"database unavailable: {error}")

    def get(self, key: GateKey) -> Optional[GateState]:
        try:
            with session_scope(self.session_factory) as db:
                row = db.get(EventGateRow, (key.source, key.fingerprint))
                return _row_state(row) if row is not None else None
        except SQLAlchemyError as e:
            raise self._unavailable(key, e) from e

    def ping(self):
        try:
            with session_scope(self.session_factory) as db:
                db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"database unavailable: {e}") from e
