"""Session termination log: when each browser session signalled page close.

Records are short-lived (``retention``, 24h by default) and written once
per session. A repeated unload beacon keeps the first timestamp, since the
earliest known end of the session is what reconciliation compares against.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from bookingpro.errors import RowConflict, ValidationError
from bookingpro.logging_context import get_session_logger, session_scope
from bookingpro.schemas.lead_schema import SessionTermination
from bookingpro.storage.store import TABLE_TERMINATIONS, RowStore
from bookingpro.utils import utcnow

logger = get_session_logger(__name__)


class SessionTerminationLog:
    def __init__(
        self,
        store: RowStore,
        retention: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._retention = retention
        self._clock = clock

    def record_termination(
        self, session_id: str, terminated_at: Optional[datetime] = None
    ) -> SessionTermination:
        """Store the unload signal for ``session_id``; first write wins."""
        if not isinstance(session_id, str) or not session_id.strip():
            raise ValidationError("session_id is required")
        session_id = session_id.strip()
        terminated_at = terminated_at or self._clock()
        if terminated_at.tzinfo is None:
            raise ValidationError("terminated_at must be timezone-aware")

        with session_scope(session_id):
            existing = self.get_termination_record(session_id)
            if existing is not None:
                logger.debug("Session already terminated at %s", existing.terminated_at)
                return existing

            record = SessionTermination(
                session_id=session_id,
                terminated_at=terminated_at,
                expires_at=terminated_at + self._retention,
            )
            # Expired leftovers for this id would block the unique insert.
            now = self._clock()
            expired = [
                row["id"]
                for row in self._store.query(TABLE_TERMINATIONS, {"session_id": session_id})
                if row["expires_at"] <= now
            ]
            if expired:
                self._store.delete(TABLE_TERMINATIONS, {"id": expired})
            try:
                self._store.insert(
                    TABLE_TERMINATIONS,
                    record.model_dump(),
                    unique_on={"session_id": session_id},
                )
            except RowConflict:
                return self.get_termination_record(session_id) or record
            logger.info("Session terminated at %s", terminated_at.isoformat())
            return record

    def get_termination_record(self, session_id: str) -> Optional[SessionTermination]:
        now = self._clock()
        for row in self._store.query(TABLE_TERMINATIONS, {"session_id": session_id}):
            if row["expires_at"] > now:
                return SessionTermination.model_validate(
                    {key: value for key, value in row.items() if key != "id"}
                )
        return None

    def get_termination(self, session_id: str) -> Optional[datetime]:
        """Termination timestamp, or None if the session never ended (or expired)."""
        record = self.get_termination_record(session_id)
        return record.terminated_at if record else None

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [
            row["id"]
            for row in self._store.query(TABLE_TERMINATIONS)
            if row["expires_at"] <= now
        ]
        if not expired:
            return 0
        removed = self._store.delete(TABLE_TERMINATIONS, {"id": expired})
        logger.info("Purged %d expired session termination(s)", removed)
        return removed
