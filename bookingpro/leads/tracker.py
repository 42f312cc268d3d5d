"""
Lead session tracker: one evolving row per browser session.

The booking form autosaves partial progress many times per visit, often
in quick bursts. While a session's lead is ``processing`` every autosave
merges into that single row (last write wins per field; empty values do
not wipe captured ones). A lead leaves ``processing`` exactly once: to
``complete`` when the booking goes through, or to ``abandoned`` when the
reaper reclaims it. ``complete`` is terminal.

Concurrency: the insert is conditional on no processing row existing for
the session, and every merge is a compare-and-set on ``last_updated``, so
overlapping autosaves never create a second row or silently drop a write.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from bookingpro.errors import NotFoundError, RowConflict, StorageUnavailable, ValidationError
from bookingpro.logging_context import get_session_logger, session_scope
from bookingpro.schemas.lead_schema import (
    FIELD_ALIASES,
    IncompleteLead,
    LeadStatus,
    calculate_completion,
)
from bookingpro.storage.store import TABLE_LEADS, Row, RowStore
from bookingpro.utils import normalize_phone, utcnow

logger = get_session_logger(__name__)

LEAD_COLUMNS = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "zip_code",
    "service",
    "company",
    "form_step",
)


def map_lead_fields(partial_data: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split raw form data into lead columns and free-form extras.

    Aliased names (``email``, ``service_type``...) land on their column.
    Empty values are dropped so they never overwrite captured data.
    """
    columns: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for raw_name, value in partial_data.items():
        if raw_name in ("session_id", "id", "status"):
            continue
        if value is None:
            continue
        name = FIELD_ALIASES.get(raw_name, raw_name)
        if isinstance(value, str):
            value = value.strip()
        if name == "customer_phone":
            value = normalize_phone(str(value))
        if isinstance(value, str) and not value:
            continue
        if name == "form_step":
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid form_step: {value!r}") from None
        if name in LEAD_COLUMNS:
            columns[name] = value if name == "form_step" else str(value)
        else:
            extra[name] = value
    return columns, extra


class LeadSessionTracker:
    """Creates and merges incomplete leads keyed by session id."""

    def __init__(
        self,
        store: RowStore,
        clock: Callable[[], datetime] = utcnow,
        max_retries: int = 5,
    ) -> None:
        self._store = store
        self._clock = clock
        self._max_retries = max_retries

    def upsert_incomplete_lead(self, session_id: str, partial_data: dict[str, Any]) -> int:
        """
        Insert or merge the session's processing lead. Returns the lead id.

        Raises:
            ValidationError: Blank session id or malformed fields.
            StorageUnavailable: The store failed, or the row kept changing
                under us for more than ``max_retries`` attempts.
        """
        if not isinstance(session_id, str) or not session_id.strip():
            raise ValidationError("session_id is required")
        session_id = session_id.strip()
        columns, extra = map_lead_fields(partial_data)

        with session_scope(session_id):
            for _ in range(self._max_retries):
                existing = self._processing_row(session_id)
                if existing is None:
                    lead_id = self._try_insert(session_id, columns, extra)
                    if lead_id is not None:
                        return lead_id
                    continue
                if self._try_merge(existing, columns, extra):
                    return existing["id"]
                logger.debug("Lead %d changed during merge, retrying", existing["id"])

        raise StorageUnavailable(
            f"Could not apply autosave for session {session_id} after {self._max_retries} attempts"
        )

    def _processing_row(self, session_id: str) -> Optional[Row]:
        rows = self._store.query(
            TABLE_LEADS, {"session_id": session_id, "status": LeadStatus.PROCESSING.value}
        )
        return rows[0] if rows else None

    def _try_insert(
        self, session_id: str, columns: dict[str, Any], extra: dict[str, Any]
    ) -> Optional[int]:
        now = self._clock()
        lead = IncompleteLead(
            session_id=session_id,
            extra=extra,
            created_at=now,
            last_updated=now,
            **columns,
        )
        lead.completion_percentage = calculate_completion(lead.model_dump())
        try:
            lead_id = self._store.insert(
                TABLE_LEADS,
                lead.model_dump(exclude={"id"}),
                unique_on={"session_id": session_id, "status": LeadStatus.PROCESSING.value},
            )
        except RowConflict:
            return None
        logger.info(
            "Incomplete lead %d created (%d%% complete)", lead_id, lead.completion_percentage
        )
        return lead_id

    def _try_merge(self, existing: Row, columns: dict[str, Any], extra: dict[str, Any]) -> bool:
        merged = {**existing, **columns, "extra": {**existing.get("extra", {}), **extra}}
        now = self._clock()
        if now <= existing["last_updated"]:
            now = existing["last_updated"] + timedelta(microseconds=1)
        patch = {
            **columns,
            "extra": merged["extra"],
            "completion_percentage": calculate_completion(merged),
            "last_updated": now,
        }
        changed = self._store.update(
            TABLE_LEADS,
            {
                "id": existing["id"],
                "status": LeadStatus.PROCESSING.value,
                "last_updated": existing["last_updated"],
            },
            patch,
        )
        if changed:
            logger.debug(
                "Lead %d merged %s (%d%% complete)",
                existing["id"], sorted(columns), patch["completion_percentage"],
            )
        return changed == 1

    def mark_complete(self, lead_id: int, booking_id: Optional[int] = None) -> bool:
        """Transition a lead to ``complete``.

        Returns False when the lead was already complete. Abandoned leads
        may still complete: a visitor can come back and finish booking.
        """
        patch: Row = {"status": LeadStatus.COMPLETE.value, "last_updated": self._clock()}
        if booking_id is not None:
            patch["booking_id"] = booking_id
        changed = self._store.update(
            TABLE_LEADS,
            {
                "id": lead_id,
                "status": (LeadStatus.PROCESSING.value, LeadStatus.ABANDONED.value),
            },
            patch,
        )
        if changed:
            logger.info("Lead %d marked complete (booking %s)", lead_id, booking_id)
            return True
        self.get_lead(lead_id)  # raises NotFoundError for unknown ids
        logger.debug("Lead %d already complete", lead_id)
        return False

    def mark_session_converted(self, session_id: str, booking_id: int) -> Optional[int]:
        """Complete the session's most recent open lead, if it has one."""
        rows = self._store.query(
            TABLE_LEADS,
            {
                "session_id": session_id,
                "status": (LeadStatus.PROCESSING.value, LeadStatus.ABANDONED.value),
            },
        )
        if not rows:
            return None
        lead_id = max(rows, key=lambda row: row["last_updated"])["id"]
        with session_scope(session_id):
            self.mark_complete(lead_id, booking_id=booking_id)
        return lead_id

    def get_lead(self, lead_id: int) -> IncompleteLead:
        try:
            return IncompleteLead.model_validate(self._store.get(TABLE_LEADS, lead_id))
        except NotFoundError:
            raise NotFoundError(f"Lead {lead_id} not found") from None

    def get_lead_by_session(self, session_id: str) -> Optional[IncompleteLead]:
        """Most recently updated lead for the session, in any status."""
        rows = self._store.query(TABLE_LEADS, {"session_id": session_id})
        if not rows:
            return None
        return IncompleteLead.model_validate(max(rows, key=lambda row: row["last_updated"]))

    def stats(self) -> dict[str, int]:
        rows = self._store.query(TABLE_LEADS)
        counts = {status.value: 0 for status in LeadStatus}
        for row in rows:
            counts[row["status"]] += 1
        counts["total"] = len(rows)
        return counts
