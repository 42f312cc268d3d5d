"""
Slot store: booked (company, date, time) tuples derived from bookings.

Slots are not kept in a calendar structure. Each booking row carries its
own composite key, so "is this slot taken" is an equality filter and the
one-active-booking-per-slot rule is a conditional insert.
"""

import logging
from typing import Iterable, Optional

from bookingpro.errors import RowConflict, SlotConflictError
from bookingpro.schemas.booking_schema import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus
from bookingpro.storage.store import TABLE_BOOKINGS, Row, RowStore

logger = logging.getLogger(__name__)


def slot_filter(company_id: int, date: str, time: str) -> dict:
    return {
        "company_id": company_id,
        "date": date,
        "time": time,
        "status": ACTIVE_BOOKING_STATUSES,
    }


class SlotStore:
    """Booking rows viewed as slot occupancy."""

    def __init__(self, store: RowStore) -> None:
        self._store = store

    def add_booking(self, booking: Booking) -> int:
        """Persist a booking, refusing it if its slot is already actively held.

        Raises:
            SlotConflictError: An active booking already holds the slot.
            StorageUnavailable: The store could not be written.
        """
        row = booking.model_dump(exclude={"id"})
        unique_on = None
        if booking.is_active:
            unique_on = slot_filter(booking.company_id, booking.date, booking.time)
        try:
            booking_id = self._store.insert(TABLE_BOOKINGS, row, unique_on=unique_on)
        except RowConflict as exc:
            logger.info(
                "Slot %s %s for company %d already held by booking %d",
                booking.date, booking.time, booking.company_id, exc.existing_id,
            )
            raise SlotConflictError(booking.company_id, booking.date, booking.time) from exc
        logger.info(
            "Booking %d stored for company %d on %s at %s (%s)",
            booking_id, booking.company_id, booking.date, booking.time, booking.status,
        )
        return booking_id

    def get_booking(self, booking_id: int) -> Booking:
        return Booking.model_validate(self._store.get(TABLE_BOOKINGS, booking_id))

    def list_rows(self, criteria: Optional[dict] = None) -> list[Row]:
        return self._store.query(TABLE_BOOKINGS, criteria)

    def find_active(self, company_id: int, date: str, time: str) -> list[Row]:
        return self._store.query(TABLE_BOOKINGS, slot_filter(company_id, date, time))

    def set_status(
        self, booking_id: int, expected: Iterable[BookingStatus], new: BookingStatus
    ) -> bool:
        """Move a booking to ``new`` only if its current status is in ``expected``."""
        changed = self._store.update(
            TABLE_BOOKINGS,
            {"id": booking_id, "status": tuple(status.value for status in expected)},
            {"status": new.value},
        )
        return changed == 1

    def booked_slot_keys(
        self,
        company_ids: Iterable[int],
        date_from: str,
        date_to: Optional[str] = None,
    ) -> dict[int, set[str]]:
        """Fetch every active slot for the given companies in one scan.

        Returns a mapping like ``{1: {"2025-08-21_09:00", "2025-08-22_14:30"}}``.
        Dates compare lexically, which is safe for ``YYYY-MM-DD``.
        """
        wanted = set(company_ids)
        date_to = date_to or date_from
        rows = self._store.query(
            TABLE_BOOKINGS,
            {"company_id": tuple(wanted), "status": ACTIVE_BOOKING_STATUSES},
        )
        booked: dict[int, set[str]] = {company_id: set() for company_id in wanted}
        for row in rows:
            if date_from <= row["date"] <= date_to:
                booked[row["company_id"]].add(f"{row['date']}_{row['time']}")
        return booked
