"""
Booking submission and status transitions.

A submission is validated against the company's calendar, stored through
the slot store (which refuses a second active booking for the same slot),
then closes the visitor's incomplete lead and queues a deferred sheet sync.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from bookingpro.config import AvailabilityConfig, SyncConfig
from bookingpro.errors import InvalidStatusTransition, NotFoundError, ValidationError
from bookingpro.leads.tracker import LeadSessionTracker
from bookingpro.schemas.booking_schema import Booking, BookingRequest, BookingStatus
from bookingpro.storage.slot_store import SlotStore
from bookingpro.sync.payloads import build_booking_payload
from bookingpro.tasks.queue import TaskScheduler
from bookingpro.tasks.schemas import SyncBookingTask, TaskKind
from bookingpro.tools.availability import is_slot_boundary
from bookingpro.tools.companies import CompanyDirectory
from bookingpro.utils import parse_date, utcnow

logger = logging.getLogger(__name__)

# Allowed (from -> to) status changes.
TRANSITIONS: dict[BookingStatus, tuple[BookingStatus, ...]] = {
    BookingStatus.CONFIRMED: (BookingStatus.PENDING,),
    BookingStatus.CANCELLED: (BookingStatus.PENDING, BookingStatus.CONFIRMED),
}


def parse_booking_request(data: dict[str, Any]) -> BookingRequest:
    """Validate raw form data, converting schema errors to ValidationError."""
    try:
        return BookingRequest.model_validate(data)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationError(f"Invalid booking request: {problems}") from None


class BookingService:
    def __init__(
        self,
        slots: SlotStore,
        companies: CompanyDirectory,
        tracker: LeadSessionTracker,
        scheduler: TaskScheduler,
        availability_config: AvailabilityConfig,
        sync_config: SyncConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._slots = slots
        self._companies = companies
        self._tracker = tracker
        self._scheduler = scheduler
        self._availability_config = availability_config
        self._sync_config = sync_config
        self._clock = clock

    def submit_booking(self, request: BookingRequest) -> Booking:
        """
        Store a booking and queue its sheet sync.

        Raises:
            ValidationError: Unknown/inactive company, closed day, or off-grid time.
            SlotConflictError: The slot is already actively booked.
            StorageUnavailable: The store failed.
        """
        company = self._companies.find_company(request.company_id)
        if company is None or not company.is_active:
            raise ValidationError(f"Company {request.company_id} is not accepting bookings")
        if parse_date(request.date).isoweekday() not in company.active_weekdays:
            raise ValidationError(f"{company.name} is closed on {request.date}")
        if not is_slot_boundary(company, request.time):
            raise ValidationError(
                f"{request.time} is not a bookable slot for {company.name} "
                f"({company.hours_start}-{company.hours_end}, "
                f"every {company.slot_duration_minutes} min)"
            )

        status = (
            BookingStatus.CONFIRMED
            if self._availability_config.auto_confirm_bookings
            else BookingStatus.PENDING
        )
        booking = Booking(
            **request.model_dump(),
            status=status,
            created_at=self._clock(),
        )
        booking.id = self._slots.add_booking(booking)

        if booking.session_id:
            lead_id = self._tracker.mark_session_converted(booking.session_id, booking.id)
            if lead_id is not None:
                logger.info("Booking %d converted lead %d", booking.id, lead_id)

        self._scheduler.schedule_once(
            self._sync_config.initial_delay_seconds,
            TaskKind.SYNC_BOOKING,
            SyncBookingTask(
                booking_id=booking.id,
                payload=build_booking_payload(booking, company),
            ),
        )
        return booking

    def get_booking(self, booking_id: int) -> Booking:
        try:
            return self._slots.get_booking(booking_id)
        except NotFoundError:
            raise NotFoundError(f"Booking {booking_id} not found") from None

    def _transition(self, booking_id: int, new: BookingStatus) -> Booking:
        if not self._slots.set_status(booking_id, TRANSITIONS[new], new):
            current = self.get_booking(booking_id)
            raise InvalidStatusTransition(
                f"Booking {booking_id} cannot go from {current.status} to {new.value}"
            )
        logger.info("Booking %d -> %s", booking_id, new.value)
        return self.get_booking(booking_id)

    def confirm_booking(self, booking_id: int) -> Booking:
        return self._transition(booking_id, BookingStatus.CONFIRMED)

    def cancel_booking(self, booking_id: int) -> Booking:
        """Cancel a booking, freeing its slot."""
        return self._transition(booking_id, BookingStatus.CANCELLED)

    def list_bookings(
        self, company_id: Optional[int] = None, status: Optional[BookingStatus] = None
    ) -> list[Booking]:
        criteria: dict[str, Any] = {}
        if company_id is not None:
            criteria["company_id"] = company_id
        if status is not None:
            criteria["status"] = status.value
        return [Booking.model_validate(row) for row in self._slots.list_rows(criteria)]
