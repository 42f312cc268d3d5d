"""Tests for booking submission, status transitions and the company directory."""

from datetime import timedelta

import httpx
import pytest

from bookingpro.context import build_context
from bookingpro.errors import (
    InvalidStatusTransition,
    NotFoundError,
    SlotConflictError,
    ValidationError,
)
from bookingpro.schemas.booking_schema import BookingStatus, Company, CompanyStatus
from bookingpro.tasks.schemas import TaskKind
from tests.conftest import booking_form, make_booking, make_config


class TestCompanyModel:
    def test_defaults(self):
        company = Company(name="Acme")
        assert company.slot_duration_minutes == 30
        assert company.active_weekdays == [1, 2, 3, 4, 5, 6, 7]
        assert company.is_active

    def test_start_must_precede_end(self):
        with pytest.raises(ValueError, match="hours_start"):
            Company(name="Acme", hours_start="17:00", hours_end="09:00")

    def test_slot_duration_bounds(self):
        with pytest.raises(ValueError):
            Company(name="Acme", slot_duration_minutes=0)
        with pytest.raises(ValueError):
            Company(name="Acme", slot_duration_minutes=481)

    def test_weekdays_must_be_iso(self):
        with pytest.raises(ValueError):
            Company(name="Acme", active_weekdays=[0, 1])


class TestBookingModel:
    def test_date_and_time_normalized(self):
        booking = make_booking(date="2025-8-21", time="9:00")
        assert booking.date == "2025-08-21"
        assert booking.time == "09:00"
        assert booking.slot_key == "2025-08-21_09:00"

    def test_malformed_time_rejected(self):
        with pytest.raises(ValueError):
            make_booking(time="25:00")

    def test_stored_directly_still_holds_slot(self, context, company_id):
        context.slots.add_booking(make_booking(company_id, time="9:00"))
        assert context.availability.is_slot_booked(company_id, "2025-08-21", "09:00")

    def test_differently_written_times_conflict(self, context, company_id):
        context.slots.add_booking(make_booking(company_id, time="9:00"))
        with pytest.raises(SlotConflictError):
            context.slots.add_booking(make_booking(company_id, time="09:00:00"))


class TestCompanyDirectory:
    def test_lookup_by_id_and_name(self, context, company_id):
        assert context.companies.get_company(company_id).name == "Top Remodeling"
        assert context.companies.get_company_by_name("top remodeling").id == company_id
        assert context.companies.get_company_by_name("Nobody") is None

    def test_unknown_company(self, context):
        with pytest.raises(NotFoundError):
            context.companies.get_company(42)
        assert context.companies.find_company(42) is None

    def test_list_active_skips_inactive(self, context, company_id, other_company_id):
        context.companies.set_status(other_company_id, CompanyStatus.INACTIVE)
        assert [c.id for c in context.companies.list_active()] == [company_id]


class TestSubmitBooking:
    def test_creates_pending_booking(self, context, company_id, clock):
        booking = context.submit_booking(booking_form(company_id))

        assert booking.id == 1
        assert booking.status == BookingStatus.PENDING.value
        assert booking.created_at == clock()
        assert context.availability.is_slot_booked(company_id, "2025-08-21", "10:00")

    def test_schedules_deferred_sync(self, context, company_id, clock, sheet):
        booking = context.submit_booking(booking_form(company_id))

        tasks = context.scheduler.pending(TaskKind.SYNC_BOOKING)
        assert len(tasks) == 1
        assert tasks[0].payload.booking_id == booking.id
        assert tasks[0].run_at == clock() + timedelta(seconds=8)
        assert sheet.requests == []

    def test_auto_confirm(self, store, clock, company_id):
        ctx = build_context(
            make_config(auto_confirm=True),
            store=store,
            http_client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
            clock=clock,
            start_recurring=False,
        )
        booking = ctx.submit_booking(booking_form(company_id))
        assert booking.status == BookingStatus.CONFIRMED.value

    def test_double_booking_refused(self, context, company_id):
        context.submit_booking(booking_form(company_id))
        with pytest.raises(SlotConflictError) as exc_info:
            context.submit_booking(booking_form(company_id, customer_name="John Roe"))
        assert exc_info.value.time == "10:00"
        assert len(context.bookings.list_bookings(company_id)) == 1

    def test_same_slot_other_company_allowed(self, context, company_id, other_company_id):
        context.submit_booking(booking_form(company_id))
        booking = context.submit_booking(booking_form(other_company_id))
        assert booking.company_id == other_company_id

    def test_slot_reusable_after_cancel(self, context, company_id):
        first = context.submit_booking(booking_form(company_id))
        context.bookings.cancel_booking(first.id)
        second = context.submit_booking(booking_form(company_id))
        assert second.id != first.id

    def test_converts_session_lead(self, context, company_id):
        lead_id = context.capture_incomplete_lead("session_a", {"name": "Jane Doe"})
        booking = context.submit_booking(booking_form(company_id, session_id="session_a"))

        lead = context.tracker.get_lead(lead_id)
        assert lead.status == "complete"
        assert lead.booking_id == booking.id

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"date": "2025-08-24"}, "closed"),           # Sunday
            ({"time": "10:15"}, "not a bookable slot"),
            ({"time": "17:00"}, "not a bookable slot"),
            ({"customer_name": "  "}, "customer_name"),
            ({"date": "08/21/2025"}, "date"),
        ],
    )
    def test_rejects_invalid_requests(self, context, company_id, overrides, message):
        with pytest.raises(ValidationError, match=message):
            context.submit_booking(booking_form(company_id, **overrides))

    def test_rejects_unknown_company(self, context):
        with pytest.raises(ValidationError, match="not accepting bookings"):
            context.submit_booking(booking_form(99))

    def test_rejects_inactive_company(self, context, company_id):
        context.companies.set_status(company_id, CompanyStatus.INACTIVE)
        with pytest.raises(ValidationError, match="not accepting bookings"):
            context.submit_booking(booking_form(company_id))

    def test_nothing_stored_on_rejection(self, context, company_id):
        with pytest.raises(ValidationError):
            context.submit_booking(booking_form(company_id, time="10:15"))
        assert context.bookings.list_bookings() == []
        assert context.scheduler.pending() == []


class TestStatusTransitions:
    def test_confirm_then_cancel(self, context, company_id):
        booking = context.submit_booking(booking_form(company_id))
        assert context.bookings.confirm_booking(booking.id).status == "confirmed"
        assert context.bookings.cancel_booking(booking.id).status == "cancelled"

    def test_cannot_confirm_twice(self, context, company_id):
        booking = context.submit_booking(booking_form(company_id))
        context.bookings.confirm_booking(booking.id)
        with pytest.raises(InvalidStatusTransition):
            context.bookings.confirm_booking(booking.id)

    def test_cancelled_is_final(self, context, company_id):
        booking = context.submit_booking(booking_form(company_id))
        context.bookings.cancel_booking(booking.id)
        with pytest.raises(InvalidStatusTransition):
            context.bookings.confirm_booking(booking.id)
        with pytest.raises(InvalidStatusTransition):
            context.bookings.cancel_booking(booking.id)

    def test_unknown_booking(self, context):
        with pytest.raises(NotFoundError):
            context.bookings.cancel_booking(404)

    def test_list_by_status(self, context, company_id):
        first = context.submit_booking(booking_form(company_id))
        context.submit_booking(booking_form(company_id, time="11:00"))
        context.bookings.cancel_booking(first.id)

        pending = context.bookings.list_bookings(company_id, BookingStatus.PENDING)
        assert [b.time for b in pending] == ["11:00"]
