"""Integration tests: bookings, lead capture, reaping, reconciliation and sync together."""

import time

import pytest

from bookingpro.tasks.schemas import TaskKind
from tests.conftest import booking_form


@pytest.fixture
def recurring_context(context):
    context.start_recurring()
    return context


class TestBookingFlow:
    def test_visitor_books_after_autosaves(self, context, company_id, sheet, clock):
        session_id = "session_1755680400_n2p48pyw"
        context.capture_incomplete_lead(session_id, {"service": "Roofing", "form_step": 1})
        clock.advance(seconds=20)
        lead_id = context.capture_incomplete_lead(
            session_id, {"name": "Jane Doe", "email": "jane@example.com", "form_step": 3}
        )

        assert not context.availability.is_slot_booked(company_id, "2025-08-21", "10:00")
        booking = context.submit_booking(booking_form(company_id, session_id=session_id))
        assert context.availability.is_slot_booked(company_id, "2025-08-21", "10:00")

        clock.advance(seconds=8)
        context.scheduler.run_due()

        assert [body["action"] for body in sheet.bodies] == ["booking_complete"]
        assert sheet.bodies[0]["session_id"] == session_id
        lead = context.tracker.get_lead(lead_id)
        assert lead.status == "complete"
        assert lead.booking_id == booking.id

    def test_converted_lead_not_reported_after_unload(self, context, company_id, sheet, clock):
        lead_id = context.capture_incomplete_lead("s1", {"name": "Jane Doe"})
        context.terminate_session("s1")
        assert len(context.scheduler.pending(TaskKind.SYNC_LEAD)) == 1

        context.submit_booking(booking_form(company_id, session_id="s1"))
        clock.advance(seconds=8)
        context.scheduler.run_due()

        assert [body["action"] for body in sheet.bodies] == ["booking_complete"]
        assert context.tracker.get_lead(lead_id).sync_status == "pending"


class TestAbandonmentFlow:
    def test_stuck_lead_reaped_and_reported(self, recurring_context, sheet, clock):
        ctx = recurring_context
        lead_id = ctx.capture_incomplete_lead(
            "s1", {"name": "Sam Lee", "email": "sam@example.com", "zip": "90210", "utm_source": "google"}
        )

        clock.advance(minutes=5)
        ctx.scheduler.run_due()
        assert ctx.tracker.get_lead(lead_id).status == "processing"

        clock.advance(minutes=10)
        ctx.scheduler.run_due()
        assert ctx.tracker.get_lead(lead_id).status == "abandoned"
        assert sheet.requests == []

        clock.advance(seconds=8)
        ctx.scheduler.run_due()

        assert len(sheet.bodies) == 1
        body = sheet.bodies[0]
        assert body["action"] == "incomplete_lead"
        assert body["customer_email"] == "sam@example.com"
        assert body["utm_source"] == "google"
        assert body["lead_status"] == "In Progress"
        assert ctx.tracker.get_lead(lead_id).sync_status == "success"
        assert ctx.reaper.get_cleanup_stats().leads_cleaned == 1

    def test_unload_reports_open_lead(self, context, sheet, clock):
        lead_id = context.capture_incomplete_lead("s1", {"name": "Jane Doe"})
        clock.advance(seconds=5)
        record = context.terminate_session("s1")
        assert record.terminated_at == clock()

        clock.advance(seconds=8)
        context.scheduler.run_due()

        assert len(sheet.requests) == 1
        assert context.tracker.get_lead(lead_id).sync_status == "success"

    def test_late_autosave_suppressed(self, context, sheet, clock):
        context.terminate_session("s1")
        clock.advance(seconds=2)
        lead_id = context.capture_incomplete_lead("s1", {"email": "late@example.com"})
        context.report_lead(lead_id)

        clock.advance(seconds=8)
        context.scheduler.run_due()

        assert sheet.requests == []
        assert context.tracker.get_lead(lead_id).sync_status == "pending"

    def test_repeated_reports_send_once(self, context, sheet, clock):
        lead_id = context.capture_incomplete_lead("s1", {"name": "Jane Doe"})
        context.report_lead(lead_id)
        context.report_lead(lead_id)

        clock.advance(seconds=8)
        assert context.scheduler.run_due() == 2
        assert len(sheet.requests) == 1

    def test_expired_terminations_purged(self, recurring_context, clock, store):
        recurring_context.terminate_session("s1")
        clock.advance(hours=25)
        recurring_context.scheduler.run_due()
        assert recurring_context.terminations.get_termination_record("s1") is None
        assert store.query("session_terminations") == []


def wait_for(condition, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


class TestInProcessWorker:
    def test_worker_syncs_booking_from_shared_store(self, context, company_id, sheet, clock):
        context.start_worker(poll_interval=0.01)
        try:
            booking = context.submit_booking(booking_form(company_id))
            clock.advance(seconds=8)
            assert wait_for(lambda: sheet.requests)
            assert wait_for(
                lambda: context.slots.get_booking(booking.id).sync_status == "success"
            )
        finally:
            context.stop_worker()
        assert sheet.bodies[0]["action"] == "booking_complete"

    def test_start_is_idempotent_and_close_stops(self, context):
        thread = context.start_worker(poll_interval=0.01)
        assert context.start_worker() is thread
        context.close()
        assert not thread.is_alive()

    def test_stop_without_start(self, context):
        context.stop_worker()
