"""
Application context: every component wired once at startup.

The context owns the config, the row store, the task scheduler and the
components built on them, and registers the background task handlers.
Request code receives the context explicitly; nothing in the core is a
process-global singleton.

Background tasks run in the same process as the requests: either driven
explicitly with ``scheduler.run_due()`` or by ``start_worker()``.

Usage:
    context = build_context(load_config())
    context.start_worker()
    booking = context.submit_booking({"company_id": 1, ...})
    context.close()
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

import httpx

from bookingpro.config import AppConfig
from bookingpro.leads.reaper import ReapStats, StuckLeadReaper
from bookingpro.leads.reconciler import LeadReconciler
from bookingpro.leads.termination import SessionTerminationLog
from bookingpro.leads.tracker import LeadSessionTracker
from bookingpro.logging_context import get_session_logger, session_scope
from bookingpro.schemas.booking_schema import Booking, BookingRequest
from bookingpro.schemas.lead_schema import LeadStatus, SessionTermination
from bookingpro.storage.slot_store import SlotStore
from bookingpro.storage.store import (
    TABLE_BOOKINGS,
    TABLE_COMPANIES,
    TABLE_LEADS,
    TABLE_TERMINATIONS,
    InMemoryStore,
    RowStore,
)
from bookingpro.sync.gateway import OutboundSyncGateway, WebhookClient
from bookingpro.sync.payloads import build_lead_payload
from bookingpro.tasks.queue import TaskScheduler
from bookingpro.tasks.schemas import (
    PurgeTerminationsTask,
    ReapStuckLeadsTask,
    SyncBookingTask,
    SyncLeadTask,
    TaskKind,
)
from bookingpro.tools.availability import AvailabilityChecker
from bookingpro.tools.booking import BookingService, parse_booking_request
from bookingpro.tools.companies import CompanyDirectory
from bookingpro.utils import utcnow

logger = get_session_logger(__name__)

# Expired terminations are already ignored on read; this only frees rows.
PURGE_INTERVAL_SECONDS = 3600


@dataclass
class AppContext:
    config: AppConfig
    store: RowStore
    scheduler: TaskScheduler
    companies: CompanyDirectory
    slots: SlotStore
    availability: AvailabilityChecker
    bookings: BookingService
    tracker: LeadSessionTracker
    terminations: SessionTerminationLog
    reconciler: LeadReconciler
    reaper: StuckLeadReaper
    webhook: WebhookClient
    gateway: OutboundSyncGateway
    _worker: Optional[tuple[threading.Thread, threading.Event]] = field(
        default=None, init=False, repr=False
    )

    # -- request-level operations ---------------------------------------

    def submit_booking(self, request: Union[BookingRequest, dict[str, Any]]) -> Booking:
        if not isinstance(request, BookingRequest):
            request = parse_booking_request(request)
        return self.bookings.submit_booking(request)

    def capture_incomplete_lead(self, session_id: str, partial_data: dict[str, Any]) -> int:
        """Autosave endpoint: merge partial form data into the session's lead."""
        return self.tracker.upsert_incomplete_lead(session_id, partial_data)

    def terminate_session(
        self, session_id: str, terminated_at: Optional[datetime] = None
    ) -> SessionTermination:
        """Page-unload beacon: record the termination and report the open lead."""
        record = self.terminations.record_termination(session_id, terminated_at)
        lead = self.tracker.get_lead_by_session(record.session_id)
        if lead is not None and lead.status == LeadStatus.PROCESSING.value:
            self.report_lead(lead.id)
        return record

    def report_lead(self, lead_id: int) -> None:
        """Queue a deferred sheet sync for an incomplete lead."""
        lead = self.tracker.get_lead(lead_id)
        self.scheduler.schedule_once(
            self.config.sync.initial_delay_seconds,
            TaskKind.SYNC_LEAD,
            SyncLeadTask(lead_id=lead_id, session_id=lead.session_id),
        )
        with session_scope(lead.session_id):
            logger.info("Lead %d queued for sheets sync", lead_id)

    # -- background task handlers ---------------------------------------

    def _handle_sync_booking(self, task: SyncBookingTask) -> bool:
        return self.gateway.sync_booking(task.booking_id, task.payload)

    def _handle_sync_lead(self, task: SyncLeadTask) -> bool:
        lead = self.tracker.get_lead(task.lead_id)
        with session_scope(lead.session_id):
            if lead.status == LeadStatus.COMPLETE.value:
                logger.info("Lead %d converted to booking %s, not reported", lead.id, lead.booking_id)
                return False
            decision = self.reconciler.should_block_lead(task.session_id, task.lead_id)
            if decision.should_block:
                return False
        return self.gateway.sync_lead(task.lead_id, task.payload or build_lead_payload(lead))

    def _handle_reap(self, task: ReapStuckLeadsTask) -> ReapStats:
        stats = self.reaper.reap_stuck_leads(timedelta(minutes=task.timeout_minutes))
        for lead_id in stats.lead_ids:
            self.report_lead(lead_id)
        return stats

    def _handle_purge(self, task: PurgeTerminationsTask) -> int:
        return self.terminations.purge_expired()

    def register_handlers(self) -> None:
        self.scheduler.register_handler(TaskKind.SYNC_BOOKING, self._handle_sync_booking)
        self.scheduler.register_handler(TaskKind.SYNC_LEAD, self._handle_sync_lead)
        self.scheduler.register_handler(TaskKind.REAP_STUCK_LEADS, self._handle_reap)
        self.scheduler.register_handler(TaskKind.PURGE_TERMINATIONS, self._handle_purge)

    def start_recurring(self) -> None:
        self.scheduler.register_recurring(
            self.config.leads.reaper_interval_seconds,
            TaskKind.REAP_STUCK_LEADS,
            ReapStuckLeadsTask(timeout_minutes=self.config.leads.stuck_timeout_minutes),
        )
        self.scheduler.register_recurring(
            PURGE_INTERVAL_SECONDS,
            TaskKind.PURGE_TERMINATIONS,
            PurgeTerminationsTask(),
        )

    # -- in-process worker -----------------------------------------------

    def start_worker(self, poll_interval: float = 1.0) -> threading.Thread:
        """Run the scheduler loop on a daemon thread beside the request handlers.

        The worker shares this context's store, so deferred syncs and the
        reaper see exactly the rows the requests wrote.
        """
        if self._worker is not None:
            return self._worker[0]
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self.scheduler.run_forever,
            args=(stop_event, poll_interval),
            name="bookingpro-tasks",
            daemon=True,
        )
        thread.start()
        self._worker = (thread, stop_event)
        return thread

    def stop_worker(self, timeout: float = 5.0) -> None:
        if self._worker is None:
            return
        thread, stop_event = self._worker
        stop_event.set()
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Task worker did not stop within %.1fs", timeout)
        self._worker = None

    def close(self) -> None:
        self.stop_worker()
        self.webhook.close()
        if isinstance(self.store, InMemoryStore):
            self.store.close()


def build_context(
    config: Optional[AppConfig] = None,
    store: Optional[RowStore] = None,
    http_client: Optional[httpx.Client] = None,
    clock: Callable[[], datetime] = utcnow,
    start_recurring: bool = True,
) -> AppContext:
    """Wire every component against one store, scheduler and clock."""
    config = config or AppConfig()
    store = store or InMemoryStore(
        tables=(TABLE_BOOKINGS, TABLE_COMPANIES, TABLE_LEADS, TABLE_TERMINATIONS)
    )
    scheduler = TaskScheduler(clock=clock)

    companies = CompanyDirectory(
        store, default_slot_duration=config.availability.default_slot_duration
    )
    slots = SlotStore(store)
    tracker = LeadSessionTracker(store, clock=clock, max_retries=config.leads.max_upsert_retries)
    terminations = SessionTerminationLog(
        store,
        retention=timedelta(hours=config.leads.session_retention_hours),
        clock=clock,
    )
    webhook = WebhookClient(config.sync, http_client=http_client)

    context = AppContext(
        config=config,
        store=store,
        scheduler=scheduler,
        companies=companies,
        slots=slots,
        availability=AvailabilityChecker(
            slots, companies, window_days=config.availability.booking_window_days
        ),
        bookings=BookingService(
            slots,
            companies,
            tracker,
            scheduler,
            config.availability,
            config.sync,
            clock=clock,
        ),
        tracker=tracker,
        terminations=terminations,
        reconciler=LeadReconciler(tracker, terminations),
        reaper=StuckLeadReaper(store, clock=clock),
        webhook=webhook,
        gateway=OutboundSyncGateway(store, webhook, scheduler, config.sync, clock=clock),
    )
    context.register_handlers()
    if start_recurring:
        context.start_recurring()
    logger.info("Application context ready (%s)", config.app_name)
    return context
