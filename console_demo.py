"""
Offline console demo: walks through booking and lead scenarios end to end.

Uses the real application context with an in-memory store, a simulated
clock and an httpx MockTransport standing in for the Google Sheets
webhook. No network calls, no database.

Usage:
    python console_demo.py
    python console_demo.py --scenario abandoned
    python console_demo.py --scenario late_autosave
"""

import argparse
import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx

from bookingpro.config import AppConfig, SyncConfig
from bookingpro.context import AppContext, build_context
from bookingpro.errors import SlotConflictError
from bookingpro.schemas.booking_schema import Company

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_WEBHOOK_URL = "https://script.google.com/macros/s/demo/exec"


class DemoClock:
    """Manually advanced clock so deferred tasks can be shown without waiting."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class ConsoleSession:
    """Runs scripted visitor sessions against a fresh application context."""

    def __init__(self) -> None:
        self.clock = DemoClock(datetime(2025, 8, 20, 9, 0, tzinfo=timezone.utc))
        self.sheet_rows: list[dict] = []
        config = replace(
            AppConfig(),
            sync=replace(SyncConfig(), enabled=True, webhook_url=DEMO_WEBHOOK_URL),
        )
        transport = httpx.MockTransport(self._fake_sheet)
        self.context: AppContext = build_context(
            config, http_client=httpx.Client(transport=transport), clock=self.clock
        )
        self.company_id = self.context.companies.add_company(
            Company(
                name="Top Remodeling",
                hours_start="09:00",
                hours_end="17:00",
                slot_duration_minutes=30,
                active_weekdays=[1, 2, 3, 4, 5, 6],
            )
        )

    def _fake_sheet(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.sheet_rows.append(body)
        return httpx.Response(200, json={"success": True, "row": len(self.sheet_rows)})

    def say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def advance(self, seconds: float) -> None:
        self.clock.advance(seconds=seconds)
        ran = self.context.scheduler.run_due()
        self.system_log(f"+{seconds:g}s, {ran} background task(s) ran")

    # ------------------------------------------------------------------ #
    # Scenarios
    # ------------------------------------------------------------------ #

    def scenario_booking(self) -> None:
        session_id = "session_demo_booking"
        self.context.capture_incomplete_lead(session_id, {"service": "Roofing", "form_step": 1})
        self.context.capture_incomplete_lead(
            session_id, {"name": "Jane Doe", "email": "jane@example.com", "phone": "(555) 010-2000"}
        )
        lead = self.context.tracker.get_lead_by_session(session_id)
        self.system_log(f"Lead {lead.id}: {lead.completion_percentage}% ({lead.quality})")

        checker = self.context.availability
        print(f"\n{BLUE}Is 2025-08-21 10:00 booked?{RESET} {checker.is_slot_booked(self.company_id, '2025-08-21', '10:00')}")
        booking = self.context.submit_booking({
            "company_id": self.company_id,
            "service_type": "Roofing",
            "date": "2025-08-21",
            "time": "10:00",
            "customer_name": "Jane Doe",
            "customer_email": "jane@example.com",
            "session_id": session_id,
        })
        self.say(f"Booking #{booking.id} stored ({booking.status})")
        print(f"{BLUE}Is 2025-08-21 10:00 booked?{RESET} {checker.is_slot_booked(self.company_id, '2025-08-21', '10:00')}")

        try:
            self.context.submit_booking({
                "company_id": self.company_id,
                "service_type": "Roofing",
                "date": "2025-08-21",
                "time": "10:00",
                "customer_name": "John Roe",
            })
        except SlotConflictError as exc:
            print(f"{YELLOW}Second booking refused: {exc}{RESET}")

        self.advance(self.context.config.sync.initial_delay_seconds)
        synced = self.context.slots.get_booking(booking.id)
        self.system_log(f"Booking sync status: {synced.sync_status} after {synced.sync_attempts} attempt(s)")

    def scenario_abandoned(self) -> None:
        session_id = "session_demo_abandoned"
        lead_id = self.context.capture_incomplete_lead(
            session_id, {"service": "Windows", "zip": "90210", "name": "Sam Lee"}
        )
        self.system_log(f"Lead {lead_id} captured, visitor goes quiet")
        timeout = timedelta(minutes=self.context.config.leads.stuck_timeout_minutes)
        interval = self.context.config.leads.reaper_interval_seconds
        for _ in range(int(timeout.total_seconds() // interval) + 1):
            self.advance(interval)
        self.advance(self.context.config.sync.initial_delay_seconds)
        lead = self.context.tracker.get_lead(lead_id)
        self.say(f"Lead {lead_id} is {lead.status}, sheet sync {lead.sync_status}")
        self.system_log(f"Reaper totals: {self.context.reaper.get_cleanup_stats()}")

    def scenario_late_autosave(self) -> None:
        session_id = "session_demo_late"
        self.context.terminate_session(session_id)
        self.system_log("Page closed before the final autosave arrived")
        self.clock.advance(seconds=2)
        lead_id = self.context.capture_incomplete_lead(session_id, {"email": "late@example.com"})
        decision = self.context.reconciler.should_block_lead(session_id, lead_id)
        color = RED if decision.should_block else GREEN
        print(f"{color}Lead {lead_id} blocked={decision.should_block}: {decision.reason}{RESET}")

    SCENARIOS: dict[str, str] = {
        "booking": "scenario_booking",
        "abandoned": "scenario_abandoned",
        "late_autosave": "scenario_late_autosave",
    }

    def run_scenario(self, scenario: str) -> None:
        method_name = self.SCENARIOS.get(scenario)
        if not method_name:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  BOOKING SYSTEM PRO - Scenario: {scenario}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        run: Callable[[], None] = getattr(self, method_name)
        run()
        print(f"{DIM}  Sheet rows sent: {len(self.sheet_rows)}{RESET}")

    def run(self) -> None:
        for scenario in self.SCENARIOS:
            self.run_scenario(scenario)
        print(f"\n{BOLD}  Lead stats: {self.context.tracker.stats()}{RESET}")
        self.context.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Booking System Pro console demo")
    parser.add_argument(
        "--scenario",
        choices=list(ConsoleSession.SCENARIOS),
        help="Run a single scenario instead of all of them",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        session.run_scenario(args.scenario)
        session.context.close()
    else:
        session.run()


if __name__ == "__main__":
    main()
