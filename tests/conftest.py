"""Shared test fixtures and helpers."""

import json
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import pytest

from bookingpro.config import AppConfig, AvailabilityConfig, LeadConfig, SyncConfig
from bookingpro.context import build_context
from bookingpro.schemas.booking_schema import Booking, Company
from bookingpro.storage.store import InMemoryStore

START = datetime(2025, 8, 20, 9, 0, tzinfo=timezone.utc)  # a Wednesday
WEBHOOK_URL = "https://script.google.com/macros/s/test/exec"


class FakeClock:
    """Deterministic clock, advanced explicitly by tests."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeSheet:
    """Stands in for the Apps Script webhook.

    Answers with the queued status codes in order, then 200. Queue an
    exception instance to simulate a transport failure.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: list = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0) if self.responses else 200
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"success": outcome < 300})

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


def make_config(
    enabled: bool = True,
    webhook_url: str = WEBHOOK_URL,
    auto_confirm: bool = False,
    window_days: int = 3,
    slot_duration: int = 30,
) -> AppConfig:
    """Explicit config so tests never depend on the environment."""
    return AppConfig(
        sync=SyncConfig(
            enabled=enabled,
            webhook_url=webhook_url,
            max_attempts=3,
            retry_delay_seconds=120,
            initial_delay_seconds=8,
            timeout_seconds=30,
            user_agent="BookingSystemPro/1.0",
        ),
        leads=LeadConfig(
            stuck_timeout_minutes=10,
            reaper_interval_seconds=300,
            session_retention_hours=24,
            max_upsert_retries=5,
        ),
        availability=AvailabilityConfig(
            booking_window_days=window_days,
            default_slot_duration=slot_duration,
            auto_confirm_bookings=auto_confirm,
        ),
        log_level="DEBUG",
        app_name="booking-system-pro-test",
    )


def make_company(name: str = "Top Remodeling", **overrides) -> Company:
    fields = {
        "name": name,
        "hours_start": "09:00",
        "hours_end": "17:00",
        "slot_duration_minutes": 30,
        "active_weekdays": [1, 2, 3, 4, 5, 6],
    }
    fields.update(overrides)
    return Company(**fields)


def make_booking(
    company_id: int = 1,
    date: str = "2025-08-21",
    time: str = "10:00",
    status: str = "pending",
    session_id: Optional[str] = None,
) -> Booking:
    return Booking(
        company_id=company_id,
        service_type="Roofing",
        date=date,
        time=time,
        status=status,
        customer_name="Jane Doe",
        session_id=session_id,
    )


def booking_form(company_id: int, **overrides) -> dict:
    form = {
        "company_id": company_id,
        "service_type": "Roofing",
        "date": "2025-08-21",
        "time": "10:00",
        "customer_name": "Jane Doe",
        "customer_email": "jane@example.com",
        "customer_phone": "555-010-2000",
    }
    form.update(overrides)
    return form


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sheet():
    return FakeSheet()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def context(config, store, sheet, clock):
    ctx = build_context(
        config,
        store=store,
        http_client=httpx.Client(transport=httpx.MockTransport(sheet)),
        clock=clock,
        start_recurring=False,
    )
    yield ctx
    ctx.webhook.close()


@pytest.fixture
def company_id(context):
    return context.companies.add_company(make_company())


@pytest.fixture
def other_company_id(context, company_id):
    return context.companies.add_company(make_company("Blue Sky Windows"))
