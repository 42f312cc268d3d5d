"""
Slot availability checking and calendar generation.

``is_slot_booked`` answers the single question the booking form asks
before submitting: is (company, date, time) already held by a pending or
confirmed booking? It never matches another company's booking for the
same date and time, and a storage failure is raised, not reported as free.

The calendar helpers render a company's bookable slots for a short
server-enforced window, reading all booked slots in one store scan.
"""

import logging
from datetime import timedelta
from typing import Iterable, Optional

from bookingpro.schemas.booking_schema import Company, DayAvailability, TimeSlot
from bookingpro.storage.slot_store import SlotStore
from bookingpro.tools.companies import CompanyDirectory
from bookingpro.utils import (
    DATE_FORMAT,
    format_display_time,
    minutes_to_time,
    normalize_date,
    normalize_time,
    parse_date,
    time_to_minutes,
    validate_company_id,
)

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 3


def generate_slot_times(company: Company) -> list[str]:
    """Slot start times from opening (inclusive) to closing (exclusive)."""
    start = time_to_minutes(company.hours_start)
    end = time_to_minutes(company.hours_end)
    return [minutes_to_time(m) for m in range(start, end, company.slot_duration_minutes)]


def is_slot_boundary(company: Company, time: str) -> bool:
    return normalize_time(time) in generate_slot_times(company)


class AvailabilityChecker:
    """Read-only view over the slot store and company directory."""

    def __init__(
        self,
        slots: SlotStore,
        companies: CompanyDirectory,
        window_days: int = DEFAULT_WINDOW_DAYS,
    ) -> None:
        self._slots = slots
        self._companies = companies
        self._window_days = window_days

    def is_slot_booked(self, company_id: int, date: str, time: str) -> bool:
        """
        Check whether an active booking holds exactly (company_id, date, time).

        Raises:
            ValidationError: Malformed company id, date or time (no store access).
            StorageUnavailable: The store could not be read.
        """
        company_id = validate_company_id(company_id)
        date = normalize_date(date)
        time = normalize_time(time)

        matches = self._slots.find_active(company_id, date, time)
        if matches:
            logger.debug(
                "Slot %s %s for company %d held by booking(s) %s",
                date, time, company_id, [row["id"] for row in matches],
            )
        return bool(matches)

    def get_day_slots(
        self,
        company: Company,
        date: str,
        booked_keys: Optional[set[str]] = None,
    ) -> list[TimeSlot]:
        """All slots for one day, each flagged available or not.

        Days outside the company's active weekdays have no slots.
        """
        day = parse_date(date)
        if day.isoweekday() not in company.active_weekdays:
            return []
        date_str = day.strftime(DATE_FORMAT)
        if booked_keys is None:
            booked_keys = self._slots.booked_slot_keys([company.id], date_str)[company.id]

        return [
            TimeSlot(
                date=date_str,
                time=slot_time,
                display=format_display_time(slot_time),
                available=f"{date_str}_{slot_time}" not in booked_keys,
            )
            for slot_time in generate_slot_times(company)
        ]

    def get_availability(
        self,
        company_ids: Iterable[int],
        date_from: str,
        window_days: Optional[int] = None,
    ) -> dict[int, dict[str, DayAvailability]]:
        """
        Build calendars for several companies from ``date_from`` through
        ``date_from + window_days``. Every calendar day is present even when
        it has no slots. Unknown companies are left out of the result.
        ``window_days`` defaults to the configured booking window.
        """
        if window_days is None:
            window_days = self._window_days
        ids = [validate_company_id(company_id) for company_id in company_ids]
        start = parse_date(date_from)
        end = start + timedelta(days=window_days)
        booked = self._slots.booked_slot_keys(
            ids, start.strftime(DATE_FORMAT), end.strftime(DATE_FORMAT)
        )

        calendars: dict[int, dict[str, DayAvailability]] = {}
        for company_id in ids:
            company = self._companies.find_company(company_id)
            if company is None:
                logger.warning("Availability requested for unknown company %d", company_id)
                continue

            days: dict[str, DayAvailability] = {}
            current = start
            while current <= end:
                date_str = current.strftime(DATE_FORMAT)
                days[date_str] = DayAvailability(
                    date=date_str,
                    day_number=current.day,
                    day_name=current.strftime("%a"),
                    full_date=current.strftime("%A, %B %d, %Y").replace(" 0", " "),
                    slots=self.get_day_slots(company, date_str, booked[company_id]),
                )
                current += timedelta(days=1)
            calendars[company_id] = days

        logger.debug(
            "Availability generated for %d company(ies) from %s (%d days)",
            len(calendars), start, window_days + 1,
        )
        return calendars
