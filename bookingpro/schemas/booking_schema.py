"""Company, booking and availability data models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from bookingpro.schemas.sync_schema import SyncState
from bookingpro.utils import normalize_date, normalize_time, time_to_minutes, utcnow

MAX_SLOT_DURATION_MINUTES = 480
ALL_WEEKDAYS = (1, 2, 3, 4, 5, 6, 7)  # ISO: 1 = Monday, 7 = Sunday


class CompanyStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


class Company(BaseModel):
    """A bookable company with its operating-hours window."""

    model_config = ConfigDict(use_enum_values=True)

    id: Optional[int] = None
    name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    hours_start: str = "09:00"
    hours_end: str = "17:00"
    slot_duration_minutes: int = 30
    active_weekdays: list[int] = Field(default_factory=lambda: list(ALL_WEEKDAYS))
    status: CompanyStatus = CompanyStatus.ACTIVE

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("company name is required")
        return value.strip()

    @field_validator("hours_start", "hours_end", mode="before")
    @classmethod
    def _normalize_hours(cls, value: str) -> str:
        return normalize_time(value)

    @field_validator("active_weekdays")
    @classmethod
    def _weekdays_in_range(cls, value: list[int]) -> list[int]:
        unknown = [day for day in value if day not in ALL_WEEKDAYS]
        if unknown:
            raise ValueError(f"active_weekdays must be ISO weekdays 1-7, got {unknown}")
        return sorted(set(value))

    @model_validator(mode="after")
    def _check_window(self) -> "Company":
        if not 0 < self.slot_duration_minutes <= MAX_SLOT_DURATION_MINUTES:
            raise ValueError(
                f"slot_duration_minutes must be between 1 and {MAX_SLOT_DURATION_MINUTES}"
            )
        if time_to_minutes(self.hours_start) >= time_to_minutes(self.hours_end):
            raise ValueError("hours_start must be before hours_end")
        return self

    @property
    def is_active(self) -> bool:
        return self.status == CompanyStatus.ACTIVE.value


class BookingRequest(BaseModel):
    """Validated booking submission from the front-end form."""

    company_id: int
    service_type: str
    date: str
    time: str
    customer_name: str
    customer_email: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    session_id: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def _normalize_date(cls, value: str) -> str:
        return normalize_date(value)

    @field_validator("time", mode="before")
    @classmethod
    def _normalize_time(cls, value: str) -> str:
        return normalize_time(value)

    @field_validator("service_type", "customer_name")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("field is required")
        return value.strip()


class Booking(SyncState):
    """A stored booking. The slot key is (company_id, date, time)."""

    id: Optional[int] = None
    company_id: int
    service_type: str
    date: str
    time: str
    status: BookingStatus = BookingStatus.PENDING
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    session_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("date", mode="before")
    @classmethod
    def _normalize_date(cls, value: str) -> str:
        return normalize_date(value)

    @field_validator("time", mode="before")
    @classmethod
    def _normalize_time(cls, value: str) -> str:
        return normalize_time(value)

    @property
    def slot_key(self) -> str:
        return f"{self.date}_{self.time}"

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES


class TimeSlot(BaseModel):
    """One bookable slot on a company calendar."""

    date: str
    time: str
    display: str
    available: bool


class DayAvailability(BaseModel):
    """Calendar entry for a single date."""

    date: str
    day_number: int
    day_name: str
    full_date: str
    slots: list[TimeSlot] = Field(default_factory=list)

    @property
    def available_count(self) -> int:
        return sum(1 for slot in self.slots if slot.available)
