"""Incomplete-lead and session-termination data models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from bookingpro.schemas.sync_schema import SyncState
from bookingpro.utils import utcnow


class LeadStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


# Fields counted towards completion_percentage.
TRACKED_FIELDS = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "zip_code",
    "service",
    "company",
)

# Alternate form field names mapped onto lead columns.
FIELD_ALIASES: dict[str, str] = {
    "name": "customer_name",
    "full_name": "customer_name",
    "email": "customer_email",
    "phone": "customer_phone",
    "zip": "zip_code",
    "zipcode": "zip_code",
    "service_type": "service",
    "company_name": "company",
}


class IncompleteLead(SyncState):
    """A partially completed booking form, one row per session while processing."""

    id: Optional[int] = None
    session_id: str
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    zip_code: str = ""
    service: str = ""
    company: str = ""
    form_step: int = 0
    extra: dict[str, Any] = Field(default_factory=dict)
    completion_percentage: int = 0
    status: LeadStatus = LeadStatus.PROCESSING
    booking_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    last_updated: datetime = Field(default_factory=utcnow)

    @property
    def quality(self) -> str:
        return lead_quality(self.completion_percentage)


class SessionTermination(BaseModel):
    """Page-unload signal for one browser session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    terminated_at: datetime
    expires_at: datetime


class BlockDecision(BaseModel):
    """Outcome of reconciling a lead against its session's termination."""

    should_block: bool
    reason: str


def calculate_completion(fields: dict[str, Any]) -> int:
    """Percentage of TRACKED_FIELDS holding a non-empty value."""
    filled = sum(1 for name in TRACKED_FIELDS if fields.get(name))
    return round(filled / len(TRACKED_FIELDS) * 100)


def lead_quality(completion_percentage: int) -> str:
    if completion_percentage >= 90:
        return "High Quality"
    if completion_percentage >= 50:
        return "Medium Quality"
    return "Initial Interest"
