"""Sync-state fields and webhook payload models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class SyncStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class SyncAction(str, Enum):
    INCOMPLETE_LEAD = "incomplete_lead"
    BOOKING_COMPLETE = "booking_complete"


class SyncState(BaseModel):
    """Attempt counter attached to every synced entity."""

    model_config = ConfigDict(use_enum_values=True)

    sync_status: SyncStatus = SyncStatus.PENDING
    sync_attempts: int = 0
    last_sync_attempt_at: Optional[datetime] = None
    last_sync_error: Optional[str] = None


class WebhookPayload(BaseModel):
    """Fields the Google Sheets script reads. Unknown extras pass through."""

    model_config = ConfigDict(extra="allow", use_enum_values=True)

    session_id: str = ""
    action: SyncAction = SyncAction.INCOMPLETE_LEAD
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    service: str = ""
    company: str = ""
    booking_date: str = ""
    booking_time: str = ""
    status: str = ""

    def to_body(self) -> dict[str, Any]:
        return self.model_dump()
