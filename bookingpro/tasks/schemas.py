"""Task kinds and their payload schemas."""

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, Field


class TaskKind(str, Enum):
    SYNC_BOOKING = "sync_booking"
    SYNC_LEAD = "sync_lead"
    REAP_STUCK_LEADS = "reap_stuck_leads"
    PURGE_TERMINATIONS = "purge_terminations"


class SyncBookingTask(BaseModel):
    booking_id: int
    payload: dict[str, Any] = Field(default_factory=dict)


class SyncLeadTask(BaseModel):
    lead_id: int
    session_id: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ReapStuckLeadsTask(BaseModel):
    timeout_minutes: float


class PurgeTerminationsTask(BaseModel):
    pass


TaskPayload = Union[SyncBookingTask, SyncLeadTask, ReapStuckLeadsTask, PurgeTerminationsTask]

TASK_PAYLOADS: dict[TaskKind, type] = {
    TaskKind.SYNC_BOOKING: SyncBookingTask,
    TaskKind.SYNC_LEAD: SyncLeadTask,
    TaskKind.REAP_STUCK_LEADS: ReapStuckLeadsTask,
    TaskKind.PURGE_TERMINATIONS: PurgeTerminationsTask,
}
