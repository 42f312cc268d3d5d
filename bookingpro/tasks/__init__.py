from bookingpro.tasks.queue import ScheduledTask, TaskScheduler
from bookingpro.tasks.schemas import (
    PurgeTerminationsTask,
    ReapStuckLeadsTask,
    SyncBookingTask,
    SyncLeadTask,
    TaskKind,
)

__all__ = [
    "TaskScheduler",
    "ScheduledTask",
    "TaskKind",
    "SyncBookingTask",
    "SyncLeadTask",
    "ReapStuckLeadsTask",
    "PurgeTerminationsTask",
]
