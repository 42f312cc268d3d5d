"""
Typed deferred-task queue with recurring timers.

Each task kind has a fixed payload schema and exactly one handler.
Handlers are registered by kind at startup; scheduling an unregistered
kind or a payload of the wrong type fails immediately, in the request
that scheduled it, rather than later in the worker.

Tasks run from ``run_due()`` (tests, cron-style callers) or from the
``run_forever()`` worker loop. A failing handler is logged and dropped;
the exception never reaches whoever scheduled the task.

Usage:
    scheduler = TaskScheduler(clock=utcnow)
    scheduler.register_handler(TaskKind.SYNC_BOOKING, gateway_handler)
    scheduler.schedule_once(120, TaskKind.SYNC_BOOKING, SyncBookingTask(booking_id=7))
    scheduler.run_due()
"""

import heapq
import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from bookingpro.tasks.schemas import TASK_PAYLOADS, TaskKind, TaskPayload
from bookingpro.utils import utcnow

logger = logging.getLogger(__name__)

Handler = Callable[[TaskPayload], object]


@dataclass(order=True)
class ScheduledTask:
    """A pending one-shot run, ordered by due time then insertion order."""

    run_at: datetime
    sequence: int
    kind: TaskKind = field(compare=False)
    payload: TaskPayload = field(compare=False)
    recurring_interval: Optional[timedelta] = field(default=None, compare=False)


class TaskScheduler:
    """
    In-process scheduler for one-shot and recurring tasks.

    Thread-safe: request threads schedule while the worker thread runs
    due tasks. Handlers execute outside the lock.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._handlers: dict[TaskKind, Handler] = {}
        self._queue: list[ScheduledTask] = []
        self._counter = itertools.count()
        self._lock = threading.Lock()
        self.executed: int = 0
        self.failed: int = 0

    def register_handler(self, kind: TaskKind, handler: Handler) -> None:
        """Register the handler for a task kind, replacing any previous one."""
        self._handlers[kind] = handler
        logger.debug("Task handler registered: %s", kind.value)

    def get_registered_kinds(self) -> list[TaskKind]:
        return list(self._handlers.keys())

    def _check(self, kind: TaskKind, payload: TaskPayload) -> None:
        if kind not in self._handlers:
            registered = [k.value for k in self._handlers]
            raise KeyError(f"Task kind '{kind.value}' not registered. Available: {registered}")
        expected = TASK_PAYLOADS[kind]
        if not isinstance(payload, expected):
            raise TypeError(
                f"Task '{kind.value}' expects {expected.__name__}, got {type(payload).__name__}"
            )

    def _push(self, task: ScheduledTask) -> None:
        with self._lock:
            heapq.heappush(self._queue, task)

    def schedule_once(self, delay: float, kind: TaskKind, payload: TaskPayload) -> ScheduledTask:
        """Run ``kind`` once, ``delay`` seconds from now."""
        self._check(kind, payload)
        task = ScheduledTask(
            run_at=self._clock() + timedelta(seconds=max(delay, 0)),
            sequence=next(self._counter),
            kind=kind,
            payload=payload,
        )
        self._push(task)
        logger.debug("Scheduled %s at %s", kind.value, task.run_at.isoformat())
        return task

    def register_recurring(
        self,
        interval: float,
        kind: TaskKind,
        payload: TaskPayload,
        run_immediately: bool = False,
    ) -> ScheduledTask:
        """Run ``kind`` every ``interval`` seconds until the scheduler stops."""
        if interval <= 0:
            raise ValueError(f"Recurring interval must be > 0, got {interval}")
        self._check(kind, payload)
        every = timedelta(seconds=interval)
        first = self._clock() if run_immediately else self._clock() + every
        task = ScheduledTask(
            run_at=first,
            sequence=next(self._counter),
            kind=kind,
            payload=payload,
            recurring_interval=every,
        )
        self._push(task)
        logger.info("Recurring task %s registered every %ss", kind.value, interval)
        return task

    def pending(self, kind: Optional[TaskKind] = None) -> list[ScheduledTask]:
        """Snapshot of queued tasks in due order, optionally of one kind."""
        with self._lock:
            tasks = sorted(self._queue)
        if kind is None:
            return tasks
        return [task for task in tasks if task.kind == kind]

    def next_run_at(self) -> Optional[datetime]:
        with self._lock:
            return self._queue[0].run_at if self._queue else None

    def _pop_due(self, now: datetime) -> Optional[ScheduledTask]:
        with self._lock:
            if self._queue and self._queue[0].run_at <= now:
                return heapq.heappop(self._queue)
            return None

    def _execute(self, task: ScheduledTask) -> None:
        handler = self._handlers[task.kind]
        try:
            handler(task.payload)
            self.executed += 1
        except Exception:
            self.failed += 1
            logger.exception("Background task %s failed", task.kind.value)

    def run_due(self) -> int:
        """Execute every task due at the current clock time. Returns how many ran.

        Tasks scheduled by handlers during this call run only if already due.
        """
        now = self._clock()
        ran = 0
        while True:
            task = self._pop_due(now)
            if task is None:
                break
            if task.recurring_interval is not None:
                self._push(ScheduledTask(
                    run_at=now + task.recurring_interval,
                    sequence=next(self._counter),
                    kind=task.kind,
                    payload=task.payload,
                    recurring_interval=task.recurring_interval,
                ))
            self._execute(task)
            ran += 1
        return ran

    def run_forever(self, stop_event: threading.Event, poll_interval: float = 1.0) -> None:
        """Worker loop: run due tasks until ``stop_event`` is set."""
        logger.info("Task worker started")
        while not stop_event.is_set():
            self.run_due()
            next_at = self.next_run_at()
            wait = poll_interval
            if next_at is not None:
                wait = min(poll_interval, max((next_at - self._clock()).total_seconds(), 0.0))
            stop_event.wait(wait)
        logger.info("Task worker stopped")
