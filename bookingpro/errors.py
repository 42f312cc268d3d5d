"""Exception hierarchy shared by the booking core.

Request-path errors (validation, conflicts, storage failures) propagate
to the caller. Sync and reaping errors stay inside their background task
and are recorded on the entity instead.
"""

from typing import Optional


class BookingProError(Exception):
    """Base class for all booking core errors."""


class StorageUnavailable(BookingProError):
    """A read or write against the row store failed.

    Never treated as "slot free" or "slot booked"; callers must surface it.
    """


class ValidationError(BookingProError, ValueError):
    """Malformed company id, date, time, or payload, rejected before store access."""


class NotFoundError(BookingProError, KeyError):
    """A referenced row does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "not found"


class RowConflict(BookingProError):
    """A conditional insert found an existing row matching its unique filter."""

    def __init__(self, table: str, existing_id: int) -> None:
        super().__init__(f"Row {existing_id} in '{table}' already matches the unique filter")
        self.table = table
        self.existing_id = existing_id


class SlotConflictError(BookingProError):
    """An active booking already occupies the requested (company, date, time)."""

    def __init__(self, company_id: int, date: str, time: str) -> None:
        super().__init__(f"Slot {date} {time} is already booked for company {company_id}")
        self.company_id = company_id
        self.date = date
        self.time = time


class InvalidStatusTransition(BookingProError):
    """A status change was attempted from a state that does not allow it."""


class SyncTransportError(BookingProError):
    """Network error, timeout, or non-2xx response from the sync webhook."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryCapExceeded(BookingProError):
    """An entity used up its sync attempts. Logged and stored, never raised to users."""

    def __init__(self, table: str, entity_id: int, attempts: int) -> None:
        super().__init__(
            f"Sync for {table} #{entity_id} gave up after {attempts} attempt(s)"
        )
        self.table = table
        self.entity_id = entity_id
        self.attempts = attempts
