"""
Row store boundary and the in-memory engine behind it.

The core only needs four operations: insert, update, query and get.
Filters are equality maps; a list/tuple/set value means "field in values".
Every ``update`` is applied atomically, so putting the expected prior
state into the filter turns it into a compare-and-set. ``insert`` takes an
optional ``unique_on`` filter that makes it a conditional insert.

Usage:
    store = InMemoryStore()
    lead_id = store.insert("leads", {"session_id": "s1", "status": "processing"})
    changed = store.update("leads", {"id": lead_id, "status": "processing"},
                           {"status": "abandoned"})
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from bookingpro.errors import NotFoundError, RowConflict, StorageUnavailable

logger = logging.getLogger(__name__)

Row = dict[str, Any]
Filter = dict[str, Any]

TABLE_BOOKINGS = "bookings"
TABLE_COMPANIES = "companies"
TABLE_LEADS = "incomplete_leads"
TABLE_TERMINATIONS = "session_terminations"


def _value_matches(actual: Any, expected: Any) -> bool:
    if isinstance(expected, (list, tuple, set, frozenset)):
        return any(actual == candidate for candidate in expected)
    return actual == expected


def row_matches(row: Row, criteria: Optional[Filter]) -> bool:
    """Check whether ``row`` satisfies every field in ``criteria``."""
    if not criteria:
        return True
    return all(_value_matches(row.get(name), expected) for name, expected in criteria.items())


class RowStore(ABC):
    """Storage boundary consumed by every component."""

    @abstractmethod
    def insert(self, table: str, row: Row, unique_on: Optional[Filter] = None) -> int:
        """Add a row and return its id; raise RowConflict if ``unique_on`` matches."""

    @abstractmethod
    def update(self, table: str, criteria: Filter, patch: Row) -> int:
        """Patch every row matching ``criteria`` atomically; return how many changed."""

    @abstractmethod
    def query(self, table: str, criteria: Optional[Filter] = None) -> list[Row]:
        """Copies of every row matching ``criteria``."""

    def get(self, table: str, row_id: int) -> Row:
        rows = self.query(table, {"id": row_id})
        if not rows:
            raise NotFoundError(f"No row {row_id} in '{table}'")
        return rows[0]

    @abstractmethod
    def delete(self, table: str, criteria: Filter) -> int:
        """Remove every row matching ``criteria``; return how many went."""


class InMemoryStore(RowStore):
    """
    Thread-safe dict-backed store.

    Rows are deep-copied on the way in and out so callers never share
    mutable state with the store. After ``close()`` every call raises
    StorageUnavailable, the same way a dropped database connection would.
    """

    def __init__(self, tables: Iterable[str] = ()) -> None:
        self._lock = threading.RLock()
        self._tables: dict[str, dict[int, Row]] = {name: {} for name in tables}
        self._sequences: dict[str, int] = {}
        self._closed = False

    def _table(self, table: str) -> dict[int, Row]:
        if self._closed:
            raise StorageUnavailable(f"Store is closed (table '{table}')")
        return self._tables.setdefault(table, {})

    def insert(self, table: str, row: Row, unique_on: Optional[Filter] = None) -> int:
        with self._lock:
            rows = self._table(table)
            if unique_on is not None:
                for existing_id, existing in rows.items():
                    if row_matches(existing, unique_on):
                        raise RowConflict(table, existing_id)
            row_id = self._sequences.get(table, 0) + 1
            self._sequences[table] = row_id
            stored = copy.deepcopy(row)
            stored["id"] = row_id
            rows[row_id] = stored
            logger.debug("Inserted row %d into '%s'", row_id, table)
            return row_id

    def update(self, table: str, criteria: Filter, patch: Row) -> int:
        if "id" in patch:
            raise ValueError("Row ids are immutable")
        with self._lock:
            rows = self._table(table)
            changed = 0
            for row in rows.values():
                if row_matches(row, criteria):
                    row.update(copy.deepcopy(patch))
                    changed += 1
            logger.debug("Updated %d row(s) in '%s' matching %s", changed, table, criteria)
            return changed

    def query(self, table: str, criteria: Optional[Filter] = None) -> list[Row]:
        with self._lock:
            rows = self._table(table)
            return [
                copy.deepcopy(row)
                for _, row in sorted(rows.items())
                if row_matches(row, criteria)
            ]

    def delete(self, table: str, criteria: Filter) -> int:
        with self._lock:
            rows = self._table(table)
            doomed = [row_id for row_id, row in rows.items() if row_matches(row, criteria)]
            for row_id in doomed:
                del rows[row_id]
            return len(doomed)

    def close(self) -> None:
        with self._lock:
            self._closed = True
        logger.info("In-memory store closed")

    @property
    def closed(self) -> bool:
        return self._closed
