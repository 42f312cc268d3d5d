"""
Stuck-lead reaper: reclaim leads left in ``processing`` past a timeout.

Runs as a recurring task, independent of any request. Each lead is moved
with a conditional update guarded by ``status == processing`` and the
``last_updated`` value the scan saw, so a lead that receives an autosave
mid-sweep is left alone. Running twice in a row cleans nothing the
second time.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from bookingpro.schemas.lead_schema import LeadStatus
from bookingpro.storage.store import TABLE_LEADS, RowStore
from bookingpro.utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = timedelta(minutes=10)


@dataclass
class ReapStats:
    """Outcome of one sweep."""

    leads_cleaned: int = 0
    sessions_affected: int = 0
    lead_ids: list[int] = field(default_factory=list)
    last_cleanup: Optional[datetime] = None


@dataclass
class CleanupTotals:
    """Running totals across sweeps, for operators."""

    runs: int = 0
    leads_cleaned: int = 0
    sessions_affected: int = 0
    last_cleanup: Optional[datetime] = None


class StuckLeadReaper:
    def __init__(self, store: RowStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock
        self._totals = CleanupTotals()

    def reap_stuck_leads(self, timeout: timedelta = DEFAULT_TIMEOUT) -> ReapStats:
        """Mark every processing lead idle for longer than ``timeout`` as abandoned."""
        if timeout <= timedelta(0):
            raise ValueError(f"timeout must be positive, got {timeout}")
        now = self._clock()
        cutoff = now - timeout

        candidates = [
            row
            for row in self._store.query(TABLE_LEADS, {"status": LeadStatus.PROCESSING.value})
            if row["last_updated"] < cutoff
        ]

        stats = ReapStats(last_cleanup=now)
        sessions: set[str] = set()
        for row in candidates:
            changed = self._store.update(
                TABLE_LEADS,
                {
                    "id": row["id"],
                    "status": LeadStatus.PROCESSING.value,
                    "last_updated": row["last_updated"],
                },
                {"status": LeadStatus.ABANDONED.value, "last_updated": now},
            )
            if changed:
                stats.lead_ids.append(row["id"])
                sessions.add(row["session_id"])
            else:
                logger.debug("Lead %d changed during sweep, skipped", row["id"])

        stats.leads_cleaned = len(stats.lead_ids)
        stats.sessions_affected = len(sessions)

        self._totals.runs += 1
        self._totals.leads_cleaned += stats.leads_cleaned
        self._totals.sessions_affected += stats.sessions_affected
        self._totals.last_cleanup = now

        if stats.leads_cleaned:
            logger.info(
                "Reaped %d stuck lead(s) across %d session(s) (idle > %s)",
                stats.leads_cleaned, stats.sessions_affected, timeout,
            )
        else:
            logger.debug("No stuck leads older than %s", cutoff.isoformat())
        return stats

    def get_cleanup_stats(self) -> CleanupTotals:
        return CleanupTotals(**vars(self._totals))
