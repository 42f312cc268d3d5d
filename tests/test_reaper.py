"""Tests for the stuck-lead reaper."""

from datetime import timedelta

import pytest

from bookingpro.leads.reaper import StuckLeadReaper
from bookingpro.leads.tracker import LeadSessionTracker
from bookingpro.storage.store import TABLE_LEADS, InMemoryStore


class AutosaveDuringSweep(InMemoryStore):
    """Touches every processing lead right after the reaper's scan reads it."""

    def __init__(self, clock) -> None:
        super().__init__()
        self.clock = clock
        self.armed = False

    def query(self, table, criteria=None):
        rows = super().query(table, criteria)
        if self.armed and table == TABLE_LEADS and criteria == {"status": "processing"}:
            for row in rows:
                super().update(table, {"id": row["id"]}, {"last_updated": self.clock()})
        return rows


@pytest.fixture
def tracker(store, clock):
    return LeadSessionTracker(store, clock=clock)


@pytest.fixture
def reaper(store, clock):
    return StuckLeadReaper(store, clock=clock)


class TestReapStuckLeads:
    def test_idle_lead_abandoned(self, reaper, tracker, clock):
        lead_id = tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        clock.advance(minutes=11)

        stats = reaper.reap_stuck_leads(timedelta(minutes=10))

        assert stats.leads_cleaned == 1
        assert stats.sessions_affected == 1
        assert stats.lead_ids == [lead_id]
        assert stats.last_cleanup == clock()
        lead = tracker.get_lead(lead_id)
        assert lead.status == "abandoned"
        assert lead.last_updated == clock()

    def test_recent_lead_untouched(self, reaper, tracker, clock):
        lead_id = tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        clock.advance(minutes=5)
        assert reaper.reap_stuck_leads().leads_cleaned == 0
        assert tracker.get_lead(lead_id).status == "processing"

    def test_exactly_at_timeout_untouched(self, reaper, tracker, clock):
        tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        clock.advance(minutes=10)
        assert reaper.reap_stuck_leads().leads_cleaned == 0

    def test_second_run_cleans_nothing(self, reaper, tracker, clock):
        tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        tracker.upsert_incomplete_lead("s2", {"name": "Sam"})
        clock.advance(minutes=15)

        assert reaper.reap_stuck_leads().leads_cleaned == 2
        assert reaper.reap_stuck_leads().leads_cleaned == 0

    def test_complete_leads_ignored(self, reaper, tracker, clock):
        lead_id = tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        tracker.mark_complete(lead_id)
        clock.advance(hours=1)
        assert reaper.reap_stuck_leads().leads_cleaned == 0
        assert tracker.get_lead(lead_id).status == "complete"

    def test_autosave_during_sweep_wins(self, clock):
        store = AutosaveDuringSweep(clock)
        tracker = LeadSessionTracker(store, clock=clock)
        reaper = StuckLeadReaper(store, clock=clock)
        lead_id = tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        clock.advance(minutes=20)
        store.armed = True

        assert reaper.reap_stuck_leads().leads_cleaned == 0
        assert tracker.get_lead(lead_id).status == "processing"

    def test_timeout_must_be_positive(self, reaper):
        with pytest.raises(ValueError):
            reaper.reap_stuck_leads(timedelta(0))


class TestCleanupStats:
    def test_totals_accumulate(self, reaper, tracker, clock):
        tracker.upsert_incomplete_lead("s1", {})
        clock.advance(minutes=11)
        reaper.reap_stuck_leads()
        tracker.upsert_incomplete_lead("s2", {})
        tracker.upsert_incomplete_lead("s3", {})
        clock.advance(minutes=11)
        reaper.reap_stuck_leads()

        totals = reaper.get_cleanup_stats()
        assert totals.runs == 2
        assert totals.leads_cleaned == 3
        assert totals.sessions_affected == 3
        assert totals.last_cleanup == clock()

    def test_stats_are_a_snapshot(self, reaper):
        totals = reaper.get_cleanup_stats()
        totals.runs = 99
        assert reaper.get_cleanup_stats().runs == 0
