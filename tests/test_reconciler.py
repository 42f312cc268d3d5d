"""Tests for lead/termination reconciliation."""

import pytest

from bookingpro.errors import NotFoundError, ValidationError
from bookingpro.leads.reconciler import (
    REASON_AFTER_TERMINATION,
    REASON_BEFORE_TERMINATION,
    REASON_NO_TERMINATION,
    LeadReconciler,
)
from bookingpro.leads.termination import SessionTerminationLog
from bookingpro.leads.tracker import LeadSessionTracker


@pytest.fixture
def tracker(store, clock):
    return LeadSessionTracker(store, clock=clock)


@pytest.fixture
def terminations(store, clock):
    return SessionTerminationLog(store, clock=clock)


@pytest.fixture
def reconciler(tracker, terminations):
    return LeadReconciler(tracker, terminations)


class TestShouldBlockLead:
    def test_no_termination_allows(self, reconciler, tracker):
        lead_id = tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        decision = reconciler.should_block_lead("s1", lead_id)
        assert decision.should_block is False
        assert decision.reason == REASON_NO_TERMINATION

    def test_lead_before_termination_allows(self, reconciler, tracker, terminations, clock):
        lead_id = tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        clock.advance(seconds=5)
        terminations.record_termination("s1")

        decision = reconciler.should_block_lead("s1", lead_id)
        assert decision.should_block is False
        assert decision.reason == REASON_BEFORE_TERMINATION

    def test_lead_after_termination_blocks(self, reconciler, tracker, terminations, clock):
        terminations.record_termination("s1")
        clock.advance(seconds=2)
        lead_id = tracker.upsert_incomplete_lead("s1", {"email": "late@example.com"})

        decision = reconciler.should_block_lead("s1", lead_id)
        assert decision.should_block is True
        assert decision.reason == REASON_AFTER_TERMINATION

    def test_equal_timestamps_allow(self, reconciler, tracker, terminations):
        lead_id = tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        terminations.record_termination("s1")  # same clock reading
        assert reconciler.should_block_lead("s1", lead_id).should_block is False

    def test_uses_creation_not_last_update(self, reconciler, tracker, terminations, clock):
        lead_id = tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        clock.advance(seconds=5)
        terminations.record_termination("s1")
        clock.advance(seconds=1)
        tracker.upsert_incomplete_lead("s1", {"email": "j@d.co"})  # final autosave lands late
        assert reconciler.should_block_lead("s1", lead_id).should_block is False

    def test_expired_termination_treated_as_absent(self, reconciler, tracker, terminations, clock):
        terminations.record_termination("s1")
        clock.advance(seconds=1)
        lead_id = tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        clock.advance(hours=25)
        assert reconciler.should_block_lead("s1", lead_id).reason == REASON_NO_TERMINATION

    def test_termination_of_other_session_ignored(self, reconciler, tracker, terminations, clock):
        terminations.record_termination("s2")
        clock.advance(seconds=1)
        lead_id = tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        assert reconciler.should_block_lead("s1", lead_id).should_block is False

    def test_session_mismatch(self, reconciler, tracker):
        lead_id = tracker.upsert_incomplete_lead("s1", {"name": "Jane"})
        with pytest.raises(ValidationError):
            reconciler.should_block_lead("s2", lead_id)

    def test_unknown_lead(self, reconciler):
        with pytest.raises(NotFoundError):
            reconciler.should_block_lead("s1", 404)
