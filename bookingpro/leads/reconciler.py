"""
Lead reconciler: decide whether an incomplete lead should be reported.

The unload beacon races with the form's final autosave. A lead captured
before (or exactly when) the session ended is a genuine abandonment and
is reported. A lead first recorded after the session was already known
to be over is noise from a dead page and is suppressed.

    no termination record            -> allow
    lead.created_at <= terminated_at -> allow
    lead.created_at >  terminated_at -> block
"""

from bookingpro.errors import ValidationError
from bookingpro.leads.termination import SessionTerminationLog
from bookingpro.leads.tracker import LeadSessionTracker
from bookingpro.logging_context import get_session_logger, session_scope
from bookingpro.schemas.lead_schema import BlockDecision

logger = get_session_logger(__name__)

REASON_NO_TERMINATION = "session still active / no termination signal"
REASON_BEFORE_TERMINATION = "lead captured before session ended - legitimate abandonment to report"
REASON_AFTER_TERMINATION = "lead recorded after session already ended - treat as stale/duplicate, suppress"


class LeadReconciler:
    def __init__(self, tracker: LeadSessionTracker, terminations: SessionTerminationLog) -> None:
        self._tracker = tracker
        self._terminations = terminations

    def should_block_lead(self, session_id: str, lead_id: int) -> BlockDecision:
        """
        Join the lead with its session's termination record.

        Raises:
            NotFoundError: Unknown lead id.
            ValidationError: The lead belongs to a different session.
        """
        lead = self._tracker.get_lead(lead_id)
        if lead.session_id != session_id:
            raise ValidationError(
                f"Lead {lead_id} belongs to session {lead.session_id!r}, not {session_id!r}"
            )

        with session_scope(session_id):
            terminated_at = self._terminations.get_termination(session_id)
            if terminated_at is None:
                decision = BlockDecision(should_block=False, reason=REASON_NO_TERMINATION)
            elif lead.created_at <= terminated_at:
                decision = BlockDecision(should_block=False, reason=REASON_BEFORE_TERMINATION)
            else:
                decision = BlockDecision(should_block=True, reason=REASON_AFTER_TERMINATION)

            logger.info(
                "Lead %d %s: %s",
                lead_id, "BLOCKED" if decision.should_block else "ALLOWED", decision.reason,
            )
            return decision
