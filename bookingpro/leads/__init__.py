from bookingpro.leads.reaper import ReapStats, StuckLeadReaper
from bookingpro.leads.reconciler import LeadReconciler
from bookingpro.leads.termination import SessionTerminationLog
from bookingpro.leads.tracker import LeadSessionTracker

__all__ = [
    "LeadSessionTracker",
    "SessionTerminationLog",
    "LeadReconciler",
    "StuckLeadReaper",
    "ReapStats",
]
