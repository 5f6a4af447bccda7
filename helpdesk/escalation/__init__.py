"""Recurring sweep that reminds agents about stale unanswered tickets."""

from .scheduler import EscalationScheduler, SweepResult, UnansweredTicket, is_answered

__all__ = ["EscalationScheduler", "SweepResult", "UnansweredTicket", "is_answered"]
