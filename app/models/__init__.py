"""SQLAlchemy models."""

from app.models.audit_entry import AuditEntry
from app.models.communication import DealCommunication
from app.models.deal import Deal
from app.models.score_history import ScoreHistoryEntry
from app.models.sweep_run import SweepRun

__all__ = ["AuditEntry", "Deal", "DealCommunication", "ScoreHistoryEntry", "SweepRun"]
