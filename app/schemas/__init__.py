"""Pydantic schemas for request/response validation."""

from app.schemas.deal import (
    ArchiveRequest,
    AuditEntryRead,
    AuditList,
    CallScoreInput,
    CommunicationRequest,
    DealCreate,
    DealRead,
    ExternalEventRequest,
    HistoryEntryRead,
    HistoryList,
    InvitesUpdate,
    MilestoneRequest,
    ScoreBreakdownRead,
    SentRequest,
    SnoozeRequest,
    TerminalStatusRequest,
    TierUpdate,
)
from app.schemas.pipeline import BucketRead, PipelineAggregatesRead, ScoringConfigRead

__all__ = [
    "ArchiveRequest",
    "AuditEntryRead",
    "AuditList",
    "BucketRead",
    "CallScoreInput",
    "CommunicationRequest",
    "DealCreate",
    "DealRead",
    "ExternalEventRequest",
    "HistoryEntryRead",
    "HistoryList",
    "InvitesUpdate",
    "MilestoneRequest",
    "PipelineAggregatesRead",
    "ScoreBreakdownRead",
    "ScoringConfigRead",
    "SentRequest",
    "SnoozeRequest",
    "TerminalStatusRequest",
    "TierUpdate",
]
