"""Deal pipeline error taxonomy."""

from __future__ import annotations

from app.scoring_config.validator import ConfigurationError

__all__ = [
    "ConfigurationError",
    "DealNotFoundError",
    "InvalidDealEvent",
    "LifecycleViolation",
    "LoggingFailure",
    "RecalculationFailure",
]


class DealNotFoundError(LookupError):
    """Raised when a deal id does not exist."""

    def __init__(self, deal_id: int) -> None:
        self.deal_id = deal_id
        super().__init__(f"Deal {deal_id} not found")


class LifecycleViolation(Exception):
    """Raised when a lifecycle transition is illegal or its guard fails.

    Raised before any mutation: the caller sees the rejection and nothing is written.
    """

    def __init__(self, deal_id: int | None, command: str, reason: str) -> None:
        self.deal_id = deal_id
        self.command = command
        self.reason = reason
        super().__init__(f"{command} rejected for deal {deal_id}: {reason}")


class InvalidDealEvent(ValueError):
    """Raised when an inbound event is malformed (unknown factor value, rewound milestone)."""


class RecalculationFailure(Exception):
    """Raised when computing or persisting one deal's score failed.

    The deal keeps its last persisted score.
    """

    def __init__(self, deal_id: int, cause: BaseException) -> None:
        self.deal_id = deal_id
        self.cause = cause
        super().__init__(f"Recalculation failed for deal {deal_id}: {cause}")


class LoggingFailure(Exception):
    """A history or audit row could not be written. Reported as a warning, never raised to callers."""

    def __init__(self, deal_id: int, entry_kind: str, cause: BaseException) -> None:
        self.deal_id = deal_id
        self.entry_kind = entry_kind
        self.cause = cause
        super().__init__(f"Could not append {entry_kind} entry for deal {deal_id}: {cause}")
