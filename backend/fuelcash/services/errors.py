# Overview: Business error taxonomy for the cash custody chain and settlements.

from __future__ import annotations


class CashCustodyError(Exception):
    """Base class for expected, caller-facing business errors."""
    pass


class NotFound(CashCustodyError):
    """Raised when a handover, station, settlement or user does not exist."""
    pass


class SequenceViolation(CashCustodyError):
    """Raised when the prior custody stage has not been confirmed or resolved."""

    def __init__(self, message: str, required_stage=None):
        super().__init__(message)
        self.required_stage = required_stage


class InvalidState(CashCustodyError):
    """Raised when a transition is not legal from the record's current status."""

    def __init__(self, message: str, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status


class UnresolvedRecipient(CashCustodyError):
    """Raised when the receiving party of a handover cannot be determined."""
    pass


class NotRecipient(CashCustodyError):
    """Raised when someone other than the receiving party tries to confirm a handover."""
    pass


class DuplicateSettlement(CashCustodyError):
    """Raised when a settlement already exists for the station and date."""
    pass


class InvalidReadingSet(CashCustodyError):
    """Raised when the readings offered for a settlement cannot be settled."""

    def __init__(self, message: str, reading_ids=None):
        super().__init__(message)
        self.reading_ids = sorted(reading_ids or [])
