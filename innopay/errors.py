"""
Error taxonomy for settlement and debt reconciliation.

Only ValidationError and SettlementFailed are meant to reach an end user.
LedgerError and DebtStoreError are recovered or logged inside the services;
InvalidTransition is returned to the (authenticated) caller that asked for
the status change.
"""
from typing import Iterable, Optional


class InnopayError(Exception):
    """Base class for all domain errors."""


class ValidationError(InnopayError):
    """Request rejected before any transfer was attempted."""


class LedgerError(InnopayError):
    """A single ledger transfer failed (balance, network or rejection)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class DebtStoreError(InnopayError):
    """The debt audit trail could not be written or read."""


class SettlementFailed(InnopayError):
    """The restaurant could not be paid in either asset."""


class InvalidTransition(InnopayError):
    def __init__(self, debt_ids: Iterable[str], current: str, requested: str):
        self.debt_ids = list(debt_ids)
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot move debt(s) {', '.join(self.debt_ids)} from '{current}' to '{requested}'"
        )


class DebtNotFound(InnopayError):
    def __init__(self, debt_ids: Iterable[str]):
        self.debt_ids = list(debt_ids)
        super().__init__(f"Debt(s) not found: {', '.join(self.debt_ids)}")
