from decimal import Decimal
from typing import Optional


class LedgerError(Exception):
    """Base class for every error raised by the ledger and settlement engine"""


class InvalidSplitError(LedgerError):
    """Split parameters are missing or do not add up. Always a client input error."""

    def __init__(self, message: str, actual: Optional[Decimal] = None,
                 expected: Optional[Decimal] = None):
        super().__init__(message)
        self.message = message
        self.actual = actual
        self.expected = expected


class InconsistentLedgerError(LedgerError):
    """
    Balances handed to the simplifier do not sum to zero.

    This points at corrupted upstream data; callers must not retry or
    return a partial plan.
    """

    def __init__(self, message: str, creditor_total: Decimal, debtor_total: Decimal):
        super().__init__(message)
        self.message = message
        self.creditor_total = creditor_total
        self.debtor_total = debtor_total


class ExpenseNotFoundError(LedgerError):
    pass


class SettlementNotFoundError(LedgerError):
    pass


class SettlementStateError(LedgerError):
    """Illegal settlement status transition"""
