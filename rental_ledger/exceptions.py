"""
Typed errors raised by the ledger core.

Every error derives from LedgerError, which is a ValueError so that
callers written against plain ValueError keep working. Each class
carries a machine-readable `code` and a `details` dict that the API
layer returns unchanged.

    LedgerError
    +-- UnbalancedEntryError      candidate lines do not net to zero
    +-- UnknownAccountError       account code missing or inactive
    +-- DuplicatePostingError     source event already posted
    +-- InvalidBasisError         basis outside {cash, accrual}
    +-- InvalidPeriodError        malformed report period
    +-- AccountNotFoundError
    +-- EntryNotFoundError
    +-- ChartOfAccountsError      chart structure rule violated

ResolutionDegraded is not raised. It is attached to drill-down lines
whose counterpart could not be resolved.
"""

from decimal import Decimal
from typing import Any


class LedgerError(ValueError):
    """Base class for all ledger errors."""

    code = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UnbalancedEntryError(LedgerError):
    code = "UNBALANCED_ENTRY"

    def __init__(self, total_debit: Decimal, total_credit: Decimal):
        super().__init__(
            f"Entry does not balance: debits={total_debit}, "
            f"credits={total_credit}",
            {
                "total_debit": str(total_debit),
                "total_credit": str(total_credit),
                "difference": str(total_debit - total_credit),
            },
        )
        self.total_debit = total_debit
        self.total_credit = total_credit


class UnknownAccountError(LedgerError):
    code = "UNKNOWN_ACCOUNT"

    def __init__(self, missing: list[str], inactive: list[str] | None = None):
        inactive = inactive or []
        parts = []
        if missing:
            parts.append(f"unknown account codes: {', '.join(missing)}")
        if inactive:
            parts.append(f"inactive account codes: {', '.join(inactive)}")
        super().__init__(
            "Cannot post to " + "; ".join(parts),
            {"missing": missing, "inactive": inactive},
        )
        self.missing = missing
        self.inactive = inactive


class DuplicatePostingError(LedgerError):
    """
    The source event has already been posted.

    Not a failure from the caller's point of view: the posting
    service catches it and returns `existing` instead.
    """

    code = "DUPLICATE_POSTING"
    status_code = 409

    def __init__(self, existing, key: str):
        super().__init__(
            f"Source event already posted as entry {existing.id} ({key})",
            {"entry_id": existing.id, "key": key},
        )
        self.existing = existing


class InvalidBasisError(LedgerError):
    code = "INVALID_BASIS"

    def __init__(self, value: Any):
        super().__init__(
            f"Unknown accounting basis '{value}', expected 'cash' or 'accrual'",
            {"basis": str(value)},
        )


class InvalidPeriodError(LedgerError):
    code = "INVALID_PERIOD"


class AccountNotFoundError(LedgerError):
    code = "ACCOUNT_NOT_FOUND"
    status_code = 404

    def __init__(self, account_code: str):
        super().__init__(
            f"Account {account_code} not found",
            {"account_code": account_code},
        )


class EntryNotFoundError(LedgerError):
    code = "ENTRY_NOT_FOUND"
    status_code = 404

    def __init__(self, entry_id: int):
        super().__init__(
            f"Transaction entry {entry_id} not found",
            {"entry_id": entry_id},
        )


class ChartOfAccountsError(LedgerError):
    code = "CHART_OF_ACCOUNTS"


class ResolutionDegraded(Warning):
    """A provenance lookup failed; the line carries a placeholder name."""

    code = "RESOLUTION_DEGRADED"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.code}: {self.reason}"
