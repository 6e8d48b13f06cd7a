"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored. An invalid account_type
or entry source is caught at the database level, not just
in Python validation.
"""

import enum

from rental_ledger.exceptions import InvalidBasisError


class AccountType(str, enum.Enum):
    """The five fundamental accounting categories."""
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"

    @property
    def is_debit_normal(self) -> bool:
        return self in (AccountType.ASSET, AccountType.EXPENSE)

    @property
    def is_balance_sheet(self) -> bool:
        return self in (
            AccountType.ASSET, AccountType.LIABILITY, AccountType.EQUITY
        )


class TransactionType(str, enum.Enum):
    """Kind of business event behind a transaction header."""
    APPROVAL = "APPROVAL"
    PAYMENT = "PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"
    ACCRUAL = "ACCRUAL"
    OTHER = "OTHER"


class EntrySource(str, enum.Enum):
    """The workflow that produced a transaction entry."""
    PAYMENT = "payment"
    RENTAL_PAYMENT = "rental_payment"
    ADVANCE_PAYMENT = "advance_payment"
    DEBT_SETTLEMENT = "debt_settlement"
    EXPENSE_PAYMENT = "expense_payment"
    VENDOR_PAYMENT = "vendor_payment"
    BANK_TRANSFER = "bank_transfer"
    PETTY_CASH = "petty_cash"
    MANUAL = "manual"
    RENTAL_ACCRUAL = "rental_accrual"
    EXPENSE_ACCRUAL = "expense_accrual"
    MAINTENANCE_APPROVAL = "maintenance_approval"
    ADJUSTMENT = "adjustment"
    OTHER = "other"


class SourceKind(str, enum.Enum):
    """Kind of record a transaction entry points back to."""
    PAYMENT = "payment"
    EXPENSE = "expense"
    DEBTOR = "debtor"
    VENDOR = "vendor"
    REQUEST = "request"
    TRANSACTION_ENTRY = "transaction_entry"


class EntryStatus(str, enum.Enum):
    POSTED = "POSTED"
    REVERSED = "REVERSED"


class Basis(str, enum.Enum):
    """Which entries count toward a balance or report."""
    CASH = "cash"
    ACCRUAL = "accrual"

    @classmethod
    def parse(cls, value: "Basis | str") -> "Basis":
        if isinstance(value, Basis):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidBasisError(value) from None
