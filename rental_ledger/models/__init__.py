"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from rental_ledger.models.base import Base
from rental_ledger.models.enums import (
    AccountType,
    Basis,
    EntrySource,
    EntryStatus,
    SourceKind,
    TransactionType,
)
from rental_ledger.models.account import Account
from rental_ledger.models.transaction import Transaction
from rental_ledger.models.transaction_entry import TransactionEntry, EntryLine
from rental_ledger.models.counterparty_balance import CounterpartyBalance

__all__ = [
    "Base",
    "AccountType",
    "Basis",
    "EntrySource",
    "EntryStatus",
    "SourceKind",
    "TransactionType",
    "Account",
    "Transaction",
    "TransactionEntry",
    "EntryLine",
    "CounterpartyBalance",
]
