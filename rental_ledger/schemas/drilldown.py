"""
Pydantic schemas for drill-down results.
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel

from rental_ledger.models.enums import Basis, EntrySource, SourceKind


class DrillDownLine(BaseModel):
    """One ledger line that contributed to the account's balance."""
    entry_id: int
    transaction_id: str
    date: dt.date
    account_code: str
    account_name: str
    description: str
    reference: str | None
    source: EntrySource
    source_model: SourceKind | None
    source_id: str | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal
    counterpart: str
    # source, metadata, description or unresolved
    resolved_from: str
    residence_id: str | None
    residence_name: str | None
    warning: str | None = None


class ChildSubtotal(BaseModel):
    account_code: str
    account_name: str
    debit_total: Decimal
    credit_total: Decimal
    net: Decimal
    line_count: int


class DrillDownSummary(BaseModel):
    line_count: int
    total_debit: Decimal
    total_credit: Decimal
    net: Decimal
    unresolved_count: int


class DrillDownResponse(BaseModel):
    account_code: str
    account_name: str
    period_start: dt.date
    period_end: dt.date
    # True when every line up to period_end counts (balance-sheet
    # accounts), False when only lines inside the period do.
    cumulative: bool
    basis: Basis
    lines: list[DrillDownLine]
    summary: DrillDownSummary
    child_subtotals: list[ChildSubtotal]
