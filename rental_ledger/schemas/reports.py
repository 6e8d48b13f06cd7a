"""
Pydantic schemas for balances and financial statements.

None of these shapes are stored. They are assembled on every
request from the posted entries.
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel

from rental_ledger.models.enums import AccountType, Basis


class AccountBalanceResponse(BaseModel):
    """Balance of one account, optionally rolled up over its children."""
    account_code: str
    account_name: str
    account_type: AccountType
    basis: Basis
    as_of: dt.date
    period_start: dt.date | None = None
    residence_id: str | None = None
    include_children: bool = True
    debit_total: Decimal
    credit_total: Decimal
    net_balance: Decimal


class StatementLine(BaseModel):
    """An account in a statement, with its rolled-up children."""
    code: str
    name: str
    category: str
    own_balance: Decimal
    balance: Decimal
    children: list["StatementLine"] = []


class StatementSection(BaseModel):
    """A named rollup of accounts, e.g. "Current Assets"."""
    name: str
    lines: list[StatementLine]
    total: Decimal


class BalanceSheetResponse(BaseModel):
    as_of: dt.date
    basis: Basis
    residence_id: str | None
    assets: list[StatementSection]
    liabilities: list[StatementSection]
    equity: list[StatementSection]
    retained_earnings: Decimal
    total_assets: Decimal
    total_liabilities: Decimal
    total_equity: Decimal
    difference: Decimal
    balanced: bool
    status: str


class IncomeStatementResponse(BaseModel):
    period_start: dt.date
    period_end: dt.date
    basis: Basis
    residence_id: str | None
    income: list[StatementSection]
    expenses: list[StatementSection]
    total_income: Decimal
    total_expenses: Decimal
    net_income: Decimal


class CashFlowItem(BaseModel):
    account_code: str
    account_name: str
    amount: Decimal


class CashFlowActivity(BaseModel):
    """Operating, investing or financing cash movements."""
    name: str
    inflows: list[CashFlowItem]
    outflows: list[CashFlowItem]
    total_inflows: Decimal
    total_outflows: Decimal
    net: Decimal


class CashFlowResponse(BaseModel):
    period_start: dt.date
    period_end: dt.date
    residence_id: str | None
    activities: list[CashFlowActivity]
    total_inflows: Decimal
    total_outflows: Decimal
    net_change_in_cash: Decimal
    opening_cash: Decimal
    closing_cash: Decimal


class TrialBalanceRow(BaseModel):
    code: str
    name: str
    account_type: AccountType
    debit_total: Decimal
    credit_total: Decimal
    debit_balance: Decimal
    credit_balance: Decimal


class TrialBalanceResponse(BaseModel):
    as_of: dt.date
    basis: Basis
    rows: list[TrialBalanceRow]
    total_debits: Decimal
    total_credits: Decimal
    balanced: bool


class ReconciliationResponse(BaseModel):
    """
    Accrual net income against net cash flow for a period.

    net_income - net_cash_flow should equal the change in
    receivables minus the change in payables. Whatever is left
    over is reported as unexplained.
    """
    period_start: dt.date
    period_end: dt.date
    residence_id: str | None
    accrual_net_income: Decimal
    net_cash_flow: Decimal
    difference: Decimal
    change_in_receivables: Decimal
    change_in_payables: Decimal
    expected_difference: Decimal
    unexplained: Decimal
    reconciled: bool


class MonthlyIncomeStatementsResponse(BaseModel):
    year: int
    basis: Basis
    residence_id: str | None
    months: list[IncomeStatementResponse]
    total_net_income: Decimal


class MonthlyBalanceSheetsResponse(BaseModel):
    year: int
    basis: Basis
    residence_id: str | None
    months: list[BalanceSheetResponse]


class MonthlyCashFlowsResponse(BaseModel):
    year: int
    residence_id: str | None
    months: list[CashFlowResponse]
    total_net_change: Decimal
