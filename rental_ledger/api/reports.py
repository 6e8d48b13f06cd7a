"""
Financial report endpoints.

Reports are read-only and computed on every request. The basis is
taken as a plain string so that an unknown value is reported as an
INVALID_BASIS error rather than a generic validation failure.
"""

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rental_ledger.models.base import get_db
from rental_ledger.services.balance_cache import get_balance_cache
from rental_ledger.services.balance_service import BalanceService
from rental_ledger.services.report_service import ReportService
from rental_ledger.schemas.reports import (
    AccountBalanceResponse,
    BalanceSheetResponse,
    CashFlowResponse,
    IncomeStatementResponse,
    MonthlyBalanceSheetsResponse,
    MonthlyCashFlowsResponse,
    MonthlyIncomeStatementsResponse,
    ReconciliationResponse,
    TrialBalanceResponse,
)

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/balance/{code}", response_model=AccountBalanceResponse)
def get_account_balance(
    code: str,
    as_of: date | None = None,
    start: date | None = None,
    basis: str = "accrual",
    residence_id: str | None = None,
    include_children: bool = True,
    db: Session = Depends(get_db),
):
    """
    Balance of an account as of a date.

    With start, only the activity between start and as_of counts.
    Parents include their children unless include_children=false.
    """
    service = BalanceService(db, cache=get_balance_cache())
    as_of = as_of or date.today()
    if start is not None:
        balance = service.get_range_balance(
            code, start, as_of, basis, residence_id, include_children
        )
    else:
        balance = service.get_balance(
            code, as_of, basis, residence_id, include_children
        )
    return AccountBalanceResponse(
        account_code=balance.account_code,
        account_name=balance.account_name,
        account_type=balance.account_type,
        basis=balance.basis,
        as_of=balance.as_of,
        period_start=balance.period_start,
        residence_id=balance.residence_id,
        include_children=balance.include_children,
        debit_total=balance.totals.debit,
        credit_total=balance.totals.credit,
        net_balance=balance.net_balance,
    )


@router.get("/balance-sheet", response_model=BalanceSheetResponse)
def balance_sheet(
    as_of: date | None = None,
    basis: str = "accrual",
    residence_id: str | None = None,
    db: Session = Depends(get_db),
):
    """Assets, liabilities and equity as of a date."""
    return ReportService(db).balance_sheet(as_of or date.today(), basis, residence_id)


@router.get("/balance-sheet/monthly", response_model=MonthlyBalanceSheetsResponse)
def monthly_balance_sheets(
    year: int,
    basis: str = "accrual",
    residence_id: str | None = None,
    db: Session = Depends(get_db),
):
    """Balance sheet at each month end of a year."""
    return ReportService(db).monthly_balance_sheets(year, basis, residence_id)


@router.get("/income-statement", response_model=IncomeStatementResponse)
def income_statement(
    start: date,
    end: date,
    basis: str = "accrual",
    residence_id: str | None = None,
    db: Session = Depends(get_db),
):
    """Income and expenses for a period, both dates included."""
    return ReportService(db).income_statement(start, end, basis, residence_id)


@router.get(
    "/income-statement/monthly",
    response_model=MonthlyIncomeStatementsResponse,
)
def monthly_income_statements(
    year: int,
    basis: str = "accrual",
    residence_id: str | None = None,
    db: Session = Depends(get_db),
):
    """Income statement for each month of a year."""
    return ReportService(db).monthly_income_statements(year, basis, residence_id)


@router.get("/cash-flow", response_model=CashFlowResponse)
def cash_flow(
    start: date,
    end: date,
    residence_id: str | None = None,
    db: Session = Depends(get_db),
):
    """Cash in and out for a period by activity."""
    return ReportService(db).cash_flow(start, end, residence_id)


@router.get("/cash-flow/monthly", response_model=MonthlyCashFlowsResponse)
def monthly_cash_flows(
    year: int,
    residence_id: str | None = None,
    db: Session = Depends(get_db),
):
    """Cash flow for each month of a year."""
    return ReportService(db).monthly_cash_flows(year, residence_id)


@router.get("/trial-balance", response_model=TrialBalanceResponse)
def trial_balance(
    as_of: date | None = None,
    basis: str = "accrual",
    db: Session = Depends(get_db),
):
    """Debit and credit balance of every account with activity."""
    return ReportService(db).trial_balance(as_of or date.today(), basis)


@router.get("/reconciliation", response_model=ReconciliationResponse)
def reconciliation(
    start: date,
    end: date,
    residence_id: str | None = None,
    db: Session = Depends(get_db),
):
    """
    Accrual net income against net cash flow for a period, with
    the part explained by receivables and payables.
    """
    return ReportService(db).reconcile(start, end, residence_id)
