"""
Financial statements.

Every statement is assembled from BalanceService primitives: one
per-account totals query for the window, rolled up over the chart
tree. Monthly breakdowns are the same statement computed once per
month.

Statements never fail because of missing data. A residence with
no entries yields a complete statement with zero totals.
"""

import calendar
import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_ledger.config import get_settings
from rental_ledger.exceptions import InvalidPeriodError
from rental_ledger.models.account import Account
from rental_ledger.models.enums import AccountType, Basis, EntryStatus
from rental_ledger.models.transaction_entry import EntryLine, TransactionEntry
from rental_ledger.schemas.reports import (
    BalanceSheetResponse,
    CashFlowActivity,
    CashFlowItem,
    CashFlowResponse,
    IncomeStatementResponse,
    MonthlyBalanceSheetsResponse,
    MonthlyCashFlowsResponse,
    MonthlyIncomeStatementsResponse,
    ReconciliationResponse,
    StatementLine,
    StatementSection,
    TrialBalanceResponse,
    TrialBalanceRow,
)
from rental_ledger.services.balance_cache import BalanceCache
from rental_ledger.services.balance_service import (
    ZERO,
    BalanceService,
    Totals,
    check_period,
)

logger = logging.getLogger(__name__)

OPERATING = "Operating"
INVESTING = "Investing"
FINANCING = "Financing"

RETAINED_EARNINGS_CODE = "retained-earnings"


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def check_year(year: int) -> None:
    if not 1900 <= year <= 9999:
        raise InvalidPeriodError(f"Year {year} is out of range", {"year": year})


def cash_flow_activity(account: Account) -> str:
    """Operating, investing or financing, from the counterpart account."""
    category = (account.category or "").strip().lower()
    if category == "non-current assets":
        return INVESTING
    if account.account_type == AccountType.EQUITY or category == "non-current liabilities":
        return FINANCING
    return OPERATING


class ReportService:

    def __init__(self, db: Session, cache: BalanceCache | None = None):
        self.db = db
        self.settings = get_settings()
        self.balances = BalanceService(db, cache)

    # --- Balance sheet ---

    def balance_sheet(
        self,
        as_of: date,
        basis: Basis | str = Basis.ACCRUAL,
        residence_id: str | None = None,
    ) -> BalanceSheetResponse:
        """
        Assets, liabilities and equity as of a date.

        Equity includes a computed retained-earnings line: every
        income less every expense up to the date, on the same basis.
        The report is flagged unbalanced, never adjusted, when
        assets differ from liabilities plus equity by more than
        BALANCE_EPSILON.
        """
        basis = Basis.parse(basis)
        totals = self.balances.account_totals(as_of, basis, residence_id=residence_id)

        assets = self._sections(AccountType.ASSET, totals)
        liabilities = self._sections(AccountType.LIABILITY, totals)
        equity = self._sections(AccountType.EQUITY, totals)

        retained = self._net_of_type(AccountType.INCOME, totals) - self._net_of_type(
            AccountType.EXPENSE, totals
        )
        equity.append(StatementSection(
            name="Retained Earnings",
            lines=[StatementLine(
                code=RETAINED_EARNINGS_CODE,
                name="Accumulated income less expenses",
                category="Equity",
                own_balance=retained,
                balance=retained,
            )],
            total=retained,
        ))

        total_assets = sum((s.total for s in assets), ZERO)
        total_liabilities = sum((s.total for s in liabilities), ZERO)
        total_equity = sum((s.total for s in equity), ZERO)
        difference = total_assets - (total_liabilities + total_equity)
        balanced = abs(difference) <= self.settings.BALANCE_EPSILON
        if not balanced:
            logger.warning(
                "Balance sheet as of %s does not balance", as_of,
                extra={"difference": difference, "basis": basis.value,
                       "residence_id": residence_id},
            )

        return BalanceSheetResponse(
            as_of=as_of,
            basis=basis,
            residence_id=residence_id,
            assets=assets,
            liabilities=liabilities,
            equity=equity,
            retained_earnings=retained,
            total_assets=total_assets,
            total_liabilities=total_liabilities,
            total_equity=total_equity,
            difference=difference,
            balanced=balanced,
            status="balanced" if balanced else "unbalanced",
        )

    def monthly_balance_sheets(
        self,
        year: int,
        basis: Basis | str = Basis.ACCRUAL,
        residence_id: str | None = None,
    ) -> MonthlyBalanceSheetsResponse:
        check_year(year)
        basis = Basis.parse(basis)
        months = [
            self.balance_sheet(month_bounds(year, month)[1], basis, residence_id)
            for month in range(1, 13)
        ]
        return MonthlyBalanceSheetsResponse(
            year=year, basis=basis, residence_id=residence_id, months=months
        )

    # --- Income statement ---

    def income_statement(
        self,
        start: date,
        end: date,
        basis: Basis | str = Basis.ACCRUAL,
        residence_id: str | None = None,
    ) -> IncomeStatementResponse:
        """Income and expense activity dated start <= date <= end."""
        check_period(start, end)
        basis = Basis.parse(basis)
        totals = self.balances.account_totals(
            end, basis, start=start, residence_id=residence_id
        )

        income = self._sections(AccountType.INCOME, totals)
        expenses = self._sections(AccountType.EXPENSE, totals)
        total_income = sum((s.total for s in income), ZERO)
        total_expenses = sum((s.total for s in expenses), ZERO)

        return IncomeStatementResponse(
            period_start=start,
            period_end=end,
            basis=basis,
            residence_id=residence_id,
            income=income,
            expenses=expenses,
            total_income=total_income,
            total_expenses=total_expenses,
            net_income=total_income - total_expenses,
        )

    def monthly_income_statements(
        self,
        year: int,
        basis: Basis | str = Basis.ACCRUAL,
        residence_id: str | None = None,
    ) -> MonthlyIncomeStatementsResponse:
        check_year(year)
        basis = Basis.parse(basis)
        months = [
            self.income_statement(*month_bounds(year, month), basis, residence_id)
            for month in range(1, 13)
        ]
        return MonthlyIncomeStatementsResponse(
            year=year,
            basis=basis,
            residence_id=residence_id,
            months=months,
            total_net_income=sum((m.net_income for m in months), ZERO),
        )

    # --- Cash flow ---

    def cash_flow(
        self,
        start: date,
        end: date,
        residence_id: str | None = None,
    ) -> CashFlowResponse:
        """
        Cash movements in a period, from cash-basis entries only.

        Each non-cash line of a cash entry is the other side of a
        cash movement: a credit brought cash in, a debit sent it
        out. Transfers between two cash accounts have no such line
        and net to zero.
        """
        check_period(start, end)
        tree = self.balances.tree

        stmt = (
            select(EntryLine.account_code, EntryLine.debit, EntryLine.credit)
            .join(TransactionEntry, EntryLine.entry_id == TransactionEntry.id)
            .where(
                TransactionEntry.status == EntryStatus.POSTED,
                TransactionEntry.is_cash.is_(True),
                TransactionEntry.date >= start,
                TransactionEntry.date <= end,
            )
        )
        if residence_id is not None:
            stmt = stmt.where(TransactionEntry.residence_id == residence_id)

        inflows: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
        outflows: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
        for code, debit, credit in self.db.execute(stmt).all():
            account = tree.by_code.get(code)
            if account is None or account.is_cash:
                continue
            amount = Decimal(str(credit)) - Decimal(str(debit))
            activity = cash_flow_activity(account)
            if amount > 0:
                inflows[activity][code] += amount
            elif amount < 0:
                outflows[activity][code] += -amount

        activities = []
        for name in (OPERATING, INVESTING, FINANCING):
            activity_in = self._flow_items(inflows[name])
            activity_out = self._flow_items(outflows[name])
            total_in = sum((i.amount for i in activity_in), ZERO)
            total_out = sum((i.amount for i in activity_out), ZERO)
            activities.append(CashFlowActivity(
                name=name,
                inflows=activity_in,
                outflows=activity_out,
                total_inflows=total_in,
                total_outflows=total_out,
                net=total_in - total_out,
            ))

        total_inflows = sum((a.total_inflows for a in activities), ZERO)
        total_outflows = sum((a.total_outflows for a in activities), ZERO)

        return CashFlowResponse(
            period_start=start,
            period_end=end,
            residence_id=residence_id,
            activities=activities,
            total_inflows=total_inflows,
            total_outflows=total_outflows,
            net_change_in_cash=total_inflows - total_outflows,
            opening_cash=self._opening_cash(start, residence_id),
            closing_cash=self._cash_position(end, residence_id),
        )

    def monthly_cash_flows(
        self, year: int, residence_id: str | None = None
    ) -> MonthlyCashFlowsResponse:
        check_year(year)
        months = [
            self.cash_flow(*month_bounds(year, month), residence_id)
            for month in range(1, 13)
        ]
        return MonthlyCashFlowsResponse(
            year=year,
            residence_id=residence_id,
            months=months,
            total_net_change=sum((m.net_change_in_cash for m in months), ZERO),
        )

    # --- Reconciliation ---

    def reconcile(
        self,
        start: date,
        end: date,
        residence_id: str | None = None,
    ) -> ReconciliationResponse:
        """
        Compare accrual net income with net cash flow.

        The gap between them should be explained by the change in
        receivables (income earned, cash not yet received) less the
        change in payables (expense incurred, cash not yet paid).
        """
        check_period(start, end)
        net_income = self.income_statement(
            start, end, Basis.ACCRUAL, residence_id
        ).net_income
        net_cash = self.cash_flow(start, end, residence_id).net_change_in_cash

        activity = self.balances.account_totals(
            end, Basis.ACCRUAL, start=start, residence_id=residence_id
        )
        change_in_receivables = self.balances.rolled_up(
            self.settings.RECEIVABLES_ACCOUNT_CODE, activity
        ).net(AccountType.ASSET)
        change_in_payables = self.balances.rolled_up(
            self.settings.PAYABLES_ACCOUNT_CODE, activity
        ).net(AccountType.LIABILITY)

        difference = net_income - net_cash
        expected = change_in_receivables - change_in_payables
        unexplained = difference - expected
        reconciled = abs(unexplained) <= self.settings.BALANCE_EPSILON
        if not reconciled:
            logger.info(
                "Cash and accrual views differ by more than receivables and payables explain",
                extra={"start": start, "end": end, "unexplained": unexplained},
            )

        return ReconciliationResponse(
            period_start=start,
            period_end=end,
            residence_id=residence_id,
            accrual_net_income=net_income,
            net_cash_flow=net_cash,
            difference=difference,
            change_in_receivables=change_in_receivables,
            change_in_payables=change_in_payables,
            expected_difference=expected,
            unexplained=unexplained,
            reconciled=reconciled,
        )

    # --- Trial balance ---

    def trial_balance(
        self, as_of: date, basis: Basis | str = Basis.ACCRUAL
    ) -> TrialBalanceResponse:
        basis = Basis.parse(basis)
        rows = []
        for account, totals in self.balances.trial_balance(as_of, basis):
            net = totals.debit - totals.credit
            rows.append(TrialBalanceRow(
                code=account.code,
                name=account.name,
                account_type=account.account_type,
                debit_total=totals.debit,
                credit_total=totals.credit,
                debit_balance=net if net > 0 else ZERO,
                credit_balance=-net if net < 0 else ZERO,
            ))
        total_debits = sum((r.debit_balance for r in rows), ZERO)
        total_credits = sum((r.credit_balance for r in rows), ZERO)
        return TrialBalanceResponse(
            as_of=as_of,
            basis=basis,
            rows=rows,
            total_debits=total_debits,
            total_credits=total_credits,
            balanced=abs(total_debits - total_credits) <= self.settings.BALANCE_EPSILON,
        )

    # --- Helpers ---

    def _sections(
        self, account_type: AccountType, totals: dict[str, Totals]
    ) -> list[StatementSection]:
        """Top-level accounts of one type, grouped by category."""
        by_category: dict[str, list[StatementLine]] = {}
        for root in self.balances.tree.roots(account_type):
            if not root.is_active and self.balances.rolled_up(root.code, totals) == Totals():
                continue
            line = self._statement_line(root, totals)
            by_category.setdefault(root.category, []).append(line)

        return [
            StatementSection(
                name=category,
                lines=lines,
                total=sum((line.balance for line in lines), ZERO),
            )
            for category, lines in by_category.items()
        ]

    def _statement_line(self, account: Account, totals: dict[str, Totals]) -> StatementLine:
        children = [
            self._statement_line(child, totals)
            for child in self.balances.tree.children(account.code)
        ]
        own = totals.get(account.code, Totals()).net(account.account_type)
        return StatementLine(
            code=account.code,
            name=account.name,
            category=account.category,
            own_balance=own,
            balance=own + sum((c.balance for c in children), ZERO),
            children=children,
        )

    def _net_of_type(self, account_type: AccountType, totals: dict[str, Totals]) -> Decimal:
        tree = self.balances.tree
        result = ZERO
        for code, account_totals in totals.items():
            account = tree.by_code.get(code)
            if account is not None and account.account_type == account_type:
                result += account_totals.net(account_type)
        return result

    def _flow_items(self, amounts: dict[str, Decimal]) -> list[CashFlowItem]:
        tree = self.balances.tree
        return [
            CashFlowItem(
                account_code=code,
                account_name=tree.by_code[code].name,
                amount=amount,
            )
            for code, amount in sorted(amounts.items())
            if amount != 0
        ]

    def _opening_cash(self, start: date, residence_id: str | None) -> Decimal:
        # Nothing can be dated before date.min.
        if start == date.min:
            return ZERO
        return self._cash_position(start - timedelta(days=1), residence_id)

    def _cash_position(self, as_of: date, residence_id: str | None) -> Decimal:
        tree = self.balances.tree
        cash_codes = [code for code, a in tree.by_code.items() if a.is_cash]
        if not cash_codes:
            return ZERO
        totals = self.balances.account_totals(
            as_of, Basis.CASH, residence_id=residence_id, codes=cash_codes
        )
        return sum((t.debit - t.credit for t in totals.values()), ZERO)
