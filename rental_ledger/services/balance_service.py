"""
Balance and rollup service.

Balances are never stored. They are always derived from the
posted entry lines, so a balance "as of D" can be reproduced at
any later time by aggregating again.

Sign convention:
    ASSET, EXPENSE               net = debit - credit
    LIABILITY, EQUITY, INCOME    net = credit - debit

A rolled-up balance is the account's own lines plus the lines of
every account below it in the chart tree.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rental_ledger.config import get_settings
from rental_ledger.exceptions import InvalidPeriodError
from rental_ledger.models.account import Account
from rental_ledger.models.enums import AccountType, Basis, EntryStatus
from rental_ledger.models.transaction_entry import EntryLine, TransactionEntry
from rental_ledger.services.balance_cache import BalanceCache, BalanceKey
from rental_ledger.services.chart_service import ChartService, ChartTree

ZERO = Decimal("0")


@dataclass(frozen=True)
class Totals:
    """Debit and credit totals of one account or subtree."""
    debit: Decimal = ZERO
    credit: Decimal = ZERO

    def __add__(self, other: "Totals") -> "Totals":
        return Totals(self.debit + other.debit, self.credit + other.credit)

    def net(self, account_type: AccountType) -> Decimal:
        if account_type.is_debit_normal:
            return self.debit - self.credit
        return self.credit - self.debit


@dataclass(frozen=True)
class AccountBalance:
    account_code: str
    account_name: str
    account_type: AccountType
    basis: Basis
    as_of: date
    period_start: date | None
    residence_id: str | None
    include_children: bool
    totals: Totals

    @property
    def net_balance(self) -> Decimal:
        return self.totals.net(self.account_type)


def sign(account_type: AccountType, debit: Decimal, credit: Decimal) -> Decimal:
    return Totals(debit, credit).net(account_type)


class BalanceService:
    """
    Read-only queries over posted entry lines.

    One instance per request. The chart tree is built lazily and
    reused for every balance the instance computes, so a whole
    statement sees one consistent hierarchy.
    """

    def __init__(self, db: Session, cache: BalanceCache | None = None):
        self.db = db
        self.cache = cache
        self.settings = get_settings()
        self._tree: ChartTree | None = None

    @property
    def tree(self) -> ChartTree:
        if self._tree is None:
            self._tree = ChartService(self.db).build_tree()
        return self._tree

    def account_totals(
        self,
        as_of: date,
        basis: Basis | str = Basis.ACCRUAL,
        start: date | None = None,
        residence_id: str | None = None,
        codes: list[str] | None = None,
    ) -> dict[str, Totals]:
        """
        Debit and credit totals per account code for one window.

        Only POSTED entries count. The cash basis keeps entries that
        touched a cash account when they were posted.
        """
        basis = Basis.parse(basis)
        stmt = (
            select(
                EntryLine.account_code,
                func.coalesce(func.sum(EntryLine.debit), 0),
                func.coalesce(func.sum(EntryLine.credit), 0),
            )
            .join(TransactionEntry, EntryLine.entry_id == TransactionEntry.id)
            .where(
                TransactionEntry.status == EntryStatus.POSTED,
                TransactionEntry.date <= as_of,
            )
            .group_by(EntryLine.account_code)
        )
        if start is not None:
            stmt = stmt.where(TransactionEntry.date >= start)
        if basis == Basis.CASH:
            stmt = stmt.where(TransactionEntry.is_cash.is_(True))
        if residence_id is not None:
            stmt = stmt.where(TransactionEntry.residence_id == residence_id)
        if codes is not None:
            stmt = stmt.where(EntryLine.account_code.in_(codes))

        return {
            code: Totals(Decimal(str(debit)), Decimal(str(credit)))
            for code, debit, credit in self.db.execute(stmt).all()
        }

    def get_balance(
        self,
        code: str,
        as_of: date,
        basis: Basis | str = Basis.ACCRUAL,
        residence_id: str | None = None,
        include_children: bool = True,
    ) -> AccountBalance:
        """
        Balance of an account as of a date, including every entry
        dated on or before it.

        Raises AccountNotFoundError for an unknown code.
        """
        basis = Basis.parse(basis)
        key = BalanceKey(code, as_of, basis, residence_id, include_children)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        balance = self._compute(code, as_of, None, basis, residence_id, include_children)
        if self.cache is not None:
            self.cache.set(key, balance)
        return balance

    def get_range_balance(
        self,
        code: str,
        start: date,
        end: date,
        basis: Basis | str = Basis.ACCRUAL,
        residence_id: str | None = None,
        include_children: bool = True,
    ) -> AccountBalance:
        """Activity on an account with start <= date <= end."""
        check_period(start, end)
        return self._compute(
            code, end, start, Basis.parse(basis), residence_id, include_children
        )

    def rolled_up(self, code: str, totals: dict[str, Totals]) -> Totals:
        """Sum a precomputed totals map over an account's subtree."""
        result = Totals()
        for member in self.tree.subtree_codes(code):
            result = result + totals.get(member, Totals())
        return result

    def trial_balance(
        self, as_of: date, basis: Basis | str = Basis.ACCRUAL
    ) -> list[tuple[Account, Totals]]:
        """
        Every account with activity, unrolled, in code order.

        The debit and credit columns of the result always sum to
        the same figure when every entry balances.
        """
        totals = self.account_totals(as_of, basis)
        rows = []
        for code in sorted(totals):
            account = self.tree.by_code.get(code)
            if account is None:
                continue
            rows.append((account, totals[code]))
        return rows

    def _compute(
        self,
        code: str,
        as_of: date,
        start: date | None,
        basis: Basis,
        residence_id: str | None,
        include_children: bool,
    ) -> AccountBalance:
        account = self.tree.account(code)
        codes = self.tree.subtree_codes(code) if include_children else [code]
        per_code = self.account_totals(as_of, basis, start, residence_id, codes)
        totals = Totals()
        for member in codes:
            totals = totals + per_code.get(member, Totals())
        return AccountBalance(
            account_code=account.code,
            account_name=account.name,
            account_type=account.account_type,
            basis=basis,
            as_of=as_of,
            period_start=start,
            residence_id=residence_id,
            include_children=include_children,
            totals=totals,
        )


def check_period(start: date, end: date) -> None:
    if start > end:
        raise InvalidPeriodError(
            f"Period start {start} is after period end {end}",
            {"start": start.isoformat(), "end": end.isoformat()},
        )
