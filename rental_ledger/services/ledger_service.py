"""
Ledger read service.

Read access to posted entries and the integrity check over the
whole journal. Writing is the posting service's job; nothing in
here modifies an entry, and integrity problems are reported, never
patched.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from rental_ledger.config import get_settings
from rental_ledger.exceptions import EntryNotFoundError
from rental_ledger.models.counterparty_balance import CounterpartyBalance
from rental_ledger.models.enums import EntrySource, EntryStatus, SourceKind
from rental_ledger.models.transaction_entry import EntryLine, TransactionEntry
from rental_ledger.schemas.ledger import IntegrityIssue, IntegrityReport

logger = logging.getLogger(__name__)


class LedgerService:

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    def get_entry(self, entry_id: int) -> TransactionEntry:
        entry = self.db.get(TransactionEntry, entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        return entry

    def list_entries(
        self,
        start: date | None = None,
        end: date | None = None,
        source: EntrySource | None = None,
        account_code: str | None = None,
        residence_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TransactionEntry]:
        """Entries matching every given filter, newest first."""
        stmt = (
            select(TransactionEntry)
            .options(selectinload(TransactionEntry.lines))
            .order_by(TransactionEntry.date.desc(), TransactionEntry.id.desc())
        )
        if start is not None:
            stmt = stmt.where(TransactionEntry.date >= start)
        if end is not None:
            stmt = stmt.where(TransactionEntry.date <= end)
        if source is not None:
            stmt = stmt.where(TransactionEntry.source == source)
        if residence_id is not None:
            stmt = stmt.where(TransactionEntry.residence_id == residence_id)
        if account_code is not None:
            stmt = stmt.where(
                TransactionEntry.id.in_(
                    select(EntryLine.entry_id).where(EntryLine.account_code == account_code)
                )
            )
        stmt = stmt.limit(limit).offset(offset)
        return list(self.db.execute(stmt).scalars().all())

    def check_integrity(self) -> IntegrityReport:
        """
        Check every posted entry against the double-entry invariant.

        An entry is flagged when its lines do not balance or when
        its stored totals disagree with its lines. The ledger as a
        whole is balanced when total debits equal total credits.
        """
        epsilon = self.settings.BALANCE_EPSILON
        entries = self.db.execute(
            select(TransactionEntry)
            .options(selectinload(TransactionEntry.lines))
            .where(TransactionEntry.status == EntryStatus.POSTED)
            .order_by(TransactionEntry.id)
        ).scalars().all()

        issues = []
        total_debits = Decimal("0")
        total_credits = Decimal("0")
        for entry in entries:
            line_debits = sum((Decimal(str(l.debit)) for l in entry.lines), Decimal("0"))
            line_credits = sum((Decimal(str(l.credit)) for l in entry.lines), Decimal("0"))
            total_debits += line_debits
            total_credits += line_credits

            if abs(line_debits - line_credits) > epsilon:
                issues.append(IntegrityIssue(
                    entry_id=entry.id,
                    transaction_id=entry.transaction_id,
                    problem="unbalanced_lines",
                    detail=f"debits={line_debits}, credits={line_credits}",
                ))
            if (
                abs(Decimal(str(entry.total_debit)) - line_debits) > epsilon
                or abs(Decimal(str(entry.total_credit)) - line_credits) > epsilon
            ):
                issues.append(IntegrityIssue(
                    entry_id=entry.id,
                    transaction_id=entry.transaction_id,
                    problem="totals_mismatch",
                    detail=(
                        f"stored {entry.total_debit}/{entry.total_credit}, "
                        f"lines {line_debits}/{line_credits}"
                    ),
                ))

        difference = total_debits - total_credits
        is_balanced = abs(difference) <= epsilon and not issues
        if not is_balanced:
            logger.warning(
                "Ledger integrity check found %d problem entries", len(issues),
                extra={"difference": difference},
            )

        return IntegrityReport(
            is_balanced=is_balanced,
            total_debits=total_debits,
            total_credits=total_credits,
            difference=difference,
            entries_checked=len(entries),
            issues=issues,
        )

    def get_counterparty_balance(
        self, kind: SourceKind, record_id: str
    ) -> CounterpartyBalance:
        """Running balance for a debtor or vendor; zero if never posted."""
        balance = self.db.execute(
            select(CounterpartyBalance).where(
                CounterpartyBalance.kind == kind,
                CounterpartyBalance.record_id == record_id,
            )
        ).scalar_one_or_none()
        if balance is None:
            return CounterpartyBalance(kind=kind, record_id=record_id, balance=Decimal("0"))
        return balance
