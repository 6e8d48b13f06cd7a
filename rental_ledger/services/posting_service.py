"""
Posting service: the only writer to the ledger.

Every business workflow (rent accrual, rent payment, expense
approval, expense payment, manual adjustment) ends here. Each
post:
1. Returns the existing entry if the event was already posted
2. Rejects line-sets whose debits and credits differ by more
   than BALANCE_EPSILON
3. Resolves every account code to an active account
4. Writes the header, the entry and its lines, and any
   counterparty balance, inside one savepoint
5. Invalidates cached balances from the entry date onward

The caller controls the commit.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, NamedTuple

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rental_ledger.config import get_settings
from rental_ledger.exceptions import (
    DuplicatePostingError,
    EntryNotFoundError,
    UnbalancedEntryError,
    UnknownAccountError,
)
from rental_ledger.models.account import Account
from rental_ledger.models.counterparty_balance import CounterpartyBalance
from rental_ledger.models.enums import (
    EntrySource,
    EntryStatus,
    SourceKind,
    TransactionType,
)
from rental_ledger.models.transaction import Transaction
from rental_ledger.models.transaction_entry import EntryLine, TransactionEntry
from rental_ledger.schemas.ledger import (
    ExpenseRef,
    PaymentRef,
    PostingEvent,
    PostingLine,
    TransactionEntryRef,
)
from rental_ledger.services.balance_cache import BalanceCache
from rental_ledger.services.chart_service import ChartService
from rental_ledger.services.id_issuer import IdIssuer, UuidIssuer

logger = logging.getLogger(__name__)


# Accounts the workflow helpers post to. Receivables and payables
# come from settings because reports need them too.
RENTAL_INCOME_ACCOUNT_CODE = "4001"
BANK_ACCOUNT_CODE = "1001"

_TRANSACTION_TYPES = {
    EntrySource.RENTAL_ACCRUAL: TransactionType.ACCRUAL,
    EntrySource.EXPENSE_ACCRUAL: TransactionType.ACCRUAL,
    EntrySource.MAINTENANCE_APPROVAL: TransactionType.APPROVAL,
    EntrySource.PAYMENT: TransactionType.PAYMENT,
    EntrySource.RENTAL_PAYMENT: TransactionType.PAYMENT,
    EntrySource.ADVANCE_PAYMENT: TransactionType.PAYMENT,
    EntrySource.DEBT_SETTLEMENT: TransactionType.PAYMENT,
    EntrySource.EXPENSE_PAYMENT: TransactionType.PAYMENT,
    EntrySource.VENDOR_PAYMENT: TransactionType.PAYMENT,
    EntrySource.PETTY_CASH: TransactionType.PAYMENT,
    EntrySource.ADJUSTMENT: TransactionType.ADJUSTMENT,
}


class PostingResult(NamedTuple):
    entry: TransactionEntry
    # False when the event had already been posted and the
    # existing entry was returned instead.
    created: bool


class PostingService:

    def __init__(
        self,
        db: Session,
        cache: BalanceCache | None = None,
        id_issuer: IdIssuer | None = None,
    ):
        self.db = db
        self.cache = cache
        self.id_issuer = id_issuer or UuidIssuer()
        self.settings = get_settings()

    def post(self, event: PostingEvent) -> PostingResult:
        """
        Post a business event as one balanced transaction entry.

        This is the most critical method in the system. If any
        check fails, nothing is written. Posting an event that is
        already in the ledger is a no-op that returns the stored
        entry with created=False.
        """
        existing = self._find_existing(event)
        if existing is not None:
            logger.warning(
                "Duplicate posting ignored, returning entry %s",
                existing.id,
                extra={"source": event.source.value, "key": self._describe_key(event)},
            )
            return PostingResult(existing, False)

        try:
            entry = self._insert(event)
        except DuplicatePostingError as e:
            logger.warning(
                "Concurrent duplicate posting resolved to entry %s",
                e.existing.id,
                extra={"source": event.source.value, "key": self._describe_key(event)},
            )
            return PostingResult(e.existing, False)

        logger.info(
            "Posted entry %s (%s) for %s",
            entry.transaction_id, event.source.value, entry.total_debit,
            extra={"entry_id": entry.id, "residence_id": entry.residence_id},
        )
        return PostingResult(entry, True)

    def reverse(
        self,
        entry_id: int,
        reason: str,
        on_date: date | None = None,
        created_by: str | None = None,
    ) -> PostingResult:
        """
        Cancel a posted entry with an offsetting entry.

        Debits and credits are swapped on the same accounts and
        the new entry points at the original. The original is left
        untouched. Reversing the same entry twice returns the
        first reversal.
        """
        original = self.db.get(TransactionEntry, entry_id)
        if original is None:
            raise EntryNotFoundError(entry_id)

        metadata = dict(original.details or {})
        metadata["reversal_reason"] = reason
        # Keep the counterparty so its running balance is unwound.
        if original.source_model == SourceKind.DEBTOR:
            metadata.setdefault("debtor_id", original.source_id)
        elif original.source_model == SourceKind.VENDOR:
            metadata.setdefault("vendor_id", original.source_id)

        event = PostingEvent(
            source=EntrySource.ADJUSTMENT,
            source_ref=TransactionEntryRef(id=str(original.id)),
            natural_key=f"reversal:{original.id}",
            date=on_date or original.date,
            description=f"Reversal of {original.transaction_id}: {reason}",
            reference=original.reference,
            residence_id=original.residence_id,
            created_by=created_by,
            transaction_type=TransactionType.ADJUSTMENT,
            metadata=metadata,
            lines=[
                PostingLine(
                    account_code=line.account_code,
                    debit=line.credit,
                    credit=line.debit,
                    description=line.description,
                )
                for line in original.lines
            ],
        )

        existing = self._find_existing(event)
        if existing is not None:
            return PostingResult(existing, False)
        try:
            # A deactivated account can still have its history corrected.
            entry = self._insert(event, allow_inactive=True)
        except DuplicatePostingError as e:
            return PostingResult(e.existing, False)

        logger.info(
            "Reversed entry %s with %s", original.transaction_id, entry.transaction_id,
            extra={"entry_id": entry.id, "reversal_of_id": original.id},
        )
        return PostingResult(entry, True)

    # --- Workflow helpers ---

    def accrue_rent(
        self,
        debtor_id: str,
        amount: Decimal,
        period: date,
        tenant_name: str,
        residence_id: str | None = None,
        receivable_code: str | None = None,
        created_by: str | None = None,
    ) -> PostingResult:
        """
        Recognize a month of rent: Dr Accounts Receivable, Cr Rental Income.

        One accrual per debtor and month; the natural key makes a
        repeated run of the monthly job harmless.
        """
        receivable = receivable_code or self.settings.RECEIVABLES_ACCOUNT_CODE
        return self.post(PostingEvent(
            source=EntrySource.RENTAL_ACCRUAL,
            natural_key=f"rent-accrual:{debtor_id}:{period:%Y-%m}",
            date=period,
            description=f"Monthly rent accrual: {tenant_name} - {period:%m/%Y}",
            residence_id=residence_id,
            created_by=created_by,
            amount=amount,
            metadata={"debtor_id": debtor_id, "tenant_name": tenant_name},
            lines=[
                PostingLine(account_code=receivable, debit=amount),
                PostingLine(account_code=RENTAL_INCOME_ACCOUNT_CODE, credit=amount),
            ],
        ))

    def receive_rent_payment(
        self,
        payment_id: str,
        debtor_id: str,
        amount: Decimal,
        paid_on: date,
        period: date | None = None,
        residence_id: str | None = None,
        cash_code: str = BANK_ACCOUNT_CODE,
        receivable_code: str | None = None,
        reference: str | None = None,
        created_by: str | None = None,
    ) -> PostingResult:
        """Settle rent owed: Dr Bank, Cr Accounts Receivable."""
        receivable = receivable_code or self.settings.RECEIVABLES_ACCOUNT_CODE
        if period is not None:
            description = f"Payment allocation: rent for {period:%Y-%m}"
        else:
            description = f"Rent payment {payment_id}"
        return self.post(PostingEvent(
            source=EntrySource.RENTAL_PAYMENT,
            source_ref=PaymentRef(id=payment_id),
            date=paid_on,
            description=description,
            reference=reference,
            residence_id=residence_id,
            created_by=created_by,
            amount=amount,
            metadata={"debtor_id": debtor_id},
            lines=[
                PostingLine(account_code=cash_code, debit=amount),
                PostingLine(account_code=receivable, credit=amount),
            ],
        ))

    def accrue_expense(
        self,
        expense_id: str,
        vendor_id: str,
        amount: Decimal,
        incurred_on: date,
        expense_code: str,
        description: str,
        residence_id: str | None = None,
        created_by: str | None = None,
    ) -> PostingResult:
        """Recognize an approved expense: Dr expense, Cr Accounts Payable."""
        return self.post(PostingEvent(
            source=EntrySource.EXPENSE_ACCRUAL,
            source_ref=ExpenseRef(id=expense_id),
            date=incurred_on,
            description=description,
            residence_id=residence_id,
            created_by=created_by,
            amount=amount,
            metadata={"vendor_id": vendor_id},
            lines=[
                PostingLine(account_code=expense_code, debit=amount),
                PostingLine(
                    account_code=self.settings.PAYABLES_ACCOUNT_CODE, credit=amount
                ),
            ],
        ))

    def pay_expense(
        self,
        expense_id: str,
        vendor_id: str,
        amount: Decimal,
        paid_on: date,
        residence_id: str | None = None,
        cash_code: str = BANK_ACCOUNT_CODE,
        created_by: str | None = None,
    ) -> PostingResult:
        """Pay an accrued expense: Dr Accounts Payable, Cr Bank."""
        return self.post(PostingEvent(
            source=EntrySource.EXPENSE_PAYMENT,
            source_ref=ExpenseRef(id=expense_id),
            date=paid_on,
            description=f"Expense payment {expense_id}",
            residence_id=residence_id,
            created_by=created_by,
            amount=amount,
            metadata={"vendor_id": vendor_id},
            lines=[
                PostingLine(
                    account_code=self.settings.PAYABLES_ACCOUNT_CODE, debit=amount
                ),
                PostingLine(account_code=cash_code, credit=amount),
            ],
        ))

    # --- Internals ---

    def _find_existing(self, event: PostingEvent) -> TransactionEntry | None:
        """Look up an entry already posted for the same event."""
        conditions = []
        if event.source_ref is not None:
            conditions.append(
                (TransactionEntry.source == event.source)
                & (TransactionEntry.source_id == event.source_ref.id)
            )
        if event.natural_key is not None:
            conditions.append(TransactionEntry.natural_key == event.natural_key)
        if not conditions:
            return None

        return self.db.execute(
            select(TransactionEntry)
            .where(or_(*conditions))
            .order_by(TransactionEntry.id)
            .limit(1)
        ).scalar_one_or_none()

    def _insert(
        self, event: PostingEvent, allow_inactive: bool = False
    ) -> TransactionEntry:
        total_debit = sum((line.debit for line in event.lines), Decimal("0"))
        total_credit = sum((line.credit for line in event.lines), Decimal("0"))
        if abs(total_debit - total_credit) > self.settings.BALANCE_EPSILON:
            raise UnbalancedEntryError(total_debit, total_credit)

        accounts = self._resolve_accounts(
            [line.account_code for line in event.lines], allow_inactive
        )

        transaction_type = event.transaction_type or _TRANSACTION_TYPES.get(
            event.source, TransactionType.OTHER
        )
        header = Transaction(
            transaction_id=self.id_issuer.next_id(),
            date=event.date,
            description=event.description,
            transaction_type=transaction_type,
            reference=event.reference,
            residence_id=event.residence_id,
            created_by=event.created_by,
            amount=event.amount if event.amount is not None else total_debit,
        )
        entry = TransactionEntry(
            transaction=header,
            date=event.date,
            description=event.description,
            reference=event.reference,
            total_debit=total_debit,
            total_credit=total_credit,
            source=event.source,
            source_model=event.source_ref.source_kind if event.source_ref else None,
            source_id=event.source_ref.id if event.source_ref else None,
            natural_key=event.natural_key,
            status=EntryStatus.POSTED,
            is_cash=any(accounts[line.account_code].is_cash for line in event.lines),
            residence_id=event.residence_id,
            reversal_of_id=self._reversal_target(event),
            details=dict(event.metadata),
            lines=[
                EntryLine(
                    line_no=number,
                    account_id=accounts[line.account_code].id,
                    account_code=line.account_code,
                    account_name=accounts[line.account_code].name,
                    account_type=accounts[line.account_code].account_type,
                    debit=line.debit,
                    credit=line.credit,
                    description=line.description,
                )
                for number, line in enumerate(event.lines, start=1)
            ],
        )

        try:
            with self.db.begin_nested():
                self.db.add(header)
                self.db.add(entry)
                self.db.flush()
                self._update_counterparties(entry, event)
        except IntegrityError:
            # Someone else posted the same event between our lookup
            # and our insert. Their entry wins.
            existing = self._find_existing(event)
            if existing is None:
                raise
            raise DuplicatePostingError(existing, self._describe_key(event)) from None

        if self.cache is not None:
            self.cache.invalidate_on_commit(self.db, entry.date)
        return entry

    def _resolve_accounts(
        self, codes: list[str], allow_inactive: bool
    ) -> dict[str, Account]:
        wanted = set(codes)
        accounts = self.db.execute(
            select(Account).where(Account.code.in_(wanted))
        ).scalars().all()
        by_code = {a.code: a for a in accounts}

        missing = sorted(wanted - set(by_code))
        inactive = [] if allow_inactive else sorted(
            code for code, account in by_code.items() if not account.is_active
        )
        if missing or inactive:
            raise UnknownAccountError(missing, inactive)
        return by_code

    def _update_counterparties(
        self, entry: TransactionEntry, event: PostingEvent
    ) -> None:
        """
        Move the debtor or vendor running balance by the entry's
        effect on receivables or payables.
        """
        debtor_id = event.metadata.get("debtor_id")
        vendor_id = event.metadata.get("vendor_id")
        if event.source_ref is not None:
            if event.source_ref.source_kind == SourceKind.DEBTOR:
                debtor_id = event.source_ref.id
            elif event.source_ref.source_kind == SourceKind.VENDOR:
                vendor_id = event.source_ref.id

        if debtor_id is None and vendor_id is None:
            return

        tree = ChartService(self.db).build_tree()
        if debtor_id is not None:
            receivables = set(tree.subtree_codes(self.settings.RECEIVABLES_ACCOUNT_CODE))
            lines = [l for l in entry.lines if l.account_code in receivables]
            if lines:
                delta = sum((l.debit - l.credit for l in lines), Decimal("0"))
                self._apply_counterparty(SourceKind.DEBTOR, str(debtor_id), delta)
        if vendor_id is not None:
            payables = set(tree.subtree_codes(self.settings.PAYABLES_ACCOUNT_CODE))
            lines = [l for l in entry.lines if l.account_code in payables]
            if lines:
                delta = sum((l.credit - l.debit for l in lines), Decimal("0"))
                self._apply_counterparty(SourceKind.VENDOR, str(vendor_id), delta)

    def _apply_counterparty(
        self, kind: SourceKind, record_id: str, delta: Decimal
    ) -> None:
        balance = self.db.execute(
            select(CounterpartyBalance).where(
                CounterpartyBalance.kind == kind,
                CounterpartyBalance.record_id == record_id,
            )
        ).scalar_one_or_none()
        if balance is None:
            balance = CounterpartyBalance(
                kind=kind, record_id=record_id, balance=Decimal("0")
            )
            self.db.add(balance)
        balance.balance = Decimal(str(balance.balance)) + delta
        self.db.flush()

    @staticmethod
    def _reversal_target(event: PostingEvent) -> int | None:
        ref = event.source_ref
        if (
            event.source == EntrySource.ADJUSTMENT
            and ref is not None
            and ref.source_kind == SourceKind.TRANSACTION_ENTRY
            and ref.id.isdigit()
        ):
            return int(ref.id)
        return None

    @staticmethod
    def _describe_key(event: PostingEvent) -> str:
        if event.source_ref is not None:
            return f"{event.source.value}:{event.source_ref.kind}:{event.source_ref.id}"
        return f"natural_key:{event.natural_key}"


def build_event(
    source: EntrySource,
    on_date: date,
    description: str,
    lines: list[tuple[str, Decimal, Decimal]],
    **fields: Any,
) -> PostingEvent:
    """Shorthand for an event from (account_code, debit, credit) tuples."""
    return PostingEvent(
        source=source,
        date=on_date,
        description=description,
        lines=[
            PostingLine(account_code=code, debit=debit, credit=credit)
            for code, debit, credit in lines
        ],
        **fields,
    )
