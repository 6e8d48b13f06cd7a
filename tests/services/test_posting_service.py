"""
Tests for the PostingService.

Tests cover:
- Balanced posting and the debit == credit invariant
- Unbalanced and unknown-account rejection with nothing written
- Idempotency by source reference, natural key, and the
  constraint path taken when two writers race
- Reversal by offsetting entry
- Counterparty running balances
- Workflow helpers for rent and expenses
"""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from rental_ledger.exceptions import (
    EntryNotFoundError,
    UnbalancedEntryError,
    UnknownAccountError,
)
from rental_ledger.models.enums import (
    Basis,
    EntrySource,
    EntryStatus,
    SourceKind,
    TransactionType,
)
from rental_ledger.models.transaction import Transaction
from rental_ledger.models.transaction_entry import TransactionEntry
from rental_ledger.schemas.ledger import ExpenseRef, PaymentRef, PostingEvent, PostingLine
from rental_ledger.services.balance_cache import BalanceCache, BalanceKey
from rental_ledger.services.balance_service import BalanceService
from rental_ledger.services.id_issuer import SequenceIssuer
from rental_ledger.services.ledger_service import LedgerService
from rental_ledger.services.posting_service import PostingService, build_event


def entry_count(db_session) -> int:
    return db_session.execute(select(func.count(TransactionEntry.id))).scalar()


def rent_payment_event(payment_id="pay-1", amount=Decimal("300")):
    return PostingEvent(
        source=EntrySource.RENTAL_PAYMENT,
        source_ref=PaymentRef(id=payment_id),
        date=date(2025, 2, 5),
        description="Rent payment",
        metadata={"debtor_id": "deb-1"},
        lines=[
            PostingLine(account_code="1001", debit=amount),
            PostingLine(account_code="1100", credit=amount),
        ],
    )


class TestPost:

    def test_balanced_entry_is_posted(self, posting, db_session):
        result = posting.post(rent_payment_event())
        db_session.commit()

        entry = result.entry
        assert result.created is True
        assert entry.status == EntryStatus.POSTED
        assert entry.total_debit == Decimal("300")
        assert entry.total_credit == Decimal("300")
        assert sum(l.debit for l in entry.lines) == sum(l.credit for l in entry.lines)
        assert [l.account_name for l in entry.lines] == ["Bank Account", "Accounts Receivable - Tenants"]
        assert entry.source_model == SourceKind.PAYMENT
        assert entry.source_id == "pay-1"

    def test_header_is_written_with_derived_type(self, posting, db_session):
        entry = posting.post(rent_payment_event()).entry
        db_session.commit()

        header = db_session.execute(
            select(Transaction).where(Transaction.transaction_id == entry.transaction_id)
        ).scalar_one()
        assert header.transaction_type == TransactionType.PAYMENT
        assert header.amount == Decimal("300")
        assert entry.transaction_id == "TXN00000001"

    def test_cash_classification(self, posting, db_session):
        cash = posting.post(rent_payment_event()).entry
        accrual = posting.accrue_rent("deb-1", Decimal("300"), date(2025, 1, 1), "Jane Doe").entry
        db_session.commit()

        assert cash.is_cash is True
        assert accrual.is_cash is False

    def test_unbalanced_entry_rejected(self, posting, db_session):
        event = build_event(
            EntrySource.EXPENSE_ACCRUAL, date(2025, 3, 1), "Plumbing",
            [("5007", Decimal("200"), Decimal("0")),
             ("2000", Decimal("0"), Decimal("150"))],
        )

        with pytest.raises(UnbalancedEntryError) as exc_info:
            posting.post(event)
        db_session.rollback()

        assert exc_info.value.details["difference"] == "50"
        assert entry_count(db_session) == 0

    def test_rounding_within_epsilon_accepted(self, posting):
        result = posting.post(build_event(
            EntrySource.MANUAL, date(2025, 3, 1), "Rounded split",
            [("5001", Decimal("33.34"), Decimal("0")),
             ("1002", Decimal("0"), Decimal("33.33"))],
        ))

        assert result.created is True

    def test_unknown_account_rejected(self, posting, db_session):
        event = build_event(
            EntrySource.MANUAL, date(2025, 3, 1), "Typo",
            [("9999", Decimal("10"), Decimal("0")),
             ("1001", Decimal("0"), Decimal("10"))],
        )

        with pytest.raises(UnknownAccountError) as exc_info:
            posting.post(event)
        db_session.rollback()

        assert exc_info.value.missing == ["9999"]
        assert entry_count(db_session) == 0

    def test_inactive_account_rejected(self, posting, chart, db_session):
        chart.deactivate_account("5010")
        db_session.commit()

        with pytest.raises(UnknownAccountError) as exc_info:
            posting.post(build_event(
                EntrySource.MANUAL, date(2025, 3, 1), "Cleaning",
                [("5010", Decimal("10"), Decimal("0")),
                 ("1002", Decimal("0"), Decimal("10"))],
            ))

        assert exc_info.value.inactive == ["5010"]

    def test_posting_is_undone_by_caller_rollback(self, posting, db_session):
        posting.post(rent_payment_event())

        db_session.rollback()

        debtor = LedgerService(db_session).get_counterparty_balance(SourceKind.DEBTOR, "deb-1")
        assert entry_count(db_session) == 0
        assert db_session.execute(select(func.count(Transaction.id))).scalar() == 0
        assert debtor.balance == Decimal("0")

    def test_line_with_both_sides_rejected(self):
        with pytest.raises(ValidationError):
            PostingLine(account_code="1001", debit=Decimal("1"), credit=Decimal("1"))

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            PostingLine(account_code="1001", debit=Decimal("-5"))

    def test_single_sided_event_rejected(self):
        with pytest.raises(ValidationError):
            PostingEvent(
                source=EntrySource.MANUAL,
                date=date(2025, 1, 1),
                description="Two debits",
                lines=[
                    PostingLine(account_code="1001", debit=Decimal("5")),
                    PostingLine(account_code="1002", debit=Decimal("5")),
                ],
            )


class TestIdempotency:

    def test_same_source_posted_once(self, posting, db_session):
        first = posting.post(rent_payment_event())
        db_session.commit()
        second = posting.post(rent_payment_event())

        assert first.created is True
        assert second.created is False
        assert second.entry.id == first.entry.id
        assert entry_count(db_session) == 1

    def test_same_natural_key_posted_once(self, posting, db_session):
        first = posting.accrue_rent("deb-1", Decimal("300"), date(2025, 1, 1), "Jane Doe")
        second = posting.accrue_rent("deb-1", Decimal("300"), date(2025, 1, 15), "Jane Doe")
        db_session.commit()

        assert second.created is False
        assert second.entry.id == first.entry.id

    def test_different_months_are_separate_accruals(self, posting):
        posting.accrue_rent("deb-1", Decimal("300"), date(2025, 1, 1), "Jane Doe")
        result = posting.accrue_rent("deb-1", Decimal("300"), date(2025, 2, 1), "Jane Doe")

        assert result.created is True

    def test_concurrent_duplicate_resolves_to_winner(self, posting, db_session, monkeypatch):
        winner = posting.post(rent_payment_event()).entry
        db_session.commit()

        real_lookup = PostingService._find_existing
        calls = []

        def lookup_before_other_commit(self, event):
            calls.append(event)
            # The first lookup runs before the other writer's row is visible.
            if len(calls) == 1:
                return None
            return real_lookup(self, event)

        monkeypatch.setattr(PostingService, "_find_existing", lookup_before_other_commit)
        result = posting.post(rent_payment_event())
        db_session.commit()

        assert result.created is False
        assert result.entry.id == winner.id
        assert entry_count(db_session) == 1

    def test_duplicate_expense_payment_moves_payables_once(self, posting, db_session):
        posting.accrue_expense(
            "exp-1", "ven-1", Decimal("200"), date(2025, 3, 1), "5007", "Plumbing repair"
        )
        posting.pay_expense("exp-1", "ven-1", Decimal("200"), date(2025, 3, 10))
        posting.pay_expense("exp-1", "ven-1", Decimal("200"), date(2025, 3, 10))
        db_session.commit()

        payables = BalanceService(db_session).get_balance("2000", date(2025, 3, 31))
        payments = db_session.execute(
            select(func.count(TransactionEntry.id)).where(
                TransactionEntry.source == EntrySource.EXPENSE_PAYMENT
            )
        ).scalar()

        assert payments == 1
        assert payables.net_balance == Decimal("0")


class TestReverse:

    def test_reversal_offsets_original(self, posting, db_session):
        original = posting.post(rent_payment_event()).entry
        db_session.commit()

        result = posting.reverse(original.id, "Bounced payment")
        db_session.commit()

        reversal = result.entry
        assert result.created is True
        assert reversal.source == EntrySource.ADJUSTMENT
        assert reversal.source_model == SourceKind.TRANSACTION_ENTRY
        assert reversal.source_id == str(original.id)
        assert reversal.reversal_of_id == original.id
        assert [(l.account_code, l.debit, l.credit) for l in reversal.lines] == [
            (l.account_code, l.credit, l.debit) for l in original.lines
        ]

    def test_original_is_untouched(self, posting, db_session):
        original = posting.post(rent_payment_event()).entry
        db_session.commit()

        posting.reverse(original.id, "Bounced payment")
        db_session.commit()
        db_session.refresh(original)

        assert original.status == EntryStatus.POSTED
        assert original.total_debit == Decimal("300")

    def test_reversal_nets_balances_to_zero(self, posting, db_session):
        original = posting.post(rent_payment_event()).entry
        posting.reverse(original.id, "Bounced payment")
        db_session.commit()

        bank = BalanceService(db_session).get_balance("1001", date(2025, 12, 31))

        assert bank.net_balance == Decimal("0")
        assert LedgerService(db_session).check_integrity().is_balanced is True

    def test_reversing_twice_returns_first_reversal(self, posting, db_session):
        original = posting.post(rent_payment_event()).entry
        first = posting.reverse(original.id, "Bounced payment")
        second = posting.reverse(original.id, "Bounced payment")

        assert second.created is False
        assert second.entry.id == first.entry.id

    def test_reversal_allowed_on_deactivated_account(self, posting, chart, db_session):
        original = posting.post(rent_payment_event()).entry
        chart.deactivate_account("1001")
        db_session.commit()

        assert posting.reverse(original.id, "Closed bank account").created is True

    def test_unknown_entry(self, posting):
        with pytest.raises(EntryNotFoundError):
            posting.reverse(404, "Missing")


class TestCounterparties:

    def test_debtor_balance_follows_receivables(self, posting, db_session):
        posting.accrue_rent("deb-1", Decimal("300"), date(2025, 1, 1), "Jane Doe")
        posting.receive_rent_payment("pay-1", "deb-1", Decimal("120"), date(2025, 1, 20))
        db_session.commit()

        balance = LedgerService(db_session).get_counterparty_balance(SourceKind.DEBTOR, "deb-1")

        assert balance.balance == Decimal("180")

    def test_vendor_balance_follows_payables(self, posting, db_session):
        posting.accrue_expense(
            "exp-1", "ven-1", Decimal("200"), date(2025, 3, 1), "5007", "Plumbing repair"
        )
        db_session.commit()

        service = LedgerService(db_session)
        assert service.get_counterparty_balance(SourceKind.VENDOR, "ven-1").balance == Decimal("200")

        posting.pay_expense("exp-1", "ven-1", Decimal("200"), date(2025, 3, 10))
        db_session.commit()

        assert service.get_counterparty_balance(SourceKind.VENDOR, "ven-1").balance == Decimal("0")

    def test_reversal_unwinds_debtor_balance(self, posting, db_session):
        accrual = posting.accrue_rent("deb-1", Decimal("300"), date(2025, 1, 1), "Jane Doe").entry
        posting.reverse(accrual.id, "Lease cancelled")
        db_session.commit()

        balance = LedgerService(db_session).get_counterparty_balance(SourceKind.DEBTOR, "deb-1")

        assert balance.balance == Decimal("0")

    def test_unknown_counterparty_is_zero(self, db_session):
        balance = LedgerService(db_session).get_counterparty_balance(SourceKind.VENDOR, "nobody")

        assert balance.balance == Decimal("0")


class TestCacheInvalidation:

    def test_posting_drops_balances_on_or_after_entry_date(self, db_session, chart):
        cache = BalanceCache()
        balances = BalanceService(db_session, cache)
        posting = PostingService(db_session, cache=cache, id_issuer=SequenceIssuer())

        balances.get_balance("1001", date(2025, 1, 31))
        balances.get_balance("1001", date(2025, 3, 31))
        assert len(cache) == 2

        posting.post(rent_payment_event())

        assert len(cache) == 1
        assert cache.get(BalanceKey("1001", date(2025, 1, 31), Basis.ACCRUAL, None, True)) is not None
        assert balances.get_balance("1001", date(2025, 1, 31)).net_balance == Decimal("0")
        assert balances.get_balance("1001", date(2025, 3, 31)).net_balance == Decimal("300")

    def test_balance_cached_before_commit_is_dropped_on_commit(self, db_session, chart):
        cache = BalanceCache()
        posting = PostingService(db_session, cache=cache, id_issuer=SequenceIssuer())
        posting.post(rent_payment_event())
        # Another session cannot see the entry yet and caches the old figure.
        stale = BalanceKey("1001", date(2025, 3, 31), Basis.ACCRUAL, None, True)
        cache.set(stale, "old")

        db_session.commit()

        assert cache.get(stale) is None


class TestExpenseHelpers:

    def test_expense_accrual_is_not_cash(self, posting):
        entry = posting.accrue_expense(
            "exp-2", "ven-2", Decimal("75"), date(2025, 4, 2), "5002", "Electricity April"
        ).entry

        assert entry.is_cash is False
        assert entry.source_model == SourceKind.EXPENSE
        assert entry.details["vendor_id"] == "ven-2"

    def test_expense_reference_is_tagged(self):
        ref = ExpenseRef(id="exp-9")

        assert ref.kind == "expense"
        assert ref.source_kind == SourceKind.EXPENSE
