"""
Tests for the DrillDownService.

Tests cover:
- Counterpart resolution by source, metadata, description and account name
- Failing lookups degrade to "Unknown" instead of aborting
- Running balances, summaries and child subtotals
- Cumulative and ranged windows, source and basis filters
- Reversals resolving through the entry they reverse
"""

from datetime import date
from decimal import Decimal

import pytest

from rental_ledger.exceptions import AccountNotFoundError, InvalidPeriodError
from rental_ledger.models.account import Account
from rental_ledger.models.enums import AccountType, Basis, EntrySource, SourceKind
from rental_ledger.services.drilldown_service import UNKNOWN, DrillDownService
from rental_ledger.services.posting_service import build_event


class ExplodingDirectory:
    """A directory whose backing service is down."""

    def lookup(self, kind, record_id):
        raise RuntimeError("directory unavailable")

    def residence_name(self, residence_id):
        raise RuntimeError("directory unavailable")


class CountingDirectory:

    def __init__(self, inner):
        self.inner = inner
        self.lookups = 0

    def lookup(self, kind, record_id):
        self.lookups += 1
        return self.inner.lookup(kind, record_id)

    def residence_name(self, residence_id):
        return self.inner.residence_name(residence_id)


@pytest.fixture
def rent_history(posting, db_session):
    """Two months of rent for one tenant, January paid in February."""
    posting.accrue_rent("deb-1", Decimal("300"), date(2025, 1, 1), "Jane Doe",
                        residence_id="res-1")
    posting.accrue_rent("deb-1", Decimal("300"), date(2025, 2, 1), "Jane Doe",
                        residence_id="res-1")
    posting.receive_rent_payment("pay-1", "deb-1", Decimal("300"), date(2025, 2, 5),
                                 residence_id="res-1")
    db_session.commit()


class TestResolution:

    def test_source_record_from_directory(self, rent_history, directory, db_session):
        directory.register(SourceKind.PAYMENT, "pay-1", "PAY-1", party="Jane Doe",
                           residence_id="res-1")
        directory.register_residence("res-1", "St Kilda")

        result = DrillDownService(db_session, directory).drill_down(
            "1001", date(2025, 2, 1), date(2025, 2, 28)
        )
        line = result.lines[0]

        assert line.counterpart == "Jane Doe"
        assert line.resolved_from == "source"
        assert line.residence_name == "St Kilda"
        assert line.warning is None

    def test_metadata_name(self, rent_history, directory, db_session):
        result = DrillDownService(db_session, directory).drill_down(
            "4001", date(2025, 1, 1), date(2025, 1, 31)
        )

        assert [l.counterpart for l in result.lines] == ["Jane Doe"]
        assert result.lines[0].resolved_from == "metadata"

    def test_metadata_debtor_id_when_source_missing(self, rent_history, directory, db_session):
        directory.register(SourceKind.DEBTOR, "deb-1", "Debtor 001", party="Jane Doe")

        result = DrillDownService(db_session, directory).drill_down(
            "1001", date(2025, 2, 1), date(2025, 2, 28)
        )

        assert result.lines[0].counterpart == "Jane Doe"
        assert result.lines[0].resolved_from == "metadata"

    def test_description_pattern(self, posting, directory, db_session):
        posting.post(build_event(
            EntrySource.MANUAL, date(2025, 1, 9), "Rent payment from Tendai Moyo",
            [("1002", Decimal("150"), Decimal("0")),
             ("4002", Decimal("0"), Decimal("150"))],
        ))
        db_session.commit()

        result = DrillDownService(db_session, directory).drill_down(
            "1002", date(2025, 1, 1), date(2025, 1, 31)
        )

        assert result.lines[0].counterpart == "Tendai Moyo"
        assert result.lines[0].resolved_from == "description"

    def test_account_name_pattern(self, posting, directory, db_session):
        db_session.add(Account(
            code="1100-deb7",
            name="Accounts Receivable - Kudzai Pemhiwa",
            account_type=AccountType.ASSET,
            category="Current Assets",
        ))
        db_session.commit()
        posting.post(build_event(
            EntrySource.MANUAL, date(2025, 1, 2), "Opening balance",
            [("1100-deb7", Decimal("80"), Decimal("0")),
             ("3000", Decimal("0"), Decimal("80"))],
        ))
        db_session.commit()

        result = DrillDownService(db_session, directory).drill_down(
            "1100", date(2025, 1, 1), date(2025, 1, 31)
        )

        assert result.lines[0].counterpart == "Kudzai Pemhiwa"

    def test_control_account_name_is_not_a_counterpart(self, posting, directory, db_session):
        posting.post(build_event(
            EntrySource.MANUAL, date(2025, 1, 4), "Opening balance",
            [("1100", Decimal("60"), Decimal("0")),
             ("3000", Decimal("0"), Decimal("60"))],
        ))
        db_session.commit()

        result = DrillDownService(db_session, directory).drill_down(
            "1100", date(2025, 1, 1), date(2025, 1, 31)
        )

        assert result.lines[0].counterpart == UNKNOWN
        assert result.lines[0].warning is not None
        assert result.summary.unresolved_count == 1

    def test_lines_of_one_entry_take_their_own_sub_account(self, posting, directory, db_session):
        for code, name in (
            ("1100-deb7", "Accounts Receivable - Kudzai Pemhiwa"),
            ("1100-deb8", "Accounts Receivable - Tendai Moyo"),
        ):
            db_session.add(Account(
                code=code, name=name,
                account_type=AccountType.ASSET, category="Current Assets",
            ))
        db_session.commit()
        posting.post(build_event(
            EntrySource.MANUAL, date(2025, 1, 2), "Opening balance",
            [("1100-deb7", Decimal("80"), Decimal("0")),
             ("1100-deb8", Decimal("50"), Decimal("0")),
             ("3000", Decimal("0"), Decimal("130"))],
        ))
        db_session.commit()

        result = DrillDownService(db_session, directory).drill_down(
            "1100", date(2025, 1, 1), date(2025, 1, 31)
        )

        assert [l.counterpart for l in result.lines] == ["Kudzai Pemhiwa", "Tendai Moyo"]
        assert result.summary.unresolved_count == 0

    def test_unresolved_line_carries_warning(self, rent_history, directory, db_session):
        result = DrillDownService(db_session, directory).drill_down(
            "1001", date(2025, 2, 1), date(2025, 2, 28)
        )
        line = result.lines[0]

        assert line.counterpart == UNKNOWN
        assert line.resolved_from == "unresolved"
        assert line.warning.startswith("RESOLUTION_DEGRADED")
        assert "payment pay-1 not found" in line.warning
        assert result.summary.unresolved_count == 1

    def test_failing_directory_does_not_abort(self, rent_history, db_session):
        result = DrillDownService(db_session, ExplodingDirectory()).drill_down(
            "1100", date(2025, 1, 1), date(2025, 2, 28)
        )

        assert result.summary.line_count == 3
        payment = result.lines[-1]
        assert payment.counterpart == UNKNOWN
        assert "lookup failed" in payment.warning
        assert payment.residence_name is None
        # Accruals still resolve from their cached tenant name.
        assert result.lines[0].counterpart == "Jane Doe"

    def test_each_entry_resolved_once(self, posting, directory, db_session):
        posting.post(build_event(
            EntrySource.BANK_TRANSFER, date(2025, 1, 3), "Float for petty cash",
            [("1011", Decimal("40"), Decimal("0")),
             ("1001", Decimal("0"), Decimal("40"))],
            source_ref={"kind": "request", "id": "req-3"},
        ))
        db_session.commit()
        counting = CountingDirectory(directory)

        result = DrillDownService(db_session, counting).drill_down(
            "1000", date(2025, 1, 1), date(2025, 1, 31)
        )

        assert result.summary.line_count == 2
        assert counting.lookups == 1

    def test_reversal_resolves_through_original(self, rent_history, directory, posting, db_session):
        directory.register(SourceKind.PAYMENT, "pay-1", "PAY-1", party="Jane Doe")
        payment = posting.receive_rent_payment(
            "pay-1", "deb-1", Decimal("300"), date(2025, 2, 5)
        ).entry
        posting.reverse(payment.id, "Bounced", on_date=date(2025, 2, 9))
        db_session.commit()

        result = DrillDownService(db_session, directory).drill_down(
            "1001", date(2025, 2, 1), date(2025, 2, 28)
        )

        assert [l.counterpart for l in result.lines] == ["Jane Doe", "Jane Doe"]
        assert result.lines[1].source == EntrySource.ADJUSTMENT
        assert result.lines[1].resolved_from == "source"


class TestWindows:

    def test_running_balance_follows_account_sign(self, rent_history, directory, db_session):
        result = DrillDownService(db_session, directory).drill_down(
            "1100", date(2025, 2, 1), date(2025, 2, 28)
        )

        assert result.cumulative is True
        assert [l.running_balance for l in result.lines] == [
            Decimal("300"), Decimal("600"), Decimal("300"),
        ]
        assert result.summary.net == Decimal("300")

    def test_ranged_window(self, rent_history, directory, db_session):
        result = DrillDownService(db_session, directory).drill_down(
            "1100", date(2025, 2, 1), date(2025, 2, 28), cumulative=False
        )

        assert [l.date for l in result.lines] == [date(2025, 2, 1), date(2025, 2, 5)]
        assert result.summary.net == Decimal("0")

    def test_income_accounts_default_to_the_period(self, rent_history, directory, db_session):
        result = DrillDownService(db_session, directory).drill_down(
            "4000", date(2025, 2, 1), date(2025, 2, 28)
        )

        assert result.cumulative is False
        assert result.summary.total_credit == Decimal("300")

    def test_source_filter(self, rent_history, directory, db_session):
        result = DrillDownService(db_session, directory).drill_down(
            "1100", date(2025, 1, 1), date(2025, 2, 28),
            source_filter=[EntrySource.RENTAL_PAYMENT],
        )

        assert [l.source for l in result.lines] == [EntrySource.RENTAL_PAYMENT]

    def test_cash_basis(self, rent_history, directory, db_session):
        result = DrillDownService(db_session, directory).drill_down(
            "1100", date(2025, 1, 1), date(2025, 2, 28), basis=Basis.CASH
        )

        assert result.summary.line_count == 1
        assert result.summary.total_credit == Decimal("300")

    def test_child_subtotals(self, posting, directory, db_session):
        posting.post(build_event(
            EntrySource.MANUAL, date(2025, 1, 1), "Opening cash",
            [("1001", Decimal("500"), Decimal("0")),
             ("1003", Decimal("50"), Decimal("0")),
             ("3000", Decimal("0"), Decimal("550"))],
        ))
        db_session.commit()

        result = DrillDownService(db_session, directory).drill_down(
            "1000", date(2025, 1, 1), date(2025, 1, 31)
        )
        subtotals = {s.account_code: s for s in result.child_subtotals}

        assert list(subtotals) == ["1001", "1002", "1003", "1011"]
        assert subtotals["1001"].net == Decimal("500")
        assert subtotals["1003"].line_count == 1
        assert subtotals["1002"].line_count == 0
        assert sum(s.net for s in result.child_subtotals) == result.summary.net

    def test_unknown_account(self, chart, directory, db_session):
        with pytest.raises(AccountNotFoundError):
            DrillDownService(db_session, directory).drill_down(
                "7777", date(2025, 1, 1), date(2025, 1, 31)
            )

    def test_start_after_end(self, chart, directory, db_session):
        with pytest.raises(InvalidPeriodError):
            DrillDownService(db_session, directory).drill_down(
                "1001", date(2025, 2, 1), date(2025, 1, 31)
            )
