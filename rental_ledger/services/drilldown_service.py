"""
Drill-down: from a reported balance back to the lines behind it.

For every contributing line the service finds a human-readable
counterpart (the student, vendor or debtor involved), trying in
order:
1. The entry's source reference, looked up in the directory
2. Names cached in the entry's metadata
3. Patterns in the entry description, then the name of the
   per-counterparty sub-account ("1100-<debtor>") the line hit

The sub-account name belongs to the line, not the entry, so two
lines of one entry can resolve to different counterparts.

A line nothing resolves is labelled "Unknown" and carries a
warning. Lookup failures never abort the drill-down.
"""

import logging
import re
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Callable, NamedTuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_ledger.config import get_settings
from rental_ledger.exceptions import ResolutionDegraded
from rental_ledger.models.enums import Basis, EntrySource, EntryStatus, SourceKind
from rental_ledger.models.transaction_entry import EntryLine, TransactionEntry
from rental_ledger.schemas.drilldown import (
    ChildSubtotal,
    DrillDownLine,
    DrillDownResponse,
    DrillDownSummary,
)
from rental_ledger.services.balance_service import ZERO, check_period, sign
from rental_ledger.services.chart_service import ChartService, ChartTree
from rental_ledger.services.directory import Directory, InMemoryDirectory

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"

# Checked in order.
METADATA_NAME_KEYS = (
    "student_name",
    "tenant_name",
    "debtor_name",
    "vendor_name",
    "payer_name",
    "counterpart_name",
)

DESCRIPTION_PATTERNS = (
    # "Monthly rent accrual: Jane Doe - 11/2025"
    re.compile(r":\s*(?P<name>[^:\-]+?)\s+-\s+"),
    # "Rent payment from Jane Doe"
    re.compile(r"\bfrom\s+(?P<name>[A-Z][\w.']*(?:\s+[A-Z][\w.']*)+)"),
    # "A/R reduction for negotiated discount - Kudzai Pemhiwa"
    re.compile(r"-\s+(?P<name>[A-Za-z][^-\d]*?)\s*$"),
)

ACCOUNT_NAME_PATTERN = re.compile(
    r"^Accounts (?:Receivable|Payable) - (?P<name>.+)$"
)


class Resolution(NamedTuple):
    name: str
    resolved_from: str
    residence_id: str | None = None
    warning: str | None = None


class DrillDownService:

    def __init__(self, db: Session, directory: Directory | None = None):
        self.db = db
        self.directory = directory or InMemoryDirectory()
        self.settings = get_settings()
        self._resolved: dict[int, Resolution] = {}
        self._source_resolvers: dict[SourceKind, Callable[[TransactionEntry, set[int]], Resolution | None]] = {
            SourceKind.PAYMENT: self._from_directory,
            SourceKind.EXPENSE: self._from_directory,
            SourceKind.DEBTOR: self._from_directory,
            SourceKind.VENDOR: self._from_directory,
            SourceKind.REQUEST: self._from_directory,
            SourceKind.TRANSACTION_ENTRY: self._from_referenced_entry,
        }

    def drill_down(
        self,
        code: str,
        start: date,
        end: date,
        source_filter: list[EntrySource] | None = None,
        basis: Basis | str = Basis.ACCRUAL,
        cumulative: bool | None = None,
    ) -> DrillDownResponse:
        """
        Every posted line behind an account's figure for a period.

        Balance-sheet accounts are cumulative by default (every
        line up to end), income and expense accounts take only the
        lines inside the period.
        """
        check_period(start, end)
        basis = Basis.parse(basis)
        tree = ChartService(self.db).build_tree()
        account = tree.account(code)
        if cumulative is None:
            cumulative = account.account_type.is_balance_sheet
        codes = tree.subtree_codes(code)

        stmt = (
            select(EntryLine, TransactionEntry)
            .join(TransactionEntry, EntryLine.entry_id == TransactionEntry.id)
            .where(
                TransactionEntry.status == EntryStatus.POSTED,
                EntryLine.account_code.in_(codes),
                TransactionEntry.date <= end,
            )
            .order_by(TransactionEntry.date, TransactionEntry.id, EntryLine.line_no)
        )
        if not cumulative:
            stmt = stmt.where(TransactionEntry.date >= start)
        if basis == Basis.CASH:
            stmt = stmt.where(TransactionEntry.is_cash.is_(True))
        if source_filter:
            stmt = stmt.where(TransactionEntry.source.in_(source_filter))

        lines = []
        running = ZERO
        for line, entry in self.db.execute(stmt).all():
            debit = Decimal(str(line.debit))
            credit = Decimal(str(line.credit))
            running += sign(account.account_type, debit, credit)
            resolution = self.resolve(
                entry, self._sub_account_name(tree, line.account_code, line.account_name)
            )
            residence_id = entry.residence_id or resolution.residence_id
            lines.append(DrillDownLine(
                entry_id=entry.id,
                transaction_id=entry.transaction_id,
                date=entry.date,
                account_code=line.account_code,
                account_name=line.account_name,
                description=line.description or entry.description,
                reference=entry.reference,
                source=entry.source,
                source_model=entry.source_model,
                source_id=entry.source_id,
                debit=debit,
                credit=credit,
                running_balance=running,
                counterpart=resolution.name,
                resolved_from=resolution.resolved_from,
                residence_id=residence_id,
                residence_name=self._residence_name(residence_id),
                warning=resolution.warning,
            ))

        total_debit = sum((l.debit for l in lines), ZERO)
        total_credit = sum((l.credit for l in lines), ZERO)

        return DrillDownResponse(
            account_code=account.code,
            account_name=account.name,
            period_start=start,
            period_end=end,
            cumulative=cumulative,
            basis=basis,
            lines=lines,
            summary=DrillDownSummary(
                line_count=len(lines),
                total_debit=total_debit,
                total_credit=total_credit,
                net=sign(account.account_type, total_debit, total_credit),
                unresolved_count=sum(1 for l in lines if l.warning is not None),
            ),
            child_subtotals=self._child_subtotals(tree, account, lines),
        )

    def resolve(
        self,
        entry: TransactionEntry,
        sub_account_name: str | None = None,
        _seen: set[int] | None = None,
    ) -> Resolution:
        """
        Find the counterpart behind an entry. Never raises.

        sub_account_name is the name of the per-counterparty account
        a line was posted to. It is only consulted when nothing on the
        entry itself names the counterpart.
        """
        resolution = self._resolve_entry(entry, _seen)
        if resolution.warning is not None and sub_account_name:
            match = ACCOUNT_NAME_PATTERN.match(sub_account_name)
            if match:
                return Resolution(match.group("name").strip(), "description")
        return resolution

    def _resolve_entry(
        self, entry: TransactionEntry, _seen: set[int] | None
    ) -> Resolution:
        if entry.id in self._resolved:
            return self._resolved[entry.id]

        seen = (_seen or set()) | {entry.id}
        problems = []

        resolution = None
        if entry.source_model is not None and entry.source_id:
            try:
                resolution = self._source_resolvers[entry.source_model](entry, seen)
            except Exception as e:
                logger.debug(
                    "Source lookup failed for entry %s", entry.id, exc_info=True
                )
                problems.append(
                    f"{entry.source_model.value} {entry.source_id} lookup failed: {e}"
                )
            else:
                if resolution is None:
                    problems.append(
                        f"{entry.source_model.value} {entry.source_id} not found"
                    )

        if resolution is None:
            resolution = self._from_metadata(entry, problems)
        if resolution is None:
            resolution = self._from_description(entry)

        if resolution is None:
            reason = "; ".join(problems) or "no source, metadata or description match"
            warning = ResolutionDegraded(reason)
            logger.debug("Unresolved counterpart for entry %s: %s", entry.id, warning)
            resolution = Resolution(UNKNOWN, "unresolved", warning=str(warning))

        self._resolved[entry.id] = resolution
        return resolution

    def _sub_account_name(
        self, tree: ChartTree, code: str, account_name: str
    ) -> str | None:
        """
        The line's account name if the account hangs under another
        one. Control accounts such as 1100 name the whole ledger, not
        a counterparty.
        """
        if code in (self.settings.RECEIVABLES_ACCOUNT_CODE, self.settings.PAYABLES_ACCOUNT_CODE):
            return None
        account = tree.by_code.get(code)
        if account is None:
            return None
        if account.parent_id is None and code not in tree.prefix_links:
            return None
        return account_name

    def _from_directory(
        self, entry: TransactionEntry, seen: set[int]
    ) -> Resolution | None:
        record = self.directory.lookup(entry.source_model, entry.source_id)
        if record is None:
            return None
        return Resolution(record.display_name, "source", record.residence_id)

    def _from_referenced_entry(
        self, entry: TransactionEntry, seen: set[int]
    ) -> Resolution | None:
        """A correction takes the counterpart of the entry it corrects."""
        if not entry.source_id.isdigit() or int(entry.source_id) in seen:
            return None
        original = self.db.get(TransactionEntry, int(entry.source_id))
        if original is None:
            return None
        found = self.resolve(original, _seen=seen)
        if found.warning is not None:
            return None
        return Resolution(found.name, "source", found.residence_id)

    def _from_metadata(
        self, entry: TransactionEntry, problems: list[str]
    ) -> Resolution | None:
        metadata = entry.details or {}
        for key in METADATA_NAME_KEYS:
            value = metadata.get(key)
            if isinstance(value, str) and value.strip():
                return Resolution(value.strip(), "metadata")

        for key, kind in (("debtor_id", SourceKind.DEBTOR), ("vendor_id", SourceKind.VENDOR)):
            record_id = metadata.get(key)
            if not record_id:
                continue
            try:
                record = self.directory.lookup(kind, str(record_id))
            except Exception as e:
                logger.debug("Directory lookup failed for %s %s", kind.value, record_id, exc_info=True)
                problems.append(f"{kind.value} {record_id} lookup failed: {e}")
                continue
            if record is not None:
                return Resolution(record.display_name, "metadata", record.residence_id)
        return None

    @staticmethod
    def _from_description(entry: TransactionEntry) -> Resolution | None:
        for pattern in DESCRIPTION_PATTERNS:
            match = pattern.search(entry.description or "")
            if match:
                return Resolution(match.group("name").strip(), "description")
        return None

    def _residence_name(self, residence_id: str | None) -> str | None:
        if residence_id is None:
            return None
        try:
            return self.directory.residence_name(residence_id)
        except Exception:
            logger.debug("Residence lookup failed for %s", residence_id, exc_info=True)
            return None

    @staticmethod
    def _child_subtotals(tree, account, lines: list[DrillDownLine]) -> list[ChildSubtotal]:
        children = tree.children(account.code)
        if not children:
            return []

        groups: OrderedDict[str, list[DrillDownLine]] = OrderedDict()
        names = {account.code: account.name}
        if any(l.account_code == account.code for l in lines):
            groups[account.code] = []
        for child in children:
            groups[child.code] = []
            names[child.code] = child.name
        for line in lines:
            groups[tree.owner_of(line.account_code, account.code)].append(line)

        subtotals = []
        for code, members in groups.items():
            debit = sum((l.debit for l in members), ZERO)
            credit = sum((l.credit for l in members), ZERO)
            subtotals.append(ChildSubtotal(
                account_code=code,
                account_name=names[code],
                debit_total=debit,
                credit_total=credit,
                net=sign(account.account_type, debit, credit),
                line_count=len(members),
            ))
        return subtotals
