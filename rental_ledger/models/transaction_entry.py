"""
Transaction entry model.

A TransactionEntry is the balanced set of debit and credit lines
produced by one business event. It is the unit of posting and the
unit the double-entry invariant is enforced on:

    sum(lines.debit) == sum(lines.credit) == total_debit == total_credit

Entries are immutable. Once posted they are never modified or
deleted; a correction is a new entry pointing at the original
through reversal_of_id.
"""

import datetime as dt
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON, Boolean, String, Date, DateTime, Integer, Numeric, ForeignKey,
    UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_ledger.models.base import Base
from rental_ledger.models.enums import (
    AccountType,
    EntrySource,
    EntryStatus,
    SourceKind,
)


class TransactionEntry(Base):
    """
    The ledger line-set for one business event.

    (source, source_id) is unique so that two callers racing to
    post the same payment or expense cannot both succeed. The
    posting service relies on this constraint rather than on a
    read-then-write check.
    """

    __tablename__ = "transaction_entries"
    __table_args__ = (
        UniqueConstraint("source", "source_id", name="uq_entry_source"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[str] = mapped_column(
        ForeignKey("transactions.transaction_id"), nullable=False, index=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_debit: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    total_credit: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    source: Mapped[EntrySource] = mapped_column(
        SAEnum(EntrySource, name="entry_source_enum", create_constraint=True),
        nullable=False,
        index=True,
    )
    source_model: Mapped[SourceKind | None] = mapped_column(
        SAEnum(SourceKind, name="source_kind_enum", create_constraint=True),
        nullable=True,
    )
    source_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Domain-specific natural key, e.g. a payment's external id.
    natural_key: Mapped[str | None] = mapped_column(
        String(128), unique=True, nullable=True
    )
    status: Mapped[EntryStatus] = mapped_column(
        SAEnum(EntryStatus, name="entry_status_enum", create_constraint=True),
        nullable=False,
        default=EntryStatus.POSTED,
    )
    # Fixed at posting time: True when any line touches a cash account.
    is_cash: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    residence_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    reversal_of_id: Mapped[int | None] = mapped_column(
        ForeignKey("transaction_entries.id"), nullable=True
    )
    # "metadata" is reserved on declarative classes, hence the
    # attribute name differs from the column name.
    details: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=dt.datetime.utcnow
    )

    transaction: Mapped["Transaction"] = relationship(back_populates="entries")
    lines: Mapped[list["EntryLine"]] = relationship(
        back_populates="entry",
        order_by="EntryLine.line_no",
        cascade="all, delete-orphan",
    )
    reversal_of: Mapped["TransactionEntry | None"] = relationship(
        remote_side=[id]
    )

    def __repr__(self) -> str:
        return (
            f"<TransactionEntry {self.id} {self.source.value} "
            f"{self.total_debit}/{self.total_credit}>"
        )


class EntryLine(Base):
    """
    One debit or credit line of a transaction entry.

    The account code, name and type are snapshotted at posting time
    so a later rename does not rewrite history.
    """

    __tablename__ = "entry_lines"

    id: Mapped[int] = mapped_column(primary_key=True)
    entry_id: Mapped[int] = mapped_column(
        ForeignKey("transaction_entries.id"), nullable=False, index=True
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), nullable=False, index=True
    )
    account_code: Mapped[str] = mapped_column(
        String(40), nullable=False, index=True
    )
    account_name: Mapped[str] = mapped_column(String(150), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType, name="account_type_enum", create_constraint=True),
        nullable=False,
    )
    debit: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    credit: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    entry: Mapped["TransactionEntry"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return (
            f"<EntryLine {self.account_code} "
            f"Dr {self.debit} Cr {self.credit}>"
        )
