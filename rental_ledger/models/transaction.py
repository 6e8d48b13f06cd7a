"""
Transaction model.

The business-event header (a rent payment, an approved maintenance
expense, a monthly accrual) that owns the balanced entry underneath.
Headers add business context to the raw accounting lines.

A header is written once by the posting service and never edited.
Corrections are new headers with their own offsetting entry.
"""

import datetime as dt
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, Numeric,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_ledger.models.base import Base
from rental_ledger.models.enums import TransactionType


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        SAEnum(
            TransactionType,
            name="transaction_type_enum",
            create_constraint=True,
        ),
        nullable=False,
    )
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    residence_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(19, 4), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=dt.datetime.utcnow
    )

    entries: Mapped[list["TransactionEntry"]] = relationship(
        back_populates="transaction"
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.transaction_id} "
            f"{self.transaction_type.value} {self.amount}>"
        )
