"""
Counterparty balance model.

A denormalized running balance for a debtor (what the student owes)
or a vendor (what the business owes the vendor). It is a convenience
copy of what the ledger already says, and it is only ever written by
the posting service inside the same unit of work as the entry that
moves it, so the two cannot drift apart.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, DateTime, Numeric, UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from rental_ledger.models.base import Base
from rental_ledger.models.enums import SourceKind


class CounterpartyBalance(Base):
    __tablename__ = "counterparty_balances"
    __table_args__ = (
        UniqueConstraint("kind", "record_id", name="uq_counterparty"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[SourceKind] = mapped_column(
        SAEnum(SourceKind, name="source_kind_enum", create_constraint=True),
        nullable=False,
    )
    record_id: Mapped[str] = mapped_column(String(64), nullable=False)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False, default=Decimal("0")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<CounterpartyBalance {self.kind.value}:{self.record_id} {self.balance}>"
