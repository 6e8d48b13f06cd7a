"""
Account model (chart of accounts).

Every account in the system (bank, receivables per residence,
rental income, maintenance expense, ...) is an Account. Entry
lines are posted against account codes.

Accounts form a tree through parent_id. A parent's balance is
derived from its own lines plus its children's balances; it is
never stored.
"""

from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_ledger.models.base import Base
from rental_ledger.models.enums import AccountType


class Account(Base):
    """
    A single account in the chart of accounts.

    Once referenced by a posted entry, an account is never
    deleted and its type never changes; it can only be
    deactivated via is_active=False.
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(
        String(40), unique=True, nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType, name="account_type_enum", create_constraint=True),
        nullable=False,
    )
    category: Mapped[str] = mapped_column(
        String(100), nullable=False, default="Uncategorized"
    )
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id"), nullable=True, index=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    # Cash and bank accounts. An entry touching any of them is a
    # realized cash movement and counts on the cash basis.
    is_cash: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    parent: Mapped["Account | None"] = relationship(
        remote_side=[id], back_populates="children"
    )
    children: Mapped[list["Account"]] = relationship(back_populates="parent")

    def __repr__(self) -> str:
        return f"<Account {self.code} ({self.account_type.value})>"

    @property
    def parent_code(self) -> str | None:
        return self.parent.code if self.parent is not None else None
