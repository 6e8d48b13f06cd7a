"""initial ledger schema

Revision ID: 0001
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names.
ACCOUNT_TYPES = ("ASSET", "LIABILITY", "EQUITY", "INCOME", "EXPENSE")
TRANSACTION_TYPES = ("APPROVAL", "PAYMENT", "ADJUSTMENT", "ACCRUAL", "OTHER")
ENTRY_SOURCES = (
    "PAYMENT", "RENTAL_PAYMENT", "ADVANCE_PAYMENT", "DEBT_SETTLEMENT",
    "EXPENSE_PAYMENT", "VENDOR_PAYMENT", "BANK_TRANSFER", "PETTY_CASH",
    "MANUAL", "RENTAL_ACCRUAL", "EXPENSE_ACCRUAL", "MAINTENANCE_APPROVAL",
    "ADJUSTMENT", "OTHER",
)
SOURCE_KINDS = (
    "PAYMENT", "EXPENSE", "DEBTOR", "VENDOR", "REQUEST", "TRANSACTION_ENTRY",
)
ENTRY_STATUSES = ("POSTED", "REVERSED")

ENUMS = {
    "account_type_enum": ACCOUNT_TYPES,
    "transaction_type_enum": TRANSACTION_TYPES,
    "entry_source_enum": ENTRY_SOURCES,
    "source_kind_enum": SOURCE_KINDS,
    "entry_status_enum": ENTRY_STATUSES,
}


def _enum(name: str) -> sa.Enum:
    # Types are created once in upgrade(); several tables share them.
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(40), nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("account_type", _enum("account_type_enum"), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_cash", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_accounts_code", "accounts", ["code"], unique=True)
    op.create_index("ix_accounts_parent_id", "accounts", ["parent_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_id", sa.String(64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("transaction_type", _enum("transaction_type_enum"), nullable=False),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("residence_id", sa.String(64), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("amount", sa.Numeric(19, 4), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_transactions_transaction_id", "transactions", ["transaction_id"], unique=True
    )
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("ix_transactions_residence_id", "transactions", ["residence_id"])

    op.create_table(
        "transaction_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id", sa.String(64),
            sa.ForeignKey("transactions.transaction_id"), nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("total_debit", sa.Numeric(19, 4), nullable=False),
        sa.Column("total_credit", sa.Numeric(19, 4), nullable=False),
        sa.Column("source", _enum("entry_source_enum"), nullable=False),
        sa.Column("source_model", _enum("source_kind_enum"), nullable=True),
        sa.Column("source_id", sa.String(64), nullable=True),
        sa.Column("natural_key", sa.String(128), nullable=True, unique=True),
        sa.Column("status", _enum("entry_status_enum"), nullable=False),
        sa.Column("is_cash", sa.Boolean(), nullable=False),
        sa.Column("residence_id", sa.String(64), nullable=True),
        sa.Column(
            "reversal_of_id", sa.Integer(),
            sa.ForeignKey("transaction_entries.id"), nullable=True,
        ),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("source", "source_id", name="uq_entry_source"),
    )
    op.create_index(
        "ix_transaction_entries_transaction_id", "transaction_entries", ["transaction_id"]
    )
    op.create_index("ix_transaction_entries_date", "transaction_entries", ["date"])
    op.create_index("ix_transaction_entries_source", "transaction_entries", ["source"])
    op.create_index(
        "ix_transaction_entries_residence_id", "transaction_entries", ["residence_id"]
    )

    op.create_table(
        "entry_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "entry_id", sa.Integer(),
            sa.ForeignKey("transaction_entries.id"), nullable=False,
        ),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("account_code", sa.String(40), nullable=False),
        sa.Column("account_name", sa.String(150), nullable=False),
        sa.Column("account_type", _enum("account_type_enum"), nullable=False),
        sa.Column("debit", sa.Numeric(19, 4), nullable=False),
        sa.Column("credit", sa.Numeric(19, 4), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
    )
    op.create_index("ix_entry_lines_entry_id", "entry_lines", ["entry_id"])
    op.create_index("ix_entry_lines_account_id", "entry_lines", ["account_id"])
    op.create_index("ix_entry_lines_account_code", "entry_lines", ["account_code"])

    op.create_table(
        "counterparty_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kind", _enum("source_kind_enum"), nullable=False),
        sa.Column("record_id", sa.String(64), nullable=False),
        sa.Column("balance", sa.Numeric(19, 4), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("kind", "record_id", name="uq_counterparty"),
    )


def downgrade() -> None:
    op.drop_table("counterparty_balances")
    op.drop_table("entry_lines")
    op.drop_table("transaction_entries")
    op.drop_table("transactions")
    op.drop_table("accounts")

    bind = op.get_bind()
    for name, values in reversed(list(ENUMS.items())):
        sa.Enum(*values, name=name).drop(bind, checkfirst=True)
