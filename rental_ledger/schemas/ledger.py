"""
Pydantic schemas for ledger operations.

These define the posting contract. They are separate from the
database models because the API shape and the storage shape
differ: a source reference is a tagged union here and a
(source_model, source_id) column pair in the database.
"""

import datetime as dt
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices, BaseModel, Field, field_validator, model_validator,
)

from rental_ledger.models.enums import (
    AccountType,
    EntrySource,
    EntryStatus,
    SourceKind,
    TransactionType,
)


# --- Source references ---

class _SourceRef(BaseModel):
    id: str = Field(min_length=1, max_length=64)

    @property
    def source_kind(self) -> SourceKind:
        return SourceKind(self.kind)


class PaymentRef(_SourceRef):
    kind: Literal["payment"] = "payment"


class ExpenseRef(_SourceRef):
    kind: Literal["expense"] = "expense"


class DebtorRef(_SourceRef):
    kind: Literal["debtor"] = "debtor"


class VendorRef(_SourceRef):
    kind: Literal["vendor"] = "vendor"


class RequestRef(_SourceRef):
    kind: Literal["request"] = "request"


class TransactionEntryRef(_SourceRef):
    kind: Literal["transaction_entry"] = "transaction_entry"


SourceRef = Annotated[
    Union[
        PaymentRef, ExpenseRef, DebtorRef, VendorRef,
        RequestRef, TransactionEntryRef,
    ],
    Field(discriminator="kind"),
]

# --- Request Schemas ---

class PostingLine(BaseModel):
    """One debit or credit line of a candidate entry."""
    account_code: str = Field(min_length=1, max_length=40)
    debit: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=4)
    credit: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=4)
    description: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def exactly_one_side(self) -> "PostingLine":
        if (self.debit > 0) == (self.credit > 0):
            raise ValueError(
                "a line must carry either a debit or a credit amount"
            )
        return self


class PostingEvent(BaseModel):
    """
    A business event ready to be posted.

    Account codes are already resolved by the caller; the posting
    service only checks that they exist, are active and balance.
    """
    source: EntrySource
    source_ref: SourceRef | None = None
    natural_key: str | None = Field(default=None, min_length=1, max_length=128)
    date: dt.date
    description: str = Field(min_length=1, max_length=500)
    reference: str | None = Field(default=None, max_length=255)
    residence_id: str | None = Field(default=None, max_length=64)
    created_by: str | None = Field(default=None, max_length=100)
    amount: Decimal | None = Field(default=None, ge=0, decimal_places=4)
    transaction_type: TransactionType | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    lines: list[PostingLine] = Field(min_length=2)

    @field_validator("lines")
    @classmethod
    def must_have_debits_and_credits(cls, v: list[PostingLine]) -> list[PostingLine]:
        if not any(line.debit > 0 for line in v) or not any(
            line.credit > 0 for line in v
        ):
            raise ValueError(
                "entry must contain at least one debit and one credit"
            )
        return v


class ReverseRequest(BaseModel):
    """Request to reverse a posted entry with an offsetting entry."""
    reason: str = Field(min_length=1, max_length=255)
    date: dt.date | None = None
    created_by: str | None = Field(default=None, max_length=100)


# --- Response Schemas ---

class EntryLineResponse(BaseModel):
    line_no: int
    account_code: str
    account_name: str
    account_type: AccountType
    debit: Decimal
    credit: Decimal
    description: str | None

    model_config = {"from_attributes": True}


class TransactionEntryResponse(BaseModel):
    id: int
    transaction_id: str
    date: dt.date
    description: str
    reference: str | None
    total_debit: Decimal
    total_credit: Decimal
    source: EntrySource
    source_model: SourceKind | None
    source_id: str | None
    natural_key: str | None
    status: EntryStatus
    is_cash: bool
    residence_id: str | None
    reversal_of_id: int | None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("details", "metadata"),
    )
    lines: list[EntryLineResponse]
    created_at: dt.datetime

    model_config = {"from_attributes": True}


class PostEntryResponse(BaseModel):
    """Response after posting; created is False for a duplicate."""
    created: bool
    entry: TransactionEntryResponse


class IntegrityIssue(BaseModel):
    entry_id: int
    transaction_id: str
    problem: str
    detail: str


class IntegrityReport(BaseModel):
    is_balanced: bool
    total_debits: Decimal
    total_credits: Decimal
    difference: Decimal
    entries_checked: int
    issues: list[IntegrityIssue]


class CounterpartyBalanceResponse(BaseModel):
    kind: SourceKind
    record_id: str
    balance: Decimal
    updated_at: dt.datetime | None

    model_config = {"from_attributes": True}
