"""
Pydantic schemas for chart-of-accounts operations.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from rental_ledger.models.enums import AccountType


class AccountCreate(BaseModel):
    """Request to create a new account."""
    code: str = Field(min_length=1, max_length=40)
    name: str = Field(min_length=1, max_length=150)
    account_type: AccountType
    category: str = Field(default="Uncategorized", min_length=1, max_length=100)
    parent_code: str | None = Field(default=None, max_length=40)
    is_cash: bool = False


class AccountUpdate(BaseModel):
    """
    Partial update of an account.

    Only fields present in the request are applied, so sending
    "parent_code": null detaches an account from its parent while
    omitting the field leaves the parent alone.
    """
    name: str | None = Field(default=None, min_length=1, max_length=150)
    category: str | None = Field(default=None, min_length=1, max_length=100)
    account_type: AccountType | None = None
    parent_code: str | None = Field(default=None, max_length=40)
    is_cash: bool | None = None


class AccountResponse(BaseModel):
    id: int
    code: str
    name: str
    account_type: AccountType
    category: str
    parent_code: str | None
    is_active: bool
    is_cash: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class GroupedAccountsResponse(BaseModel):
    """Accounts grouped by statement section, for account pickers."""
    assets: list[AccountResponse]
    liabilities: list[AccountResponse]
    equity: list[AccountResponse]
    income: list[AccountResponse]
    expenses: list[AccountResponse]
    total: int


class PrefixChildResponse(BaseModel):
    """An account whose parent is only known from its code prefix."""
    code: str
    name: str
    inferred_parent_code: str
