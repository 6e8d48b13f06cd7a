"""
Chart of accounts API endpoints.
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from rental_ledger.exceptions import LedgerError
from rental_ledger.models.base import get_db
from rental_ledger.models.enums import AccountType
from rental_ledger.services.balance_cache import get_balance_cache
from rental_ledger.services.chart_service import ChartService
from rental_ledger.schemas.account import (
    AccountCreate,
    AccountResponse,
    AccountUpdate,
    GroupedAccountsResponse,
    PrefixChildResponse,
)

router = APIRouter(prefix="/accounts", tags=["Accounts"])


@router.post("", response_model=AccountResponse, status_code=201)
def create_account(
    request: AccountCreate,
    db: Session = Depends(get_db),
):
    """
    Create a new account.

    A child account must have the same type as its parent.
    """
    service = ChartService(db, cache=get_balance_cache())
    try:
        account = service.create_account(request)
        db.commit()
        return account
    except LedgerError:
        db.rollback()
        raise


@router.get("", response_model=list[AccountResponse])
def list_accounts(
    account_type: AccountType | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
):
    """List accounts in code order."""
    return ChartService(db).list_accounts(account_type, active_only)


@router.get("/grouped", response_model=GroupedAccountsResponse)
def grouped_accounts(db: Session = Depends(get_db)):
    """Accounts grouped by type."""
    grouped = ChartService(db).grouped_accounts()
    return GroupedAccountsResponse(
        assets=grouped[AccountType.ASSET],
        liabilities=grouped[AccountType.LIABILITY],
        equity=grouped[AccountType.EQUITY],
        income=grouped[AccountType.INCOME],
        expenses=grouped[AccountType.EXPENSE],
        total=sum(len(accounts) for accounts in grouped.values()),
    )


@router.post("/seed", response_model=list[AccountResponse], status_code=201)
def seed_accounts(db: Session = Depends(get_db)):
    """Create the missing accounts of the default rental chart."""
    service = ChartService(db, cache=get_balance_cache())
    try:
        created = service.seed_default_chart()
        db.commit()
        return created
    except LedgerError:
        db.rollback()
        raise


@router.get("/audit/prefix-children", response_model=list[PrefixChildResponse])
def audit_prefix_children(db: Session = Depends(get_db)):
    """
    Accounts that only roll up into a parent because of their code.

    Each should be given an explicit parent.
    """
    return [
        PrefixChildResponse(
            code=account.code,
            name=account.name,
            inferred_parent_code=parent_code,
        )
        for account, parent_code in ChartService(db).audit_prefix_children()
    ]


@router.get("/{code}", response_model=AccountResponse)
def get_account(code: str, db: Session = Depends(get_db)):
    """Get account details."""
    return ChartService(db).get_account(code)


@router.patch("/{code}", response_model=AccountResponse)
def update_account(
    code: str,
    request: AccountUpdate,
    db: Session = Depends(get_db),
):
    """
    Update an account.

    The type of an account with posted entries cannot change.
    """
    service = ChartService(db, cache=get_balance_cache())
    try:
        account = service.update_account(code, request)
        db.commit()
        return account
    except LedgerError:
        db.rollback()
        raise


@router.post("/{code}/deactivate", response_model=AccountResponse)
def deactivate_account(code: str, db: Session = Depends(get_db)):
    """Stop new postings to an account. Its history stays in every report."""
    service = ChartService(db, cache=get_balance_cache())
    try:
        account = service.deactivate_account(code)
        db.commit()
        return account
    except LedgerError:
        db.rollback()
        raise


@router.delete("/{code}", status_code=204)
def delete_account(code: str, db: Session = Depends(get_db)):
    """Delete an account that no entry references."""
    service = ChartService(db, cache=get_balance_cache())
    try:
        service.delete_account(code)
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    return Response(status_code=204)
