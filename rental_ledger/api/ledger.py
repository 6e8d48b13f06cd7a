"""
Ledger API endpoints.

The API layer is thin. It handles HTTP concerns (status codes,
response formatting) and delegates posting to the PostingService
and reads to the LedgerService.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from rental_ledger.exceptions import LedgerError
from rental_ledger.models.base import get_db
from rental_ledger.models.enums import EntrySource, SourceKind
from rental_ledger.services.balance_cache import get_balance_cache
from rental_ledger.services.ledger_service import LedgerService
from rental_ledger.services.posting_service import PostingService
from rental_ledger.schemas.ledger import (
    CounterpartyBalanceResponse,
    IntegrityReport,
    PostEntryResponse,
    PostingEvent,
    ReverseRequest,
    TransactionEntryResponse,
)

router = APIRouter(prefix="/ledger", tags=["Ledger"])


@router.post("/entries", response_model=PostEntryResponse, status_code=201)
def post_entry(
    request: PostingEvent,
    response: Response,
    db: Session = Depends(get_db),
):
    """
    Post a business event as one balanced entry.

    Returns 201 with the new entry, or 200 with the stored entry
    when the same event was posted before.
    """
    service = PostingService(db, cache=get_balance_cache())
    try:
        result = service.post(request)
        db.commit()
    except LedgerError:
        db.rollback()
        raise

    if not result.created:
        response.status_code = 200
    return PostEntryResponse(
        created=result.created,
        entry=TransactionEntryResponse.model_validate(result.entry),
    )


@router.post(
    "/entries/{entry_id}/reverse",
    response_model=PostEntryResponse,
    status_code=201,
)
def reverse_entry(
    entry_id: int,
    request: ReverseRequest,
    response: Response,
    db: Session = Depends(get_db),
):
    """
    Cancel a posted entry by posting its mirror image.

    The original entry is never modified.
    """
    service = PostingService(db, cache=get_balance_cache())
    try:
        result = service.reverse(
            entry_id, request.reason, request.date, request.created_by
        )
        db.commit()
    except LedgerError:
        db.rollback()
        raise

    if not result.created:
        response.status_code = 200
    return PostEntryResponse(
        created=result.created,
        entry=TransactionEntryResponse.model_validate(result.entry),
    )


@router.get("/entries", response_model=list[TransactionEntryResponse])
def list_entries(
    start: date | None = None,
    end: date | None = None,
    source: EntrySource | None = None,
    account_code: str | None = None,
    residence_id: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    """List entries, newest first."""
    entries = LedgerService(db).list_entries(
        start, end, source, account_code, residence_id, limit, offset
    )
    return [TransactionEntryResponse.model_validate(e) for e in entries]


@router.get("/entries/{entry_id}", response_model=TransactionEntryResponse)
def get_entry(entry_id: int, db: Session = Depends(get_db)):
    """Get one entry with its lines."""
    return TransactionEntryResponse.model_validate(
        LedgerService(db).get_entry(entry_id)
    )


@router.get("/integrity", response_model=IntegrityReport)
def check_integrity(db: Session = Depends(get_db)):
    """
    Verify that every posted entry balances.

    Problems are reported for an operator to investigate. Nothing
    is corrected automatically.
    """
    return LedgerService(db).check_integrity()


@router.get(
    "/counterparties/{kind}/{record_id}/balance",
    response_model=CounterpartyBalanceResponse,
)
def get_counterparty_balance(
    kind: SourceKind,
    record_id: str,
    db: Session = Depends(get_db),
):
    """Running balance of a debtor or vendor."""
    return LedgerService(db).get_counterparty_balance(kind, record_id)
