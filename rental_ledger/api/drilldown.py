"""
Drill-down endpoint.

Behind every figure in a report: the lines that produced it and
who they were for.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from rental_ledger.models.base import get_db
from rental_ledger.models.enums import EntrySource
from rental_ledger.services.directory import Directory, get_directory
from rental_ledger.services.drilldown_service import DrillDownService
from rental_ledger.schemas.drilldown import DrillDownResponse

router = APIRouter(prefix="/drilldown", tags=["Drill-down"])


@router.get("/{code}", response_model=DrillDownResponse)
def drill_down(
    code: str,
    start: date,
    end: date,
    source: list[EntrySource] | None = Query(default=None),
    basis: str = "accrual",
    cumulative: bool | None = None,
    db: Session = Depends(get_db),
    directory: Directory = Depends(get_directory),
):
    """
    Lines posted to an account and its children.

    Balance-sheet accounts include everything up to end unless
    cumulative=false; income and expense accounts only the period.
    Filter by one or more entry sources with repeated source=...
    """
    service = DrillDownService(db, directory)
    return service.drill_down(code, start, end, source, basis, cumulative)
