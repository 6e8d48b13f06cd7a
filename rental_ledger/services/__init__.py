"""Business logic services."""

from rental_ledger.services.chart_service import ChartService
from rental_ledger.services.ledger_service import LedgerService
from rental_ledger.services.posting_service import PostingService
from rental_ledger.services.balance_service import BalanceService
from rental_ledger.services.report_service import ReportService
from rental_ledger.services.drilldown_service import DrillDownService

__all__ = [
    "ChartService",
    "LedgerService",
    "PostingService",
    "BalanceService",
    "ReportService",
    "DrillDownService",
]
