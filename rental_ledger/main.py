"""
Rental Ledger: FastAPI application.

This is the entry point for the application.
All routers and error handlers are registered here.
"""

import uvicorn
from fastapi import FastAPI

from rental_ledger.config import get_settings
from rental_ledger.exceptions import LedgerError
from rental_ledger.logging_config import configure_logging
from rental_ledger.api.accounts import router as accounts_router
from rental_ledger.api.drilldown import router as drilldown_router
from rental_ledger.api.errors import ledger_error_handler
from rental_ledger.api.health import router as health_router
from rental_ledger.api.ledger import router as ledger_router
from rental_ledger.api.reports import router as reports_router

settings = get_settings()
configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Double-entry ledger and financial reporting for rental properties",
    debug=settings.DEBUG,
)

app.add_exception_handler(LedgerError, ledger_error_handler)

# Register routers
app.include_router(health_router)
app.include_router(accounts_router)
app.include_router(ledger_router)
app.include_router(reports_router)
app.include_router(drilldown_router)


if __name__ == "__main__":
    uvicorn.run(
        "rental_ledger.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
