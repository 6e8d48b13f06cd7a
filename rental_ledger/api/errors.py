"""
Error responses.

Services raise LedgerError subclasses. Routers roll back the
session and let the error propagate; this handler turns it into
the standard error body.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from rental_ledger.exceptions import LedgerError

logger = logging.getLogger(__name__)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Return {error_code, message, details} with the error's status code."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info(
            "%s %s rejected: %s", request.method, request.url.path, exc.code
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.code,
            "message": exc.message,
            "details": exc.details,
        },
    )
