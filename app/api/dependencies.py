"""
app/api/dependencies.py

Shared FastAPI dependencies and the domain error to HTTP status mapping.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from app.domain.errors import (
    AccountNotFoundError,
    CollaboratorError,
    EvaluationError,
    InsufficientBalanceError,
    PersistenceError,
    RateLimitExceededError,
    ReportNotFoundError,
    SessionBusyError,
    SessionCompleteError,
    SessionNotFoundError,
    StreamTimeoutError,
)
from app.services.credit_ledger import CreditLedger, get_credit_ledger
from app.services.evaluation_service import EvaluationService, get_evaluation_service

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[EvaluationError], int], ...] = (
    (InsufficientBalanceError, status.HTTP_402_PAYMENT_REQUIRED),
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (AccountNotFoundError, status.HTTP_404_NOT_FOUND),
    (ReportNotFoundError, status.HTTP_404_NOT_FOUND),
    (SessionBusyError, status.HTTP_409_CONFLICT),
    (SessionCompleteError, status.HTTP_409_CONFLICT),
    (RateLimitExceededError, status.HTTP_429_TOO_MANY_REQUESTS),
    (CollaboratorError, status.HTTP_502_BAD_GATEWAY),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (StreamTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
)


def evaluation_service() -> EvaluationService:
    return get_evaluation_service()


def credit_ledger() -> CreditLedger:
    return get_credit_ledger()


def http_error(exc: EvaluationError) -> HTTPException:
    """
    Translate a domain error into the HTTPException the routers raise.
    """

    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if status_code >= 500:
        logger.warning("Request failed status=%s error=%s: %s", status_code, type(exc).__name__, exc)
    return HTTPException(status_code=status_code, detail=str(exc))
