"""
app/api/routers/ledger_router.py

Credit account endpoints: opening, balance, top-ups, billing flags and
the transaction audit trail.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.dependencies import credit_ledger, http_error
from app.domain.errors import EvaluationError
from app.schemas.ledger import (
    AccountResponse,
    BillingSettingsRequest,
    OpenAccountRequest,
    TopUpRequest,
    TransactionListResponse,
    TransactionResponse,
)
from app.services.credit_ledger import CreditLedger

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
)
def open_account(
    body: OpenAccountRequest,
    ledger: CreditLedger = Depends(credit_ledger),
) -> AccountResponse:
    """
    Open a credit account. Opening an existing account returns it unchanged.
    """
    try:
        account = ledger.open_account(body.user_id, initial_credit=body.initial_credit)
    except EvaluationError as exc:
        raise http_error(exc) from exc
    return AccountResponse.model_validate(account)


@router.get("/{user_id}", response_model=AccountResponse)
def get_account(
    user_id: str,
    ledger: CreditLedger = Depends(credit_ledger),
) -> AccountResponse:
    try:
        account = ledger.get_account(user_id)
    except EvaluationError as exc:
        raise http_error(exc) from exc
    return AccountResponse.model_validate(account)


@router.post("/{user_id}/top-up", response_model=AccountResponse)
def top_up(
    user_id: str,
    body: TopUpRequest,
    ledger: CreditLedger = Depends(credit_ledger),
) -> AccountResponse:
    """
    Add funds. Any outstanding pay-as-you-go debt is settled first.
    """
    try:
        account = ledger.top_up(user_id, body.amount)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except EvaluationError as exc:
        raise http_error(exc) from exc
    return AccountResponse.model_validate(account)


@router.put("/{user_id}/billing", response_model=AccountResponse)
def update_billing(
    user_id: str,
    body: BillingSettingsRequest,
    ledger: CreditLedger = Depends(credit_ledger),
) -> AccountResponse:
    try:
        account = ledger.set_billing(
            user_id,
            is_pay_as_you_go=body.is_pay_as_you_go,
            has_payment_method=body.has_payment_method,
        )
    except EvaluationError as exc:
        raise http_error(exc) from exc
    return AccountResponse.model_validate(account)


@router.get("/{user_id}/transactions", response_model=TransactionListResponse)
def list_transactions(
    user_id: str,
    evaluation_id: UUID | None = Query(default=None, description="Optional evaluation filter"),
    limit: int = Query(default=100, ge=1, le=500, description="Max transactions returned"),
    ledger: CreditLedger = Depends(credit_ledger),
) -> TransactionListResponse:
    transactions = ledger.list_transactions(user_id, evaluation_id, limit=limit)
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(item) for item in transactions]
    )
