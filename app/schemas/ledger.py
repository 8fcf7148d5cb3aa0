"""
Schemas for credit ledger endpoints.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class OpenAccountRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    initial_credit: Decimal | None = Field(default=None, ge=0, decimal_places=2)


class TopUpRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)


class BillingSettingsRequest(BaseModel):
    is_pay_as_you_go: bool | None = None
    has_payment_method: bool | None = None


class AccountResponse(BaseModel):
    user_id: str
    balance: Decimal
    outstanding: Decimal
    is_pay_as_you_go: bool
    has_payment_method: bool
    total_spent: Decimal

    model_config = {"from_attributes": True}


class TransactionResponse(BaseModel):
    id: UUID
    user_id: str
    evaluation_id: UUID | None = None
    kind: str
    action: str
    amount: Decimal
    balance_after: Decimal
    outstanding_after: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse] = Field(default_factory=list)
