
# schemas.py
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

PlanInterval = Literal["hourly", "daily", "weekly", "monthly", "quarterly", "biannually", "annually"]


# -------- PAYMENTS --------
class InitializePaymentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    email: str = Field(min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    metadata: Optional[Dict[str, Any]] = None


class InitializePaymentResponse(BaseModel):
    authorization_url: str
    access_code: str
    reference: str


class WithdrawalRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    recipient_code: str = Field(min_length=3, max_length=100)
    reason: Optional[str] = Field(default=None, max_length=200)


class WithdrawalResponse(BaseModel):
    reference: str
    transfer_code: Optional[str] = None
    gateway_status: str
    status: str


class TransactionResponse(BaseModel):
    id: UUID
    user_id: UUID
    amount: Decimal
    kind: str
    status: str
    reference: str
    gateway_transaction_id: Optional[str] = None
    settled_at: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: str
    updated_at: str


class VerifyResponse(BaseModel):
    reference: str
    status: str
    result: Optional[str] = None
    reason: Optional[str] = None
    gateway_status: Optional[str] = None
    transaction: TransactionResponse


class BalanceResponse(BaseModel):
    user_id: UUID
    balance: Decimal
    total_credited: Decimal
    total_withdrawn: Decimal


# -------- PLANS --------
class CreatePlanRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str = Field(min_length=1, max_length=100)
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    interval: PlanInterval


class SubscribeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    email: str = Field(min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    plan_code: str = Field(min_length=3, max_length=100)
