
# routes/payments.py
from fastapi import APIRouter, Depends, HTTPException

from app.payments.errors import (
    GatewayError,
    InsufficientFunds,
    LedgerMutationFailed,
    ReferenceNotFound,
)
from app.payments.service import PaymentService
from deps.auth import CurrentUser, get_current_user
from deps.payments import get_payment_service
from schemas import (
    BalanceResponse,
    CreatePlanRequest,
    InitializePaymentRequest,
    InitializePaymentResponse,
    SubscribeRequest,
    TransactionResponse,
    VerifyResponse,
    WithdrawalRequest,
    WithdrawalResponse,
)

router = APIRouter(prefix="/payments", tags=["payments"])


def map_payments_error(e: Exception) -> HTTPException:
    if isinstance(e, ReferenceNotFound):
        return HTTPException(status_code=404, detail="TRANSACTION_NOT_FOUND")
    if isinstance(e, InsufficientFunds):
        return HTTPException(status_code=409, detail="INSUFFICIENT_FUNDS")
    if isinstance(e, GatewayError):
        # Caller decides whether to retry; we never do.
        return HTTPException(
            status_code=502,
            detail={"error": "GATEWAY_ERROR", "operation": e.operation, "retryable": e.retryable},
        )
    if isinstance(e, LedgerMutationFailed):
        return HTTPException(status_code=503, detail={"error": "LEDGER_UNAVAILABLE", "retryable": True})
    if isinstance(e, ValueError):
        return HTTPException(status_code=422, detail=str(e))
    return HTTPException(status_code=500, detail="INTERNAL_ERROR")


@router.post("/initialize", response_model=InitializePaymentResponse)
def initialize_payment(
    body: InitializePaymentRequest,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return service.initialize_payment(
            user_id=user.user_id,
            email=body.email,
            amount=body.amount,
            metadata=body.metadata,
        )
    except (GatewayError, ValueError) as e:
        raise map_payments_error(e)


@router.get("/verify/{reference}", response_model=VerifyResponse)
def verify_payment(
    reference: str,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return service.verify(reference, user_id=user.user_id)
    except (ReferenceNotFound, GatewayError, LedgerMutationFailed) as e:
        raise map_payments_error(e)


@router.post("/withdrawals", response_model=WithdrawalResponse)
def create_withdrawal(
    body: WithdrawalRequest,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return service.initiate_withdrawal(
            user_id=user.user_id,
            amount=body.amount,
            recipient_code=body.recipient_code,
            reason=body.reason,
        )
    except (InsufficientFunds, GatewayError, ValueError) as e:
        raise map_payments_error(e)


@router.get("/transactions/{reference}", response_model=TransactionResponse)
def get_transaction(
    reference: str,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return service.get_transaction(reference, user_id=user.user_id).to_dict()
    except ReferenceNotFound as e:
        raise map_payments_error(e)


@router.get("/balance", response_model=BalanceResponse)
def get_balance(
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    bal = service.get_balance(user.user_id)
    return BalanceResponse(
        user_id=bal.user_id,
        balance=bal.balance,
        total_credited=bal.total_credited,
        total_withdrawn=bal.total_withdrawn,
    )


@router.post("/plans")
def create_plan(
    body: CreatePlanRequest,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return service.create_plan(name=body.name, amount=body.amount, interval=body.interval)
    except (GatewayError, ValueError) as e:
        raise map_payments_error(e)


@router.post("/subscriptions")
def subscribe(
    body: SubscribeRequest,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return service.subscribe(email=body.email, plan_code=body.plan_code)
    except GatewayError as e:
        raise map_payments_error(e)
