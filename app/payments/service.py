
# app/payments/service.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

from app.notifications.dispatcher import NotificationDispatcher
from app.payments.errors import GatewayError, LedgerMutationFailed, ReferenceNotFound
from app.payments.ledger import LedgerUpdater
from app.payments.model import (
    Balance,
    Transaction,
    TransactionKind,
    TransactionStatus,
    TransitionResult,
    normalize_amount,
)
from app.payments.state_machine import TransitionOutcome, transition
from app.payments.store import TransactionStore
from app.providers.base import GatewayVerification, PaymentGateway
from services.metrics import increment_ledger_failure, increment_transition
from services.redaction import redact_text

logger = logging.getLogger("paystack.payments")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _transfer_refused(exc: GatewayError) -> bool:
    """A definitive 4xx rejection; timeouts and 5xx stay ambiguous."""
    return not exc.retryable and exc.status_code is not None and 400 <= exc.status_code < 500


class PaymentService:
    """
    Owns the settlement unit (transition + ledger, one store transaction) and the
    synchronous gateway flows. Webhooks and verify both end in settle(), so the
    same reference can never take two different code paths to a terminal state.
    """

    def __init__(
        self,
        *,
        store: TransactionStore,
        gateway: PaymentGateway,
        dispatcher: NotificationDispatcher,
        ledger: LedgerUpdater,
    ):
        self.store = store
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.ledger = ledger

    # ==========================================================
    # Settlement
    # ==========================================================

    def settle(
        self,
        reference: str,
        target_status: TransactionStatus,
        gateway_transaction_id: str | None = None,
        *,
        failure_reason: str | None = None,
        expected_kind: TransactionKind | None = None,
        source: str = "webhook",
    ) -> TransitionOutcome:
        try:
            with self.store.unit_of_work() as uow:
                outcome = transition(
                    uow,
                    reference=reference,
                    target_status=target_status,
                    gateway_transaction_id=gateway_transaction_id,
                    failure_reason=failure_reason,
                    expected_kind=expected_kind,
                )
                if outcome.applied and outcome.transaction is not None:
                    self.ledger.apply_ledger_effect(uow, outcome.transaction, outcome.result)
        except LedgerMutationFailed as exc:
            increment_ledger_failure(expected_kind.value if expected_kind else "unknown")
            logger.error("ledger_mutation_failed reference=%s source=%s error=%s", reference, source, exc)
            raise

        increment_transition(outcome.result.value, source)
        self._log_outcome(reference, target_status, outcome, source)

        txn = outcome.transaction
        if outcome.applied and txn is not None and txn.status == TransactionStatus.COMPLETED:
            # Outside the unit: the commit above already happened.
            self.dispatcher.dispatch(txn.user_id, txn.kind, txn.amount)

        return outcome

    @staticmethod
    def _log_outcome(reference: str, target: TransactionStatus, outcome: TransitionOutcome, source: str) -> None:
        if outcome.result == TransitionResult.APPLIED:
            logger.info("transition_applied reference=%s status=%s source=%s", reference, target.value, source)
        elif outcome.result == TransitionResult.ALREADY_TERMINAL:
            logger.info(
                "transition_skipped reference=%s requested=%s reason=%s source=%s",
                reference,
                target.value,
                outcome.reason,
                source,
            )
        else:
            logger.warning(
                "transition_not_found reference=%s requested=%s reason=%s source=%s",
                reference,
                target.value,
                outcome.reason,
                source,
            )

    # ==========================================================
    # Synchronous flows
    # ==========================================================

    def initialize_payment(
        self,
        *,
        user_id: UUID,
        email: str,
        amount: Any,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, str]:
        txn = Transaction.new_pending(user_id=user_id, amount=amount, kind=TransactionKind.PAYMENT)

        # Committed before the outbound call; no DB transaction stays open while we wait on the gateway.
        with self.store.unit_of_work() as uow:
            uow.insert_transaction(txn)

        logger.info(
            "payment_initialized reference=%s user_id=%s amount=%s email=%s",
            txn.reference,
            user_id,
            txn.amount,
            redact_text(email),
        )
        meta = {**(metadata or {}), "user_id": str(user_id)}
        result = self.gateway.initialize(email=email, amount=txn.amount, reference=txn.reference, metadata=meta)
        return {
            "authorization_url": result.authorization_url,
            "access_code": result.access_code,
            "reference": txn.reference,
        }

    def initiate_withdrawal(
        self,
        *,
        user_id: UUID,
        amount: Any,
        recipient_code: str,
        reason: str | None = None,
    ) -> dict[str, Any]:
        txn = Transaction.new_pending(user_id=user_id, amount=amount, kind=TransactionKind.WITHDRAWAL)

        # Debit and PENDING row commit together; the payout call happens after.
        with self.store.unit_of_work() as uow:
            remaining = uow.debit_balance(user_id=user_id, amount=txn.amount)
            uow.insert_transaction(txn)

        logger.info(
            "withdrawal_initiated reference=%s user_id=%s amount=%s balance=%s",
            txn.reference,
            user_id,
            txn.amount,
            remaining,
        )

        try:
            result = self.gateway.transfer(
                amount=txn.amount,
                recipient_code=recipient_code,
                reason=reason,
                reference=txn.reference,
            )
        except GatewayError as exc:
            if _transfer_refused(exc):
                # The gateway never created the payout; fail it now so the refund runs.
                logger.warning(
                    "withdrawal_transfer_refused reference=%s status_code=%s",
                    txn.reference,
                    exc.status_code,
                )
                self.settle(
                    txn.reference,
                    TransactionStatus.FAILED,
                    failure_reason=str(exc),
                    expected_kind=TransactionKind.WITHDRAWAL,
                    source="initiate",
                )
                raise
            # The gateway may or may not have accepted the payout; leave it PENDING for
            # the transfer webhook or the reconciler to settle.
            logger.warning("withdrawal_transfer_unconfirmed reference=%s", txn.reference)
            raise

        return {
            "reference": txn.reference,
            "transfer_code": result.transfer_code,
            "gateway_status": result.gateway_status,
            "status": TransactionStatus.PENDING.value,
        }

    def verify(self, reference: str, *, user_id: UUID | None = None) -> dict[str, Any]:
        """
        Ask the gateway about a reference and funnel a terminal answer through settle().
        Non-terminal answers leave the transaction untouched.
        """
        txn = self.get_transaction(reference, user_id=user_id)

        if txn.is_terminal:
            return self._verify_response(txn, TransitionResult.ALREADY_TERMINAL, gateway_status=None)

        if txn.kind == TransactionKind.PAYMENT:
            verification = self.gateway.verify(reference)
        else:
            verification = self.gateway.verify_transfer(reference)

        if verification.terminal_status is None:
            logger.info(
                "verify_in_flight reference=%s gateway_status=%s",
                reference,
                verification.gateway_status,
            )
            return self._verify_response(txn, None, gateway_status=verification.gateway_status)

        if verification.terminal_status == TransactionStatus.COMPLETED and not (
            verification.gateway_transaction_id or ""
        ).strip():
            # Same rule as the webhook path: no gateway id, no completion.
            logger.warning(
                "verify_in_flight reference=%s gateway_status=%s reason=MISSING_GATEWAY_ID",
                reference,
                verification.gateway_status,
            )
            return self._verify_response(
                txn, None, gateway_status=verification.gateway_status, reason="MISSING_GATEWAY_ID"
            )

        outcome = self._settle_verification(txn, verification)
        current = outcome.transaction or txn
        return self._verify_response(current, outcome.result, gateway_status=verification.gateway_status)

    def _settle_verification(self, txn: Transaction, verification: GatewayVerification) -> TransitionOutcome:
        return self.settle(
            txn.reference,
            verification.terminal_status,
            verification.gateway_transaction_id,
            failure_reason=verification.failure_reason or verification.gateway_status,
            expected_kind=txn.kind,
            source="verify",
        )

    @staticmethod
    def _verify_response(
        txn: Transaction,
        result: Optional[TransitionResult],
        *,
        gateway_status: str | None,
        reason: str | None = None,
    ) -> dict[str, Any]:
        return {
            "reference": txn.reference,
            "status": txn.status.value,
            "result": result.value if result else None,
            "reason": reason,
            "gateway_status": gateway_status,
            "transaction": txn.to_dict(),
        }

    def create_plan(self, *, name: str, amount: Any, interval: str) -> dict[str, Any]:
        return self.gateway.create_plan(name=name, amount=normalize_amount(amount), interval=interval)

    def subscribe(self, *, email: str, plan_code: str) -> dict[str, Any]:
        return self.gateway.subscribe(email=email, plan_code=plan_code)

    # ==========================================================
    # Reads
    # ==========================================================

    def get_transaction(self, reference: str, *, user_id: UUID | None = None) -> Transaction:
        with self.store.unit_of_work() as uow:
            txn = uow.get_by_reference(reference)
        # Someone else's reference looks exactly like an unknown one.
        if txn is None or (user_id is not None and txn.user_id != user_id):
            raise ReferenceNotFound(reference)
        return txn

    def get_balance(self, user_id: UUID) -> Balance:
        with self.store.unit_of_work() as uow:
            return uow.get_balance(user_id)

    # ==========================================================
    # Reconciliation
    # ==========================================================

    def reconcile_pending(self, *, older_than_minutes: int = 30, limit: int = 100) -> dict[str, Any]:
        """
        Verify every PENDING transaction older than the cutoff. Used when webhooks
        were lost; gateway errors are reported per reference, never raised.
        """
        run_at = _utcnow()
        cutoff = run_at - timedelta(minutes=older_than_minutes)
        with self.store.unit_of_work() as uow:
            stale = uow.list_stale_pending(older_than=cutoff, limit=limit)

        summary = {"checked": 0, "applied": 0, "already_terminal": 0, "in_flight": 0, "errors": 0}
        items: list[dict[str, Any]] = []

        for txn in stale:
            summary["checked"] += 1
            try:
                res = self.verify(txn.reference)
            except GatewayError as exc:
                summary["errors"] += 1
                items.append({"reference": txn.reference, "category": "gateway_error", "error": str(exc)})
                continue
            except LedgerMutationFailed as exc:
                summary["errors"] += 1
                items.append({"reference": txn.reference, "category": "ledger_failed", "error": str(exc)})
                continue
            except Exception as exc:
                # One bad reference must not stop the rest of the batch.
                logger.exception("reconcile_item_failed reference=%s", txn.reference)
                summary["errors"] += 1
                items.append({"reference": txn.reference, "category": "unexpected_error", "error": str(exc)})
                continue

            result = res["result"]
            if result == TransitionResult.APPLIED.value:
                summary["applied"] += 1
                items.append({"reference": txn.reference, "category": "applied", "status": res["status"]})
            elif result is None:
                summary["in_flight"] += 1
            else:
                summary["already_terminal"] += 1

        logger.info("reconcile_done run_at=%s summary=%s", run_at.isoformat(), summary)
        return {"run_at": run_at.isoformat(), "summary": summary, "items": items}
