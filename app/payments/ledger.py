
# app/payments/ledger.py
from __future__ import annotations

import logging

from app.payments.errors import LedgerMutationFailed
from app.payments.model import Transaction, TransactionKind, TransactionStatus, TransitionResult
from app.payments.store import UnitOfWork

logger = logging.getLogger("paystack.payments")


class LedgerUpdater:
    """
    Balance side of a settlement. Runs inside the caller's unit of work, so a
    raise here rolls the status transition back with it.

    PAYMENT   + COMPLETED -> credit the reward to the balance
    WITHDRAWAL+ COMPLETED -> audit counter only (debited at initiation)
    WITHDRAWAL+ FAILED    -> refund the debit, when enabled
    """

    def __init__(self, *, refund_failed_withdrawals: bool = True):
        self.refund_failed_withdrawals = refund_failed_withdrawals

    def apply_ledger_effect(self, uow: UnitOfWork, transaction: Transaction, result: TransitionResult) -> None:
        if result != TransitionResult.APPLIED:
            return

        try:
            if transaction.status == TransactionStatus.COMPLETED:
                if transaction.kind == TransactionKind.PAYMENT:
                    new_balance = uow.credit_balance(user_id=transaction.user_id, amount=transaction.amount)
                    logger.info(
                        "ledger_credit reference=%s user_id=%s amount=%s balance=%s",
                        transaction.reference,
                        transaction.user_id,
                        transaction.amount,
                        new_balance,
                    )
                else:
                    uow.record_withdrawal(user_id=transaction.user_id, amount=transaction.amount)
                    logger.info(
                        "ledger_withdrawal_finalized reference=%s user_id=%s amount=%s",
                        transaction.reference,
                        transaction.user_id,
                        transaction.amount,
                    )
            elif (
                transaction.status == TransactionStatus.FAILED
                and transaction.kind == TransactionKind.WITHDRAWAL
                and self.refund_failed_withdrawals
            ):
                new_balance = uow.credit_balance(
                    user_id=transaction.user_id,
                    amount=transaction.amount,
                    count_as_credit=False,
                )
                logger.info(
                    "ledger_withdrawal_refunded reference=%s user_id=%s amount=%s balance=%s",
                    transaction.reference,
                    transaction.user_id,
                    transaction.amount,
                    new_balance,
                )
        except LedgerMutationFailed:
            raise
        except Exception as exc:
            raise LedgerMutationFailed(transaction.reference, f"{type(exc).__name__}: {exc}") from exc
