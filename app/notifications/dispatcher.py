
# app/notifications/dispatcher.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from app.payments.model import TransactionKind

logger = logging.getLogger("paystack.notify")


class Notifier(Protocol):
    def notify(self, user_id: UUID, kind: TransactionKind, amount: Decimal) -> None: ...


class LoggingNotifier:
    """Default notifier: the email/push service is an external collaborator."""

    def notify(self, user_id: UUID, kind: TransactionKind, amount: Decimal) -> None:
        logger.info("notify user_id=%s kind=%s amount=%s", user_id, kind.value, amount)


class NotificationDispatcher:
    """
    Fire-and-forget wrapper. Called only after the settlement unit committed;
    a failing notifier is logged and dropped, never surfaced.
    """

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    def dispatch(self, user_id: UUID, kind: TransactionKind, amount: Decimal) -> bool:
        try:
            self.notifier.notify(user_id, kind, amount)
            return True
        except Exception:
            logger.exception("notify_failed user_id=%s kind=%s amount=%s", user_id, kind.value, amount)
            return False
