"""Idempotent application of approved gateway payments to subscription state."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import Payment, PaymentStatus, User
from app.services.idempotency import get_existing_by_key
from app.services.payment_events import ApprovedPaymentEvent
from app.services.subscriptions import extend
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)

# Ceiling of the 32-bit integer primary key.
MAX_USER_ID = 2**31 - 1


class ReconcileStatus(str, enum.Enum):
    RECONCILED = "reconciled"
    ALREADY_PROCESSED = "already_processed"
    USER_NOT_FOUND = "user_not_found"


@dataclass(frozen=True)
class ReconcileResult:
    status: ReconcileStatus
    payment: Payment | None = None
    subscription_ends_at: datetime | None = None

    @property
    def applied(self) -> bool:
        return self.status is ReconcileStatus.RECONCILED


def _resolve_user(db: Session, user_id: str) -> User | None:
    """Gateway references are untrusted: anything that is not a storable integer id is no user."""

    try:
        uid = int(str(user_id).strip())
    except ValueError:
        return None
    if not 0 < uid <= MAX_USER_ID:
        return None
    return db.get(User, uid)


def _find_pending_payment(db: Session, user: User, event: ApprovedPaymentEvent) -> Payment | None:
    """Oldest open checkout of the same gateway and amount, if any."""

    stmt = (
        select(Payment)
        .where(
            Payment.user_id == user.id,
            Payment.gateway == event.gateway,
            Payment.status == PaymentStatus.PENDING,
            Payment.gateway_payment_id.is_(None),
            Payment.amount == event.amount,
        )
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .limit(1)
    )
    return db.scalars(stmt).first()


def reconcile(db: Session, event: ApprovedPaymentEvent) -> ReconcileResult:
    """Record ``event`` as a completed payment and extend the user's subscription.

    The payment row and the new expiration are committed together. The unique
    constraint on ``gateway_payment_id`` settles races between duplicate
    notifications: the loser's unit is rolled back and reported as already
    processed.
    """

    log_extra = {"gateway": event.gateway, "gateway_payment_id": event.gateway_payment_id}

    existing = get_existing_by_key(db, Payment, event.gateway_payment_id, key_field="gateway_payment_id")
    if existing is not None:
        logger.info("Payment already processed", extra={**log_extra, "payment_id": existing.id})
        return ReconcileResult(ReconcileStatus.ALREADY_PROCESSED, payment=existing)

    user = _resolve_user(db, event.user_id)
    if user is None:
        # Acknowledged upstream anyway; only this log line records the loss.
        logger.warning("Approved payment for unknown user", extra={**log_extra, "user_id": event.user_id})
        return ReconcileResult(ReconcileStatus.USER_NOT_FOUND)

    now = utcnow()
    new_end = extend(as_utc(user.subscription_ends_at), event.subscription_days, now=now)

    payment = _find_pending_payment(db, user, event)
    if payment is None:
        payment = Payment(
            user_id=user.id,
            amount=event.amount,
            currency=get_settings().CURRENCY,
            gateway=event.gateway,
        )
        db.add(payment)
    payment.status = PaymentStatus.COMPLETED
    payment.gateway_payment_id = event.gateway_payment_id
    payment.subscription_days = event.subscription_days
    payment.applied_at = now
    payment.metadata_raw = event.raw_metadata or None
    user.subscription_ends_at = new_end

    try:
        db.flush()
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_existing_by_key(db, Payment, event.gateway_payment_id, key_field="gateway_payment_id")
        if existing is not None:
            logger.info("Concurrent duplicate notification lost the race", extra=log_extra)
            return ReconcileResult(ReconcileStatus.ALREADY_PROCESSED, payment=existing)
        # Not a duplicate: the user row vanished between lookup and commit.
        logger.error(
            "Payment could not be recorded; user no longer exists",
            extra={**log_extra, "user_id": event.user_id},
            exc_info=True,
        )
        return ReconcileResult(ReconcileStatus.USER_NOT_FOUND)

    logger.info(
        "Payment reconciled",
        extra={
            **log_extra,
            "payment_id": payment.id,
            "user_id": user.id,
            "subscription_days": event.subscription_days,
            "subscription_ends_at": new_end.isoformat(),
        },
    )
    return ReconcileResult(ReconcileStatus.RECONCILED, payment=payment, subscription_ends_at=new_end)


__all__ = ["ReconcileResult", "ReconcileStatus", "reconcile"]
