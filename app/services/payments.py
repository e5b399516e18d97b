"""Subscription purchase services: plans, pending payments and history."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import Payment, PaymentStatus, User
from app.utils.audit import log_audit
from app.utils.errors import UpstreamGatewayError, ValidationError

if TYPE_CHECKING:  # pragma: no cover - hints only
    from app.services.psp_pagbank import PagBankClient

logger = logging.getLogger(__name__)

DEFAULT_PLAN = "monthly"
DEFAULT_SUBSCRIPTION_DAYS = 30
SUPPORTED_GATEWAYS = {"pagbank"}


@dataclass(frozen=True)
class Plan:
    code: str
    days: int
    amount: Decimal
    name: str


PLANS: dict[str, Plan] = {
    "monthly": Plan("monthly", 30, Decimal("29.90"), "Plano Mensal"),
    "quarterly": Plan("quarterly", 90, Decimal("79.90"), "Plano Trimestral"),
    "yearly": Plan("yearly", 365, Decimal("299.90"), "Plano Anual"),
}


def resolve_plan(code: str | None) -> Plan:
    """Return the plan for ``code``; unknown codes fall back to the monthly plan."""

    plan = PLANS.get((code or DEFAULT_PLAN).strip().lower())
    if plan is None:
        logger.warning("Unknown plan requested; using default", extra={"plan": code})
        return PLANS[DEFAULT_PLAN]
    return plan


def plan_days_for_amount(amount: Decimal) -> int:
    """Map a paid gross amount back to the plan duration it bought."""

    for plan in PLANS.values():
        if plan.amount == amount:
            return plan.days
    return DEFAULT_SUBSCRIPTION_DAYS


async def create_payment(
    db: Session,
    *,
    user: User,
    gateway: str,
    plan_code: str | None,
    pagbank: "PagBankClient",
    actor: str,
) -> tuple[Payment, str]:
    """Create a pending payment and request a checkout URL from the gateway.

    Gateway failures leave the payment ``failed`` and propagate to the caller.
    """

    gateway = (gateway or "pagbank").strip().lower()
    if gateway not in SUPPORTED_GATEWAYS:
        raise ValidationError(
            "Gateway not supported",
            code="GATEWAY_NOT_SUPPORTED",
            details={"gateway": gateway, "supported": sorted(SUPPORTED_GATEWAYS)},
        )

    plan = resolve_plan(plan_code)
    payment = Payment(
        user_id=user.id,
        amount=plan.amount,
        currency=get_settings().CURRENCY,
        status=PaymentStatus.PENDING,
        gateway=gateway,
        subscription_days=plan.days,
    )
    db.add(payment)
    db.flush()

    try:
        checkout_url = await pagbank.create_checkout(
            reference=str(user.id),
            description=plan.name,
            amount=plan.amount,
            sender_name=user.name,
            sender_email=user.email,
            currency=payment.currency,
        )
    except UpstreamGatewayError:
        payment.status = PaymentStatus.FAILED
        db.commit()
        logger.error(
            "Checkout creation failed",
            extra={"payment_id": payment.id, "user_id": user.id, "gateway": gateway},
        )
        raise

    payment.gateway_order_id = f"INTERNAL-{payment.id}"
    log_audit(
        db,
        actor=actor,
        action="CREATE_PAYMENT",
        entity="Payment",
        entity_id=payment.id,
        data={"plan": plan.code, "gateway": gateway, "amount": str(plan.amount)},
    )
    db.commit()
    db.refresh(payment)
    logger.info(
        "Pending payment created",
        extra={"payment_id": payment.id, "user_id": user.id, "plan": plan.code},
    )
    return payment, checkout_url


def list_payment_history(db: Session, user_id: int) -> list[Payment]:
    """Return the user's payments, newest first."""

    stmt = (
        select(Payment)
        .where(Payment.user_id == user_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    )
    return list(db.scalars(stmt))


__all__ = [
    "DEFAULT_SUBSCRIPTION_DAYS",
    "PLANS",
    "Plan",
    "create_payment",
    "list_payment_history",
    "plan_days_for_amount",
    "resolve_plan",
]
