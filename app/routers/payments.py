"""Subscription payment endpoints: checkout creation, history and gateway notifications."""
from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.api_key import ApiKey
from app.models.user import User
from app.schemas.payment import (
    CheckoutRead,
    NotificationAck,
    PaymentCreate,
    PaymentCreateRead,
    PaymentHistoryItem,
    PaymentHistoryRead,
)
from app.security import require_api_key, require_current_user
from app.services import payments as payments_service
from app.services.gateway_normalizers import default_normalizers, normalize_notification
from app.services.payment_events import Matched
from app.services.psp_pagbank import PagBankClient, get_pagbank_client
from app.services.reconciliation import reconcile
from app.services.webhook_dispatcher import WebhookDispatcher, get_webhook_dispatcher
from app.utils.audit import actor_from_api_key
from app.utils.errors import ValidationError
from app.utils.time import as_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

PAYMENT_COMPLETED_EVENT = "payment.completed"


@router.post("/create", response_model=PaymentCreateRead, status_code=status.HTTP_200_OK)
async def create_payment(
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_current_user),
    api_key: ApiKey = Depends(require_api_key),
    pagbank: PagBankClient = Depends(get_pagbank_client),
) -> PaymentCreateRead:
    """Create a pending payment and return the gateway checkout URL."""

    payment, checkout_url = await payments_service.create_payment(
        db,
        user=user,
        gateway=payload.gateway,
        plan_code=payload.plan,
        pagbank=pagbank,
        actor=actor_from_api_key(api_key, fallback=f"user:{user.id}"),
    )
    return PaymentCreateRead(
        payment=CheckoutRead(id=payment.id, amount=payment.amount, checkout_url=checkout_url)
    )


@router.get("/history", response_model=PaymentHistoryRead)
def payment_history(
    db: Session = Depends(get_db),
    user: User = Depends(require_current_user),
) -> PaymentHistoryRead:
    """Return the caller's own payments, newest first."""

    payments = payments_service.list_payment_history(db, user.id)
    return PaymentHistoryRead(payments=[PaymentHistoryItem.model_validate(p) for p in payments])


def _parse_notification_body(raw_body: bytes, content_type: str) -> dict[str, Any]:
    text = raw_body.decode("utf-8", errors="replace").strip()
    if not text:
        raise ValidationError("Empty notification body.", code="INVALID_NOTIFICATION")

    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(text, keep_blank_values=True))

    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        # PagBank posts form bodies, sometimes without a content type.
        form = dict(parse_qsl(text, keep_blank_values=True, strict_parsing=False))
        if form and "=" in text:
            return form
        raise ValidationError("Notification body is not valid JSON.", code="INVALID_NOTIFICATION")

    if not isinstance(payload, dict):
        raise ValidationError("Notification body must be an object.", code="INVALID_NOTIFICATION")
    return payload


@router.post("/webhook", response_model=NotificationAck, status_code=status.HTTP_200_OK)
async def payment_notification(
    request: Request,
    db: Session = Depends(get_db),
    pagbank: PagBankClient = Depends(get_pagbank_client),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> NotificationAck:
    """Receive a gateway notification.

    Anything parseable and recognised by a gateway is acknowledged, whatever the
    business outcome, so the gateway does not keep retrying notifications that
    can never be applied.
    """

    payload = _parse_notification_body(await request.body(), request.headers.get("content-type", ""))
    result = await normalize_notification(payload, default_normalizers(pagbank))

    if not isinstance(result, Matched):
        if result.gateway is None:
            logger.info("Notification not recognised by any gateway")
            raise ValidationError("Invalid notification", code="INVALID_NOTIFICATION")
        logger.info(
            "Payment notification acknowledged without reconciliation",
            extra={"gateway": result.gateway, "reason": result.reason, "outcome": type(result).__name__},
        )
        return NotificationAck()

    outcome = reconcile(db, result.event)
    logger.info(
        "Payment notification processed",
        extra={
            "gateway": result.event.gateway,
            "gateway_payment_id": result.event.gateway_payment_id,
            "outcome": outcome.status.value,
        },
    )
    if outcome.applied and outcome.payment is not None:
        payment = outcome.payment
        await dispatcher.dispatch(
            db,
            PAYMENT_COMPLETED_EVENT,
            {
                "payment_id": payment.id,
                "user_id": payment.user_id,
                "gateway": payment.gateway,
                "amount": str(payment.amount),
                "currency": payment.currency,
                "subscription_days": payment.subscription_days,
                "subscription_ends_at": as_utc(outcome.subscription_ends_at).isoformat(),
            },
        )
    return NotificationAck()


__all__ = ["router"]
