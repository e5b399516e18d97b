"""Schemas for payment entities."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from app.models.payment import PaymentStatus


class PaymentCreate(BaseModel):
    gateway: str = "pagbank"
    plan: str = "monthly"


class CheckoutRead(BaseModel):
    id: int
    amount: Decimal
    checkout_url: str


class PaymentCreateRead(BaseModel):
    success: bool = True
    payment: CheckoutRead


class PaymentHistoryItem(BaseModel):
    id: int
    amount: Decimal
    currency: str
    status: PaymentStatus
    gateway: str
    subscription_days: int
    applied_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentHistoryRead(BaseModel):
    payments: list[PaymentHistoryItem]


class NotificationAck(BaseModel):
    received: bool = True
