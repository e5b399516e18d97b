"""Canonical payment and webhook event contracts."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Union

from app.utils.time import isoformat_z, utcnow


@dataclass(frozen=True)
class ApprovedPaymentEvent:
    """A gateway-asserted approved payment, ready for reconciliation."""

    gateway_payment_id: str
    user_id: str
    gateway: str
    amount: Decimal
    subscription_days: int
    raw_metadata: str = ""

    def __post_init__(self) -> None:
        if not self.gateway_payment_id:
            raise ValueError("gateway_payment_id is required")
        if self.subscription_days <= 0:
            raise ValueError("subscription_days must be positive")


@dataclass(frozen=True)
class Matched:
    event: ApprovedPaymentEvent

    @property
    def gateway(self) -> str:
        return self.event.gateway


@dataclass(frozen=True)
class NotApplicable:
    """The payload is not an approved payment for this gateway (or for any gateway when ``gateway`` is None)."""

    reason: str
    gateway: str | None = None


@dataclass(frozen=True)
class Invalid:
    """The payload belongs to a gateway but lacks required data."""

    reason: str
    gateway: str | None = None


NormalizationResult = Union[Matched, NotApplicable, Invalid]


@dataclass(frozen=True)
class DispatchableEvent:
    name: str
    data: Any
    timestamp: datetime = field(default_factory=utcnow)

    def envelope(self) -> dict[str, Any]:
        return {"event": self.name, "timestamp": isoformat_z(self.timestamp), "data": self.data}


__all__ = [
    "ApprovedPaymentEvent",
    "DispatchableEvent",
    "Invalid",
    "Matched",
    "NormalizationResult",
    "NotApplicable",
]
