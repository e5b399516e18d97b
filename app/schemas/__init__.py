"""Schema package exports."""
from .payment import (
    CheckoutRead,
    NotificationAck,
    PaymentCreate,
    PaymentCreateRead,
    PaymentHistoryItem,
    PaymentHistoryRead,
)
from .user import SubscriptionExtend, SubscriptionRead, UserCreate, UserRead
from .webhook import (
    DeliveryOutcomeRead,
    WebhookCreate,
    WebhookRead,
    WebhookTestRead,
    WebhookUpdate,
)

__all__ = [
    "CheckoutRead",
    "DeliveryOutcomeRead",
    "NotificationAck",
    "PaymentCreate",
    "PaymentCreateRead",
    "PaymentHistoryItem",
    "PaymentHistoryRead",
    "SubscriptionExtend",
    "SubscriptionRead",
    "UserCreate",
    "UserRead",
    "WebhookCreate",
    "WebhookRead",
    "WebhookTestRead",
    "WebhookUpdate",
]
