"""ORM models package."""
from .api_key import ApiKey, ApiScope
from .audit import AuditLog
from .base import Base
from .payment import Payment, PaymentStatus
from .user import User, UserRole
from .webhook import DEFAULT_WEBHOOK_EVENTS, WebhookSubscriber

__all__ = [
    "ApiKey",
    "ApiScope",
    "AuditLog",
    "Base",
    "DEFAULT_WEBHOOK_EVENTS",
    "Payment",
    "PaymentStatus",
    "User",
    "UserRole",
    "WebhookSubscriber",
]
