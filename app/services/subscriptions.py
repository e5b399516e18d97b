"""Subscription expiration arithmetic and the administrative override."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.models import User
from app.utils.audit import log_audit
from app.utils.errors import NotFoundError, ValidationError
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


def extend(current: datetime | None, days: int, *, now: datetime | None = None) -> datetime:
    """Return the expiration after adding ``days`` to a subscription.

    Expired or missing subscriptions restart from ``now``; active ones stack on
    top of their current end, so the result is never earlier than either.
    """

    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise ValueError("days must be a positive integer")

    reference = as_utc(now) or utcnow()
    current = as_utc(current)
    if current is None or current <= reference:
        return reference + timedelta(days=days)
    return current + timedelta(days=days)


def extend_user_subscription(db: Session, user_id: int, days: int, *, actor: str) -> User:
    """Administrative override: extend a user's subscription by ``days``."""

    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise ValidationError("Invalid days value", code="INVALID_DAYS")

    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.", code="USER_NOT_FOUND")

    previous = as_utc(user.subscription_ends_at)
    user.subscription_ends_at = extend(previous, days)
    log_audit(
        db,
        actor=actor,
        action="EXTEND_SUBSCRIPTION",
        entity="User",
        entity_id=user.id,
        data={
            "days": days,
            "previous_ends_at": previous.isoformat() if previous else None,
            "subscription_ends_at": user.subscription_ends_at.isoformat(),
        },
    )
    db.commit()
    db.refresh(user)
    logger.info(
        "Subscription extended by admin",
        extra={"user_id": user.id, "days": days, "actor": actor},
    )
    return user


__all__ = ["extend", "extend_user_subscription"]
