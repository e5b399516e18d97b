"""Persistence of outbound webhook subscribers and their delivery statistics."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.models import DEFAULT_WEBHOOK_EVENTS, WebhookSubscriber
from app.schemas.webhook import WebhookCreate, WebhookUpdate
from app.utils.audit import log_audit
from app.utils.errors import NotFoundError
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


def list_active_subscribers(db: Session, event_name: str) -> list[WebhookSubscriber]:
    """Active subscribers listening to ``event_name``, in id order."""

    stmt = (
        select(WebhookSubscriber)
        .where(WebhookSubscriber.is_active.is_(True))
        .order_by(WebhookSubscriber.id.asc())
    )
    # Event sets are JSON lists; membership is checked here to stay portable across backends.
    return [subscriber for subscriber in db.scalars(stmt) if subscriber.listens_to(event_name)]


def record_delivery(db: Session, subscriber_id: int, *, delivered: bool, at: datetime | None = None) -> None:
    """Apply one attempt's statistics to the subscriber row and commit."""

    values: dict[str, Any] = {
        "last_triggered_at": at or utcnow(),
        "total_calls": WebhookSubscriber.total_calls + 1,
    }
    if not delivered:
        values["failed_calls"] = WebhookSubscriber.failed_calls + 1
    db.execute(
        update(WebhookSubscriber)
        .where(WebhookSubscriber.id == subscriber_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def list_subscribers(db: Session) -> list[WebhookSubscriber]:
    stmt = select(WebhookSubscriber).order_by(WebhookSubscriber.created_at.desc(), WebhookSubscriber.id.desc())
    return list(db.scalars(stmt))


def get_subscriber(db: Session, subscriber_id: int) -> WebhookSubscriber:
    subscriber = db.get(WebhookSubscriber, subscriber_id, populate_existing=True)
    if subscriber is None:
        raise NotFoundError("Webhook not found", code="WEBHOOK_NOT_FOUND")
    return subscriber


def create_subscriber(db: Session, payload: WebhookCreate, *, actor: str) -> WebhookSubscriber:
    subscriber = WebhookSubscriber(
        name=payload.name,
        url=str(payload.url),
        secret=payload.secret or None,
        events=list(payload.events) if payload.events else list(DEFAULT_WEBHOOK_EVENTS),
        is_active=True,
    )
    db.add(subscriber)
    db.flush()
    log_audit(
        db,
        actor=actor,
        action="CREATE_WEBHOOK",
        entity="WebhookSubscriber",
        entity_id=subscriber.id,
        data={"name": subscriber.name, "url": subscriber.url, "events": subscriber.events},
    )
    db.commit()
    db.refresh(subscriber)
    logger.info("Webhook subscriber created", extra={"webhook_id": subscriber.id})
    return subscriber


def update_subscriber(
    db: Session, subscriber_id: int, patch: WebhookUpdate, *, actor: str
) -> WebhookSubscriber:
    """Apply only the fields present in ``patch``."""

    subscriber = get_subscriber(db, subscriber_id)
    changes = patch.model_dump(exclude_unset=True)
    if "url" in changes and changes["url"] is not None:
        changes["url"] = str(changes["url"])
    if "secret" in changes:
        changes["secret"] = changes["secret"] or None
    if "events" in changes and changes["events"] is not None:
        changes["events"] = list(changes["events"])

    for field_name, value in changes.items():
        if value is None and field_name in {"name", "url", "events", "is_active"}:
            continue
        setattr(subscriber, field_name, value)

    log_audit(
        db,
        actor=actor,
        action="UPDATE_WEBHOOK",
        entity="WebhookSubscriber",
        entity_id=subscriber.id,
        data={"fields": sorted(changes)},
    )
    db.commit()
    db.refresh(subscriber)
    logger.info("Webhook subscriber updated", extra={"webhook_id": subscriber.id, "fields": sorted(changes)})
    return subscriber


def delete_subscriber(db: Session, subscriber_id: int, *, actor: str) -> None:
    subscriber = get_subscriber(db, subscriber_id)
    db.delete(subscriber)
    log_audit(
        db,
        actor=actor,
        action="DELETE_WEBHOOK",
        entity="WebhookSubscriber",
        entity_id=subscriber_id,
        data={"name": subscriber.name},
    )
    db.commit()
    logger.info("Webhook subscriber deleted", extra={"webhook_id": subscriber_id})


__all__ = [
    "create_subscriber",
    "delete_subscriber",
    "get_subscriber",
    "list_active_subscribers",
    "list_subscribers",
    "record_delivery",
    "update_subscriber",
]
