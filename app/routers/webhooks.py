"""Administrative management of outbound webhook subscribers."""
from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import timedelta
from uuid import uuid4

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.api_key import ApiKey, ApiScope
from app.schemas.webhook import (
    DeliveryOutcomeRead,
    WebhookCreate,
    WebhookRead,
    WebhookTestRead,
    WebhookUpdate,
)
from app.security import require_scope
from app.services import webhook_registry
from app.services.webhook_dispatcher import WebhookDispatcher, get_webhook_dispatcher
from app.utils.audit import actor_from_api_key
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

require_admin = require_scope({ApiScope.admin})

TEST_EVENT = "signal.created"


@router.get("", response_model=list[WebhookRead])
def list_webhooks(
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_admin),
) -> list[WebhookRead]:
    return [WebhookRead.from_model(sub) for sub in webhook_registry.list_subscribers(db)]


@router.post("", response_model=WebhookRead, status_code=status.HTTP_201_CREATED)
def create_webhook(
    payload: WebhookCreate,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_admin),
) -> WebhookRead:
    subscriber = webhook_registry.create_subscriber(
        db, payload, actor=actor_from_api_key(api_key, fallback="apikey:unknown")
    )
    return WebhookRead.from_model(subscriber)


@router.get("/{webhook_id}", response_model=WebhookRead)
def get_webhook(
    webhook_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_admin),
) -> WebhookRead:
    return WebhookRead.from_model(webhook_registry.get_subscriber(db, webhook_id))


@router.put("/{webhook_id}", response_model=WebhookRead)
def update_webhook(
    webhook_id: int,
    payload: WebhookUpdate,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_admin),
) -> WebhookRead:
    subscriber = webhook_registry.update_subscriber(
        db, webhook_id, payload, actor=actor_from_api_key(api_key, fallback="apikey:unknown")
    )
    return WebhookRead.from_model(subscriber)


@router.delete("/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_webhook(
    webhook_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_admin),
) -> Response:
    webhook_registry.delete_subscriber(db, webhook_id, actor=actor_from_api_key(api_key, fallback="apikey:unknown"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _test_signal() -> dict[str, object]:
    now = utcnow()
    return {
        "id": f"test-{uuid4().hex[:12]}",
        "sport": "Futebol",
        "event": "Time A vs Time B (TESTE)",
        "market": "1x2",
        "roi": 5.5,
        "odds": [
            {"selection": "Time A", "value": "2.10"},
            {"selection": "Empate", "value": "3.40"},
            {"selection": "Time B", "value": "2.80"},
        ],
        "bookmakers": [
            {"name": "Casa 1", "url": "https://casa1.com"},
            {"name": "Casa 2", "url": "https://casa2.com"},
        ],
        "createdAt": now.isoformat(),
        "expiresAt": (now + timedelta(hours=2)).isoformat(),
    }


@router.post("/{webhook_id}/test", response_model=WebhookTestRead)
async def test_webhook(
    webhook_id: int,
    db: Session = Depends(get_db),
    api_key: ApiKey = Depends(require_admin),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> WebhookTestRead:
    """Send a synthetic signal through the regular dispatch path."""

    subscriber = webhook_registry.get_subscriber(db, webhook_id)
    logger.info("Test webhook requested", extra={"webhook_id": subscriber.id})
    outcomes = await dispatcher.dispatch(db, TEST_EVENT, _test_signal())
    return WebhookTestRead(
        success=True,
        message="Test webhook sent successfully",
        outcomes=[DeliveryOutcomeRead(**asdict(outcome)) for outcome in outcomes],
    )


__all__ = ["router"]
