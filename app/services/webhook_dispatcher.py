"""Outbound webhook fan-out.

Every matching subscriber gets its own concurrent attempt bounded by a fixed
timeout. Attempts never raise: each resolves to a ``DeliveryOutcome`` and
updates its own subscriber statistics, so a slow or broken endpoint cannot
delay or fail delivery to the others. There is no retry; failures are only
visible through the statistics and the logs.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.models import WebhookSubscriber
from app.services import webhook_registry
from app.services.payment_events import DispatchableEvent
from app.services.signatures import SIGNATURE_HEADER, sign
from app.utils.errors import DeliveryFailure
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryOutcome:
    subscriber_id: int
    name: str
    url: str
    delivered: bool
    status_code: int | None = None
    error: str | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class _Target:
    # Plain copy of the subscriber row, safe to use across awaits.
    id: int
    name: str
    url: str
    secret: str | None

    @classmethod
    def from_model(cls, subscriber: WebhookSubscriber) -> "_Target":
        return cls(subscriber.id, subscriber.name, subscriber.url, subscriber.secret)


def serialize_envelope(event: DispatchableEvent) -> bytes:
    """Serialize the envelope once; signatures are computed over these exact bytes."""

    return json.dumps(event.envelope(), default=str, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class WebhookDispatcher:
    """Deliver domain events to every active subscriber of the event."""

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        user_agent: str = "webhook-dispatcher",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self.user_agent = user_agent
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> "WebhookDispatcher":
        return cls(
            timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
            user_agent=settings.WEBHOOK_USER_AGENT,
            client=client,
        )

    def _headers(self, body: bytes, secret: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "User-Agent": self.user_agent}
        if secret:
            headers[SIGNATURE_HEADER] = sign(body, secret)
        return headers

    async def _send(self, client: httpx.AsyncClient, target: _Target, body: bytes) -> int:
        response = await client.post(target.url, content=body, headers=self._headers(body, target.secret))
        if not response.is_success:
            raise DeliveryFailure(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response.status_code

    async def _attempt(self, client: httpx.AsyncClient, target: _Target, body: bytes) -> DeliveryOutcome:
        started = time.perf_counter()
        status_code: int | None = None
        error: str | None = None
        try:
            status_code = await asyncio.wait_for(self._send(client, target, body), timeout=self.timeout)
        except DeliveryFailure as exc:
            status_code = exc.status_code
            error = str(exc)
        except asyncio.TimeoutError:
            error = f"timed out after {self.timeout:g}s"
        except httpx.HTTPError as exc:
            error = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected webhook delivery error", extra={"webhook_id": target.id})
            error = f"{type(exc).__name__}: {exc}"
        duration_ms = int((time.perf_counter() - started) * 1000)
        return DeliveryOutcome(
            subscriber_id=target.id,
            name=target.name,
            url=target.url,
            delivered=error is None,
            status_code=status_code,
            error=error,
            duration_ms=duration_ms,
        )

    async def _deliver(
        self, db: Session, client: httpx.AsyncClient, target: _Target, body: bytes, event_name: str
    ) -> DeliveryOutcome:
        outcome = await self._attempt(client, target, body)
        try:
            webhook_registry.record_delivery(db, target.id, delivered=outcome.delivered, at=utcnow())
        except Exception:  # noqa: BLE001
            db.rollback()
            logger.exception("Failed to record webhook statistics", extra={"webhook_id": target.id})

        log_extra = {
            "event": event_name,
            "webhook_id": target.id,
            "webhook_name": target.name,
            "status_code": outcome.status_code,
            "duration_ms": outcome.duration_ms,
        }
        if outcome.delivered:
            logger.info("Webhook delivered", extra=log_extra)
        else:
            logger.warning("Webhook delivery failed", extra={**log_extra, "error": outcome.error})
        return outcome

    async def dispatch_event(self, db: Session, event: DispatchableEvent) -> list[DeliveryOutcome]:
        subscribers = webhook_registry.list_active_subscribers(db, event.name)
        if not subscribers:
            logger.debug("No webhook subscribers for event", extra={"event": event.name})
            return []

        targets = [_Target.from_model(subscriber) for subscriber in subscribers]
        body = serialize_envelope(event)

        if self._client is not None:
            return await self._fan_out(db, self._client, targets, body, event.name)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._fan_out(db, client, targets, body, event.name)

    async def _fan_out(
        self,
        db: Session,
        client: httpx.AsyncClient,
        targets: list[_Target],
        body: bytes,
        event_name: str,
    ) -> list[DeliveryOutcome]:
        outcomes = await asyncio.gather(
            *(self._deliver(db, client, target, body, event_name) for target in targets)
        )
        delivered = sum(1 for outcome in outcomes if outcome.delivered)
        logger.info(
            "Webhook dispatch finished",
            extra={"event": event_name, "attempted": len(outcomes), "delivered": delivered},
        )
        return list(outcomes)

    async def dispatch(self, db: Session, event_name: str, data: Any) -> list[DeliveryOutcome]:
        """Fan ``data`` out as ``event_name``; returns once every attempt has resolved."""

        return await self.dispatch_event(db, DispatchableEvent(name=event_name, data=data))


def get_webhook_dispatcher() -> WebhookDispatcher:
    """FastAPI dependency returning a dispatcher bound to the current settings."""

    return WebhookDispatcher.from_settings(get_settings())


__all__ = [
    "DeliveryOutcome",
    "WebhookDispatcher",
    "get_webhook_dispatcher",
    "serialize_envelope",
]
