"""Gateway-specific parsing of payment notifications into approved-payment events.

Normalizers are tried in a fixed order. Each one first checks for its own
discriminating field and stays out of the way when it is absent; the first
normalizer that recognises the payload decides the result. Normalizers never
raise and never touch the database.
"""
from __future__ import annotations

import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Protocol

from app.services.payment_events import (
    ApprovedPaymentEvent,
    Invalid,
    Matched,
    NormalizationResult,
    NotApplicable,
)
from app.services.payments import DEFAULT_SUBSCRIPTION_DAYS, plan_days_for_amount
from app.services.psp_pagbank import PagBankClient
from app.utils.errors import UpstreamGatewayError

logger = logging.getLogger(__name__)

PAGBANK_STATUS_PAID = 3
GENERIC_APPROVED_STATUSES = {"approved", "completed"}

_STATUS_RE = re.compile(r"<status>(\d+)</status>")
_REFERENCE_RE = re.compile(r"<reference>(.*?)</reference>", re.DOTALL)
_CODE_RE = re.compile(r"<code>(.*?)</code>")
_GROSS_AMOUNT_RE = re.compile(r"<grossAmount>([\d.]+)</grossAmount>")

# Column limits of the payments table; longer values cannot be stored.
MAX_GATEWAY_LENGTH = 50
MAX_GATEWAY_PAYMENT_ID_LENGTH = 128
MAX_AMOUNT = Decimal("99999999.99")
MAX_SUBSCRIPTION_DAYS = 3650


class GatewayNormalizer(Protocol):
    gateway: str

    def recognizes(self, payload: Mapping[str, Any]) -> bool: ...

    async def normalize(self, payload: Mapping[str, Any]) -> NormalizationResult: ...


def _parse_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0 or amount > MAX_AMOUNT:
        return None
    return amount.quantize(Decimal("0.01"))


class PagBankNormalizer:
    """PagBank posts a notification code; the transaction itself is fetched as XML."""

    gateway = "pagbank"

    def __init__(self, client: PagBankClient) -> None:
        self.client = client

    @staticmethod
    def notification_code(payload: Mapping[str, Any]) -> str | None:
        code = payload.get("notificationCode") or payload.get("notification_code")
        if code is None:
            return None
        return str(code).strip() or None

    def recognizes(self, payload: Mapping[str, Any]) -> bool:
        return self.notification_code(payload) is not None

    async def normalize(self, payload: Mapping[str, Any]) -> NormalizationResult:
        code = self.notification_code(payload)
        if code is None:
            return NotApplicable("missing_notification_code", self.gateway)

        if not self.client.configured:
            logger.error("PagBank notification received but PAGBANK_TOKEN is not configured")
            return Invalid("gateway_not_configured", self.gateway)

        try:
            document = await self.client.fetch_notification(code)
        except UpstreamGatewayError:
            logger.warning("PagBank transaction lookup failed", extra={"notification_code": code})
            return Invalid("upstream_unavailable", self.gateway)

        return self.parse_transaction(document, notification_code=code)

    def parse_transaction(self, document: str, *, notification_code: str) -> NormalizationResult:
        status_match = _STATUS_RE.search(document)
        reference_match = _REFERENCE_RE.search(document)
        if not status_match or not reference_match or not reference_match.group(1).strip():
            logger.warning(
                "PagBank transaction missing status or reference",
                extra={"notification_code": notification_code},
            )
            return Invalid("missing_status_or_reference", self.gateway)

        status = int(status_match.group(1))
        if status != PAGBANK_STATUS_PAID:
            logger.info(
                "PagBank transaction not paid; acknowledging",
                extra={"notification_code": notification_code, "pagbank_status": status},
            )
            return NotApplicable(f"status_{status}", self.gateway)

        code_match = _CODE_RE.search(document)
        gateway_payment_id = (code_match.group(1).strip() if code_match else "") or notification_code
        if len(gateway_payment_id) > MAX_GATEWAY_PAYMENT_ID_LENGTH:
            return Invalid("payment_id_too_long", self.gateway)

        amount_match = _GROSS_AMOUNT_RE.search(document)
        amount = _parse_amount(amount_match.group(1)) if amount_match else None
        if amount is None:
            amount = Decimal("0.00")

        return Matched(
            ApprovedPaymentEvent(
                gateway_payment_id=gateway_payment_id,
                user_id=reference_match.group(1).strip(),
                gateway=self.gateway,
                amount=amount,
                subscription_days=plan_days_for_amount(amount),
                raw_metadata=document,
            )
        )


class GenericJsonNormalizer:
    """Flat JSON notifications (MercadoPago-style relays, internal tooling)."""

    gateway = "generic"

    def recognizes(self, payload: Mapping[str, Any]) -> bool:
        return "payment_id" in payload or "status" in payload

    async def normalize(self, payload: Mapping[str, Any]) -> NormalizationResult:
        gateway = str(payload.get("gateway") or self.gateway)
        if len(gateway) > MAX_GATEWAY_LENGTH:
            return Invalid("gateway_too_long", self.gateway)
        status = str(payload.get("status") or "").strip().lower()
        if status not in GENERIC_APPROVED_STATUSES:
            return NotApplicable(f"status_{status or 'missing'}", gateway)

        payment_id = payload.get("payment_id")
        user_id = payload.get("user_id")
        if payment_id in (None, "") or user_id in (None, ""):
            return Invalid("missing_payment_or_user_id", gateway)
        payment_id = str(payment_id)
        if len(payment_id) > MAX_GATEWAY_PAYMENT_ID_LENGTH:
            return Invalid("payment_id_too_long", gateway)

        amount = _parse_amount(payload.get("amount", 0))
        if amount is None:
            return Invalid("invalid_amount", gateway)

        days = payload.get("subscription_days", DEFAULT_SUBSCRIPTION_DAYS)
        if isinstance(days, str):
            try:
                days = int(days.strip())
            except ValueError:
                return Invalid("invalid_subscription_days", gateway)
        if isinstance(days, bool) or not isinstance(days, int) or not 0 < days <= MAX_SUBSCRIPTION_DAYS:
            return Invalid("invalid_subscription_days", gateway)

        return Matched(
            ApprovedPaymentEvent(
                gateway_payment_id=payment_id,
                user_id=str(user_id),
                gateway=gateway,
                amount=amount,
                subscription_days=days,
                raw_metadata=json.dumps(payload, default=str, sort_keys=True),
            )
        )


def default_normalizers(pagbank_client: PagBankClient) -> list[GatewayNormalizer]:
    return [PagBankNormalizer(pagbank_client), GenericJsonNormalizer()]


async def normalize_notification(
    payload: Mapping[str, Any],
    normalizers: list[GatewayNormalizer],
) -> NormalizationResult:
    """Run ``payload`` through the first normalizer that recognises it."""

    for normalizer in normalizers:
        if not normalizer.recognizes(payload):
            continue
        try:
            return await normalizer.normalize(payload)
        except Exception:  # noqa: BLE001
            logger.exception("Normalizer crashed", extra={"gateway": normalizer.gateway})
            return Invalid("normalizer_error", normalizer.gateway)
    return NotApplicable("unrecognized_payload")


__all__ = [
    "GatewayNormalizer",
    "GenericJsonNormalizer",
    "PagBankNormalizer",
    "default_normalizers",
    "normalize_notification",
]
