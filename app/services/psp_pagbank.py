"""PagBank (PagSeguro) HTTP client for checkout creation and notification lookups."""
from __future__ import annotations

import logging
import re
from decimal import Decimal
from xml.sax.saxutils import escape

import httpx

from app.config import Settings, get_settings
from app.utils.errors import GatewayNotConfiguredError, UpstreamGatewayError

logger = logging.getLogger(__name__)

_API_HOSTS = {
    "production": "https://ws.pagseguro.uol.com.br",
    "sandbox": "https://ws.sandbox.pagseguro.uol.com.br",
}
_CHECKOUT_HOSTS = {
    "production": "https://pagseguro.uol.com.br",
    "sandbox": "https://sandbox.pagseguro.uol.com.br",
}
_CODE_RE = re.compile(r"<code>(.*?)</code>")


class PagBankClient:
    """Thin wrapper around the PagBank v2/v3 XML endpoints."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self._token = settings.PAGBANK_TOKEN
        self._environment = "production" if settings.pagbank_production else "sandbox"
        self._http_client = http_client

    @classmethod
    def from_env(cls) -> "PagBankClient":
        """Instantiate a client using the cached application settings."""

        return cls(get_settings())

    @property
    def configured(self) -> bool:
        return bool(self._token)

    def _ensure_configured(self) -> str:
        if not self._token:
            raise GatewayNotConfiguredError(
                "PagBank token is missing; configure PAGBANK_TOKEN.",
                details={"gateway": "pagbank"},
            )
        return self._token

    def notification_url(self, notification_code: str) -> str:
        return f"{_API_HOSTS[self._environment]}/v3/transactions/notifications/{notification_code}"

    def checkout_url(self, checkout_code: str) -> str:
        return f"{_CHECKOUT_HOSTS[self._environment]}/v2/checkout/payment.html?code={checkout_code}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        token = self._ensure_configured()
        params = {"token": token}
        try:
            if self._http_client is not None:
                return await self._http_client.request(method, url, params=params, **kwargs)
            async with httpx.AsyncClient(timeout=self.settings.PAGBANK_TIMEOUT_SECONDS) as client:
                return await client.request(method, url, params=params, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("PagBank request failed", extra={"url": url, "error": str(exc)})
            raise UpstreamGatewayError("PagBank is unreachable.", details={"gateway": "pagbank"}) from exc

    async def fetch_notification(self, notification_code: str) -> str:
        """Return the transaction document referenced by a notification code."""

        response = await self._request("GET", self.notification_url(notification_code))
        if response.status_code >= 400:
            logger.warning(
                "PagBank notification lookup rejected",
                extra={"status_code": response.status_code, "notification_code": notification_code},
            )
            raise UpstreamGatewayError(
                "PagBank notification lookup failed.",
                details={"gateway": "pagbank", "status_code": response.status_code},
            )
        return response.text

    def build_checkout_xml(
        self,
        *,
        reference: str,
        description: str,
        amount: Decimal,
        sender_name: str,
        sender_email: str,
        currency: str = "BRL",
    ) -> str:
        app_url = self.settings.APP_URL.rstrip("/")
        return (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
            "<checkout>\n"
            f"  <currency>{escape(currency)}</currency>\n"
            f"  <redirectURL>{escape(app_url)}/dashboard?payment=success</redirectURL>\n"
            f"  <notificationURL>{escape(app_url)}/payments/webhook</notificationURL>\n"
            "  <items>\n"
            "    <item>\n"
            "      <id>1</id>\n"
            f"      <description>{escape(description)}</description>\n"
            f"      <amount>{Decimal(amount).quantize(Decimal('0.01'))}</amount>\n"
            "      <quantity>1</quantity>\n"
            "    </item>\n"
            "  </items>\n"
            f"  <reference>{escape(reference)}</reference>\n"
            "  <sender>\n"
            f"    <name>{escape(sender_name)}</name>\n"
            f"    <email>{escape(sender_email)}</email>\n"
            "  </sender>\n"
            "</checkout>"
        )

    async def create_checkout(
        self,
        *,
        reference: str,
        description: str,
        amount: Decimal,
        sender_name: str,
        sender_email: str,
        currency: str = "BRL",
    ) -> str:
        """Create a hosted checkout and return the URL the buyer is redirected to."""

        body = self.build_checkout_xml(
            reference=reference,
            description=description,
            amount=amount,
            sender_name=sender_name,
            sender_email=sender_email,
            currency=currency,
        )
        response = await self._request(
            "POST",
            f"{_API_HOSTS[self._environment]}/v2/checkout",
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/xml; charset=UTF-8"},
        )
        if response.status_code >= 400:
            logger.error(
                "PagBank checkout creation rejected",
                extra={"status_code": response.status_code, "reference": reference},
            )
            raise UpstreamGatewayError(
                "PagBank checkout creation failed.",
                details={"gateway": "pagbank", "status_code": response.status_code},
            )

        match = _CODE_RE.search(response.text)
        if not match:
            logger.error("PagBank checkout response without code", extra={"reference": reference})
            raise UpstreamGatewayError(
                "PagBank checkout code not found in response.",
                details={"gateway": "pagbank"},
            )
        checkout_url = self.checkout_url(match.group(1))
        logger.info("PagBank checkout created", extra={"reference": reference})
        return checkout_url


def get_pagbank_client() -> PagBankClient:
    """FastAPI dependency returning a client bound to the current settings."""

    return PagBankClient.from_env()


__all__ = ["PagBankClient", "get_pagbank_client"]
