from decimal import Decimal

import pytest

from app.services.gateway_normalizers import (
    GenericJsonNormalizer,
    PagBankNormalizer,
    default_normalizers,
    normalize_notification,
)
from app.services.payment_events import Invalid, Matched, NotApplicable


@pytest.mark.anyio("asyncio")
async def test_generic_approved_payment_is_matched_with_defaults(pagbank):
    result = await normalize_notification(
        {"payment_id": "mp-1", "user_id": 42, "status": "approved", "amount": "29.9"},
        default_normalizers(pagbank.client()),
    )

    assert isinstance(result, Matched)
    event = result.event
    assert event.gateway_payment_id == "mp-1"
    assert event.user_id == "42"
    assert event.gateway == "generic"
    assert event.amount == Decimal("29.90")
    assert event.subscription_days == 30
    assert '"payment_id": "mp-1"' in event.raw_metadata


@pytest.mark.anyio("asyncio")
async def test_generic_completed_status_uses_declared_gateway_and_days():
    result = await GenericJsonNormalizer().normalize(
        {"payment_id": 7, "user_id": "3", "status": "COMPLETED", "gateway": "mercadopago", "subscription_days": "90"}
    )

    assert isinstance(result, Matched)
    assert result.gateway == "mercadopago"
    assert result.event.subscription_days == 90
    assert result.event.amount == Decimal("0.00")


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("status", ["pending", "rejected", ""])
async def test_generic_non_approved_status_is_not_applicable(status):
    result = await GenericJsonNormalizer().normalize({"payment_id": "x", "user_id": "1", "status": status})

    assert isinstance(result, NotApplicable)
    assert result.gateway == "generic"


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    "payload, reason",
    [
        ({"status": "approved", "user_id": "1"}, "missing_payment_or_user_id"),
        ({"status": "approved", "payment_id": "p"}, "missing_payment_or_user_id"),
        ({"status": "approved", "payment_id": "p", "user_id": "1", "amount": "abc"}, "invalid_amount"),
        ({"status": "approved", "payment_id": "p", "user_id": "1", "amount": "-5"}, "invalid_amount"),
        ({"status": "approved", "payment_id": "p", "user_id": "1", "subscription_days": 0}, "invalid_subscription_days"),
        ({"status": "approved", "payment_id": "p", "user_id": "1", "subscription_days": "x"}, "invalid_subscription_days"),
    ],
)
async def test_generic_incomplete_payload_is_invalid(payload, reason):
    result = await GenericJsonNormalizer().normalize(payload)

    assert isinstance(result, Invalid)
    assert result.reason == reason


@pytest.mark.anyio("asyncio")
async def test_unrecognized_payload_has_no_gateway(pagbank):
    result = await normalize_notification({"foo": "bar"}, default_normalizers(pagbank.client()))

    assert isinstance(result, NotApplicable)
    assert result.gateway is None
    assert result.reason == "unrecognized_payload"


@pytest.mark.anyio("asyncio")
async def test_pagbank_paid_transaction_is_matched(pagbank):
    pagbank.add_transaction("NC-1", reference="15", amount="79.90", code="TX-REAL-1")

    result = await normalize_notification({"notificationCode": "NC-1"}, default_normalizers(pagbank.client()))

    assert isinstance(result, Matched)
    event = result.event
    assert event.gateway == "pagbank"
    assert event.gateway_payment_id == "TX-REAL-1"
    assert event.user_id == "15"
    assert event.amount == Decimal("79.90")
    assert event.subscription_days == 90
    assert "<status>3</status>" in event.raw_metadata

    lookup = pagbank.requests[-1]
    assert lookup.url.path == "/v3/transactions/notifications/NC-1"
    assert lookup.url.params["token"] == "test-pagbank-token"


@pytest.mark.anyio("asyncio")
async def test_pagbank_takes_precedence_over_generic_fields(pagbank):
    pagbank.add_transaction("NC-2", reference="15", status=1)

    result = await normalize_notification(
        {"notificationCode": "NC-2", "status": "approved", "payment_id": "x", "user_id": "15"},
        default_normalizers(pagbank.client()),
    )

    assert isinstance(result, NotApplicable)
    assert result.gateway == "pagbank"
    assert result.reason == "status_1"


@pytest.mark.anyio("asyncio")
async def test_pagbank_unknown_amount_falls_back_to_monthly_days(pagbank):
    pagbank.add_transaction("NC-3", reference="15", amount="10.00")

    result = await PagBankNormalizer(pagbank.client()).normalize({"notification_code": "NC-3"})

    assert isinstance(result, Matched)
    assert result.event.subscription_days == 30


def test_pagbank_transaction_without_reference_is_invalid(pagbank):
    normalizer = PagBankNormalizer(pagbank.client())
    document = "<transaction><code>T</code><status>3</status><grossAmount>29.90</grossAmount></transaction>"

    result = normalizer.parse_transaction(document, notification_code="NC")

    assert isinstance(result, Invalid)
    assert result.reason == "missing_status_or_reference"


@pytest.mark.anyio("asyncio")
async def test_pagbank_without_token_is_invalid(pagbank):
    result = await PagBankNormalizer(pagbank.client(token=None)).normalize({"notificationCode": "NC-4"})

    assert isinstance(result, Invalid)
    assert result.reason == "gateway_not_configured"
    assert pagbank.requests == []


@pytest.mark.anyio("asyncio")
async def test_pagbank_lookup_failure_is_invalid(pagbank):
    pagbank.notification_status = 500

    result = await PagBankNormalizer(pagbank.client()).normalize({"notificationCode": "NC-5"})

    assert isinstance(result, Invalid)
    assert result.reason == "upstream_unavailable"


@pytest.mark.anyio("asyncio")
async def test_crashing_normalizer_yields_invalid():
    class Broken:
        gateway = "broken"

        def recognizes(self, payload):
            return True

        async def normalize(self, payload):
            raise RuntimeError("boom")

    result = await normalize_notification({"anything": 1}, [Broken(), GenericJsonNormalizer()])

    assert isinstance(result, Invalid)
    assert result.gateway == "broken"
    assert result.reason == "normalizer_error"


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    "payload, reason",
    [
        ({"status": "approved", "payment_id": "p", "user_id": "1", "gateway": "g" * 51}, "gateway_too_long"),
        ({"status": "approved", "payment_id": "p" * 129, "user_id": "1"}, "payment_id_too_long"),
        ({"status": "approved", "payment_id": "p", "user_id": "1", "amount": "100000000"}, "invalid_amount"),
        ({"status": "approved", "payment_id": "p", "user_id": "1", "amount": "1e40"}, "invalid_amount"),
        ({"status": "approved", "payment_id": "p", "user_id": "1", "subscription_days": 3651}, "invalid_subscription_days"),
        ({"status": "approved", "payment_id": "p", "user_id": "1", "subscription_days": "²"}, "invalid_subscription_days"),
    ],
)
async def test_generic_values_that_cannot_be_stored_are_invalid(payload, reason):
    result = await GenericJsonNormalizer().normalize(payload)

    assert isinstance(result, Invalid)
    assert result.reason == reason


@pytest.mark.anyio("asyncio")
async def test_generic_values_at_column_limits_are_matched():
    result = await GenericJsonNormalizer().normalize(
        {
            "status": "approved",
            "payment_id": "p" * 128,
            "user_id": "1",
            "gateway": "g" * 50,
            "amount": "99999999.99",
            "subscription_days": 3650,
        }
    )

    assert isinstance(result, Matched)
    assert result.event.amount == Decimal("99999999.99")


def test_pagbank_oversized_transaction_code_is_invalid(pagbank):
    normalizer = PagBankNormalizer(pagbank.client())
    document = (
        f"<transaction><code>{'C' * 129}</code><reference>1</reference>"
        "<status>3</status><grossAmount>29.90</grossAmount></transaction>"
    )

    result = normalizer.parse_transaction(document, notification_code="NC")

    assert isinstance(result, Invalid)
    assert result.reason == "payment_id_too_long"
