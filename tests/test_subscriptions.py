from datetime import UTC, datetime, timedelta

import pytest

from app.models.audit import AuditLog
from app.services.subscriptions import extend
from app.utils.time import as_utc

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def test_extend_without_subscription_starts_now():
    assert extend(None, 30, now=NOW) == NOW + timedelta(days=30)


def test_extend_expired_subscription_restarts_from_now():
    expired = NOW - timedelta(days=10)
    assert extend(expired, 30, now=NOW) == NOW + timedelta(days=30)


def test_extend_at_exact_expiry_restarts_from_now():
    assert extend(NOW, 7, now=NOW) == NOW + timedelta(days=7)


def test_extend_active_subscription_stacks():
    current = NOW + timedelta(days=10)
    assert extend(current, 30, now=NOW) == NOW + timedelta(days=40)


def test_extend_treats_naive_values_as_utc():
    naive = (NOW + timedelta(days=5)).replace(tzinfo=None)
    assert extend(naive, 1, now=NOW) == NOW + timedelta(days=6)


@pytest.mark.parametrize("days", [0, -1, True, 1.5])
def test_extend_rejects_invalid_days(days):
    with pytest.raises(ValueError):
        extend(None, days, now=NOW)


def _ends_at(payload: dict) -> datetime:
    return as_utc(datetime.fromisoformat(payload["user"]["subscription_ends_at"]))


@pytest.mark.anyio("asyncio")
async def test_admin_extension_starts_now_for_new_user(client, admin_headers, make_user, db_session):
    user = make_user()
    before = datetime.now(UTC)

    resp = await client.post(f"/admin/users/{user.id}/subscription", json={"days": 30}, headers=admin_headers)

    assert resp.status_code == 200
    ends_at = _ends_at(resp.json())
    assert before + timedelta(days=30) <= ends_at <= datetime.now(UTC) + timedelta(days=30)

    audit = (
        db_session.query(AuditLog)
        .filter(AuditLog.action == "EXTEND_SUBSCRIPTION", AuditLog.entity_id == user.id)
        .one()
    )
    assert audit.actor.startswith("apikey:")
    assert audit.data_json["days"] == 30


@pytest.mark.anyio("asyncio")
async def test_admin_extension_stacks_on_active_subscription(client, admin_headers, make_user):
    current_end = datetime.now(UTC) + timedelta(days=10)
    user = make_user(subscription_ends_at=current_end)

    resp = await client.post(f"/admin/users/{user.id}/subscription", json={"days": 5}, headers=admin_headers)

    assert resp.status_code == 200
    assert abs(_ends_at(resp.json()) - (current_end + timedelta(days=5))) < timedelta(seconds=1)


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("days", [0, -3, "abc", 3651])
async def test_admin_extension_rejects_invalid_days(client, admin_headers, make_user, days):
    user = make_user()
    resp = await client.post(f"/admin/users/{user.id}/subscription", json={"days": days}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.anyio("asyncio")
async def test_admin_extension_unknown_user(client, admin_headers):
    resp = await client.post("/admin/users/999999/subscription", json={"days": 30}, headers=admin_headers)
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "USER_NOT_FOUND"


@pytest.mark.anyio("asyncio")
async def test_admin_extension_requires_admin_scope(client, account):
    user, headers = account
    resp = await client.post(f"/admin/users/{user.id}/subscription", json={"days": 30}, headers=headers)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "INSUFFICIENT_SCOPE"

    resp = await client.post(f"/admin/users/{user.id}/subscription", json={"days": 30})
    assert resp.status_code == 401
