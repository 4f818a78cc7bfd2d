"""Tests for the HTTP surface: API keys, event ingest and price lookup."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from meterstore.core.security import generate_api_key, hash_api_key
from meterstore.events import AddKey, AddKeyData
from meterstore.models.event import Event

ADMIN_HEADERS = {"X-Admin-Token": "test-admin-token"}


async def _bootstrap(client: AsyncClient, name: str = "ingest") -> dict:
    """Provision an API key and return bearer headers for it."""
    resp = await client.post(
        "/v1/api-keys",
        json={"name": name, "expires_at": "2099-01-01T00:00:00Z"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 201
    return {"Authorization": f"Bearer {resp.json()['raw_key']}"}


def _sdk_call(user_id, debit: int) -> dict:
    return {
        "type": "SDK_CALL",
        "userId": str(user_id),
        "data": {"sdkCallType": "RAW", "debitAmount": debit},
    }


def _ai_usage(user_id, model: str, debit_in: int, debit_out: int) -> dict:
    return {
        "type": "AI_TOKEN_USAGE",
        "userId": str(user_id),
        "data": {
            "model": model,
            "inputTokens": 10,
            "outputTokens": 5,
            "inputDebitAmount": debit_in,
            "outputDebitAmount": debit_out,
        },
    }


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "backend": "sqlite"}


# ── API keys ─────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_api_key_returns_raw_key_once(client: AsyncClient):
    resp = await client.post(
        "/v1/api-keys",
        json={"name": "ci", "expires_at": "2099-01-01T00:00:00Z"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["name"] == "ci"
    assert data["raw_key"].startswith("msk_")
    assert uuid.UUID(data["id"])


@pytest.mark.asyncio
async def test_create_api_key_requires_admin_token(client: AsyncClient):
    body = {"name": "ci", "expires_at": "2099-01-01T00:00:00Z"}
    resp = await client.post("/v1/api-keys", json=body)
    assert resp.status_code == 401

    resp = await client.post("/v1/api-keys", json=body, headers={"X-Admin-Token": "wrong"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_duplicate_api_key_name_conflicts(client: AsyncClient):
    await _bootstrap(client, "ci")
    resp = await client.post(
        "/v1/api-keys",
        json={"name": "ci", "expires_at": "2099-01-01T00:00:00Z"},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "CONSTRAINT_VIOLATION"


# ── Events ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_register_event_requires_api_key(client: AsyncClient):
    resp = await client.post("/v1/events", json=_sdk_call(uuid.uuid4(), 10))
    assert resp.status_code in (401, 403)


@pytest.mark.asyncio
async def test_register_event_rejects_unknown_key(client: AsyncClient):
    resp = await client.post(
        "/v1/events",
        json=_sdk_call(uuid.uuid4(), 10),
        headers={"Authorization": "Bearer msk_nope"},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_expired_key_is_rejected(client: AsyncClient):
    resp = await client.post(
        "/v1/api-keys",
        json={"name": "old", "expires_at": "2001-01-01T00:00:00Z"},
        headers=ADMIN_HEADERS,
    )
    headers = {"Authorization": f"Bearer {resp.json()['raw_key']}"}

    resp = await client.post("/v1/events", json=_sdk_call(uuid.uuid4(), 10), headers=headers)
    assert resp.status_code == 401
    assert resp.json()["detail"] == "API key has expired"


@pytest.mark.asyncio
async def test_register_event_and_price(client: AsyncClient, database):
    headers = await _bootstrap(client)
    user_id = uuid.uuid4()

    resp = await client.post("/v1/events", json=_sdk_call(user_id, 100), headers=headers)
    assert resp.status_code == 201
    event_id = uuid.UUID(resp.json()["id"])

    async with database.session() as session:
        event = await session.get(Event, event_id)
    assert event.user_id == user_id
    assert event.api_key_id is not None

    await client.post("/v1/events", json=_sdk_call(user_id, -30), headers=headers)

    resp = await client.get(
        f"/v1/users/{user_id}/price", params={"kind": "sdk_call"}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json() == {"user_id": str(user_id), "kind": "sdk_call", "amount": 70}


@pytest.mark.asyncio
async def test_batch_and_total_price(client: AsyncClient):
    headers = await _bootstrap(client)
    user_id = uuid.uuid4()

    resp = await client.post(
        "/v1/events/batch",
        json=[_ai_usage(user_id, "gpt-4", 10, 5), _ai_usage(user_id, "gpt-4", 20, 10)],
        headers=headers,
    )
    assert resp.status_code == 201
    await client.post("/v1/events", json=_sdk_call(user_id, 100), headers=headers)

    resp = await client.get(f"/v1/users/{user_id}/price", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["kind"] == "total"
    assert resp.json()["amount"] == 145


@pytest.mark.asyncio
async def test_payment_is_accepted(client: AsyncClient):
    headers = await _bootstrap(client)
    resp = await client.post(
        "/v1/events",
        json={"type": "PAYMENT", "userId": str(uuid.uuid4()), "data": {"creditAmount": 25075}},
        headers=headers,
    )
    assert resp.status_code == 201


@pytest.mark.asyncio
async def test_unknown_event_type_is_400(client: AsyncClient):
    headers = await _bootstrap(client)
    resp = await client.post(
        "/v1/events",
        json={"type": "REFUND", "userId": str(uuid.uuid4()), "data": {}},
        headers=headers,
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "UNKNOWN_EVENT_TYPE"
    assert "REFUND" in body["detail"]


@pytest.mark.asyncio
async def test_request_event_cannot_be_registered(client: AsyncClient):
    headers = await _bootstrap(client)
    resp = await client.post(
        "/v1/events",
        json={"type": "REQUEST_PAYMENT", "userId": str(uuid.uuid4())},
        headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "UNKNOWN_EVENT_TYPE"


@pytest.mark.asyncio
async def test_add_key_is_not_accepted_as_event(client: AsyncClient):
    headers = await _bootstrap(client)
    resp = await client.post(
        "/v1/events",
        json={"type": "ADD_KEY", "data": {"name": "x", "key": "y", "expiresAt": "2099-01-01"}},
        headers=headers,
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_malformed_payload_is_422(client: AsyncClient):
    headers = await _bootstrap(client)
    resp = await client.post(
        "/v1/events",
        json={"type": "SDK_CALL", "userId": "not-a-uuid", "data": {"sdkCallType": "RAW"}},
        headers=headers,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_invalid_payment_amount_maps_to_400(client: AsyncClient):
    headers = await _bootstrap(client)
    resp = await client.post(
        "/v1/events",
        json={"type": "PAYMENT", "userId": str(uuid.uuid4()), "data": {"creditAmount": -5}},
        headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_DATA"


@pytest.mark.asyncio
async def test_price_rejects_bad_user_id(client: AsyncClient):
    headers = await _bootstrap(client)
    resp = await client.get("/v1/users/not-a-uuid/price", headers=headers)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_price_for_unknown_user_is_zero(client: AsyncClient):
    headers = await _bootstrap(client)
    resp = await client.get(
        f"/v1/users/{uuid.uuid4()}/price", params={"kind": "ai_token_usage"}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["amount"] == 0


# ── Keys provisioned through ADD_KEY ─────────────────────


async def _provision(storage, name: str, expires_at: datetime) -> dict:
    raw_key = generate_api_key()
    await storage.add(AddKey(data=AddKeyData(
        name=name, key=hash_api_key(raw_key), expires_at=expires_at
    )))
    return {"Authorization": f"Bearer {raw_key}"}


@pytest.mark.asyncio
async def test_key_with_aware_expiry_authenticates(client: AsyncClient, storage):
    headers = await _provision(storage, "aware", datetime(2099, 1, 1, tzinfo=timezone.utc))

    resp = await client.post("/v1/events", json=_sdk_call(uuid.uuid4(), 10), headers=headers)
    assert resp.status_code == 201


@pytest.mark.asyncio
async def test_expiry_with_offset_is_stored_as_utc(client: AsyncClient, storage):
    # One hour ahead; its -05:00 wall clock reads as already past in UTC
    future = datetime.now(timezone(timedelta(hours=-5))) + timedelta(hours=1)
    headers = await _provision(storage, "offset", future)

    resp = await client.post("/v1/events", json=_sdk_call(uuid.uuid4(), 10), headers=headers)
    assert resp.status_code == 201
