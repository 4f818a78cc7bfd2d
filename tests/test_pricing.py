"""Tests for the pricing engine."""

import uuid
from decimal import Decimal

import pytest

from meterstore.core.errors import StorageError, StorageErrorType
from meterstore.events import (
    AITokenUsage,
    AITokenUsageData,
    Payment,
    PaymentData,
    RequestAITokenUsage,
    RequestPayment,
    RequestSDKCall,
    SDKCall,
    SDKCallData,
)
from meterstore.services.pricing import parse_price, price_payment


def _sdk_call(user_id, debit) -> SDKCall:
    return SDKCall(userId=str(user_id), data=SDKCallData(sdkCallType="RAW", debitAmount=debit))


def _ai_usage(user_id, model, debit_in, debit_out) -> AITokenUsage:
    return AITokenUsage(
        userId=str(user_id),
        data=AITokenUsageData(
            model=model,
            inputTokens=1000,
            outputTokens=500,
            inputDebitAmount=debit_in,
            outputDebitAmount=debit_out,
        ),
    )


# ── parse_price ──────────────────────────────────────────


def test_parse_price_none_is_zero():
    assert parse_price(None, "u") == 0


def test_parse_price_accepts_numeric_aggregates():
    assert parse_price(42, "u") == 42
    assert parse_price(-7, "u") == -7
    assert parse_price(Decimal("1500"), "u") == 1500
    assert parse_price(12.0, "u") == 12
    assert parse_price("99", "u") == 99


@pytest.mark.parametrize("value", ["abc", float("nan"), float("inf"), Decimal("NaN"), True, object()])
def test_parse_price_rejects_garbage(value):
    with pytest.raises(StorageError) as exc_info:
        parse_price(value, "u")
    assert exc_info.value.error_type is StorageErrorType.PRICE_CALCULATION_FAILED


# ── Queries ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_prices_default_to_zero(storage):
    user_id = str(uuid.uuid4())
    assert await storage.price(RequestSDKCall(userId=user_id)) == 0
    assert await storage.price(RequestAITokenUsage(userId=user_id)) == 0
    assert await storage.price(RequestPayment(userId=user_id)) == 0


@pytest.mark.asyncio
async def test_sdk_call_price_includes_refunds(storage, api_key_id):
    user_id = uuid.uuid4()
    for debit in (100, 250, -50):
        await storage.add(_sdk_call(user_id, debit), api_key_id)

    assert await storage.price(RequestSDKCall(userId=str(user_id))) == 300


@pytest.mark.asyncio
async def test_sdk_call_price_can_be_negative(storage, api_key_id):
    user_id = uuid.uuid4()
    await storage.add(_sdk_call(user_id, 10), api_key_id)
    await storage.add(_sdk_call(user_id, -40), api_key_id)

    assert await storage.price(RequestSDKCall(userId=str(user_id))) == -30


@pytest.mark.asyncio
async def test_ai_price_sums_input_and_output_debits(storage, api_key_id):
    user_id = uuid.uuid4()
    await storage.add_batch(
        [_ai_usage(user_id, "gpt-4", 10, 5), _ai_usage(user_id, "claude-3", 7, 3)],
        api_key_id,
    )

    assert await storage.price(RequestAITokenUsage(userId=str(user_id))) == 25


@pytest.mark.asyncio
async def test_prices_are_scoped_per_user(storage, api_key_id):
    alice, bob = uuid.uuid4(), uuid.uuid4()
    await storage.add(_sdk_call(alice, 100), api_key_id)
    await storage.add(_sdk_call(bob, 1), api_key_id)

    assert await storage.price(RequestSDKCall(userId=str(alice))) == 100
    assert await storage.price(RequestSDKCall(userId=str(bob))) == 1


@pytest.mark.asyncio
async def test_total_owed_is_sdk_plus_ai(storage, api_key_id):
    user_id = uuid.uuid4()
    await storage.add(_sdk_call(user_id, 120), api_key_id)
    await storage.add(_ai_usage(user_id, "gpt-4", 30, 20), api_key_id)
    # Credits are not subtracted from the amount owed
    await storage.add(Payment(userId=str(user_id), data=PaymentData(creditAmount=1000)))

    sdk = await storage.price(RequestSDKCall(userId=str(user_id)))
    ai = await storage.price(RequestAITokenUsage(userId=str(user_id)))
    total = await storage.price(RequestPayment(userId=str(user_id)))
    assert (sdk, ai, total) == (120, 50, 170)


@pytest.mark.asyncio
async def test_blank_user_id_is_invalid_data(storage):
    record = {"SQL": {"type": "REQUEST_SDK_CALL", "userId": "  ", "data": None}}
    with pytest.raises(StorageError) as exc_info:
        await storage.price(record)
    assert exc_info.value.error_type is StorageErrorType.INVALID_DATA


@pytest.mark.asyncio
async def test_malformed_user_id_is_invalid_data(storage):
    record = {"SQL": {"type": "REQUEST_PAYMENT", "userId": "not-a-uuid", "data": None}}
    with pytest.raises(StorageError) as exc_info:
        await storage.price(record)
    assert exc_info.value.error_type is StorageErrorType.INVALID_DATA


@pytest.mark.asyncio
async def test_total_rejects_non_integer_component(database):
    async def _dispatch(record):
        return 1.5

    record = {"type": "REQUEST_PAYMENT", "userId": str(uuid.uuid4()), "data": None}
    with pytest.raises(StorageError) as exc_info:
        await price_payment(database, record, _dispatch)
    assert exc_info.value.error_type is StorageErrorType.PRICE_CALCULATION_FAILED


@pytest.mark.asyncio
async def test_total_wraps_unexpected_component_failure(database):
    async def _dispatch(record):
        raise RuntimeError("replica gone")

    record = {"type": "REQUEST_PAYMENT", "userId": str(uuid.uuid4()), "data": None}
    with pytest.raises(StorageError) as exc_info:
        await price_payment(database, record, _dispatch)
    err = exc_info.value
    assert err.error_type is StorageErrorType.PRICE_CALCULATION_FAILED
    assert isinstance(err.original_error, RuntimeError)
