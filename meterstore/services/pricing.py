"""Read-side pricing: what a user owes, summed from stored debits.

``price_payment`` is not a query of its own: it asks the dispatcher for the
SDK call and AI token usage totals and adds them, so its result is only as
good as those two.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable, Mapping
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from meterstore.core.database import Database
from meterstore.core.errors import StorageError
from meterstore.core.identifiers import UserId
from meterstore.events.types import EventType
from meterstore.models.details import AiTokenUsageEvent, SdkCallEvent
from meterstore.models.event import Event
from meterstore.services.common import require_user_id

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]
PriceDispatch = Callable[[Record], Awaitable[int]]

# Kinds whose totals make up the amount owed.
PAYMENT_COMPONENTS = (EventType.REQUEST_SDK_CALL, EventType.REQUEST_AI_TOKEN_USAGE)


def parse_price(value: Any, user_id: UserId) -> int:
    """Parse a SUM() aggregate. ``None`` (no rows) is 0; garbage is fatal."""
    if value is None:
        return 0
    try:
        if isinstance(value, bool):
            raise TypeError("boolean is not a price")
        if isinstance(value, int):
            return value
        if isinstance(value, (Decimal, float)):
            if not math.isfinite(value):
                raise ValueError(f"non-finite aggregate {value}")
            return int(value)
        return int(str(value).strip())
    except (TypeError, ValueError, ArithmeticError) as exc:
        raise StorageError.price_calculation_failed(user_id, exc) from exc


async def _sum_for_user(database: Database, stmt, user_id: UserId, kind: str) -> int:
    try:
        async with database.session() as session:
            value = (await session.execute(stmt)).scalar_one_or_none()
    except SQLAlchemyError as exc:
        raise StorageError.query_failed(
            f"Failed to query {kind} events for user {user_id}", exc
        ) from exc

    price = parse_price(value, user_id)
    if price < 0:
        logger.warning("Negative %s price calculated for user %s: %d", kind, user_id, price)
    logger.info("%s price for user %s: %d", kind, user_id, price)
    return price


async def _guarded(kind: str, coro: Awaitable[int]) -> int:
    try:
        return await coro
    except StorageError:
        raise
    except Exception as exc:
        logger.exception("Price calculation for %s failed", kind)
        raise StorageError.price_calculation_failed(None, exc) from exc


async def price_sdk_call(database: Database, record: Record, dispatch: PriceDispatch) -> int:
    """Sum of ``debit_amount`` over the user's SDK calls."""
    user_id = require_user_id(record, EventType.REQUEST_SDK_CALL)
    stmt = (
        select(func.sum(SdkCallEvent.debit_amount))
        .select_from(SdkCallEvent)
        .join(Event, SdkCallEvent.id == Event.id)
        .where(Event.user_id == user_id)
    )
    return await _guarded(
        EventType.REQUEST_SDK_CALL,
        _sum_for_user(database, stmt, user_id, EventType.SDK_CALL),
    )


async def price_ai_token_usage(database: Database, record: Record, dispatch: PriceDispatch) -> int:
    """Sum of input plus output debits over the user's AI token usage."""
    user_id = require_user_id(record, EventType.REQUEST_AI_TOKEN_USAGE)
    stmt = (
        select(
            func.sum(
                AiTokenUsageEvent.input_debit_amount + AiTokenUsageEvent.output_debit_amount
            )
        )
        .select_from(AiTokenUsageEvent)
        .join(Event, AiTokenUsageEvent.id == Event.id)
        .where(Event.user_id == user_id)
    )
    return await _guarded(
        EventType.REQUEST_AI_TOKEN_USAGE,
        _sum_for_user(database, stmt, user_id, EventType.AI_TOKEN_USAGE),
    )


async def price_payment(database: Database, record: Record, dispatch: PriceDispatch) -> int:
    """Total owed: the SDK call total plus the AI token usage total."""
    user_id = require_user_id(record, EventType.REQUEST_PAYMENT)

    async def _compose() -> int:
        total = 0
        for kind in PAYMENT_COMPONENTS:
            value = await dispatch({**record, "type": kind.value, "data": None})
            if isinstance(value, bool) or not isinstance(value, int):
                raise StorageError.price_calculation_failed(
                    user_id, ValueError(f"Invalid {kind} price value returned: {value!r}")
                )
            total += value
        logger.info("Total owed by user %s: %d", user_id, total)
        return total

    return await _guarded(EventType.REQUEST_PAYMENT, _compose())
