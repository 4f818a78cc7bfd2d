"""Write pipeline, one transactional handler per mutating event kind.

Every handler has the same shape:

  1. Validate the payload before touching the database
  2. Open one transaction
  3. Ensure the user exists (insert-or-ignore)
  4. Convert the reported timestamp
  5. Insert the generic event row, then the detail row keyed by its id
  6. Return ``{"id": <event id>}``

Any failure rolls the whole transaction back. Typed ``StorageError``s
propagate as they are; anything else surfaces as TRANSACTION_FAILED with
the original exception attached.
"""

from __future__ import annotations

import logging
import math
from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from meterstore.core.database import Database
from meterstore.core.errors import StorageError
from meterstore.core.identifiers import UserId
from meterstore.events.types import AddKeyData, EventType, PaymentData, SDKCallData
from meterstore.models.details import AiTokenUsageEvent, PaymentEvent, SdkCallEvent
from meterstore.services.aggregation import aggregate_token_usage, validate_token_usage
from meterstore.services.common import (
    format_timestamp,
    parse_api_key_id,
    parse_timestamp,
    require_bigint,
    require_user_id,
    to_canonical_timestamp,
)
from meterstore.services.repository import EventRepository

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]


@asynccontextmanager
async def write_transaction(
    database: Database, description: str
) -> AsyncGenerator[AsyncSession, None]:
    """Transaction boundary for one ``add``: commit, or roll back and classify."""
    try:
        async with database.transaction() as txn:
            yield txn
    except StorageError as exc:
        logger.warning("%s rolled back: %s", description, exc)
        raise
    except Exception as exc:
        logger.exception("%s rolled back on unexpected error", description)
        raise StorageError.transaction_failed(
            f"Transaction failed while storing {description}", exc
        ) from exc


def _parse_payload(schema: type[BaseModel], record: Record, kind: str) -> Any:
    data = record.get("data")
    if data is None:
        raise StorageError.invalid_data(f"Missing data field in {kind} event")
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise StorageError.invalid_data(f"Malformed {kind} data: {exc}", exc) from exc


async def _store_single(
    database: Database,
    repository: EventRepository,
    kind: EventType,
    user_id: UserId,
    record: Record,
    api_key_id: Any,
    detail_table: Any,
    detail_values: dict[str, Any],
) -> dict[str, str]:
    key_id = parse_api_key_id(api_key_id)
    logger.info("Processing %s event for user %s", kind, user_id)

    async with write_transaction(database, f"{kind} event") as txn:
        await repository.insert_or_skip_user(txn, user_id)
        reported_timestamp = to_canonical_timestamp(record.get("reported_timestamp"))
        event_id = await repository.insert_event(txn, reported_timestamp, user_id, key_id)
        logger.debug("Event row %s inserted for user %s", event_id, user_id)
        await repository.insert_detail(txn, detail_table, event_id, detail_values)

    logger.info("%s event %s stored for user %s", kind, event_id, user_id)
    return {"id": str(event_id)}


# ── SDK_CALL ─────────────────────────────────────────────────

async def add_sdk_call(
    database: Database,
    repository: EventRepository,
    record: Record,
    api_key_id: Any,
) -> dict[str, str]:
    """Store an SDK call. Negative debits are refunds and allowed."""
    user_id = require_user_id(record, EventType.SDK_CALL)
    data: SDKCallData = _parse_payload(SDKCallData, record, EventType.SDK_CALL)
    require_bigint(data.debit_amount, "debitAmount", EventType.SDK_CALL)
    return await _store_single(
        database,
        repository,
        EventType.SDK_CALL,
        user_id,
        record,
        api_key_id,
        SdkCallEvent,
        {"type": data.sdk_call_type.value, "debit_amount": data.debit_amount},
    )


# ── PAYMENT ──────────────────────────────────────────────────

def _validate_credit_amount(record: Record) -> None:
    # Checked on the raw value so floats and infinities get a clear message.
    data = record.get("data")
    raw = data.get("creditAmount") if isinstance(data, Mapping) else None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise StorageError.invalid_data(
            f"Invalid creditAmount: expected a number, got {type(raw).__name__}"
        )
    if not math.isfinite(raw):
        raise StorageError.invalid_data(f"Invalid creditAmount: must be finite, got {raw}")
    if raw <= 0:
        raise StorageError.invalid_data(f"Invalid creditAmount: must be positive, got {raw}")
    require_bigint(raw, "creditAmount", EventType.PAYMENT)


async def add_payment(
    database: Database,
    repository: EventRepository,
    record: Record,
    api_key_id: Any = None,
) -> dict[str, str]:
    """Store a payment credit. ``api_key_id`` is optional for webhook-originated payments."""
    user_id = require_user_id(record, EventType.PAYMENT)
    _validate_credit_amount(record)
    data: PaymentData = _parse_payload(PaymentData, record, EventType.PAYMENT)
    return await _store_single(
        database,
        repository,
        EventType.PAYMENT,
        user_id,
        record,
        api_key_id,
        PaymentEvent,
        {"credit_amount": data.credit_amount},
    )


# ── AI_TOKEN_USAGE ───────────────────────────────────────────

async def add_ai_token_usage(
    database: Database,
    repository: EventRepository,
    records: Sequence[Record],
    api_key_id: Any,
) -> dict[str, str] | None:
    """Aggregate and store a batch of AI token usage events.

    Inserts one event row and one detail row per distinct (user, model)
    pair and returns the first event id. An empty batch is a no-op.
    """
    if not records:
        logger.info("AI_TOKEN_USAGE batch skipped: no events to process")
        return None

    validated = validate_token_usage(records)
    key_id = parse_api_key_id(api_key_id)
    logger.info("Processing %d AI_TOKEN_USAGE event(s) for api key %s", len(records), key_id)

    description = f"{len(records)} AI_TOKEN_USAGE event(s)"
    async with write_transaction(database, description) as txn:
        groups = aggregate_token_usage(validated)
        logger.info(
            "Aggregated %d event(s) into %d (user, model) group(s)",
            len(records),
            len(groups),
        )

        await repository.insert_or_skip_users(txn, (group.user_id for group in groups))

        event_ids = await repository.insert_events(
            txn,
            [
                {
                    "reported_timestamp": format_timestamp(group.reported_at),
                    "user_id": group.user_id,
                    "api_key_id": key_id,
                }
                for group in groups
            ],
        )
        await repository.insert_details(
            txn,
            AiTokenUsageEvent,
            [
                {"id": event_id, **group.detail_values()}
                for event_id, group in zip(event_ids, groups)
            ],
        )

    logger.info(
        "AI_TOKEN_USAGE batch stored: %d event(s) in, %d row(s) written",
        len(records),
        len(event_ids),
    )
    return {"id": str(event_ids[0])}


async def add_ai_token_usage_event(
    database: Database,
    repository: EventRepository,
    record: Record,
    api_key_id: Any,
) -> dict[str, str] | None:
    """Single-event entry point; goes through the batch path."""
    return await add_ai_token_usage(database, repository, [record], api_key_id)


# ── ADD_KEY ──────────────────────────────────────────────────

async def add_key(
    database: Database,
    repository: EventRepository,
    record: Record,
    api_key_id: Any = None,
) -> dict[str, str]:
    """Create an ``api_keys`` row. No user and no generic event row."""
    data: AddKeyData = _parse_payload(AddKeyData, record, EventType.ADD_KEY)
    if not data.name.strip():
        raise StorageError.invalid_data("API key name cannot be empty")
    if not data.key.strip():
        raise StorageError.invalid_data("API key cannot be empty")

    logger.info("Processing ADD_KEY event for key %r", data.name)

    async with write_transaction(database, "ADD_KEY event") as txn:
        # Validated for parity with other kinds; api_keys keeps its own created_at.
        to_canonical_timestamp(record.get("reported_timestamp"))
        key_id = await repository.insert_api_key(
            txn,
            {
                "name": data.name,
                "key": data.key,
                "expires_at": parse_timestamp(data.expires_at),
            },
        )

    logger.info("API key %s inserted for %r", key_id, data.name)
    return {"id": str(key_id)}
