"""Storage adapter: routes serialized events to their handler.

``WRITE_HANDLERS`` and ``PRICE_HANDLERS`` are the single registration point
for event kinds. :func:`check_dispatch_tables` runs at import time and
refuses to start if an ``EventType`` has no handler or has two.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from meterstore.core.database import Database
from meterstore.core.errors import StorageError
from meterstore.events.base import SQL_ENVELOPE, BaseEvent
from meterstore.events.types import EventType
from meterstore.services import ingest, pricing
from meterstore.services.repository import EventRepository, create_repository

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]


@dataclass(frozen=True)
class WriteHandler:
    handle: Callable[[Database, EventRepository, Record, Any], Awaitable[dict[str, str] | None]]
    requires_api_key: bool = False


PriceHandler = Callable[[Database, Record, Callable[[Record], Awaitable[int]]], Awaitable[int]]


WRITE_HANDLERS: dict[EventType, WriteHandler] = {
    EventType.SDK_CALL: WriteHandler(ingest.add_sdk_call, requires_api_key=True),
    EventType.PAYMENT: WriteHandler(ingest.add_payment),
    EventType.AI_TOKEN_USAGE: WriteHandler(ingest.add_ai_token_usage_event, requires_api_key=True),
    EventType.ADD_KEY: WriteHandler(ingest.add_key),
}

PRICE_HANDLERS: dict[EventType, PriceHandler] = {
    EventType.REQUEST_SDK_CALL: pricing.price_sdk_call,
    EventType.REQUEST_AI_TOKEN_USAGE: pricing.price_ai_token_usage,
    EventType.REQUEST_PAYMENT: pricing.price_payment,
}


def check_dispatch_tables(
    write_handlers: Mapping[EventType, Any] = WRITE_HANDLERS,
    price_handlers: Mapping[EventType, Any] = PRICE_HANDLERS,
) -> None:
    """Every event kind must map to exactly one handler."""
    both = set(write_handlers) & set(price_handlers)
    if both:
        raise RuntimeError(f"Event types registered as both write and price: {sorted(both)}")
    missing = set(EventType) - set(write_handlers) - set(price_handlers)
    if missing:
        raise RuntimeError(f"Event types without a storage handler: {sorted(missing)}")


check_dispatch_tables()


def unwrap_envelope(serialized: BaseEvent | Mapping[str, Any] | None) -> Record:
    """Return the SQL record from an event or its serialized envelope."""
    if isinstance(serialized, BaseEvent):
        serialized = serialized.serialize()
    if not isinstance(serialized, Mapping):
        raise StorageError.serialization_failed(
            f"Expected a serialized event envelope, got {type(serialized).__name__}"
        )
    record = serialized.get(SQL_ENVELOPE)
    if record is None:
        raise StorageError.serialization_failed("Event serialization returned null or undefined")
    if not isinstance(record, Mapping):
        raise StorageError.serialization_failed(
            f"SQL record must be a mapping, got {type(record).__name__}"
        )
    return record


def resolve_event_type(record: Record, table: Mapping[EventType, Any]) -> EventType:
    """Look up the record's discriminant in ``table``; fail closed."""
    raw_type = record.get("type")
    try:
        kind = EventType(raw_type)
    except (TypeError, ValueError):
        raise StorageError.unknown_event_type(raw_type) from None
    if kind not in table:
        raise StorageError.unknown_event_type(raw_type)
    return kind


class StorageAdapter:
    """In-process ingest and price contract over one relational backend."""

    def __init__(self, database: Database, repository: EventRepository | None = None) -> None:
        self.database = database
        self.repository = repository or create_repository(database.backend)

    async def add(
        self,
        serialized: BaseEvent | Mapping[str, Any],
        api_key_id: Any = None,
    ) -> dict[str, str] | None:
        """Persist one event; returns ``{"id": ...}`` of the event or API key row."""
        record = unwrap_envelope(serialized)
        kind = resolve_event_type(record, WRITE_HANDLERS)
        handler = WRITE_HANDLERS[kind]
        if handler.requires_api_key and not api_key_id:
            raise StorageError.missing_api_key_id()
        return await handler.handle(self.database, self.repository, record, api_key_id)

    async def add_batch(
        self,
        serialized_events: Sequence[BaseEvent | Mapping[str, Any]],
        api_key_id: Any,
    ) -> dict[str, str] | None:
        """Persist a delivery batch of AI_TOKEN_USAGE events in one transaction."""
        records = [unwrap_envelope(item) for item in serialized_events]
        for record in records:
            kind = resolve_event_type(record, WRITE_HANDLERS)
            if kind is not EventType.AI_TOKEN_USAGE:
                raise StorageError.invalid_data(
                    f"Only AI_TOKEN_USAGE events can be batched, got {kind}"
                )
        if not api_key_id:
            raise StorageError.missing_api_key_id()
        return await ingest.add_ai_token_usage(self.database, self.repository, records, api_key_id)

    async def price(self, serialized: BaseEvent | Mapping[str, Any]) -> int:
        """Amount for a REQUEST_* event. May be negative when refunds dominate."""
        return await self._price_record(unwrap_envelope(serialized))

    async def _price_record(self, record: Record) -> int:
        kind = resolve_event_type(record, PRICE_HANDLERS)
        return await PRICE_HANDLERS[kind](self.database, record, self._price_record)


def create_storage_adapter(database: Database) -> StorageAdapter:
    adapter = StorageAdapter(database)
    logger.info("Storage adapter ready on %s backend", database.backend)
    return adapter
