"""Validation helpers shared by the write pipeline and pricing engine."""

import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from meterstore.core.errors import StorageError
from meterstore.core.identifiers import UserId, parse_user_id

# Amount and counter columns are 64-bit signed integers.
BIGINT_MIN = -(2**63)
BIGINT_MAX = 2**63 - 1


def require_user_id(record: Mapping[str, Any], kind: str) -> UserId:
    """Return the record's validated user id or raise INVALID_DATA."""
    raw = record.get("userId")
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise StorageError.invalid_data(f"Missing userId in {kind} event")
    try:
        return parse_user_id(raw)
    except ValueError as exc:
        raise StorageError.invalid_data(f"Invalid userId in {kind} event: {exc}", exc) from exc


def require_bigint(value: int | float, field: str, kind: str) -> None:
    """Reject values the BIGINT amount columns cannot hold."""
    if not BIGINT_MIN <= value <= BIGINT_MAX:
        raise StorageError.invalid_data(f"{field} out of 64-bit range in {kind} event: {value}")


def parse_api_key_id(api_key_id: Any) -> uuid.UUID | None:
    """Coerce a collaborator-supplied API key id; ``None`` stays ``None``."""
    if api_key_id is None:
        return None
    if isinstance(api_key_id, uuid.UUID):
        return api_key_id
    try:
        return uuid.UUID(str(api_key_id))
    except ValueError as exc:
        raise StorageError.invalid_data(f"Invalid apiKeyId: {api_key_id!r}", exc) from exc


def parse_timestamp(value: Any) -> datetime:
    """Normalise a reported timestamp to an aware UTC datetime.

    Naive datetimes are taken to be UTC already.
    """
    if isinstance(value, str):
        if not value.strip():
            raise StorageError.invalid_timestamp("Timestamp is empty")
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise StorageError.invalid_timestamp(
                f"Failed to parse reported_timestamp {value!r}", exc
            ) from exc
    if not isinstance(value, datetime):
        raise StorageError.invalid_timestamp(
            f"Expected an ISO-8601 string or datetime, got {type(value).__name__}"
        )
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_canonical_timestamp(value: Any) -> str:
    """ISO-8601 UTC string stored in ``events.reported_timestamp``."""
    return format_timestamp(parse_timestamp(value))


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
