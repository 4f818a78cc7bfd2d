"""Collapse batched AI token usage into one row per (user, model).

Validation runs over the whole batch before anything is summed, so one bad
event rejects every sibling in the same delivery.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from meterstore.core.errors import StorageError
from meterstore.core.identifiers import UserId
from meterstore.events.types import AITokenUsageData
from meterstore.services.common import parse_timestamp, require_bigint, require_user_id

# Numeric fields that are summed and must never be negative.
TOKEN_USAGE_FIELDS = (
    "input_tokens",
    "output_tokens",
    "input_debit_amount",
    "output_debit_amount",
)


@dataclass
class TokenUsageRecord:
    """One validated AI_TOKEN_USAGE event, timestamp still unparsed."""
    user_id: UserId
    data: AITokenUsageData
    reported_timestamp: Any


@dataclass
class AggregatedTokenUsage:
    user_id: UserId
    model: str
    input_tokens: int
    output_tokens: int
    input_debit_amount: int
    output_debit_amount: int
    reported_at: datetime

    def detail_values(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "input_debit_amount": self.input_debit_amount,
            "output_debit_amount": self.output_debit_amount,
        }


def validate_token_usage(records: Sequence[Mapping[str, Any]]) -> list[TokenUsageRecord]:
    """Parse every record, rejecting the batch on the first bad field."""
    validated = []
    for record in records:
        user_id = require_user_id(record, "AI_TOKEN_USAGE")
        try:
            data = AITokenUsageData.model_validate(record.get("data"))
        except ValidationError as exc:
            raise StorageError.invalid_data(
                f"Malformed AI_TOKEN_USAGE data for user {user_id}", exc
            ) from exc

        for field in TOKEN_USAGE_FIELDS:
            value = getattr(data, field)
            if value < 0:
                raise StorageError.invalid_data(
                    f"Negative {field} not allowed for AI token usage for user "
                    f"{user_id}: {value}"
                )
            require_bigint(value, field, "AI_TOKEN_USAGE")
        validated.append(TokenUsageRecord(user_id, data, record.get("reported_timestamp")))
    return validated


def aggregate_token_usage(records: Iterable[TokenUsageRecord]) -> list[AggregatedTokenUsage]:
    """Sum counters per (user, model), keeping the latest timestamp.

    Groups come back in the order their key was first seen.
    """
    groups: dict[tuple[UserId, str], AggregatedTokenUsage] = {}
    for record in records:
        reported_at = parse_timestamp(record.reported_timestamp)
        key = (record.user_id, record.data.model)
        existing = groups.get(key)
        if existing is None:
            groups[key] = AggregatedTokenUsage(
                user_id=record.user_id,
                model=record.data.model,
                input_tokens=record.data.input_tokens,
                output_tokens=record.data.output_tokens,
                input_debit_amount=record.data.input_debit_amount,
                output_debit_amount=record.data.output_debit_amount,
                reported_at=reported_at,
            )
            continue

        existing.input_tokens += record.data.input_tokens
        existing.output_tokens += record.data.output_tokens
        existing.input_debit_amount += record.data.input_debit_amount
        existing.output_debit_amount += record.data.output_debit_amount
        if reported_at > existing.reported_at:
            existing.reported_at = reported_at

    for group in groups.values():
        # Sums can overflow even when every input fits
        for field in TOKEN_USAGE_FIELDS:
            require_bigint(getattr(group, field), field, "AI_TOKEN_USAGE")
    return list(groups.values())
