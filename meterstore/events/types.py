"""Event discriminants and payload shapes.

Payload models describe structure only. Business rules (positive credits,
non-negative token counts) are enforced by the write pipeline so that an
invalid event can still be built, serialized and rejected with a typed
error.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventType(StrEnum):
    SDK_CALL = "SDK_CALL"
    PAYMENT = "PAYMENT"
    AI_TOKEN_USAGE = "AI_TOKEN_USAGE"
    ADD_KEY = "ADD_KEY"
    REQUEST_SDK_CALL = "REQUEST_SDK_CALL"
    REQUEST_AI_TOKEN_USAGE = "REQUEST_AI_TOKEN_USAGE"
    REQUEST_PAYMENT = "REQUEST_PAYMENT"


MUTATING_EVENT_TYPES = frozenset({
    EventType.SDK_CALL,
    EventType.PAYMENT,
    EventType.AI_TOKEN_USAGE,
    EventType.ADD_KEY,
})

REQUEST_EVENT_TYPES = frozenset({
    EventType.REQUEST_SDK_CALL,
    EventType.REQUEST_AI_TOKEN_USAGE,
    EventType.REQUEST_PAYMENT,
})


class SDKCallType(StrEnum):
    RAW = "RAW"
    MIDDLEWARE_CALL = "MIDDLEWARE_CALL"


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @field_validator("*", mode="before")
    @classmethod
    def _reject_bool(cls, value, info):
        # bool is an int subclass; never a valid amount
        if isinstance(value, bool) and cls.model_fields[info.field_name].annotation is int:
            raise ValueError("boolean is not a valid amount")
        return value


class SDKCallData(_Payload):
    sdk_call_type: SDKCallType = Field(alias="sdkCallType")
    # Negative values are refunds
    debit_amount: int = Field(alias="debitAmount")


class PaymentData(_Payload):
    # Integer minor units (cents)
    credit_amount: int = Field(alias="creditAmount")


class AITokenUsageData(_Payload):
    model: str = Field(min_length=1, max_length=100)
    input_tokens: int = Field(alias="inputTokens")
    output_tokens: int = Field(alias="outputTokens")
    input_debit_amount: int = Field(alias="inputDebitAmount")
    output_debit_amount: int = Field(alias="outputDebitAmount")


class AddKeyData(_Payload):
    name: str
    key: str
    expires_at: datetime = Field(alias="expiresAt")
