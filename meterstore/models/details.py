"""Per-kind detail rows, keyed 1:1 to ``events.id``."""

import uuid

from sqlalchemy import BigInteger
from sqlmodel import Field, SQLModel


class SdkCallEvent(SQLModel, table=True):
    __tablename__ = "sdk_call_events"

    id: uuid.UUID = Field(primary_key=True, foreign_key="events.id")
    type: str = Field(max_length=32, nullable=False)  # RAW | MIDDLEWARE_CALL
    debit_amount: int = Field(sa_type=BigInteger, nullable=False)


class PaymentEvent(SQLModel, table=True):
    __tablename__ = "payment_events"

    id: uuid.UUID = Field(primary_key=True, foreign_key="events.id")
    credit_amount: int = Field(sa_type=BigInteger, nullable=False)


class AiTokenUsageEvent(SQLModel, table=True):
    __tablename__ = "ai_token_usage_events"

    id: uuid.UUID = Field(primary_key=True, foreign_key="events.id")
    model: str = Field(max_length=100, nullable=False, index=True)
    input_tokens: int = Field(default=0, sa_type=BigInteger)
    output_tokens: int = Field(default=0, sa_type=BigInteger)
    input_debit_amount: int = Field(default=0, sa_type=BigInteger)
    output_debit_amount: int = Field(default=0, sa_type=BigInteger)
