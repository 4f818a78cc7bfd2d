"""Generic event row, one per logical occurrence or aggregated bucket."""

import uuid

from sqlalchemy import Column, ForeignKey
from sqlmodel import Field, SQLModel

from meterstore.core.identifiers import UserId, user_id_column_type
from meterstore.models.base import new_uuid


class Event(SQLModel, table=True):
    __tablename__ = "events"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)

    # Canonical ISO-8601 UTC string
    reported_timestamp: str = Field(max_length=64, nullable=False)

    user_id: UserId | None = Field(
        default=None,
        sa_column=Column(
            user_id_column_type(), ForeignKey("users.id"), nullable=True, index=True
        ),
    )

    # Absent for externally triggered events such as payment webhooks
    api_key_id: uuid.UUID | None = Field(
        default=None, foreign_key="api_keys.id", nullable=True, index=True
    )
