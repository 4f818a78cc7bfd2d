"""API key model: credentials that report events on behalf of users."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from meterstore.models.base import new_uuid, utcnow


class ApiKey(SQLModel, table=True):
    __tablename__ = "api_keys"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)

    # Human-readable label, e.g. "production-ingest"
    name: str = Field(max_length=255, nullable=False, unique=True)

    # SHA-256 hash of the raw key; the raw value is shown only once at creation
    key: str = Field(max_length=255, nullable=False, unique=True, index=True)

    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True), nullable=False
    )
    expires_at: datetime = Field(sa_type=DateTime(timezone=True), nullable=False)
    revoked: bool = Field(default=False, nullable=False)
    revoked_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))


# ── Pydantic schemas ─────────────────────────────────────────

class ApiKeyCreate(SQLModel):
    name: str = Field(min_length=1, max_length=255)
    expires_at: datetime


class ApiKeyCreated(SQLModel):
    """Returned exactly once at creation time, with the raw key."""
    id: uuid.UUID
    name: str
    expires_at: datetime
    raw_key: str
