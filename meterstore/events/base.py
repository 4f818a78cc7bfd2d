"""Base class shared by every event kind."""

from datetime import datetime, timezone
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticSerializationError

from meterstore.core.errors import StorageError
from meterstore.core.identifiers import UserId, parse_user_id
from meterstore.events.types import EventType

# Key of the envelope consumed by the SQL storage adapter.
SQL_ENVELOPE = "SQL"


def utcnow_aware() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    """An immutable occurrence: discriminant, timestamp and payload."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    carries_user: ClassVar[bool] = True

    type: str
    reported_timestamp: datetime = Field(default_factory=utcnow_aware)
    data: Any = None

    def serialize(self) -> dict[str, dict[str, Any]]:
        """Flatten to ``{"SQL": {type, userId?, reported_timestamp, data}}``."""
        try:
            record = self.model_dump(by_alias=True)
        except PydanticSerializationError as exc:
            raise StorageError.serialization_failed(
                f"Could not flatten {self.type} event", exc
            ) from exc
        record["type"] = EventType(self.type).value
        return {SQL_ENVELOPE: record}


class UserEvent(BaseEvent):
    """An event attributed to a user."""

    user_id: UserId = Field(alias="userId")

    @field_validator("user_id", mode="before")
    @classmethod
    def _validate_user_id(cls, value):
        return parse_user_id(value)
