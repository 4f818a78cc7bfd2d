"""Import all models so SQLModel.metadata picks them up."""

from meterstore.models.api_key import ApiKey, ApiKeyCreate, ApiKeyCreated
from meterstore.models.details import AiTokenUsageEvent, PaymentEvent, SdkCallEvent
from meterstore.models.event import Event
from meterstore.models.user import User

__all__ = [
    "AiTokenUsageEvent",
    "ApiKey",
    "ApiKeyCreate",
    "ApiKeyCreated",
    "Event",
    "PaymentEvent",
    "SdkCallEvent",
    "User",
]
