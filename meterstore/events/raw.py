"""Events that are persisted by the write pipeline."""

from typing import Literal

from meterstore.events.base import BaseEvent, UserEvent
from meterstore.events.types import (
    AddKeyData,
    AITokenUsageData,
    PaymentData,
    SDKCallData,
)


class SDKCall(UserEvent):
    type: Literal["SDK_CALL"] = "SDK_CALL"
    data: SDKCallData


class Payment(UserEvent):
    type: Literal["PAYMENT"] = "PAYMENT"
    data: PaymentData


class AITokenUsage(UserEvent):
    type: Literal["AI_TOKEN_USAGE"] = "AI_TOKEN_USAGE"
    data: AITokenUsageData


class AddKey(BaseEvent):
    """Provisions an API key; has no user and no generic event row."""

    carries_user = False

    type: Literal["ADD_KEY"] = "ADD_KEY"
    data: AddKeyData
