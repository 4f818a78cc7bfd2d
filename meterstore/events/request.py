"""Query-only events. Never stored; they drive the pricing engine."""

from typing import Literal

from meterstore.events.base import UserEvent


class RequestSDKCall(UserEvent):
    type: Literal["REQUEST_SDK_CALL"] = "REQUEST_SDK_CALL"
    data: None = None


class RequestAITokenUsage(UserEvent):
    type: Literal["REQUEST_AI_TOKEN_USAGE"] = "REQUEST_AI_TOKEN_USAGE"
    data: None = None


class RequestPayment(UserEvent):
    """Total owed: SDK call spend plus AI token spend."""

    type: Literal["REQUEST_PAYMENT"] = "REQUEST_PAYMENT"
    data: None = None
